"""
HTTP client for the feedback backend.

Endpoints used (relative to API_BASE_URL):

    GET    /courses                     course listing
    GET    /courses/detail              one course with lectures and batches
    POST   /surveys/upload              multipart survey upload
    DELETE /surveys/batches/<id>        delete one batch
    GET    /jobs/<id>                   upload job status

HTTP 401 (or no connection at all) means the login session expired: the
client calls the on_session_expired callback and raises AuthExpiredError.
Other transport failures (timeouts and the like) raise ApiError with code
NETWORK_ERROR. Nothing is retried.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

import requests

from lecfeedback.config import API_BASE_URL, JOB_MAX_POLLS, JOB_POLL_INTERVAL, REQUEST_TIMEOUT
from lecfeedback.errors import ApiError, AuthExpiredError
from lecfeedback.model import Course, courses_from_payload

logger = logging.getLogger(__name__)

JOB_FINISHED = ("completed", "failed")


class ApiClient:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        on_session_expired: Optional[Callable[[], None]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.on_session_expired = on_session_expired
        self.session = session or requests.Session()
        self._expired_notified = False

    # -- plumbing -----------------------------------------------------------

    def _session_expired(self, reason: str) -> AuthExpiredError:
        logger.warning("Session expired: %s", reason)
        # notify once per client, not on every failing call
        if self.on_session_expired is not None and not self._expired_notified:
            self._expired_notified = True
            self.on_session_expired()
        return AuthExpiredError(reason)

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{endpoint}"
        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.ConnectionError as e:
            raise self._session_expired(f"connection failed: {e}") from e
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise ApiError(0, "NETWORK_ERROR", f"Request failed: {e}") from e

        if resp.status_code == 401:
            raise self._session_expired("HTTP 401")

        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = None
            err = body.get("error", {}) if isinstance(body, dict) else {}
            if not isinstance(err, dict):
                err = {}
            raise ApiError(
                resp.status_code,
                err.get("code") or "UNKNOWN_ERROR",
                err.get("message") or f"API error: {resp.status_code}",
                err.get("details") or err.get("existing_data"),
            )

        return resp.json()

    # -- courses ------------------------------------------------------------

    def list_courses(
        self, name: Optional[str] = None, academic_year: Optional[int] = None, term: Optional[str] = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        if name:
            params["name"] = name
        if academic_year:
            params["academic_year"] = academic_year
        if term:
            params["term"] = term
        data = self._request("GET", "/courses", params=params)
        courses = data.get("courses", []) if isinstance(data, dict) else []
        return courses if isinstance(courses, list) else []

    def course_detail(self, name: str, academic_year: int, term: str) -> dict[str, Any]:
        params = {"name": name, "academic_year": academic_year, "term": term}
        return self._request("GET", "/courses/detail", params=params)

    def fetch_dataset(self) -> list[Course]:
        """
        Fetch a complete snapshot: the listing, then the detail of each course
        (the listing does not carry batch ids).
        """
        details: list[dict[str, Any]] = []
        for item in self.list_courses():
            name = item.get("name")
            year = item.get("academic_year")
            term = item.get("term")
            if not name or year is None or not term:
                continue
            detail = self.course_detail(name, year, term)
            if "session_count" not in detail and item.get("session_count") is not None:
                detail = {**detail, "session_count": item["session_count"]}
            details.append(detail)

        courses = courses_from_payload(details)
        logger.info("Fetched %d courses", len(courses))
        return courses

    # -- upload / delete ----------------------------------------------------

    def upload_survey(self, fields: dict[str, str], file_path: str | Path) -> dict[str, Any]:
        """
        POST the survey file with its form fields. A duplicate key comes back
        as ApiError with code 'CONFLICT'.
        """
        path = Path(file_path)
        try:
            fh = path.open("rb")
        except OSError as e:
            raise ApiError(0, "FILE_ERROR", f"Cannot read {path}: {e.strerror or e}") from e
        with fh:
            return self._request("POST", "/surveys/upload", data=fields, files={"file": (path.name, fh)})

    def delete_batch(self, batch_id: int) -> dict[str, Any]:
        return self._request("DELETE", f"/surveys/batches/{int(batch_id)}")

    def job_status(self, job_id: str) -> dict[str, Any]:
        return self._request("GET", f"/jobs/{job_id}")

    def wait_for_job(
        self, job_id: str, poll_interval: float = JOB_POLL_INTERVAL, max_polls: int = JOB_MAX_POLLS
    ) -> dict[str, Any]:
        """
        Poll an upload job until it is completed or failed.

        Returns the last status payload. A job that is still queued or
        processing after max_polls is returned as it is.
        """
        status: dict[str, Any] = {}
        for attempt in range(max_polls):
            status = self.job_status(job_id)
            if status.get("status") in JOB_FINISHED:
                break
            if attempt + 1 < max_polls:
                time.sleep(poll_interval)
        logger.info("Job %s: %s", job_id, status.get("status", "unknown"))
        return status
