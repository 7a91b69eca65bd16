"""
Tests for the backend client. No network: requests.Session is mocked.

- HTTP 401 / connection failure -> callback (once) + AuthExpiredError
- timeouts and other transport errors -> ApiError NETWORK_ERROR
- other error statuses -> ApiError with the server's code and message
- fetch_dataset merges the listing with per-course details
"""

import tempfile
import unittest
from pathlib import Path
from unittest import mock

import requests

from lecfeedback.api import ApiClient
from lecfeedback.errors import ApiError, AuthExpiredError
from sample_dataset import sample_payload


def _response(status: int = 200, body=None) -> mock.Mock:
    resp = mock.Mock()
    resp.status_code = status
    resp.ok = status < 400
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


class TestApiClient(unittest.TestCase):
    def setUp(self) -> None:
        self.session = mock.Mock(spec=requests.Session)
        self.expired = mock.Mock()
        self.client = ApiClient(
            base_url="http://backend.test/api/v1/",
            timeout=5,
            on_session_expired=self.expired,
            session=self.session,
        )

    def test_request_url_and_timeout(self) -> None:
        self.session.request.return_value = _response(body={"courses": []})
        self.assertEqual(self.client.list_courses(name="ML基礎"), [])
        self.session.request.assert_called_once_with(
            "GET", "http://backend.test/api/v1/courses", timeout=5, params={"name": "ML基礎"}
        )

    def test_401_notifies_once(self) -> None:
        self.session.request.return_value = _response(401, {"error": {"code": "UNAUTHORIZED"}})
        with self.assertLogs("lecfeedback.api", level="WARNING"):
            with self.assertRaises(AuthExpiredError):
                self.client.delete_batch(101)
            with self.assertRaises(AuthExpiredError):
                self.client.delete_batch(101)
        self.expired.assert_called_once_with()

    def test_connection_failure_counts_as_expired(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("refused")
        with self.assertLogs("lecfeedback.api", level="WARNING"):
            with self.assertRaises(AuthExpiredError):
                self.client.list_courses()
        self.expired.assert_called_once_with()

    def test_error_body_is_parsed(self) -> None:
        body = {
            "error": {
                "code": "CONFLICT",
                "message": "Data already exists",
                "existing_data": {"batch_id": 102},
            }
        }
        self.session.request.return_value = _response(409, body)
        with self.assertRaises(ApiError) as ctx:
            self.client.delete_batch(102)
        err = ctx.exception
        self.assertEqual(err.status, 409)
        self.assertEqual(err.code, "CONFLICT")
        self.assertEqual(str(err), "Data already exists")
        self.assertEqual(err.details, {"batch_id": 102})
        self.expired.assert_not_called()

    def test_error_without_body(self) -> None:
        self.session.request.return_value = _response(500)
        with self.assertRaises(ApiError) as ctx:
            self.client.job_status("abc")
        self.assertEqual(ctx.exception.code, "UNKNOWN_ERROR")
        self.assertEqual(str(ctx.exception), "API error: 500")

    def test_fetch_dataset(self) -> None:
        details = {(c["name"], c["academic_year"], c["term"]): c for c in sample_payload()["courses"]}
        for detail in details.values():
            detail.pop("session_count", None)
        listing = {
            "courses": [
                {"name": n, "academic_year": y, "term": t, "session_count": 12 if y == 2024 else None}
                for (n, y, t) in details
            ]
        }

        def fake_request(method, url, timeout, params=None, **kwargs):
            if url.endswith("/courses"):
                return _response(body=listing)
            return _response(body=details[(params["name"], params["academic_year"], params["term"])])

        self.session.request.side_effect = fake_request
        with self.assertLogs("lecfeedback.api", level="INFO"):
            courses = self.client.fetch_dataset()

        self.assertEqual(len(courses), 3)
        ml2024 = next(c for c in courses if c.key == ("ML基礎", 2024, "前期"))
        self.assertEqual(ml2024.session_count, 12)
        self.assertEqual(len(ml2024.sessions), 4)
        self.assertEqual(ml2024.sessions[0].batches[1].batch_id, 102)

    def test_upload_sends_file_and_fields(self) -> None:
        self.session.request.return_value = _response(202, {"job_id": "job-1", "status": "queued"})
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "survey.csv"
            p.write_text("q1,q2\n5,4\n", encoding="utf-8")
            result = self.client.upload_survey({"course_name": "ML基礎"}, p)

        self.assertEqual(result["job_id"], "job-1")
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "http://backend.test/api/v1/surveys/upload"))
        self.assertEqual(kwargs["data"], {"course_name": "ML基礎"})
        self.assertEqual(kwargs["files"]["file"][0], "survey.csv")

    def test_timeout_is_network_error(self) -> None:
        self.session.request.side_effect = requests.ReadTimeout("slow")
        with self.assertLogs("lecfeedback.api", level="WARNING"):
            with self.assertRaises(ApiError) as ctx:
                self.client.delete_batch(101)
        self.assertEqual(ctx.exception.code, "NETWORK_ERROR")
        self.assertIn("slow", str(ctx.exception))
        self.expired.assert_not_called()

    def test_unreadable_upload_file(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(ApiError) as ctx:
                self.client.upload_survey({}, Path(d) / "gone.xlsx")
        self.assertEqual(ctx.exception.code, "FILE_ERROR")
        self.session.request.assert_not_called()

    def test_wait_for_job_polls_until_finished(self) -> None:
        self.session.request.side_effect = [
            _response(body={"job_id": "job-1", "status": "queued"}),
            _response(body={"job_id": "job-1", "status": "processing"}),
            _response(body={"job_id": "job-1", "status": "completed", "result": {"batch_id": 301}}),
        ]
        with mock.patch("lecfeedback.api.time.sleep") as sleep:
            status = self.client.wait_for_job("job-1", poll_interval=0.5, max_polls=5)
        self.assertEqual(status["result"]["batch_id"], 301)
        self.assertEqual(self.session.request.call_count, 3)
        self.assertEqual(sleep.call_args_list, [mock.call(0.5), mock.call(0.5)])
        self.assertEqual(self.session.request.call_args[0], ("GET", "http://backend.test/api/v1/jobs/job-1"))

    def test_wait_for_job_gives_up(self) -> None:
        self.session.request.return_value = _response(body={"job_id": "job-1", "status": "processing"})
        with mock.patch("lecfeedback.api.time.sleep") as sleep:
            status = self.client.wait_for_job("job-1", poll_interval=1, max_polls=3)
        self.assertEqual(status["status"], "processing")
        self.assertEqual(self.session.request.call_count, 3)
        self.assertEqual(sleep.call_count, 2)


if __name__ == "__main__":
    unittest.main()
