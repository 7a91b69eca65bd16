"""
Central data model definitions used across the project.

This module defines the canonical structure of Course, Session and Batch
records so that:
- the index, selector, resolver and CLI share the same field names
- the dataset snapshot has exactly one JSON shape (load and save)
- the closed value sets (analysis versions, session labels) live in one place
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


PRELIMINARY = "preliminary"
CONFIRMED = "confirmed"
ANALYSIS_VERSIONS: Tuple[str, ...] = (PRELIMINARY, CONFIRMED)

ANALYSIS_VERSION_LABELS = {
    PRELIMINARY: "速報版",
    CONFIRMED: "確定版",
}

SPECIAL_SESSION_TEXT = "特別回"

_ORDINAL_RE = re.compile(r"^第\s*(\d+)\s*回$")


def parse_analysis_version(value: Any) -> Optional[str]:
    """
    Normalize 'confirmed', 'CONFIRMED' or '確定版' to the canonical version.
    Returns None for anything outside the closed set.
    """
    text = "" if value is None else str(value).strip()
    if text.lower() in ANALYSIS_VERSIONS:
        return text.lower()
    for version, label in ANALYSIS_VERSION_LABELS.items():
        if text == label:
            return version
    return None


@dataclass(frozen=True)
class SessionLabel:
    """
    Either an ordinal lecture number (第n回) or the special-session marker.

    The two cases are mutually exclusive; number 0 never means "special".
    """

    number: Optional[int] = None
    special: bool = False

    def __post_init__(self) -> None:
        if self.special and self.number is not None:
            raise ValueError("A special session has no ordinal number")
        if not self.special and (self.number is None or self.number < 1):
            raise ValueError(f"Invalid session number: {self.number!r}")

    @classmethod
    def ordinal(cls, n: int) -> "SessionLabel":
        return cls(number=int(n))

    @classmethod
    def special_session(cls) -> "SessionLabel":
        return cls(special=True)

    @classmethod
    def parse(cls, text: Any) -> "SessionLabel":
        """
        Accepts '第3回', '3', '特別回' or 'special'.
        Raises ValueError for everything else (including '0').
        """
        raw = "" if text is None else str(text).strip()
        if raw == SPECIAL_SESSION_TEXT or raw.lower() == "special":
            return cls.special_session()
        m = _ORDINAL_RE.match(raw)
        if m:
            return cls.ordinal(int(m.group(1)))
        if raw.isdigit():
            return cls.ordinal(int(raw))
        raise ValueError(f"Invalid session label: {text!r}")

    def sort_key(self) -> Tuple[int, int]:
        # ordinals first (by number), special session last
        return (1, 0) if self.special else (0, self.number or 0)

    def __str__(self) -> str:
        if self.special:
            return SPECIAL_SESSION_TEXT
        return f"第{self.number}回"


@dataclass(frozen=True)
class Batch:
    """
    One uploaded survey dataset for a session, identified by its opaque id.
    """

    batch_id: int
    analysis_version: str
    response_count: Optional[int] = None
    uploaded_at: Optional[str] = None


@dataclass(frozen=True)
class Session:
    """
    One lecture instance of a course. (label, lecture_date) identifies it.
    """

    label: SessionLabel
    lecture_date: date
    instructor_name: str = ""
    description: Optional[str] = None
    batches: Tuple[Batch, ...] = ()
    lecture_id: Optional[int] = None


@dataclass(frozen=True)
class Course:
    """
    Represents one course offering as delivered by the course listing.
    """

    name: str
    academic_year: int
    term: str
    sessions: Tuple[Session, ...] = field(default_factory=tuple)
    session_count: Optional[int] = None

    @property
    def key(self) -> Tuple[str, int, str]:
        return (self.name, self.academic_year, self.term)


@dataclass(frozen=True)
class BatchKey:
    """
    The complete six-part key an upload creates and a delete targets.
    """

    course_name: str
    academic_year: int
    term: str
    session_label: SessionLabel
    lecture_date: date
    analysis_version: str

    @property
    def is_special_session(self) -> bool:
        return self.session_label.special

    def describe(self) -> str:
        version = ANALYSIS_VERSION_LABELS.get(self.analysis_version, self.analysis_version)
        return (
            f"{self.course_name} | {self.academic_year} {self.term} | "
            f"{self.session_label} | {self.lecture_date.isoformat()} | {version}"
        )


# ---------------------------------------------------------------------------
# Payload <-> model
# ---------------------------------------------------------------------------


def _as_int(x: Any) -> Optional[int]:
    if x is None or isinstance(x, bool):
        return None
    try:
        return int(x)
    except (TypeError, ValueError):
        return None


def _batch_from_dict(raw: dict[str, Any]) -> Optional[Batch]:
    version = parse_analysis_version(raw.get("batch_type", raw.get("analysis_version")))
    batch_id = _as_int(raw.get("id", raw.get("batch_id")))
    if version is None or batch_id is None:
        logger.warning("Skipping malformed batch record: %r", raw)
        return None
    uploaded_at = raw.get("uploaded_at")
    return Batch(
        batch_id=batch_id,
        analysis_version=version,
        response_count=_as_int(raw.get("response_count")),
        uploaded_at=str(uploaded_at) if uploaded_at is not None else None,
    )


def _session_from_dict(raw: dict[str, Any]) -> Optional[Session]:
    try:
        label = SessionLabel.parse(raw.get("session"))
        lecture_date = date.fromisoformat(str(raw.get("lecture_date", "")).strip())
    except ValueError:
        logger.warning("Skipping malformed session record: %r", raw)
        return None

    batches: List[Batch] = []
    raw_batches = raw.get("batches", [])
    if isinstance(raw_batches, list):
        for b in raw_batches:
            if isinstance(b, dict):
                batch = _batch_from_dict(b)
                if batch is not None:
                    batches.append(batch)

    description = raw.get("description")
    return Session(
        label=label,
        lecture_date=lecture_date,
        instructor_name=str(raw.get("instructor_name") or "").strip(),
        description=str(description) if description is not None else None,
        batches=tuple(batches),
        lecture_id=_as_int(raw.get("id", raw.get("lecture_id"))),
    )


def course_from_dict(raw: dict[str, Any]) -> Optional[Course]:
    name = str(raw.get("name") or "").strip()
    term = str(raw.get("term") or "").strip()
    year = _as_int(raw.get("academic_year"))
    if not name or not term or year is None:
        logger.warning("Skipping malformed course record: %r", raw)
        return None

    raw_sessions = raw.get("sessions", raw.get("lectures", []))
    sessions: List[Session] = []
    if isinstance(raw_sessions, list):
        for s in raw_sessions:
            if isinstance(s, dict):
                session = _session_from_dict(s)
                if session is not None:
                    sessions.append(session)

    return Course(
        name=name,
        academic_year=year,
        term=term,
        sessions=tuple(sessions),
        session_count=_as_int(raw.get("session_count")),
    )


def courses_from_payload(payload: Any) -> list[Course]:
    """
    Build the course snapshot from a "list courses" payload.

    Accepts {"courses": [...]} or a bare list. Malformed records are skipped.
    Order is preserved.
    """
    items = payload.get("courses", []) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return []

    out: list[Course] = []
    for raw in items:
        if not isinstance(raw, dict):
            continue
        course = course_from_dict(raw)
        if course is not None:
            out.append(course)
    return out


def courses_to_payload(courses: Iterable[Course]) -> dict[str, Any]:
    return {
        "courses": [
            {
                "name": c.name,
                "academic_year": c.academic_year,
                "term": c.term,
                "session_count": c.session_count,
                "sessions": [
                    {
                        "lecture_id": s.lecture_id,
                        "session": str(s.label),
                        "lecture_date": s.lecture_date.isoformat(),
                        "instructor_name": s.instructor_name,
                        "description": s.description,
                        "batches": [
                            {
                                "batch_id": b.batch_id,
                                "batch_type": b.analysis_version,
                                "response_count": b.response_count,
                                "uploaded_at": b.uploaded_at,
                            }
                            for b in s.batches
                        ],
                    }
                    for s in c.sessions
                ],
            }
            for c in courses
        ]
    }
