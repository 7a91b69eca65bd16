"""
Hierarchy index over one course snapshot.

Built once per snapshot; answers "which values are valid at this level given
the values chosen above it" with dict lookups instead of rescanning the
course list for every keystroke.

Levels:
    course name -> (academic year, term) -> session label -> lecture date
    -> analysis version

Every query on an undefined prefix returns an empty set. Callers treat
"no options" as the signal to keep the next field disabled.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from lecfeedback.model import Batch, BatchKey, Course, Session, SessionLabel

logger = logging.getLogger(__name__)

CourseKey = tuple[str, int, str]
SessionKey = tuple[str, int, str, SessionLabel, date]


class HierarchyIndex:
    def __init__(self, courses: Iterable[Course], batches_only: bool = False) -> None:
        """
        batches_only: skip sessions that have no batch yet (delete workflow).
        """
        self.courses: list[Course] = list(courses)
        self.batches_only = batches_only

        self._year_terms: dict[str, set[tuple[int, str]]] = defaultdict(set)
        self._labels: dict[CourseKey, set[SessionLabel]] = defaultdict(set)
        self._dates: dict[tuple[str, int, str, SessionLabel], set[date]] = defaultdict(set)
        self._versions: dict[SessionKey, set[str]] = defaultdict(set)

        # Lists on purpose: duplicates in malformed input must stay visible
        self._course_records: dict[CourseKey, list[Course]] = defaultdict(list)
        self._session_records: dict[SessionKey, list[Session]] = defaultdict(list)
        self._batch_records: dict[tuple[str, int, str, SessionLabel, date, str], list[Batch]] = defaultdict(list)

        for course in self.courses:
            ckey = course.key
            sessions = [s for s in course.sessions if s.batches or not batches_only]
            if batches_only and not sessions:
                continue

            name, year, term = ckey
            self._year_terms[name].add((year, term))
            self._course_records[ckey].append(course)

            for s in sessions:
                skey = (name, year, term, s.label, s.lecture_date)
                self._labels[ckey].add(s.label)
                self._dates[(name, year, term, s.label)].add(s.lecture_date)
                self._session_records[skey].append(s)
                for b in s.batches:
                    self._versions[skey].add(b.analysis_version)
                    self._batch_records[skey + (b.analysis_version,)].append(b)

        logger.debug(
            "Index built: %d course names, %d courses, %d sessions, %d batch keys (batches_only=%s)",
            len(self._year_terms),
            len(self._course_records),
            len(self._session_records),
            len(self._batch_records),
            batches_only,
        )

    # -- option queries -----------------------------------------------------

    def options_for_course_name(self) -> set[str]:
        return set(self._year_terms.keys())

    def options_for_year_term(self, course_name: Optional[str]) -> set[tuple[int, str]]:
        if not course_name:
            return set()
        return set(self._year_terms.get(course_name, ()))

    def options_for_session(
        self, course_name: Optional[str], academic_year: Optional[int], term: Optional[str]
    ) -> set[SessionLabel]:
        if not course_name or academic_year is None or not term:
            return set()
        return set(self._labels.get((course_name, academic_year, term), ()))

    def options_for_lecture_date(
        self,
        course_name: Optional[str],
        academic_year: Optional[int],
        term: Optional[str],
        session_label: Optional[SessionLabel],
    ) -> set[date]:
        if not course_name or academic_year is None or not term or session_label is None:
            return set()
        return set(self._dates.get((course_name, academic_year, term, session_label), ()))

    def options_for_analysis_version(
        self,
        course_name: Optional[str],
        academic_year: Optional[int],
        term: Optional[str],
        session_label: Optional[SessionLabel],
        lecture_date: Optional[date],
    ) -> set[str]:
        """
        Versions for which a batch already exists at this exact session.
        """
        if not course_name or academic_year is None or not term or session_label is None or lecture_date is None:
            return set()
        return set(self._versions.get((course_name, academic_year, term, session_label, lecture_date), ()))

    # -- record lookups -----------------------------------------------------

    def has_course(self, course_name: str, academic_year: int, term: str) -> bool:
        return (course_name, academic_year, term) in self._course_records

    def courses_at(self, course_name: str, academic_year: int, term: str) -> list[Course]:
        return list(self._course_records.get((course_name, academic_year, term), ()))

    def sessions_at(
        self, course_name: str, academic_year: int, term: str, session_label: SessionLabel, lecture_date: date
    ) -> list[Session]:
        return list(self._session_records.get((course_name, academic_year, term, session_label, lecture_date), ()))

    def batches_at(self, key: BatchKey) -> list[Batch]:
        """
        All batches stored under the key. More than one means corrupted input.
        """
        return list(
            self._batch_records.get(
                (
                    key.course_name,
                    key.academic_year,
                    key.term,
                    key.session_label,
                    key.lecture_date,
                    key.analysis_version,
                ),
                (),
            )
        )

    def session_count(self, course_name: str, academic_year: int, term: str) -> Optional[int]:
        """
        Planned number of lectures for the course, when the listing provides it.
        """
        for course in self._course_records.get((course_name, academic_year, term), ()):
            if course.session_count:
                return course.session_count
        return None
