"""
Cascading selection over the course hierarchy.

A selection is filled top-down:

    course_name -> year_term -> session_label -> lecture_date -> analysis_version

Setting a level always clears every level below it, so a selection is either
a consistent prefix of the hierarchy or empty at the tail. Option sets are
never cached: they are recomputed from (index, selection) on every call.

Two selection variants exist:
- ExistingCourseSelection: course name and (year, term) must exist in the index
- NewCourseDraft: free entry for a course that is not in the listing yet

Switching between them replaces the whole selection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Optional, Union

from lecfeedback.index import HierarchyIndex
from lecfeedback.model import ANALYSIS_VERSIONS, BatchKey, SessionLabel

logger = logging.getLogger(__name__)

COURSE_NAME = "course_name"
YEAR_TERM = "year_term"
SESSION_LABEL = "session_label"
LECTURE_DATE = "lecture_date"
ANALYSIS_VERSION = "analysis_version"

LEVELS: tuple[str, ...] = (COURSE_NAME, YEAR_TERM, SESSION_LABEL, LECTURE_DATE, ANALYSIS_VERSION)

UPLOAD = "upload"
DELETE = "delete"
WORKFLOWS = (UPLOAD, DELETE)


@dataclass(frozen=True)
class _SelectionFields:
    course_name: Optional[str] = None
    year_term: Optional[tuple[int, str]] = None
    session_label: Optional[SessionLabel] = None
    lecture_date: Optional[date] = None
    analysis_version: Optional[str] = None

    @property
    def academic_year(self) -> Optional[int]:
        return self.year_term[0] if self.year_term else None

    @property
    def term(self) -> Optional[str]:
        return self.year_term[1] if self.year_term else None

    def missing(self) -> list[str]:
        return [level for level in LEVELS if getattr(self, level) is None]

    def is_filled(self) -> bool:
        return not self.missing()

    def to_key(self) -> Optional[BatchKey]:
        if not self.is_filled() or self.year_term is None:
            return None
        return BatchKey(
            course_name=self.course_name or "",
            academic_year=self.year_term[0],
            term=self.year_term[1],
            session_label=self.session_label,  # type: ignore[arg-type]
            lecture_date=self.lecture_date,  # type: ignore[arg-type]
            analysis_version=self.analysis_version or "",
        )


@dataclass(frozen=True)
class ExistingCourseSelection(_SelectionFields):
    """Selection constrained to courses present in the listing."""


@dataclass(frozen=True)
class NewCourseDraft(_SelectionFields):
    """Selection for a course that the listing does not know yet."""


Selection = Union[ExistingCourseSelection, NewCourseDraft]


def selection_from_key(key: BatchKey, new_course: bool = False) -> Selection:
    cls = NewCourseDraft if new_course else ExistingCourseSelection
    return cls(
        course_name=key.course_name,
        year_term=(key.academic_year, key.term),
        session_label=key.session_label,
        lecture_date=key.lecture_date,
        analysis_version=key.analysis_version,
    )


def apply_field(selection: Selection, level: str, value: Any) -> Selection:
    """
    Pure transition: set `level` to `value` and clear every later level.
    """
    if level not in LEVELS:
        raise KeyError(f"Unknown selection level: {level!r}")
    pos = LEVELS.index(level)
    changes: dict[str, Any] = {level: value}
    for lower in LEVELS[pos + 1 :]:
        changes[lower] = None
    return replace(selection, **changes)


def _well_formed(level: str, value: Any) -> bool:
    """
    Type/shape check for free-entry levels.
    """
    if level == COURSE_NAME:
        return isinstance(value, str) and bool(value.strip())
    if level == YEAR_TERM:
        if not isinstance(value, tuple) or len(value) != 2:
            return False
        year, term = value
        return (
            isinstance(year, int)
            and not isinstance(year, bool)
            and year > 0
            and isinstance(term, str)
            and bool(term.strip())
        )
    if level == SESSION_LABEL:
        return isinstance(value, SessionLabel)
    if level == LECTURE_DATE:
        return isinstance(value, date)
    if level == ANALYSIS_VERSION:
        return value in ANALYSIS_VERSIONS
    return False


class CascadingSelector:
    """
    Holds the in-progress selection of one upload or delete workflow.
    """

    def __init__(self, index: HierarchyIndex, workflow: str = UPLOAD) -> None:
        if workflow not in WORKFLOWS:
            raise ValueError(f"Unknown workflow: {workflow!r}")
        self.index = index
        self.workflow = workflow
        self.selection: Selection = ExistingCourseSelection()

    @property
    def new_course(self) -> bool:
        return isinstance(self.selection, NewCourseDraft)

    def set_mode(self, new_course: bool) -> None:
        """
        Switch between existing-course and new-course entry.
        Toggling discards the whole selection; re-selecting the same mode keeps it.
        """
        if new_course and self.workflow == DELETE:
            raise ValueError("Only existing courses can be selected for deletion")
        if new_course == self.new_course:
            return
        self.selection = NewCourseDraft() if new_course else ExistingCourseSelection()
        logger.debug("Selection mode switched (new_course=%s), selection cleared", new_course)

    def is_constrained(self, level: str) -> bool:
        """
        True if the level only accepts values offered by options().
        """
        if level == ANALYSIS_VERSION:
            return True
        if self.new_course:
            return False
        if level in (COURSE_NAME, YEAR_TERM):
            return True
        return self.workflow == DELETE

    def options(self, level: str) -> set[Any]:
        """
        Valid values for `level` given the levels above it.

        Free-entry levels report the values already known under the prefix
        (useful as suggestions); the analysis version level of the upload
        workflow always offers every version.
        """
        if level not in LEVELS:
            raise KeyError(f"Unknown selection level: {level!r}")
        s = self.selection
        for upper in LEVELS[: LEVELS.index(level)]:
            if getattr(s, upper) is None:
                return set()

        if level == ANALYSIS_VERSION and self.workflow == UPLOAD:
            return set(ANALYSIS_VERSIONS)
        if self.new_course:
            return set()

        idx = self.index
        if level == COURSE_NAME:
            return idx.options_for_course_name()
        if level == YEAR_TERM:
            return idx.options_for_year_term(s.course_name)
        if level == SESSION_LABEL:
            return idx.options_for_session(s.course_name, s.academic_year, s.term)
        if level == LECTURE_DATE:
            return idx.options_for_lecture_date(s.course_name, s.academic_year, s.term, s.session_label)
        return idx.options_for_analysis_version(
            s.course_name, s.academic_year, s.term, s.session_label, s.lecture_date
        )

    def set_field(self, level: str, value: Any) -> bool:
        """
        Set one level and clear everything below it.

        Returns False if the value was rejected; the level is then left unset
        (together with everything below it). A value is also rejected while any
        level above it is unset. Passing None just clears.
        """
        if level not in LEVELS:
            raise KeyError(f"Unknown selection level: {level!r}")

        if isinstance(value, str) and level == COURSE_NAME:
            value = value.strip()
        if value is None:
            self.selection = apply_field(self.selection, level, None)
            return True

        parents_set = all(getattr(self.selection, upper) is not None for upper in LEVELS[: LEVELS.index(level)])
        ok = parents_set and _well_formed(level, value)
        if ok and self.is_constrained(level):
            ok = value in self.options(level)

        if not ok:
            logger.debug("Rejected %s=%r (workflow=%s)", level, value, self.workflow)
            self.selection = apply_field(self.selection, level, None)
            return False

        self.selection = apply_field(self.selection, level, value)
        return True

    def first_unset_level(self) -> Optional[str]:
        for level in LEVELS:
            if getattr(self.selection, level) is None:
                return level
        return None

    def key(self) -> Optional[BatchKey]:
        return self.selection.to_key()

    def is_complete(self) -> bool:
        """
        Upload: all five levels set.
        Delete: additionally the key must resolve to an existing batch.
        """
        key = self.key()
        if key is None:
            return False
        if self.workflow == DELETE:
            from lecfeedback.resolver import NOT_FOUND, resolve

            return resolve(self.index, key) is not NOT_FOUND
        return True

    def reset(self) -> None:
        self.selection = NewCourseDraft() if self.new_course else ExistingCourseSelection()

