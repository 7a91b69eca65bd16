"""
Delete target validation.

Deletion is all-or-nothing on one batch, identified by its opaque id.
The check below only decides whether the current selection names exactly
one existing batch and builds what the confirmation prompt shows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from lecfeedback.index import HierarchyIndex
from lecfeedback.model import ANALYSIS_VERSION_LABELS, Batch, SessionLabel
from lecfeedback.resolver import resolve
from lecfeedback.selector import Selection


@dataclass(frozen=True)
class DeleteConfirmation:
    course_name: str
    academic_year: int
    term: str
    session_label: SessionLabel
    lecture_date: date
    analysis_version: str
    batch_id: int
    response_count: Optional[int] = None

    def describe(self) -> str:
        version = ANALYSIS_VERSION_LABELS.get(self.analysis_version, self.analysis_version)
        text = (
            f"{self.course_name} {self.academic_year} {self.term} | {self.session_label} "
            f"({self.lecture_date.isoformat()}) | {version} | batch {self.batch_id}"
        )
        if self.response_count is not None:
            text += f" | {self.response_count} responses"
        return text


@dataclass(frozen=True)
class DeleteCheck:
    may_proceed: bool
    confirmation: Optional[DeleteConfirmation] = None
    reason: str = ""


def validate_delete(index: HierarchyIndex, selection: Selection) -> DeleteCheck:
    """
    may_proceed is True iff every level is set and the selection resolves to
    exactly one batch. DuplicateBatchError from the resolver is not caught.
    """
    key = selection.to_key()
    if key is None:
        return DeleteCheck(may_proceed=False, reason=f"Please select: {', '.join(selection.missing())}")

    found = resolve(index, key)

    if not isinstance(found, Batch):
        return DeleteCheck(may_proceed=False, reason="Nothing to delete: no batch exists for this selection.")

    return DeleteCheck(
        may_proceed=True,
        confirmation=DeleteConfirmation(
            course_name=key.course_name,
            academic_year=key.academic_year,
            term=key.term,
            session_label=key.session_label,
            lecture_date=key.lecture_date,
            analysis_version=key.analysis_version,
            batch_id=found.batch_id,
            response_count=found.response_count,
        ),
    )
