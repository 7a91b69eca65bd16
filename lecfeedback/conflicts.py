"""
Upload conflict detection.

A candidate upload conflicts if a batch already occupies its exact key:
    same course name, year, term, session label, lecture date AND version

No fuzzy matching: a lecture date one day off is a different key.
An incomplete candidate never conflicts. These functions only report;
blocking the submit is up to the caller.
"""

from __future__ import annotations

from typing import Optional, Union

from lecfeedback.index import HierarchyIndex
from lecfeedback.model import ANALYSIS_VERSION_LABELS, Batch, BatchKey
from lecfeedback.resolver import resolve
from lecfeedback.selector import Selection

Candidate = Union[Selection, BatchKey, None]


def _candidate_key(candidate: Candidate) -> Optional[BatchKey]:
    if candidate is None:
        return None
    if isinstance(candidate, BatchKey):
        return candidate
    return candidate.to_key()


def find_conflict(index: HierarchyIndex, candidate: Candidate) -> Optional[Batch]:
    """
    Return the batch occupying the candidate key, or None.
    """
    key = _candidate_key(candidate)
    if key is None:
        return None
    found = resolve(index, key)
    return found if isinstance(found, Batch) else None


def has_conflict(index: HierarchyIndex, candidate: Candidate) -> bool:
    return find_conflict(index, candidate) is not None


def conflict_message(key: BatchKey, batch: Batch) -> str:
    version = ANALYSIS_VERSION_LABELS.get(key.analysis_version, key.analysis_version)
    uploaded = f", uploaded {batch.uploaded_at}" if batch.uploaded_at else ""
    return (
        f"Duplicate data: {key.course_name} / {key.academic_year} {key.term} / "
        f"{key.session_label} ({key.lecture_date.isoformat()}) / {version} "
        f"already exists (batch {batch.batch_id}{uploaded}).\n"
        "The new data will not be uploaded. To replace it, delete the existing batch first, "
        "then upload again."
    )
