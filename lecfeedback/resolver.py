"""
Batch resolution.

Walks course (name, year, term) -> session (label, date) -> batch (version).
Each step must narrow to exactly one record. Zero matches is the normal
"nothing uploaded yet" answer; more than one match means the listing broke
its uniqueness rules and the caller must not act on it.
"""

from __future__ import annotations

import logging
from typing import Union

from lecfeedback.errors import DuplicateBatchError, IncompleteSelectionError
from lecfeedback.index import HierarchyIndex
from lecfeedback.model import Batch, BatchKey
from lecfeedback.selector import Selection

logger = logging.getLogger(__name__)


class NotFound:
    """No batch exists at the resolved key."""

    _instance = None

    def __new__(cls) -> "NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = NotFound()


def _as_key(target: Union[Selection, BatchKey]) -> BatchKey:
    if isinstance(target, BatchKey):
        return target
    key = target.to_key()
    if key is None:
        raise IncompleteSelectionError(target.missing())
    return key


def resolve(index: HierarchyIndex, target: Union[Selection, BatchKey]) -> Union[Batch, NotFound]:
    """
    Map a complete selection (or key) to its batch.

    Raises IncompleteSelectionError for an incomplete selection and
    DuplicateBatchError when more than one batch matches.
    """
    key = _as_key(target)

    courses = index.courses_at(key.course_name, key.academic_year, key.term)
    if not courses:
        return NOT_FOUND

    sessions = index.sessions_at(key.course_name, key.academic_year, key.term, key.session_label, key.lecture_date)
    if not sessions:
        return NOT_FOUND

    batches = index.batches_at(key)
    if len(courses) > 1 or len(sessions) > 1:
        # Duplicated course/session records only matter once they hold batches here
        if batches:
            logger.error(
                "Duplicate records for %s: %d courses, %d sessions", key.describe(), len(courses), len(sessions)
            )
            raise DuplicateBatchError(key.describe(), [b.batch_id for b in batches])
    if len(batches) > 1:
        logger.error("Duplicate batches for %s: %s", key.describe(), [b.batch_id for b in batches])
        raise DuplicateBatchError(key.describe(), [b.batch_id for b in batches])
    if not batches:
        return NOT_FOUND

    logger.debug("Resolved %s -> batch %s", key.describe(), batches[0].batch_id)
    return batches[0]
