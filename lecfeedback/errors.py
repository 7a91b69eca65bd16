"""
Exception types.

Expected outcomes (no options, batch not found, upload conflict) are plain
return values. Only the cases below are raised.
"""

from __future__ import annotations

from typing import Optional


class LecFeedbackError(Exception):
    """Base class for all package errors."""


class IncompleteSelectionError(LecFeedbackError, ValueError):
    """
    A resolver/validator was called with a selection that is not complete.
    This is a caller bug, not a user-facing condition.
    """

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Selection is incomplete, missing: {', '.join(self.missing)}")


class DuplicateBatchError(LecFeedbackError):
    """
    More than one batch matches a fully specified key.
    The input dataset is corrupted; nothing may be picked from it.
    """

    def __init__(self, key: object, batch_ids: list[int]) -> None:
        self.key = key
        self.batch_ids = list(batch_ids)
        super().__init__(f"{len(self.batch_ids)} batches match one key ({key}): ids={self.batch_ids}")


class ApiError(LecFeedbackError):
    def __init__(
        self,
        status: int,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.status = status
        self.code = code
        self.details = details
        super().__init__(message)


class AuthExpiredError(LecFeedbackError):
    """The API rejected the session (HTTP 401) or could not be reached."""
