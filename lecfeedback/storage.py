"""
Persistent storage for the last fetched course listing.

This module manages the file:

    data/processed/courses.json

The snapshot is always replaced as a whole (after every refresh, upload or
delete); it is never patched in place.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable

from lecfeedback.config import default_snapshot_path
from lecfeedback.model import Course, courses_from_payload, courses_to_payload

logger = logging.getLogger(__name__)


def load_snapshot(path: str | Path | None = None) -> list[Course]:
    """
    Load the course snapshot.

    Returns an empty list if the file does not exist or is invalid.
    """
    # Use custom path if provided (mainly for tests),
    # otherwise fall back to the default package location
    snapshot_path = Path(path) if path is not None else default_snapshot_path()

    if not snapshot_path.exists():
        logger.info("No course snapshot at %s yet", snapshot_path)
        return []

    try:
        data = json.loads(snapshot_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning("Could not read course snapshot %s: %s", snapshot_path, e)
        return []
    return courses_from_payload(data)


def save_snapshot(courses: Iterable[Course], path: str | Path | None = None) -> Path:
    """
    Replace the course snapshot. Creates parent directories if needed.
    """
    snapshot_path = Path(path) if path is not None else default_snapshot_path()
    snapshot_path.parent.mkdir(parents=True, exist_ok=True)

    payload = courses_to_payload(courses)
    snapshot_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.debug("Saved %d courses to %s", len(payload["courses"]), snapshot_path)
    return snapshot_path
