"""
Upload form checks and the field set handed to the uploader.

The hierarchy key comes from the selector; everything else here is form
data (instructor, participant counts, file) that the core passes through
without interpreting the file itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from lecfeedback.config import ALLOWED_UPLOAD_EXTENSIONS
from lecfeedback.model import CONFIRMED, PRELIMINARY, BatchKey


@dataclass
class UploadForm:
    file_path: Optional[Path] = None
    instructor_name: str = ""
    description: Optional[str] = None
    zoom_participants: Optional[int] = None
    recording_views: Optional[int] = None
    # only required for a new course
    session_count: Optional[int] = None


def validate_upload(
    key: Optional[BatchKey],
    form: UploadForm,
    new_course: bool = False,
    known_session_count: Optional[int] = None,
) -> list[str]:
    """
    Return every problem with the upload (empty list = ready to submit).
    Duplicate detection is not part of this; see conflicts.has_conflict.
    """
    problems: list[str] = []

    if form.file_path is None:
        problems.append("Please select a file.")
    elif Path(form.file_path).suffix.lower() not in ALLOWED_UPLOAD_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_UPLOAD_EXTENSIONS))
        problems.append(f"Unsupported file type: {Path(form.file_path).name} (allowed: {allowed})")
    elif not Path(form.file_path).is_file():
        problems.append(f"File not found: {form.file_path}")

    if key is None:
        problems.append("Please complete course, year/term, session, lecture date and analysis version.")

    if not form.instructor_name.strip():
        problems.append("Please enter the instructor name.")

    if key is not None:
        if key.analysis_version == PRELIMINARY and (form.zoom_participants is None or form.zoom_participants <= 0):
            problems.append("Please enter the number of Zoom participants.")
        if key.analysis_version == CONFIRMED and (form.recording_views is None or form.recording_views <= 0):
            problems.append("Please enter the number of recording views.")

    if new_course and (form.session_count is None or form.session_count <= 0):
        problems.append("Please enter the total number of sessions for the new course.")

    limit = form.session_count if new_course else known_session_count
    if key is not None and limit and key.session_label.number is not None and key.session_label.number > limit:
        problems.append(f"Session number must be {limit} or lower.")

    return problems


def build_upload_fields(key: BatchKey, form: UploadForm) -> dict[str, str]:
    """
    Multipart form fields for the upload call (the file is sent separately).
    """
    fields = {
        "course_name": key.course_name,
        "academic_year": str(key.academic_year),
        "term": key.term,
        "session": str(key.session_label),
        "is_special_session": "true" if key.is_special_session else "false",
        "lecture_date": key.lecture_date.isoformat(),
        "instructor_name": form.instructor_name.strip(),
        "batch_type": key.analysis_version,
    }
    if form.description:
        fields["description"] = form.description
    if form.zoom_participants is not None:
        fields["zoom_participants"] = str(form.zoom_participants)
    if form.recording_views is not None:
        fields["recording_views"] = str(form.recording_views)
    if form.session_count is not None:
        fields["session_count"] = str(form.session_count)
    return fields
