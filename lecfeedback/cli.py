"""
CLI (Command Line Interface).

This module provides terminal commands for operators and for testing, e.g.:

    lecfeedback courses
    lecfeedback options --course ML基礎 --year 2024 --term 前期
    lecfeedback check --course ... --session 第1回 --date 2024-04-08 --version confirmed
    lecfeedback upload survey.xlsx --course ... --instructor 山田太郎 --zoom 120
    lecfeedback delete --course ... --version preliminary
    lecfeedback refresh
    lecfeedback interactive

All commands work on the cached course snapshot (see storage.py);
`refresh`, `upload` and `delete` talk to the backend and replace it.

Exit codes: 0 ok, 1 refused (invalid input, conflict, nothing to delete,
API failure), 2 corrupted data (duplicate batches for one key).
"""

from __future__ import annotations

import argparse
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional

from rich.logging import RichHandler

from lecfeedback.api import ApiClient
from lecfeedback.config import API_BASE_URL, LOG_LEVEL
from lecfeedback.conflicts import conflict_message, find_conflict
from lecfeedback.delete import validate_delete
from lecfeedback.errors import ApiError, AuthExpiredError, DuplicateBatchError
from lecfeedback.index import HierarchyIndex
from lecfeedback.model import ANALYSIS_VERSION_LABELS, ANALYSIS_VERSIONS, Course, SessionLabel, parse_analysis_version
from lecfeedback.selector import (
    ANALYSIS_VERSION,
    COURSE_NAME,
    DELETE,
    LECTURE_DATE,
    LEVELS,
    SESSION_LABEL,
    UPLOAD,
    YEAR_TERM,
    CascadingSelector,
)
from lecfeedback.storage import load_snapshot, save_snapshot
from lecfeedback.upload import UploadForm, build_upload_fields, validate_upload

logger = logging.getLogger("lecfeedback")

LEVEL_TITLES = {
    COURSE_NAME: "Course",
    YEAR_TERM: "Year / term",
    SESSION_LABEL: "Session",
    LECTURE_DATE: "Lecture date",
    ANALYSIS_VERSION: "Analysis version",
}


def setup_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(level=level.upper(), format="%(message)s")
    logging.root.handlers = [
        RichHandler(rich_tracebacks=True, show_path=False, log_time_format="[%b %d, %Y, %I:%M:%S %p]")
    ]
    logging.root.setLevel(level.upper())


# ---------------------------------------------------------------------------
# Display helpers (shared with interactive.py)
# ---------------------------------------------------------------------------


def format_option(level: str, value: Any) -> str:
    if level == YEAR_TERM:
        year, term = value
        return f"{year} {term}"
    if level == LECTURE_DATE:
        return value.isoformat()
    if level == ANALYSIS_VERSION:
        return f"{value} ({ANALYSIS_VERSION_LABELS.get(value, value)})"
    return str(value)


def sorted_options(level: str, values: Iterable[Any]) -> list[Any]:
    """
    Stable display order: newest year first, sessions by number, versions
    preliminary before confirmed.
    """
    vals = list(values)
    if level == YEAR_TERM:
        return sorted(vals, key=lambda yt: (-yt[0], yt[1]))
    if level == SESSION_LABEL:
        return sorted(vals, key=lambda label: label.sort_key())
    if level == ANALYSIS_VERSION:
        return sorted(vals, key=ANALYSIS_VERSIONS.index)
    return sorted(vals)


def course_summary(course: Course) -> str:
    n_batches = sum(len(s.batches) for s in course.sessions)
    planned = f"/{course.session_count}" if course.session_count else ""
    return (
        f"{course.name} | {course.academic_year} {course.term} | "
        f"{len(course.sessions)}{planned} sessions | {n_batches} batches"
    )


def job_outcome(client: ApiClient, result: dict[str, Any]) -> tuple[bool, str]:
    """
    Wait for the processing job of an accepted upload.
    Returns (ok, message); ok is False only when the job reports failure.
    """
    job_id = result.get("job_id")
    if not job_id:
        return True, "Upload accepted."
    try:
        status = client.wait_for_job(str(job_id))
    except (ApiError, AuthExpiredError) as e:
        logger.warning("Could not check job %s: %s", job_id, e)
        return True, f"Job {job_id} submitted; its status could not be checked."

    state = status.get("status")
    if state == "completed":
        res = status.get("result") or {}
        return True, f"Job {job_id} completed: batch {res.get('batch_id', '?')}, {res.get('response_count', '?')} responses"
    if state == "failed":
        err = status.get("error") or {}
        return False, f"Job {job_id} failed: [{err.get('code', 'UNKNOWN_ERROR')}] {err.get('message', '')}".rstrip()
    return True, f"Job {job_id} is still {state or 'running'}; refresh later to see the new batch."


# ---------------------------------------------------------------------------
# Argument -> selection
# ---------------------------------------------------------------------------


def _parse_date(text: str) -> date:
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date (expected YYYY-MM-DD): {text!r}")


def _parse_session(text: str) -> SessionLabel:
    try:
        return SessionLabel.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _parse_version(text: str) -> str:
    version = parse_analysis_version(text)
    if version is None:
        raise argparse.ArgumentTypeError(f"invalid analysis version: {text!r} (use preliminary or confirmed)")
    return version


def _arg_values(args: argparse.Namespace) -> list[tuple[str, Any]]:
    """
    (level, value) pairs from the key arguments, top-down, stopping at the
    first level that was not given.
    """
    year_term = None
    if args.year is not None and args.term:
        year_term = (args.year, args.term.strip())
    values = [
        (COURSE_NAME, args.course),
        (YEAR_TERM, year_term),
        (SESSION_LABEL, args.session),
        (LECTURE_DATE, args.date),
        (ANALYSIS_VERSION, getattr(args, "version", None)),
    ]
    out: list[tuple[str, Any]] = []
    for level, value in values:
        if value is None or value == "":
            break
        out.append((level, value))
    return out


def _fill_selector(selector: CascadingSelector, args: argparse.Namespace) -> bool:
    """
    Apply the key arguments in order. Prints why a value was rejected.
    """
    for level, value in _arg_values(args):
        if not selector.set_field(level, value):
            print(f"Invalid {LEVEL_TITLES[level].lower()}: {format_option(level, value)}")
            choices = sorted_options(level, selector.options(level))
            if choices:
                print("Valid choices: " + ", ".join(format_option(level, c) for c in choices))
            return False
    return True


def _add_key_arguments(p: argparse.ArgumentParser, with_version: bool = True) -> None:
    p.add_argument("--course", type=str, help="Course name")
    p.add_argument("--year", type=int, help="Academic year (e.g. 2024)")
    p.add_argument("--term", type=str, help="Term (e.g. 前期)")
    p.add_argument("--session", type=_parse_session, help="Session (e.g. 第1回, 1, 特別回)")
    p.add_argument("--date", type=_parse_date, help="Lecture date (YYYY-MM-DD)")
    if with_version:
        p.add_argument("--version", type=_parse_version, help="preliminary (速報版) or confirmed (確定版)")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_courses(args: argparse.Namespace, courses: list[Course]) -> int:
    if not courses:
        print("No courses in snapshot. Run 'lecfeedback refresh' first.")
        return 0
    for c in sorted(courses, key=lambda c: (c.name, -c.academic_year, c.term)):
        print(course_summary(c))
    return 0


def _cmd_options(args: argparse.Namespace, courses: list[Course]) -> int:
    """
    Print the valid choices for the first level that is not given yet.
    """
    index = HierarchyIndex(courses, batches_only=args.workflow == DELETE)
    selector = CascadingSelector(index, workflow=args.workflow)
    if args.new_course:
        selector.set_mode(True)
    if not _fill_selector(selector, args):
        return 1

    level = selector.first_unset_level()
    if level is None:
        print("Selection is complete.")
        return 0

    choices = sorted_options(level, selector.options(level))
    if not selector.is_constrained(level):
        known = ", ".join(format_option(level, c) for c in choices) or "none"
        print(f"{LEVEL_TITLES[level]}: free entry (known: {known})")
        return 0
    if not choices:
        print(f"{LEVEL_TITLES[level]}: no options")
        return 0
    print(f"{LEVEL_TITLES[level]}:")
    for c in choices:
        print(f"- {format_option(level, c)}")
    return 0


def _upload_selector(args: argparse.Namespace, index: HierarchyIndex) -> Optional[CascadingSelector]:
    selector = CascadingSelector(index, workflow=UPLOAD)
    selector.set_mode(bool(getattr(args, "new_course", False)))
    if not _fill_selector(selector, args):
        if not selector.new_course and selector.selection.course_name is None:
            print("Hint: use --new-course for a course that is not listed yet.")
        return None
    return selector


def _cmd_check(args: argparse.Namespace, courses: list[Course]) -> int:
    """
    Conflict check for a candidate upload key.
    """
    index = HierarchyIndex(courses)
    selector = _upload_selector(args, index)
    if selector is None:
        return 1
    key = selector.key()
    if key is None:
        print("Incomplete key: " + ", ".join(selector.selection.missing()))
        return 1

    existing = find_conflict(index, key)
    if existing is not None:
        print(conflict_message(key, existing))
        return 1
    print(f"No conflict: {key.describe()}")
    return 0


def _make_client(args: argparse.Namespace) -> ApiClient:
    def _expired() -> None:
        print("Your login session has expired. Please log in again.")

    return ApiClient(base_url=args.api_url, on_session_expired=_expired)


def _refresh_snapshot(client: ApiClient, path: Optional[Path]) -> list[Course]:
    courses = client.fetch_dataset()
    save_snapshot(courses, path)
    return courses


def _cmd_refresh(args: argparse.Namespace) -> int:
    client = _make_client(args)
    try:
        courses = _refresh_snapshot(client, args.dataset)
    except AuthExpiredError:
        return 1
    except ApiError as e:
        print(f"Refresh failed: [{e.code}] {e}")
        return 1
    print(f"Snapshot updated: {len(courses)} courses")
    return 0


def _cmd_upload(args: argparse.Namespace, courses: list[Course]) -> int:
    index = HierarchyIndex(courses)
    selector = _upload_selector(args, index)
    if selector is None:
        return 1
    key = selector.key()
    sel = selector.selection

    if selector.new_course and sel.year_term and index.has_course(sel.course_name or "", *sel.year_term):
        print("This course already exists. Upload without --new-course.")
        return 1

    form = UploadForm(
        file_path=Path(args.file),
        instructor_name=args.instructor or "",
        description=args.description,
        zoom_participants=args.zoom,
        recording_views=args.views,
        session_count=args.session_count,
    )
    known = None
    if key is not None and not selector.new_course:
        known = index.session_count(key.course_name, key.academic_year, key.term)
    problems = validate_upload(key, form, new_course=selector.new_course, known_session_count=known)
    if problems or key is None:
        for p in problems:
            print(f"- {p}")
        return 1

    existing = find_conflict(index, key)
    if existing is not None:
        print(conflict_message(key, existing))
        return 1

    client = _make_client(args)
    try:
        result = client.upload_survey(build_upload_fields(key, form), Path(args.file))
    except AuthExpiredError:
        return 1
    except ApiError as e:
        print(f"Upload failed: [{e.code}] {e}")
        return 1

    print(f"Uploaded: {key.describe()} (job {result.get('job_id', '?')})")
    ok, message = job_outcome(client, result)
    print(message)
    if not ok:
        return 1
    try:
        _refresh_snapshot(client, args.dataset)
    except (ApiError, AuthExpiredError) as e:
        logger.warning("Upload done, but refreshing the snapshot failed: %s", e)
    return 0


def _cmd_delete(args: argparse.Namespace, courses: list[Course]) -> int:
    index = HierarchyIndex(courses, batches_only=True)
    selector = CascadingSelector(index, workflow=DELETE)
    if not _fill_selector(selector, args):
        return 1

    check = validate_delete(index, selector.selection)
    if not check.may_proceed or check.confirmation is None:
        print(check.reason)
        return 1

    print(f"Delete: {check.confirmation.describe()}")
    print("This cannot be undone.")
    if not args.yes:
        answer = input("Delete this batch? [y/N]: ").strip().lower()
        if answer != "y":
            print("Cancelled.")
            return 0

    client = _make_client(args)
    try:
        result = client.delete_batch(check.confirmation.batch_id)
    except AuthExpiredError:
        return 1
    except ApiError as e:
        print(f"Delete failed: [{e.code}] {e}")
        return 1

    print(f"Deleted batch {check.confirmation.batch_id} ({result.get('deleted_response_count', 0)} responses)")
    try:
        _refresh_snapshot(client, args.dataset)
    except (ApiError, AuthExpiredError) as e:
        logger.warning("Delete done, but refreshing the snapshot failed: %s", e)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="lecfeedback", description="Lecture feedback data manager")
    parser.add_argument("--dataset", type=Path, default=None, help="Course snapshot JSON (default: package cache)")
    parser.add_argument("--api-url", type=str, default=API_BASE_URL, help="Backend API base URL")
    parser.add_argument("--log-level", type=str, default=LOG_LEVEL, help="DEBUG, INFO, WARNING, ...")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("courses", help="List courses in the snapshot")

    p_options = sub.add_parser("options", help="Show valid choices for the next selection level")
    _add_key_arguments(p_options, with_version=False)
    p_options.add_argument("--workflow", choices=[UPLOAD, DELETE], default=UPLOAD)
    p_options.add_argument("--new-course", action="store_true", help="Course is not listed yet (upload only)")

    p_check = sub.add_parser("check", help="Check whether an upload key is already taken")
    _add_key_arguments(p_check)
    p_check.add_argument("--new-course", action="store_true")

    p_upload = sub.add_parser("upload", help="Upload a survey file")
    p_upload.add_argument("file", type=str, help="Survey file (.xlsx, .xls, .csv)")
    _add_key_arguments(p_upload)
    p_upload.add_argument("--new-course", action="store_true", help="Create a course that is not listed yet")
    p_upload.add_argument("--session-count", type=int, help="Total number of sessions (new course)")
    p_upload.add_argument("--instructor", type=str, help="Instructor name")
    p_upload.add_argument("--description", type=str, help="Lecture description")
    p_upload.add_argument("--zoom", type=int, help="Zoom participants (preliminary)")
    p_upload.add_argument("--views", type=int, help="Recording views (confirmed)")

    p_delete = sub.add_parser("delete", help="Delete one uploaded batch")
    _add_key_arguments(p_delete)
    p_delete.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    sub.add_parser("refresh", help="Fetch the course listing from the backend")
    sub.add_parser("interactive", help="Interactive menu mode")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "refresh":
        raise SystemExit(_cmd_refresh(args))

    courses = load_snapshot(args.dataset)

    try:
        if args.command == "courses":
            raise SystemExit(_cmd_courses(args, courses))
        if args.command == "options":
            raise SystemExit(_cmd_options(args, courses))
        if args.command == "check":
            raise SystemExit(_cmd_check(args, courses))
        if args.command == "upload":
            raise SystemExit(_cmd_upload(args, courses))
        if args.command == "delete":
            raise SystemExit(_cmd_delete(args, courses))

        if args.command == "interactive":
            from lecfeedback.interactive import run_interactive

            run_interactive(courses, client=_make_client(args), snapshot_path=args.dataset)
            raise SystemExit(0)
    except DuplicateBatchError as e:
        logger.error("Corrupted course data: %s", e)
        raise SystemExit(2)

    raise SystemExit(2)
