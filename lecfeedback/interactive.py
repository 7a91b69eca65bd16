from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from lecfeedback.api import ApiClient
from lecfeedback.cli import LEVEL_TITLES, course_summary, format_option, job_outcome, sorted_options
from lecfeedback.conflicts import conflict_message, find_conflict
from lecfeedback.delete import validate_delete
from lecfeedback.errors import ApiError, AuthExpiredError
from lecfeedback.index import HierarchyIndex
from lecfeedback.inflight import InFlightGuard
from lecfeedback.model import PRELIMINARY, Course, SessionLabel
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
from lecfeedback.storage import save_snapshot
from lecfeedback.upload import UploadForm, build_upload_fields, validate_upload

console = Console()


class Workspace:
    """
    The current snapshot plus the indexes built from it.
    Replaced as a whole after every refresh.
    """

    def __init__(self, courses: list[Course]) -> None:
        self.courses = courses
        self.index = HierarchyIndex(courses)
        self.delete_index = HierarchyIndex(courses, batches_only=True)


def _println(msg: str = "") -> None:
    console.print(msg)


def _prompt(msg: str) -> str:
    return console.input(escape(msg))


def _safe_int(text: str) -> Optional[int]:
    text = text.strip()
    return int(text) if text.isdigit() else None


def run_interactive(
    courses: list[Course],
    client: ApiClient,
    snapshot_path: Optional[Path] = None,
) -> None:
    """
    Interactive menu loop for browsing, uploading and deleting survey batches.
    """
    ws = Workspace(courses)
    guard = InFlightGuard()

    while True:
        _println("\n=== Lecture feedback data ===")
        _println(f"Courses: {len(ws.courses)} | Sessions: {sum(len(c.sessions) for c in ws.courses)}")

        choice = _prompt(
            "\n[1] List courses\n"
            "[2] Upload survey data\n"
            "[3] Delete survey data\n"
            "[4] Refresh data from server\n"
            "[0] Exit\n"
            "Select: "
        ).strip()

        if choice == "0":
            _println("Bye.")
            return

        changed = False
        if choice == "1":
            _flow_list(ws)
        elif choice == "2":
            changed = _flow_upload(ws, client, guard)
        elif choice == "3":
            changed = _flow_delete(ws, client, guard)
        elif choice == "4":
            changed = True
        else:
            _println("Invalid choice.")

        if changed:
            refreshed = _refresh(client, snapshot_path)
            if refreshed is not None:
                ws = Workspace(refreshed)
                _println("Data reloaded into interactive session.")


def _refresh(client: ApiClient, snapshot_path: Optional[Path]) -> Optional[list[Course]]:
    try:
        courses = client.fetch_dataset()
    except AuthExpiredError:
        return None
    except ApiError as e:
        _println(f"[red]Refresh failed:[/] {escape(f'[{e.code}] {e}')}")
        return None
    save_snapshot(courses, snapshot_path)
    return courses


def _flow_list(ws: Workspace) -> None:
    if not ws.courses:
        _println("No courses. Use [4] to fetch data.")
        return
    table = Table(title="Courses", box=box.SIMPLE)
    table.add_column("Course")
    for c in sorted(ws.courses, key=lambda c: (c.name, -c.academic_year, c.term)):
        table.add_row(course_summary(c))
    console.print(table)


def _pick(title: str, level: str, options: list[Any]) -> Optional[Any]:
    """
    Numbered choice. Returns None when the user goes back (blank input).
    """
    while True:
        table = Table(title=title, box=box.SIMPLE)
        table.add_column("#", justify="right")
        table.add_column(LEVEL_TITLES[level])
        for i, value in enumerate(options, start=1):
            table.add_row(str(i), format_option(level, value))
        console.print(table)

        pick = _prompt("Enter number [blank = back]: ").strip()
        if not pick:
            return None
        i = _safe_int(pick)
        if i is None:
            _println("Not a number.")
            continue
        if not (1 <= i <= len(options)):
            _println("Out of range.")
            continue
        return options[i - 1]


def _enter_free(level: str, known: list[Any]) -> Optional[Any]:
    """
    Free-text entry for levels that are not restricted to listed values.
    Returns None when the user goes back; loops on unparsable input.
    """
    if known:
        _println("Known: " + ", ".join(format_option(level, k) for k in known))
    while True:
        if level == COURSE_NAME:
            text = _prompt("Course name [blank = back]: ").strip()
            return text or None
        if level == YEAR_TERM:
            year_text = _prompt("Academic year (e.g. 2025) [blank = back]: ").strip()
            if not year_text:
                return None
            year = _safe_int(year_text)
            term = _prompt("Term (e.g. 前期): ").strip()
            if year is None or not term:
                _println("Please enter a year and a term.")
                continue
            return (year, term)
        if level == SESSION_LABEL:
            text = _prompt("Session (number, or 特別回 for a special session) [blank = back]: ").strip()
            if not text:
                return None
            try:
                return SessionLabel.parse(text)
            except ValueError:
                _println("Invalid session.")
                continue
        if level == LECTURE_DATE:
            text = _prompt("Lecture date (YYYY-MM-DD) [blank = back]: ").strip()
            if not text:
                return None
            try:
                return date.fromisoformat(text)
            except ValueError:
                _println("Invalid date.")
                continue
        return None


def _walk_levels(selector: CascadingSelector, ws: Workspace) -> bool:
    """
    Fill the selection level by level. Returns False if the user backed out.

    The upload workflow checks for a conflict as soon as the key is complete,
    before any form data is asked for.
    """
    for level in LEVELS:
        options = sorted_options(level, selector.options(level))
        if selector.is_constrained(level):
            if not options:
                _println(f"No {LEVEL_TITLES[level].lower()} available.")
                return False
            value = _pick(f"Select {LEVEL_TITLES[level].lower()}", level, options)
        else:
            value = _enter_free(level, options)
        if value is None:
            return False
        if not selector.set_field(level, value):
            _println(f"Invalid {LEVEL_TITLES[level].lower()}.")
            return False

        if level == ANALYSIS_VERSION and selector.workflow == UPLOAD:
            key = selector.key()
            existing = find_conflict(ws.index, key)
            if key is not None and existing is not None:
                _println(f"[bold red]{escape(conflict_message(key, existing))}[/]")
                return False
    return True


def _ask_int(msg: str) -> Optional[int]:
    text = _prompt(msg).strip()
    return _safe_int(text) if text else None


def _flow_upload(ws: Workspace, client: ApiClient, guard: InFlightGuard) -> bool:
    selector = CascadingSelector(ws.index, workflow=UPLOAD)
    mode = _prompt("[1] Add data to an existing course  [2] New course  [blank = back]: ").strip()
    if mode not in ("1", "2"):
        return False
    selector.set_mode(mode == "2")

    if not _walk_levels(selector, ws):
        return False
    key = selector.key()
    if key is None:
        return False

    if selector.new_course and ws.index.has_course(key.course_name, key.academic_year, key.term):
        _println("This course already exists. Choose 'existing course' instead.")
        return False

    form = UploadForm()
    form.file_path = Path(_prompt("Survey file path (.xlsx, .xls, .csv): ").strip() or ".")
    if selector.new_course:
        form.session_count = _ask_int("Total number of sessions: ")
    form.instructor_name = _prompt("Instructor name: ").strip()
    form.description = _prompt("Lecture description [optional]: ").strip() or None
    if key.analysis_version == PRELIMINARY:
        form.zoom_participants = _ask_int("Zoom participants on the day: ")
    else:
        form.recording_views = _ask_int("Recording views: ")

    known = None if selector.new_course else ws.index.session_count(key.course_name, key.academic_year, key.term)
    problems = validate_upload(key, form, new_course=selector.new_course, known_session_count=known)
    if problems:
        for p in problems:
            _println(f"[red]- {p}[/]")
        return False

    ticket = guard.begin(key)
    if ticket is None:
        _println("An upload for this key is still running.")
        return False
    try:
        result = client.upload_survey(build_upload_fields(key, form), form.file_path)
        ok, message = job_outcome(client, result)
    except AuthExpiredError:
        return False
    except ApiError as e:
        _println(f"[red]Upload failed:[/] {escape(f'[{e.code}] {e}')}")
        return False
    finally:
        # Calls run one at a time from this menu, so the selection cannot move
        # while one is out and the result is always current here.
        current = guard.finish(ticket, selector.key())

    if current:
        _println(f"[green]Uploaded:[/] {escape(key.describe())} (job {result.get('job_id', '?')})")
        _println(escape(message) if ok else f"[red]{escape(message)}[/]")
    return ok


def _flow_delete(ws: Workspace, client: ApiClient, guard: InFlightGuard) -> bool:
    selector = CascadingSelector(ws.delete_index, workflow=DELETE)
    if not _walk_levels(selector, ws):
        return False

    check = validate_delete(ws.delete_index, selector.selection)
    if not check.may_proceed or check.confirmation is None:
        _println(check.reason)
        return False

    confirmation = check.confirmation
    _println(f"\n[bold]Selected:[/] {escape(confirmation.describe())}")
    _println("[bold red]Warning:[/] this cannot be undone.")
    if _prompt("Delete this batch? [y/N]: ").strip().lower() != "y":
        _println("Cancelled.")
        return False

    ticket = guard.begin(confirmation.batch_id)
    if ticket is None:
        _println("A delete for this batch is still running.")
        return False
    try:
        result = client.delete_batch(confirmation.batch_id)
    except AuthExpiredError:
        return False
    except ApiError as e:
        _println(f"[red]Delete failed:[/] {escape(f'[{e.code}] {e}')}")
        return False
    finally:
        selected = validate_delete(ws.delete_index, selector.selection)
        current = guard.finish(ticket, selected.confirmation.batch_id if selected.confirmation else None)

    if current:
        _println(f"[green]Deleted[/] batch {confirmation.batch_id} ({result.get('deleted_response_count', 0)} responses)")
    return True
