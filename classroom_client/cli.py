"""Command-line entry point: ``classroom``.

Every command builds its own service from the environment, runs one
operation and prints the result with rich. Domain failures are reported on
stderr and exit with status 1.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass
import json
import logging
from typing import Annotated, Any, Iterator

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from classroom_client.auth import AuthError, AuthErrorKind
from classroom_client.cancellation import CancelledError
from classroom_client.config import AppSettings, ConfigurationError
from classroom_client.http import ApiHttpError
from classroom_client.logging_utils import configure_logging
from classroom_client.models import Attachment
from classroom_client.services import ClassroomService, build_service
from classroom_client.token_store import TokenError
from classroom_client.ui.fetch import sort_by_due_date

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="classroom",
    help="Google Classroom from the terminal.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
auth_app = typer.Typer(help="Manage the saved Google sign-in.", no_args_is_help=True)
app.add_typer(auth_app, name="auth")

console = Console()
err_console = Console(stderr=True)


@dataclass
class CliState:
    verbose: bool = False


CourseOption = Annotated[str, typer.Option("--course", "-c", help="Course id (see 'classroom courses')")]
JsonOption = Annotated[bool, typer.Option("--json", help="Print raw JSON instead of a table")]


@app.callback()
def main(
    ctx: typer.Context,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log to stderr as well as the log file")] = False,
) -> None:
    ctx.obj = CliState(verbose=verbose)


def _load_settings(ctx: typer.Context) -> AppSettings:
    settings = AppSettings.from_env()
    state = ctx.obj if isinstance(ctx.obj, CliState) else CliState()
    configure_logging(settings.log_level, settings.log_file, console=state.verbose)
    return settings


def _load_service(ctx: typer.Context) -> ClassroomService:
    return build_service(_load_settings(ctx))


@contextmanager
def reporting_errors() -> Iterator[None]:
    try:
        yield
    except ConfigurationError as error:
        err_console.print(f"[bold red]Configuration error:[/] {escape(str(error))}")
        raise typer.Exit(code=1) from error
    except AuthError as error:
        err_console.print(f"[bold red]Sign-in failed ({error.kind.value}):[/] {escape(str(error))}")
        raise typer.Exit(code=1) from error
    except TokenError as error:
        err_console.print(f"[bold red]Not signed in:[/] {escape(str(error))}")
        raise typer.Exit(code=1) from error
    except ApiHttpError as error:
        logger.error("Classroom request failed: %s", error)
        err_console.print(f"[bold red]Request failed:[/] {escape(str(error))}")
        raise typer.Exit(code=1) from error
    except CancelledError as error:
        err_console.print("[yellow]Cancelled.[/]")
        raise typer.Exit(code=1) from error


def _print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


# Authentication


@auth_app.command("login")
def auth_login(ctx: typer.Context) -> None:
    """Sign in with Google in the browser and save the credential."""
    with reporting_errors():
        service = _load_service(ctx)
        try:
            state = service.sign_in()
        except KeyboardInterrupt as error:
            raise AuthError(AuthErrorKind.USER_CANCELLED, "Authorization cancelled") from error
    console.print(f"[green]Signed in.[/] Credential saved to {escape(state.token_path)}")


@app.command("login")
def login(ctx: typer.Context) -> None:
    """Shortcut for 'classroom auth login'."""
    auth_login(ctx)


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show whether a usable credential is saved."""
    with reporting_errors():
        state = _load_service(ctx).auth_state()

    table = Table(show_header=False, box=None)
    table.add_column("field", style="bold")
    table.add_column("value")
    table.add_row("Signed in", "[green]yes[/]" if state.is_signed_in else "[red]no[/]")
    table.add_row("Token file", Text(state.token_path))
    if state.expires_at is not None:
        expiry = state.expires_at.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
        table.add_row("Access token", f"expired ({expiry})" if state.is_expired else f"valid until {expiry}")
        table.add_row("Refresh token", "present" if state.has_refresh_token else "missing")
    if state.problem:
        table.add_row("Problem", Text(state.problem, style="red"))
    console.print(table)

    if not state.is_signed_in:
        console.print("Run [bold]classroom auth login[/] to sign in.")
        raise typer.Exit(code=1)


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Delete the saved credential."""
    with reporting_errors():
        removed = _load_service(ctx).sign_out()
    if removed:
        console.print("Signed out. Saved credential deleted.")
    else:
        console.print("No saved credential to delete.")


# Classroom resources


@app.command("courses")
def courses(
    ctx: typer.Context,
    include_all: Annotated[bool, typer.Option("--all", help="Include archived and provisioned classes")] = False,
    as_json: JsonOption = False,
) -> None:
    """List your classes."""
    with reporting_errors():
        items = _load_service(ctx).list_courses(active_only=not include_all)

    if as_json:
        _print_json([asdict(item) for item in items])
        return
    if not items:
        console.print("No classes found.")
        return

    table = Table(title="Classes", header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Section")
    table.add_column("Room")
    table.add_column("State")
    for item in items:
        table.add_row(*(Text(cell) for cell in (item.id, item.name, item.section, item.room, item.course_state)))
    console.print(table)


@app.command("coursework")
def coursework(ctx: typer.Context, course: CourseOption, as_json: JsonOption = False) -> None:
    """List published classwork for a class, soonest due first."""
    with reporting_errors():
        items = sort_by_due_date(_load_service(ctx).list_coursework(course))

    if as_json:
        _print_json([asdict(item) for item in items])
        return
    if not items:
        console.print("No classwork found.")
        return

    table = Table(title="Classwork", header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Type")
    table.add_column("Due")
    table.add_column("Points", justify="right")
    for item in items:
        due = Text(item.due_label, style="red" if item.is_overdue() else "")
        points = "-" if item.max_points is None else f"{item.max_points:g}"
        table.add_row(Text(item.id), Text(item.title), Text(item.work_type), due, points)
    console.print(table)


@app.command("announcements")
def announcements(ctx: typer.Context, course: CourseOption, as_json: JsonOption = False) -> None:
    """List announcements posted in a class."""
    with reporting_errors():
        items = _load_service(ctx).list_announcements(course)

    if as_json:
        _print_json([asdict(item) for item in items])
        return
    if not items:
        console.print("No announcements found.")
        return

    table = Table(title="Announcements", header_style="bold magenta", show_lines=True)
    table.add_column("Posted", style="dim")
    table.add_column("Announcement")
    for item in items:
        posted = item.creation_time.strftime("%Y-%m-%d %H:%M") if item.creation_time else ""
        table.add_row(posted, Text(item.text))
    console.print(table)


@app.command("grades")
def grades(ctx: typer.Context, course: CourseOption, as_json: JsonOption = False) -> None:
    """Show graded work for a class."""
    with reporting_errors():
        items = _load_service(ctx).list_grades(course)

    if as_json:
        _print_json([item.to_json() for item in items])
        return
    if not items:
        console.print("No grades yet.")
        return

    table = Table(title="Grades", header_style="bold magenta")
    table.add_column("Assignment", style="bold")
    table.add_column("Grade", justify="right")
    table.add_column("Max Points", justify="right")
    table.add_column("Feedback")
    for item in items:
        max_points = "-" if item.max_points is None else f"{item.max_points:g}"
        table.add_row(Text(item.title), f"{item.grade:.1f}", max_points, Text(item.feedback))
    console.print(table)


@app.command("submit")
def submit(
    ctx: typer.Context,
    course: CourseOption,
    assignment: Annotated[str, typer.Option("--assignment", "-a", help="Coursework id")],
    link: Annotated[str | None, typer.Option("--link", help="URL to attach")] = None,
    drive_file: Annotated[str | None, typer.Option("--drive-file", help="Google Drive file id to attach")] = None,
    as_json: JsonOption = False,
) -> None:
    """Attach a link or Drive file to your submission for an assignment."""
    if bool(link) == bool(drive_file):
        raise typer.BadParameter("Pass exactly one of --link or --drive-file.")
    try:
        attachment = Attachment("link", link) if link else Attachment("driveFile", str(drive_file))
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error

    with reporting_errors():
        submission = _load_service(ctx).submit_attachment(course, assignment, attachment)

    if as_json:
        _print_json(asdict(submission))
        return
    console.print(
        f"[green]Attached {attachment.kind}[/] to submission {escape(submission.id)} "
        f"(state: {submission.state or 'unknown'}, {len(submission.attachments)} attachment(s))."
    )


@app.command("tui")
def tui(ctx: typer.Context) -> None:
    """Open the interactive terminal interface."""
    from classroom_client.ui.app import run_tui

    with reporting_errors():
        settings = AppSettings.from_env()
        run_tui(settings)
