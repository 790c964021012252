from __future__ import annotations

from datetime import date
from typing import Any

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from classroom_client.models import Announcement, Course, CourseWork
from classroom_client.ui.state import (
    MENU,
    AuthRequired,
    CourseContext,
    ErrorView,
    Loading,
    MainMenu,
    Picker,
    ResourceKind,
    ResourceList,
    ViewState,
)

VISIBLE_ROWS = 15
SELECTED_STYLE = "bold reverse"


def visible_window(length: int, selected: int, size: int = VISIBLE_ROWS) -> range:
    if length <= size:
        return range(length)
    start = max(0, min(selected - size // 2, length - size))
    return range(start, start + size)


def header_title(state: ViewState, course: CourseContext | None) -> str:
    if isinstance(state, ResourceList):
        if state.kind.requires_course and state.course is not None:
            return f"{state.kind.label} - {state.course.name}"
        return state.kind.label
    if isinstance(state, Picker):
        return f"Choose a class for {state.kind.label}"
    if isinstance(state, Loading):
        return "Loading"
    if isinstance(state, ErrorView):
        return "Error"
    if isinstance(state, AuthRequired):
        return "Sign in required"
    if course is not None:
        return f"Google Classroom - {course.name}"
    return "Google Classroom"


def key_hints(state: ViewState) -> str:
    if isinstance(state, MainMenu):
        return "up/down move  enter select  q quit"
    if isinstance(state, Picker):
        return "up/down move  enter choose class  r reload  esc back"
    if isinstance(state, ResourceList):
        if state.kind is ResourceKind.COURSES:
            return "up/down move  enter use this class  r refresh  esc back"
        return "up/down move  r refresh  esc back"
    if isinstance(state, Loading):
        return "esc cancel"
    if isinstance(state, ErrorView) and state.retry is not None:
        return "r retry  enter return to menu"
    return "enter return to menu"


def render_state(state: ViewState, course: CourseContext | None = None) -> RenderableType:
    if isinstance(state, MainMenu):
        return _render_menu(state, course)
    if isinstance(state, ResourceList):
        return _render_list(state, course)
    if isinstance(state, Picker):
        return _render_picker(state)
    if isinstance(state, Loading):
        return Panel(Text(state.message, style="bold cyan"), title="Please wait", border_style="cyan")
    if isinstance(state, ErrorView):
        hint = "Press r to retry or Enter to return to the menu." if state.retry else "Press Enter to return to the menu."
        return Panel(
            Group(Text(state.message), Text(""), Text(hint, style="dim")),
            title="Error",
            border_style="red",
        )
    return Panel(
        Group(Text(state.message), Text(""), Text("Press Enter to return to the menu.", style="dim")),
        title="Sign in required",
        border_style="yellow",
    )


def _render_menu(state: MainMenu, course: CourseContext | None) -> RenderableType:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("marker", width=2)
    table.add_column("title", style="bold")
    table.add_column("description", style="dim")
    for index, entry in enumerate(MENU):
        selected = index == state.selection_index
        table.add_row(">" if selected else "", entry.title, entry.description, style=SELECTED_STYLE if selected else None)

    footer = Text(f"Current class: {course.name}" if course else "No class selected yet", style="dim")
    return Group(table, Text(""), footer)


def _render_picker(state: Picker) -> RenderableType:
    if not state.items:
        return Panel(Text("You have no active classes."), border_style="yellow")

    table = Table(show_header=True, header_style="bold magenta", expand=True)
    table.add_column("Class")
    table.add_column("Section")
    table.add_column("Room")
    for index in visible_window(len(state.items), state.selection_index):
        course = state.items[index]
        table.add_row(
            Text(course.name),
            Text(course.section),
            Text(course.room),
            style=SELECTED_STYLE if index == state.selection_index else None,
        )
    return table


def _render_list(state: ResourceList, course: CourseContext | None) -> RenderableType:
    if not state.items:
        return Panel(Text(f"No {state.kind.label.lower()} to show."), border_style="yellow")

    table = Table(show_header=True, header_style="bold magenta", expand=True)
    for column in _COLUMNS[state.kind]:
        table.add_column(column)

    for index in visible_window(len(state.items), state.selection_index):
        item = state.items[index]
        table.add_row(
            *(Text(cell) for cell in _row(state.kind, item, course)),
            style=SELECTED_STYLE if index == state.selection_index else None,
        )

    position = Text(f"{state.selection_index + 1} of {len(state.items)}", style="dim")
    detail = _detail(state.items[state.selection_index])
    if detail is None:
        return Group(table, position)
    return Group(table, position, detail)


_COLUMNS = {
    ResourceKind.COURSES: ("Class", "Section", "Room", ""),
    ResourceKind.COURSEWORK: ("Title", "Due", "Points", "Status"),
    ResourceKind.GRADES: ("Assignment", "Grade", "Max Points", "Feedback"),
    ResourceKind.ANNOUNCEMENTS: ("Posted", "Announcement"),
}


def _row(kind: ResourceKind, item: Any, course: CourseContext | None) -> tuple[str, ...]:
    if kind is ResourceKind.COURSES:
        current = "current" if course is not None and course.id == item.id else ""
        return item.name, item.section, item.room, current
    if kind is ResourceKind.COURSEWORK:
        points = _points(item.max_points)
        status = "OVERDUE" if item.is_overdue(date.today()) else item.work_type or "ASSIGNMENT"
        return item.title, item.due_label, points, status
    if kind is ResourceKind.GRADES:
        return item.title, f"{item.grade:.1f}", _points(item.max_points), item.feedback
    posted = item.creation_time.strftime("%Y-%m-%d") if item.creation_time else ""
    return posted, item.headline


def _detail(item: Any) -> RenderableType | None:
    if isinstance(item, CourseWork) and item.description.strip():
        return Panel(Text(item.description.strip()), title=Text(item.title), border_style="blue")
    if isinstance(item, Announcement) and item.text.strip():
        return Panel(Text(item.text.strip()), title="Announcement", border_style="blue")
    if isinstance(item, Course) and item.description_heading:
        return Panel(Text(item.description_heading), title=Text(item.name), border_style="blue")
    return None


def _points(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:g}"
