"""View state machine for the interactive terminal UI.

Everything here is plain data plus one owner object. The terminal shell
feeds key presses and fetch results in as events and executes the effects
that come back; nothing in this module performs I/O or knows about the
terminal library.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import itertools
from typing import Any, Callable, Union

from classroom_client.cancellation import CancelledError
from classroom_client.http import (
    ApiHttpError,
    ForbiddenError,
    NotFoundError,
    RateLimitedError,
    ServerError,
)
from classroom_client.models import Course
from classroom_client.token_store import TokenError


class ResourceKind(str, Enum):
    COURSES = "courses"
    COURSEWORK = "coursework"
    GRADES = "grades"
    ANNOUNCEMENTS = "announcements"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @property
    def requires_course(self) -> bool:
        return self is not ResourceKind.COURSES


_KIND_LABELS = {
    ResourceKind.COURSES: "Classes",
    ResourceKind.COURSEWORK: "Classwork",
    ResourceKind.GRADES: "Grades",
    ResourceKind.ANNOUNCEMENTS: "Announcements",
}


@dataclass(frozen=True)
class MenuEntry:
    title: str
    description: str
    kind: ResourceKind | None


MENU: tuple[MenuEntry, ...] = (
    MenuEntry("Classes", "View your enrolled classes", ResourceKind.COURSES),
    MenuEntry("Classwork", "View assignments and deadlines", ResourceKind.COURSEWORK),
    MenuEntry("Grades", "Check your grades and scores", ResourceKind.GRADES),
    MenuEntry("Announcements", "Class announcements", ResourceKind.ANNOUNCEMENTS),
    MenuEntry("Quit", "Exit the application", None),
)


@dataclass(frozen=True)
class CourseContext:
    id: str
    name: str


# Effects


@dataclass(frozen=True)
class FetchRequest:
    request_id: int
    kind: ResourceKind
    target: ResourceKind
    course_id: str | None = None

    @property
    def for_picker(self) -> bool:
        return self.kind is not self.target


@dataclass(frozen=True)
class CancelFetch:
    request_id: int


@dataclass(frozen=True)
class QuitApp:
    pass


Effect = Union[FetchRequest, CancelFetch, QuitApp]


# States


@dataclass(frozen=True)
class MainMenu:
    selection_index: int = 0


@dataclass(frozen=True)
class ResourceList:
    kind: ResourceKind
    items: tuple[Any, ...]
    selection_index: int = 0
    course: CourseContext | None = None


@dataclass(frozen=True)
class Picker:
    kind: ResourceKind
    items: tuple[Course, ...]
    selection_index: int = 0


@dataclass(frozen=True)
class Loading:
    message: str
    request: FetchRequest


@dataclass(frozen=True)
class ErrorView:
    message: str
    retry: FetchRequest | None = None


@dataclass(frozen=True)
class AuthRequired:
    message: str


ViewState = Union[MainMenu, ResourceList, Picker, Loading, ErrorView, AuthRequired]


# Events


@dataclass(frozen=True)
class MoveUp:
    pass


@dataclass(frozen=True)
class MoveDown:
    pass


@dataclass(frozen=True)
class Select:
    pass


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Refresh:
    pass


@dataclass(frozen=True)
class FetchCompleted:
    request_id: int
    items: tuple[Any, ...]


@dataclass(frozen=True)
class FetchFailed:
    request_id: int
    error: BaseException


Event = Union[MoveUp, MoveDown, Select, Back, Quit, Refresh, FetchCompleted, FetchFailed]

AUTH_REQUIRED_MESSAGE = "You are not signed in. Run 'classroom auth login' in a terminal, then try again."


def clamp(index: int, length: int) -> int:
    if length <= 0:
        return 0
    return max(0, min(index, length - 1))


def _loading_message(kind: ResourceKind) -> str:
    return f"Loading {kind.label.lower()}..."


def describe_error(error: BaseException) -> str:
    if isinstance(error, NotFoundError):
        return f"Not found. The class or item may have been removed. ({error})"
    if isinstance(error, ForbiddenError):
        return f"Access denied. Your account cannot view this item. ({error})"
    if isinstance(error, RateLimitedError):
        return "Google Classroom is rate limiting requests. Wait a moment and press r to retry."
    if isinstance(error, ServerError):
        return f"Google Classroom is unavailable right now (HTTP {error.status_code}). Try again later."
    if isinstance(error, ApiHttpError):
        if error.status_code == 0:
            return f"Network problem: {error}"
        return f"Request failed: {error}"
    if isinstance(error, CancelledError):
        return "Request cancelled."
    return f"{type(error).__name__}: {error}"


class UIStateMachine:
    def __init__(self, credential_check: Callable[[], bool] | None = None):
        self._state: ViewState = MainMenu()
        self._course: CourseContext | None = None
        self._menu_index = 0
        self._credential_check = credential_check or (lambda: True)
        self._request_ids = itertools.count(1)

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def course(self) -> CourseContext | None:
        return self._course

    def dispatch(self, event: Event) -> tuple[Effect, ...]:
        state = self._state
        if isinstance(state, MainMenu):
            return self._on_main_menu(state, event)
        if isinstance(state, Loading):
            return self._on_loading(state, event)
        if isinstance(state, ResourceList):
            return self._on_resource_list(state, event)
        if isinstance(state, Picker):
            return self._on_picker(state, event)
        return self._on_message(state, event)

    def _on_main_menu(self, state: MainMenu, event: Event) -> tuple[Effect, ...]:
        if isinstance(event, (MoveUp, MoveDown)):
            step = -1 if isinstance(event, MoveUp) else 1
            self._menu_index = clamp(state.selection_index + step, len(MENU))
            self._state = MainMenu(self._menu_index)
            return ()
        if isinstance(event, (Back, Quit)):
            return (QuitApp(),)
        if isinstance(event, Select):
            entry = MENU[clamp(state.selection_index, len(MENU))]
            if entry.kind is None:
                return (QuitApp(),)
            return self._open(entry.kind)
        return ()

    def _on_loading(self, state: Loading, event: Event) -> tuple[Effect, ...]:
        request = state.request
        if isinstance(event, (Back, Quit)):
            self._to_main_menu()
            return (CancelFetch(request.request_id),)
        if isinstance(event, FetchCompleted) and event.request_id == request.request_id:
            if request.for_picker:
                self._state = Picker(kind=request.target, items=tuple(event.items))
            else:
                self._state = ResourceList(kind=request.kind, items=tuple(event.items), course=self._course)
            return ()
        if isinstance(event, FetchFailed) and event.request_id == request.request_id:
            self._fail(event.error, request)
            return ()
        return ()

    def _on_resource_list(self, state: ResourceList, event: Event) -> tuple[Effect, ...]:
        if isinstance(event, (MoveUp, MoveDown)):
            step = -1 if isinstance(event, MoveUp) else 1
            self._state = replace(state, selection_index=clamp(state.selection_index + step, len(state.items)))
            return ()
        if isinstance(event, Refresh):
            return self._open(state.kind)
        if isinstance(event, Select):
            if state.kind is ResourceKind.COURSES and state.items:
                course = state.items[clamp(state.selection_index, len(state.items))]
                self._course = CourseContext(id=course.id, name=course.name)
            return ()
        if isinstance(event, (Back, Quit)):
            self._to_main_menu()
        return ()

    def _on_picker(self, state: Picker, event: Event) -> tuple[Effect, ...]:
        if isinstance(event, (MoveUp, MoveDown)):
            step = -1 if isinstance(event, MoveUp) else 1
            self._state = replace(state, selection_index=clamp(state.selection_index + step, len(state.items)))
            return ()
        if isinstance(event, Select):
            if not state.items:
                return ()
            course = state.items[clamp(state.selection_index, len(state.items))]
            self._course = CourseContext(id=course.id, name=course.name)
            return self._open(state.kind)
        if isinstance(event, Refresh):
            return self._start(ResourceKind.COURSES, state.kind, None, _loading_message(ResourceKind.COURSES))
        if isinstance(event, (Back, Quit)):
            self._to_main_menu()
        return ()

    def _on_message(self, state: ErrorView | AuthRequired, event: Event) -> tuple[Effect, ...]:
        if isinstance(event, Refresh) and isinstance(state, ErrorView) and state.retry is not None:
            retry = state.retry
            return self._start(retry.kind, retry.target, retry.course_id, _loading_message(retry.kind))
        if isinstance(event, (Select, Back, Quit)):
            self._to_main_menu()
        return ()

    def _open(self, kind: ResourceKind) -> tuple[Effect, ...]:
        if not self._credential_check():
            self._state = AuthRequired(AUTH_REQUIRED_MESSAGE)
            return ()
        if kind.requires_course and self._course is None:
            return self._start(ResourceKind.COURSES, kind, None, _loading_message(ResourceKind.COURSES))
        course_id = self._course.id if kind.requires_course and self._course else None
        return self._start(kind, kind, course_id, _loading_message(kind))

    def _start(
        self,
        kind: ResourceKind,
        target: ResourceKind,
        course_id: str | None,
        message: str,
    ) -> tuple[Effect, ...]:
        request = FetchRequest(request_id=next(self._request_ids), kind=kind, target=target, course_id=course_id)
        self._state = Loading(message=message, request=request)
        return (request,)

    def _fail(self, error: BaseException, request: FetchRequest) -> None:
        if isinstance(error, TokenError):
            self._state = AuthRequired(f"{error}")
            return
        self._state = ErrorView(describe_error(error), retry=request)

    def _to_main_menu(self) -> None:
        self._state = MainMenu(self._menu_index)
