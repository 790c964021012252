from __future__ import annotations

import pytest

from classroom_client.http import NotFoundError, RateLimitedError, ServerError
from classroom_client.models import Course
from classroom_client.token_store import TokenError, TokenErrorKind
from classroom_client.ui.state import (
    MENU,
    AuthRequired,
    Back,
    CancelFetch,
    ErrorView,
    FetchCompleted,
    FetchFailed,
    FetchRequest,
    Loading,
    MainMenu,
    MoveDown,
    MoveUp,
    Picker,
    Quit,
    QuitApp,
    Refresh,
    ResourceKind,
    ResourceList,
    Select,
    UIStateMachine,
    clamp,
)

COURSES = (
    Course(id="c1", name="Biology", course_state="ACTIVE"),
    Course(id="c2", name="History", course_state="ACTIVE"),
)


def menu_index(kind: ResourceKind | None) -> int:
    return next(i for i, entry in enumerate(MENU) if entry.kind is kind)


def open_entry(machine: UIStateMachine, kind: ResourceKind | None):
    for _ in range(len(MENU)):
        machine.dispatch(MoveUp())
    for _ in range(menu_index(kind)):
        machine.dispatch(MoveDown())
    return machine.dispatch(Select())


def only_fetch(effects) -> FetchRequest:
    assert len(effects) == 1
    assert isinstance(effects[0], FetchRequest)
    return effects[0]


def test_menu_lists_views_in_order():
    assert [entry.title for entry in MENU] == ["Classes", "Classwork", "Grades", "Announcements", "Quit"]
    assert isinstance(UIStateMachine().state, MainMenu)


def test_clamp_keeps_index_in_range():
    assert clamp(-1, 3) == 0
    assert clamp(5, 3) == 2
    assert clamp(3, 0) == 0


def test_menu_selection_clamps_at_both_ends():
    machine = UIStateMachine()

    machine.dispatch(MoveUp())
    assert machine.state == MainMenu(0)

    for _ in range(10):
        machine.dispatch(MoveDown())
    assert machine.state == MainMenu(len(MENU) - 1)


def test_classwork_without_course_goes_through_picker():
    machine = UIStateMachine()

    picker_fetch = only_fetch(open_entry(machine, ResourceKind.COURSEWORK))
    assert picker_fetch.kind is ResourceKind.COURSES
    assert picker_fetch.target is ResourceKind.COURSEWORK
    assert isinstance(machine.state, Loading)

    assert machine.dispatch(FetchCompleted(picker_fetch.request_id, COURSES)) == ()
    assert machine.state == Picker(kind=ResourceKind.COURSEWORK, items=COURSES)

    machine.dispatch(MoveDown())
    work_fetch = only_fetch(machine.dispatch(Select()))
    assert work_fetch.kind is ResourceKind.COURSEWORK
    assert work_fetch.course_id == "c2"
    assert machine.course.id == "c2"

    machine.dispatch(FetchCompleted(work_fetch.request_id, ("w1", "w2")))
    state = machine.state
    assert isinstance(state, ResourceList)
    assert state.kind is ResourceKind.COURSEWORK
    assert state.items == ("w1", "w2")
    assert state.course.id == "c2"
    assert state.selection_index == 0


def test_second_course_scoped_view_reuses_chosen_course():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.GRADES))
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))
    machine.dispatch(Select())
    machine.dispatch(Back())

    fetch = only_fetch(open_entry(machine, ResourceKind.ANNOUNCEMENTS))

    assert fetch.kind is ResourceKind.ANNOUNCEMENTS
    assert fetch.course_id == "c1"


def test_selecting_a_class_in_classes_list_sets_course():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))
    assert fetch.course_id is None
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))

    machine.dispatch(MoveDown())
    assert machine.dispatch(Select()) == ()

    assert machine.course.id == "c2"
    assert machine.course.name == "History"


def test_list_selection_clamps_and_refresh_resets_it():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))

    for _ in range(5):
        machine.dispatch(MoveDown())
    assert machine.state.selection_index == 1

    refetch = only_fetch(machine.dispatch(Refresh()))
    assert refetch.request_id != fetch.request_id
    machine.dispatch(FetchCompleted(refetch.request_id, COURSES))
    assert machine.state.selection_index == 0


def test_stale_completion_is_ignored():
    machine = UIStateMachine()
    first = only_fetch(open_entry(machine, ResourceKind.COURSES))
    machine.dispatch(Back())
    second = only_fetch(machine.dispatch(Select()))

    machine.dispatch(FetchCompleted(first.request_id, ("stale",)))
    assert isinstance(machine.state, Loading)

    machine.dispatch(FetchCompleted(second.request_id, COURSES))
    assert machine.state.items == COURSES


def test_back_while_loading_cancels_request():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))

    effects = machine.dispatch(Back())

    assert effects == (CancelFetch(fetch.request_id),)
    assert isinstance(machine.state, MainMenu)
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))
    assert isinstance(machine.state, MainMenu)


def test_token_failure_becomes_auth_required():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))

    machine.dispatch(FetchFailed(fetch.request_id, TokenError(TokenErrorKind.NOT_FOUND, "No saved credential")))

    assert machine.state == AuthRequired("No saved credential")


@pytest.mark.parametrize(
    "error, fragment",
    [
        (NotFoundError(404, "HTTP 404: gone"), "Not found"),
        (ServerError(503, "HTTP 503: down"), "HTTP 503"),
        (RuntimeError("boom"), "RuntimeError: boom"),
    ],
)
def test_other_failures_become_error_view(error, fragment):
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))

    machine.dispatch(FetchFailed(fetch.request_id, error))

    assert isinstance(machine.state, ErrorView)
    assert fragment in machine.state.message


def test_error_view_acknowledgement_returns_to_menu_position():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.ANNOUNCEMENTS))
    machine.dispatch(FetchFailed(fetch.request_id, ServerError(500, "HTTP 500")))

    machine.dispatch(Select())

    assert machine.state == MainMenu(menu_index(ResourceKind.ANNOUNCEMENTS))


def test_refresh_in_error_view_retries_failed_request():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))
    machine.dispatch(Select())
    machine.dispatch(Back())
    failed = only_fetch(open_entry(machine, ResourceKind.GRADES))
    machine.dispatch(FetchFailed(failed.request_id, RateLimitedError(429, "HTTP 429: slow down")))
    assert "press r to retry" in machine.state.message

    retry = only_fetch(machine.dispatch(Refresh()))

    assert retry.request_id != failed.request_id
    assert (retry.kind, retry.target, retry.course_id) == (ResourceKind.GRADES, ResourceKind.GRADES, "c1")
    assert isinstance(machine.state, Loading)
    machine.dispatch(FetchCompleted(retry.request_id, ("g1",)))
    assert machine.state.items == ("g1",)


def test_refresh_in_auth_required_does_nothing():
    machine = UIStateMachine(credential_check=lambda: False)
    open_entry(machine, ResourceKind.COURSES)

    assert machine.dispatch(Refresh()) == ()
    assert isinstance(machine.state, AuthRequired)


def test_missing_credential_short_circuits_to_auth_required():
    machine = UIStateMachine(credential_check=lambda: False)

    assert open_entry(machine, ResourceKind.COURSES) == ()
    assert isinstance(machine.state, AuthRequired)

    machine.dispatch(Back())
    assert isinstance(machine.state, MainMenu)


def test_quit_from_menu_and_quit_entry():
    machine = UIStateMachine()
    assert machine.dispatch(Quit()) == (QuitApp(),)
    assert machine.dispatch(Back()) == (QuitApp(),)
    assert open_entry(machine, None) == (QuitApp(),)


def test_quit_from_list_returns_to_menu():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.COURSES))
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))

    assert machine.dispatch(Quit()) == ()
    assert machine.state == MainMenu(0)


def test_picker_back_returns_to_menu_without_course():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.GRADES))
    machine.dispatch(FetchCompleted(fetch.request_id, COURSES))

    machine.dispatch(Back())

    assert isinstance(machine.state, MainMenu)
    assert machine.course is None


def test_empty_picker_select_does_nothing():
    machine = UIStateMachine()
    fetch = only_fetch(open_entry(machine, ResourceKind.GRADES))
    machine.dispatch(FetchCompleted(fetch.request_id, ()))

    assert machine.dispatch(Select()) == ()
    assert machine.state == Picker(kind=ResourceKind.GRADES, items=())
