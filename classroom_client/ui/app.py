from __future__ import annotations

import logging

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message
from textual.widgets import Footer, Header, Static

from classroom_client.cancellation import CancellationToken
from classroom_client.config import AppSettings
from classroom_client.logging_utils import configure_logging
from classroom_client.services import ClassroomService, build_service
from classroom_client.ui.fetch import ViewFetcher
from classroom_client.ui.render import header_title, key_hints, render_state
from classroom_client.ui.state import (
    Back,
    CancelFetch,
    Effect,
    Event,
    FetchRequest,
    MoveDown,
    MoveUp,
    Quit,
    QuitApp,
    Refresh,
    Select,
    UIStateMachine,
)

logger = logging.getLogger(__name__)


class FetchFinished(Message):
    """Posted from a fetch worker thread back to the app."""

    def __init__(self, event: Event) -> None:
        super().__init__()
        self.event = event


class ClassroomApp(App):
    TITLE = "Google Classroom"

    DEFAULT_CSS = """
    #body {
        padding: 1 2;
    }
    """

    BINDINGS = [
        Binding("up,k", "move_up", "Up", show=False),
        Binding("down,j", "move_down", "Down", show=False),
        Binding("enter,l", "select", "Select"),
        Binding("escape,h,backspace", "back", "Back"),
        Binding("r", "refresh_view", "Refresh"),
        Binding("q", "quit_app", "Quit"),
    ]

    def __init__(self, service: ClassroomService, fetcher: ViewFetcher | None = None):
        super().__init__()
        self._service = service
        self._fetcher = fetcher or ViewFetcher(service)
        self._machine = UIStateMachine(credential_check=service.has_credential)
        self._cancel_tokens: dict[int, CancellationToken] = {}

    @property
    def machine(self) -> UIStateMachine:
        return self._machine

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(id="body")
        yield Footer()

    def on_mount(self) -> None:
        self._redraw()

    def action_move_up(self) -> None:
        self.handle_ui_event(MoveUp())

    def action_move_down(self) -> None:
        self.handle_ui_event(MoveDown())

    def action_select(self) -> None:
        self.handle_ui_event(Select())

    def action_back(self) -> None:
        self.handle_ui_event(Back())

    def action_refresh_view(self) -> None:
        self.handle_ui_event(Refresh())

    def action_quit_app(self) -> None:
        self.handle_ui_event(Quit())

    def on_fetch_finished(self, message: FetchFinished) -> None:
        self._cancel_tokens.pop(message.event.request_id, None)
        self.handle_ui_event(message.event)

    def handle_ui_event(self, event: Event) -> None:
        effects = self._machine.dispatch(event)
        for effect in effects:
            self._apply(effect)
        self._redraw()

    def _apply(self, effect: Effect) -> None:
        if isinstance(effect, FetchRequest):
            self._start_fetch(effect)
        elif isinstance(effect, CancelFetch):
            token = self._cancel_tokens.pop(effect.request_id, None)
            if token is not None:
                logger.info("Cancelling fetch %s", effect.request_id)
                token.cancel()
        elif isinstance(effect, QuitApp):
            for token in self._cancel_tokens.values():
                token.cancel()
            self._cancel_tokens.clear()
            self.exit()

    def _start_fetch(self, request: FetchRequest) -> None:
        cancel_token = CancellationToken()
        self._cancel_tokens[request.request_id] = cancel_token

        def work() -> None:
            event = self._fetcher.run(request, cancel_token)
            self.post_message(FetchFinished(event))

        self.run_worker(
            work,
            name=f"fetch-{request.request_id}",
            group="fetch",
            thread=True,
            exit_on_error=False,
        )

    def _redraw(self) -> None:
        state = self._machine.state
        self.title = header_title(state, self._machine.course)
        self.sub_title = key_hints(state)
        self.query_one("#body", Static).update(render_state(state, self._machine.course))


def run_tui(settings: AppSettings | None = None) -> None:
    settings = settings or AppSettings.from_env()
    configure_logging(settings.log_level, settings.log_file)
    service = build_service(settings)
    ClassroomApp(service).run()
