from __future__ import annotations

import base64
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
import hashlib
import html
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import logging
import secrets
import threading
from typing import Any, Callable, Iterator
from urllib.parse import parse_qs, urlencode, urlparse
import webbrowser

import requests

from classroom_client.cancellation import CancellationToken
from classroom_client.config import AppSettings
from classroom_client.models import AuthState, Credential
from classroom_client.token_store import (
    TokenError,
    TokenErrorKind,
    TokenExpiredError,
    TokenStore,
)

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/"
LOOPBACK_HOST = "127.0.0.1"


class AuthErrorKind(str, Enum):
    USER_CANCELLED = "user_cancelled"
    PROVIDER_DENIED = "provider_denied"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"


class AuthError(RuntimeError):
    def __init__(self, kind: AuthErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class CallbackOutcome:
    code: str | None = None
    error: AuthError | None = None


class FirstOutcome:
    """Result slot for the authorization wait. The first offer wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._outcome: CallbackOutcome | None = None

    def offer(self, outcome: CallbackOutcome) -> bool:
        with self._lock:
            if self._outcome is not None:
                return False
            self._outcome = outcome
        self._ready.set()
        return True

    def wait(self, timeout: float | None) -> CallbackOutcome | None:
        self._ready.wait(timeout)
        return self.outcome

    @property
    def outcome(self) -> CallbackOutcome | None:
        with self._lock:
            return self._outcome


class _CallbackHandler(BaseHTTPRequestHandler):
    server: "CallbackServer"

    # Idle keep-alive or speculative connections are dropped after this many seconds.
    timeout = 5

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self.send_error(404)
            return

        outcome = outcome_from_query(parse_qs(parsed.query), self.server.expected_state)
        accepted = self.server.result.offer(outcome)

        self.send_response(200 if outcome.code and accepted else 400)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.end_headers()
        if outcome.code and accepted:
            body = (
                "<html><body style=\"font-family: sans-serif; text-align: center; padding: 50px;\">"
                "<h1>Signed in</h1><p>You can close this window and return to your terminal.</p>"
                "</body></html>"
            )
        else:
            reason = html.escape(str(outcome.error or "this sign-in attempt is no longer active"))
            body = (
                "<html><body style=\"font-family: sans-serif; text-align: center; padding: 50px;\">"
                f"<h1>Authorization failed</h1><p>{reason}</p>"
                "<p>Check the terminal for details.</p></body></html>"
            )
        self.wfile.write(body.encode("utf-8"))

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("callback listener: " + format, *args)


class CallbackServer(ThreadingHTTPServer):
    # A connection that never sends a request must not hold up shutdown.
    daemon_threads = True
    block_on_close = False

    def __init__(self, address: tuple[str, int], expected_state: str, result: FirstOutcome):
        super().__init__(address, _CallbackHandler)
        self.expected_state = expected_state
        self.result = result
        self.callback_path = CALLBACK_PATH


@contextmanager
def serving(server: CallbackServer) -> Iterator[CallbackServer]:
    thread = threading.Thread(
        target=server.serve_forever,
        kwargs={"poll_interval": 0.1},
        name="oauth-callback",
        daemon=True,
    )
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
        logger.debug("Callback listener on port %s closed", server.server_address[1])


def outcome_from_query(
    query: dict[str, list[str]],
    expected_state: str,
    require_state: bool = True,
) -> CallbackOutcome:
    error = _first(query, "error")
    if error:
        description = _first(query, "error_description") or error
        return CallbackOutcome(
            error=AuthError(AuthErrorKind.PROVIDER_DENIED, f"Authorization denied by provider: {description}")
        )

    state = _first(query, "state")
    if (state or require_state) and state != expected_state:
        return CallbackOutcome(
            error=AuthError(AuthErrorKind.PROVIDER_DENIED, "Authorization response state mismatch")
        )

    code = _first(query, "code")
    if not code:
        return CallbackOutcome(
            error=AuthError(AuthErrorKind.PROVIDER_DENIED, "Authorization response did not include a code")
        )
    return CallbackOutcome(code=code)


def parse_redirect_url(redirect_url: str, expected_state: str) -> CallbackOutcome:
    return outcome_from_query(parse_qs(urlparse(redirect_url.strip()).query), expected_state, require_state=False)


def generate_pkce_pair() -> tuple[str, str]:
    code_verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("utf-8").rstrip("=")
    code_challenge = (
        base64.urlsafe_b64encode(hashlib.sha256(code_verifier.encode("utf-8")).digest()).decode("utf-8").rstrip("=")
    )
    return code_verifier, code_challenge


def _first(query: dict[str, list[str]], key: str) -> str:
    values = query.get(key) or [""]
    return values[0].strip()


class CredentialManager:
    def __init__(
        self,
        settings: AppSettings,
        store: TokenStore | None = None,
        *,
        session: requests.Session | None = None,
        browser_opener: Callable[[str], bool] = webbrowser.open,
        prompt: Callable[[str], str] = input,
        echo: Callable[[str], None] = print,
        clock: Callable[[], datetime] | None = None,
    ):
        self._settings = settings
        self._store = store or TokenStore(settings.token_path)
        self._session = session or requests.Session()
        self._browser_opener = browser_opener
        self._prompt = prompt
        self._echo = echo
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._refresh_lock = threading.Lock()
        self._credential: Credential | None = None

    @property
    def store(self) -> TokenStore:
        return self._store

    def authorize(self, cancel_token: CancellationToken | None = None) -> Credential:
        self._settings.require_client()
        state = secrets.token_urlsafe(32)
        code_verifier, code_challenge = generate_pkce_pair()
        result = FirstOutcome()

        try:
            server = CallbackServer((LOOPBACK_HOST, 0), state, result)
        except OSError as error:
            logger.warning("Could not bind a loopback listener (%s); using manual sign-in", error)
            return self._authorize_manually(state, code_verifier, code_challenge)

        with serving(server):
            redirect_uri = f"http://{LOOPBACK_HOST}:{server.server_port}{CALLBACK_PATH}"
            auth_url = self.build_authorization_url(redirect_uri, state, code_challenge)
            logger.info("Waiting for OAuth callback on port %s", server.server_port)
            self._announce(auth_url)
            outcome = self._wait_for_callback(result, cancel_token)

        if outcome.error is not None:
            raise outcome.error
        return self._exchange_code(str(outcome.code), redirect_uri, code_verifier)

    def build_authorization_url(self, redirect_uri: str, state: str, code_challenge: str) -> str:
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._settings.scopes),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self._settings.auth_url}?{urlencode(params)}"

    def load(self) -> Credential:
        return self._store.load()

    def persist(self, credential: Credential) -> None:
        self._store.save(credential)

    def ensure_valid(self, credential: Credential) -> Credential:
        if not credential.is_expired(self._clock()):
            return credential

        if not credential.refresh_token:
            raise TokenExpiredError(
                TokenErrorKind.EXPIRED_NO_REFRESH,
                "Saved credential has expired and cannot be refreshed. Run 'classroom auth login'.",
            )
        if not self._settings.client_id:
            raise TokenExpiredError(
                TokenErrorKind.REFRESH_FAILED,
                "Cannot refresh the saved credential: CLASSROOM_CLIENT_ID is not configured.",
            )

        logger.info("Access token expired at %s, refreshing", credential.expiry.isoformat())
        data = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self._settings.client_id,
        }
        if self._settings.client_secret:
            data["client_secret"] = self._settings.client_secret

        try:
            fresh = Credential.from_token_response(self._post_token_endpoint(data), now=self._clock())
        except (AuthError, ValueError) as error:
            logger.warning("Token refresh failed: %s", error)
            raise TokenExpiredError(
                TokenErrorKind.REFRESH_FAILED,
                f"Token refresh failed: {error}. Run 'classroom auth login'.",
            ) from error

        refreshed = credential.refreshed(
            access_token=fresh.access_token,
            expiry=fresh.expiry,
            refresh_token=fresh.refresh_token or None,
            scopes=fresh.scopes or None,
        )
        self.persist(refreshed)
        return refreshed

    def access_token(self) -> str:
        with self._refresh_lock:
            cached = self._credential
            if cached is None or cached.is_expired(self._clock()):
                cached = self.load()
            self._credential = self.ensure_valid(cached)
            return self._credential.access_token

    def sign_in(self, cancel_token: CancellationToken | None = None) -> AuthState:
        credential = self.authorize(cancel_token)
        self.persist(credential)
        with self._refresh_lock:
            self._credential = credential
        return self.get_auth_state()

    def sign_out(self) -> bool:
        with self._refresh_lock:
            self._credential = None
        return self._store.clear()

    def has_credential(self) -> bool:
        return self.get_auth_state().is_signed_in

    def get_auth_state(self) -> AuthState:
        token_path = str(self._store.path)
        try:
            credential = self._store.load()
        except TokenError as error:
            problem = str(error) if error.kind == TokenErrorKind.CORRUPT else None
            return AuthState(is_signed_in=False, token_path=token_path, problem=problem)

        expired = credential.is_expired(self._clock())
        return AuthState(
            is_signed_in=not expired or bool(credential.refresh_token),
            token_path=token_path,
            expires_at=credential.expiry,
            is_expired=expired,
            has_refresh_token=bool(credential.refresh_token),
        )

    def _announce(self, auth_url: str) -> None:
        self._echo("Opening your browser to sign in with Google...")
        self._open_browser(auth_url)
        self._echo(f"If the browser did not open, visit this URL:\n\n  {auth_url}\n")
        self._echo(f"Waiting up to {int(self._settings.auth_timeout_seconds)}s for authorization (Ctrl+C to cancel)...")

    def _open_browser(self, url: str) -> None:
        try:
            opened = self._browser_opener(url)
        except (webbrowser.Error, OSError) as error:
            logger.info("Could not launch a browser: %s", error)
            return
        if not opened:
            logger.info("No browser available to open the authorization URL")

    def _wait_for_callback(
        self,
        result: FirstOutcome,
        cancel_token: CancellationToken | None,
    ) -> CallbackOutcome:
        cancelled = CallbackOutcome(error=AuthError(AuthErrorKind.USER_CANCELLED, "Authorization cancelled"))
        timed_out = CallbackOutcome(
            error=AuthError(
                AuthErrorKind.TIMEOUT,
                f"No authorization received within {int(self._settings.auth_timeout_seconds)}s",
            )
        )

        def on_cancel() -> None:
            result.offer(cancelled)

        if cancel_token is not None:
            cancel_token.add_callback(on_cancel)
        try:
            if result.wait(self._settings.auth_timeout_seconds) is None:
                result.offer(timed_out)
        except KeyboardInterrupt:
            result.offer(cancelled)
        finally:
            if cancel_token is not None:
                cancel_token.remove_callback(on_cancel)

        return result.outcome or timed_out

    def _authorize_manually(self, state: str, code_verifier: str, code_challenge: str) -> Credential:
        redirect_uri = self._settings.redirect_uri
        auth_url = self.build_authorization_url(redirect_uri, state, code_challenge)

        self._echo("Could not start a local listener for the sign-in callback.")
        self._echo(f"1. Open this URL and sign in:\n\n  {auth_url}\n")
        self._echo("2. After approving, the browser is sent to a page that may fail to load. Copy its full address.")
        try:
            pasted = self._prompt("3. Paste the redirect URL here: ").strip()
        except (EOFError, KeyboardInterrupt) as error:
            raise AuthError(AuthErrorKind.USER_CANCELLED, "Authorization cancelled") from error

        if not pasted:
            raise AuthError(AuthErrorKind.USER_CANCELLED, "No redirect URL provided")

        outcome = parse_redirect_url(pasted, state)
        if outcome.error is not None:
            raise outcome.error
        return self._exchange_code(str(outcome.code), redirect_uri, code_verifier)

    def _exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> Credential:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self._settings.client_id,
            "code_verifier": code_verifier,
        }
        if self._settings.client_secret:
            data["client_secret"] = self._settings.client_secret

        payload = self._post_token_endpoint(data)
        try:
            credential = Credential.from_token_response(payload, now=self._clock())
        except ValueError as error:
            raise AuthError(AuthErrorKind.NETWORK_ERROR, f"Unexpected token response: {error}") from error
        logger.info("Authorization code exchanged; token expires at %s", credential.expiry.isoformat())
        return credential

    def _post_token_endpoint(self, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = self._session.post(
                self._settings.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as error:
            raise AuthError(AuthErrorKind.NETWORK_ERROR, f"Token endpoint unreachable: {error}") from error

        if response.ok:
            try:
                payload = response.json()
            except ValueError as error:
                raise AuthError(AuthErrorKind.NETWORK_ERROR, "Token endpoint returned invalid JSON") from error
            if not isinstance(payload, dict):
                raise AuthError(AuthErrorKind.NETWORK_ERROR, "Token endpoint returned an unexpected payload")
            return payload

        message = self._get_error_message(response)
        if 400 <= response.status_code < 500:
            raise AuthError(AuthErrorKind.PROVIDER_DENIED, f"Token request rejected: {message}")
        raise AuthError(
            AuthErrorKind.NETWORK_ERROR,
            f"Token endpoint failed with HTTP {response.status_code}: {message}",
        )

    @staticmethod
    def _get_error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text[:500] or f"HTTP {response.status_code}"
        if isinstance(payload, dict):
            return str(payload.get("error_description") or payload.get("error") or payload)
        return str(payload)
