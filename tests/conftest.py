from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

import pytest

from classroom_client.config import DEFAULT_SCOPES, AppSettings


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings(
        client_id="client-123.apps.googleusercontent.com",
        client_secret="",
        scopes=DEFAULT_SCOPES,
        base_url="https://classroom.test/v1",
        auth_url="https://accounts.test/o/oauth2/auth",
        token_url="https://oauth2.test/token",
        timeout_seconds=5,
        retry_attempts=3,
        initial_backoff_seconds=1.0,
        max_backoff_seconds=32.0,
        auth_timeout_seconds=5.0,
        page_size=2,
        token_path=str(tmp_path / "config" / "token.json"),
        redirect_uri="http://localhost",
        log_level="DEBUG",
        log_file="",
    )


@pytest.fixture
def settings_with(settings) -> Callable[..., AppSettings]:
    def build(**overrides: Any) -> AppSettings:
        return replace(settings, **overrides)

    return build
