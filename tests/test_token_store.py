from __future__ import annotations

from datetime import datetime, timezone
import json
import os
import stat
from unittest import mock

import pytest

from classroom_client.models import Credential
from classroom_client.token_store import TokenError, TokenErrorKind, TokenStore


@pytest.fixture
def store(tmp_path) -> TokenStore:
    return TokenStore(str(tmp_path / "nested" / "token.json"))


@pytest.fixture
def credential() -> Credential:
    return Credential(
        access_token="ya29.access",
        refresh_token="1//refresh",
        expiry=datetime(2026, 5, 1, 8, 30, tzinfo=timezone.utc),
        scopes=("a", "b"),
    )


def test_save_then_load_returns_same_credential(store, credential):
    store.save(credential)

    assert store.load() == credential


def test_saved_file_uses_documented_json_layout(store, credential):
    store.save(credential)

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert payload == {
        "access_token": "ya29.access",
        "refresh_token": "1//refresh",
        "expiry": "2026-05-01T08:30:00+00:00",
        "token_type": "Bearer",
        "scope": "a b",
    }


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_saved_file_is_owner_only(store, credential):
    store.save(credential)

    assert stat.S_IMODE(store.path.stat().st_mode) == 0o600


def test_save_leaves_no_temporary_files(store, credential):
    store.save(credential)
    store.save(credential.refreshed("second", credential.expiry))

    leftovers = [p.name for p in store.path.parent.iterdir() if p.name.startswith(".token-")]
    assert leftovers == []
    assert store.load().access_token == "second"


def test_failed_replace_keeps_previous_file_intact(store, credential):
    store.save(credential)
    before = store.path.read_bytes()

    with mock.patch("classroom_client.token_store.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            store.save(credential.refreshed("other", credential.expiry))

    assert store.path.read_bytes() == before
    assert [p.name for p in store.path.parent.iterdir() if p.name.startswith(".token-")] == []


def test_missing_file_is_not_found(store):
    with pytest.raises(TokenError) as excinfo:
        store.load()

    assert excinfo.value.kind is TokenErrorKind.NOT_FOUND
    assert not store.exists()


@pytest.mark.parametrize("content", ["{oops", "[]", json.dumps({"refresh_token": "r"})])
def test_unreadable_file_is_corrupt(store, content):
    store.path.parent.mkdir(parents=True)
    store.path.write_text(content, encoding="utf-8")

    with pytest.raises(TokenError) as excinfo:
        store.load()

    assert excinfo.value.kind is TokenErrorKind.CORRUPT


def test_clear_reports_whether_anything_was_removed(store, credential):
    assert store.clear() is False

    store.save(credential)

    assert store.clear() is True
    assert not store.exists()
    assert store.clear() is False
