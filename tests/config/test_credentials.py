from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path  # noqa: TC003

import pytest

from totalrecall.config import ConfigParseError, CredentialStore, MissingConfigurationError, last_sync_key
from totalrecall.domain.model import DataType

SYNCED_AT = datetime(2024, 5, 4, 3, 2, 1, tzinfo=UTC)


def test_values_survive_a_save_and_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "credentials.toml"
    store = CredentialStore(path)
    store.set_access_token("Trakt", "abc")
    store.set("simkl_access_token", "def")
    store.save()

    reopened = CredentialStore.open(path)

    assert reopened.access_token("trakt") == "abc"
    assert reopened.access_token("simkl") == "def"
    assert reopened.keys() == ["simkl_access_token", "trakt_access_token"]
    assert not path.with_suffix(".toml.tmp").exists()


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    store = CredentialStore.open(tmp_path / "credentials.toml")

    assert store.keys() == []
    assert store.access_token("trakt") is None


def test_require_reports_missing_key(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials.toml")
    store.set("trakt_access_token", "")

    with pytest.raises(MissingConfigurationError, match="trakt_access_token"):
        store.require("trakt_access_token")


def test_unparseable_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "credentials.toml"
    path.write_text("trakt_access_token = \n")

    with pytest.raises(ConfigParseError):
        CredentialStore.open(path)


def test_last_sync_timestamps_are_stored_in_utc(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials.toml")
    local = SYNCED_AT.astimezone(timezone(timedelta(hours=2)))

    store.set_last_sync("Simkl", DataType.WATCH_HISTORY, local)
    store.save()
    reopened = CredentialStore.open(store.path)

    assert last_sync_key("Simkl", DataType.WATCH_HISTORY) == "last_sync_simkl_watch_history"
    assert reopened.get("last_sync_simkl_watch_history") == SYNCED_AT.isoformat()
    assert reopened.get_last_sync("simkl", DataType.WATCH_HISTORY) == SYNCED_AT
    assert reopened.get_last_sync("simkl", DataType.RATINGS) is None


def test_garbled_timestamp_is_ignored(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials.toml")
    store.set(last_sync_key("trakt", DataType.RATINGS), "yesterday")

    assert store.get_last_sync("trakt", DataType.RATINGS) is None


def test_clear_timestamps_keeps_tokens(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "credentials.toml")
    store.set_access_token("trakt", "abc")
    for data_type in (DataType.WATCHLIST, DataType.RATINGS):
        store.set_last_sync("trakt", data_type, SYNCED_AT)

    removed = store.clear_timestamps()

    assert removed == 2
    assert store.keys() == ["trakt_access_token"]
    store.clear()
    assert store.keys() == []
