"""``credentials.toml``: tokens and per-source last-sync timestamps."""

from __future__ import annotations

import os
from datetime import datetime
from logging import getLogger
from typing import TYPE_CHECKING, Final

import toml

from totalrecall.domain.time_windows import ensure_aware

from .errors import ConfigParseError, MissingConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

    from totalrecall.domain.model import DataType

log = getLogger(__name__)

LAST_SYNC_PREFIX: Final[str] = "last_sync_"


def last_sync_key(source: str, data_type: DataType | str) -> str:
    return f"{LAST_SYNC_PREFIX}{source.lower()}_{data_type}"


class CredentialStore:
    """Opaque string map persisted as TOML, written atomically.

    Also serves as the run's timestamp store: ``last_sync_{source}_{type}``
    keys hold RFC 3339 timestamps of the last successful distribution.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._values: dict[str, str] = {}
        self._loaded = False

    @classmethod
    def open(cls, path: Path) -> CredentialStore:
        store = cls(path)
        store.load()
        return store

    def load(self) -> None:
        self._values = {}
        self._loaded = True
        if not self.path.exists():
            return
        try:
            document = toml.load(self.path)
        except toml.TomlDecodeError as exc:
            raise ConfigParseError(f"Cannot parse {self.path}: {exc}") from exc
        self._values = {str(key): str(value) for key, value in document.items()}

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            toml.dump(dict(sorted(self._values.items())), handle)
        os.replace(temp_path, self.path)
        log.debug("Saved %s credential key(s) to %s", len(self._values), self.path)

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def require(self, key: str) -> str:
        value = self.get(key)
        if not value:
            raise MissingConfigurationError(f"Missing credential {key!r} in {self.path}")
        return value

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._values)

    def access_token(self, source: str) -> str | None:
        return self.get(f"{source.lower()}_access_token")

    def set_access_token(self, source: str, token: str) -> None:
        self.set(f"{source.lower()}_access_token", token)

    def get_last_sync(self, source: str, data_type: DataType) -> datetime | None:
        raw = self.get(last_sync_key(source, data_type))
        if not raw:
            return None
        try:
            return ensure_aware(datetime.fromisoformat(raw))
        except ValueError:
            log.warning("Ignoring unparseable timestamp %r for %s/%s", raw, source, data_type)
            return None

    def set_last_sync(self, source: str, data_type: DataType, when: datetime) -> None:
        self.set(last_sync_key(source, data_type), ensure_aware(when).isoformat())

    def clear_timestamps(self) -> int:
        stale = [key for key in self._values if key.startswith(LAST_SYNC_PREFIX)]
        for key in stale:
            del self._values[key]
        return len(stale)

    def clear(self) -> None:
        self._values = {}


__all__ = ["LAST_SYNC_PREFIX", "CredentialStore", "last_sync_key"]
