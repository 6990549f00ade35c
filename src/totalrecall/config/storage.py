"""On-disk layout under the application base directory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .errors import StorageUnavailableError

APP_DIR_NAME: Final[str] = "totalrecall"
HOME_ENV_VAR: Final[str] = "TOTALRECALL_HOME"
CONFIG_FILENAME: Final[str] = "config.toml"
CREDENTIALS_FILENAME: Final[str] = "credentials.toml"
HTTP_CACHE_FILENAME: Final[str] = "http_cache.db"


@dataclass(frozen=True, slots=True)
class StoragePaths:
    base_dir: Path

    @property
    def config_file(self) -> Path:
        return self.base_dir / CONFIG_FILENAME

    @property
    def credentials_file(self) -> Path:
        return self.base_dir / CREDENTIALS_FILENAME

    @property
    def data_dir(self) -> Path:
        return self.base_dir / "data"

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"

    @property
    def collect_dir(self) -> Path:
        return self.cache_dir / "collect"

    @property
    def distribute_dir(self) -> Path:
        return self.cache_dir / "distribute"

    @property
    def id_cache_dir(self) -> Path:
        return self.cache_dir / "id"

    @property
    def http_cache_path(self) -> Path:
        return self.cache_dir / HTTP_CACHE_FILENAME

    def ensure_directories(self) -> StoragePaths:
        """Create every directory of the layout; an unwriteable base dir is fatal."""

        try:
            for directory in (self.base_dir, self.collect_dir, self.distribute_dir, self.id_cache_dir):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Cannot create data directories under {self.base_dir}: {exc}") from exc
        if not os.access(self.base_dir, os.W_OK):
            raise StorageUnavailableError(f"Base directory {self.base_dir} is not writeable")
        return self


def _default_base_dir() -> Path:
    if os.name == "nt":
        base = os.getenv("LOCALAPPDATA")
        base_path = Path(base) if base else (Path.home() / "AppData" / "Local")
    else:
        base = os.getenv("XDG_CONFIG_HOME")
        base_path = Path(base) if base else (Path.home() / ".config")
    return (base_path / APP_DIR_NAME).expanduser().resolve()


def get_storage_paths(base_dir: Path | None = None) -> StoragePaths:
    if base_dir is not None:
        return StoragePaths(base_dir=base_dir.expanduser().resolve())
    env_dir = os.getenv(HOME_ENV_VAR)
    resolved = Path(env_dir).expanduser().resolve() if env_dir else _default_base_dir()
    return StoragePaths(base_dir=resolved)


__all__ = [
    "APP_DIR_NAME",
    "CONFIG_FILENAME",
    "CREDENTIALS_FILENAME",
    "HOME_ENV_VAR",
    "HTTP_CACHE_FILENAME",
    "StoragePaths",
    "get_storage_paths",
]
