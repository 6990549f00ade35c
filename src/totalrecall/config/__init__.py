"""Application configuration helpers."""

from __future__ import annotations

from .credentials import CredentialStore, last_sync_key
from .env import optional_env_var
from .errors import ConfigParseError, ConfigurationError, MissingConfigurationError, StorageUnavailableError
from .logging import configure_logging, verbosity_level
from .settings import (
    KNOWN_SOURCES,
    AppConfig,
    ResolutionConfig,
    SchedulerConfig,
    SimklConfig,
    StatusMappingConfig,
    SyncSettings,
    TraktConfig,
    default_simkl_status_mapping,
    default_trakt_status_mapping,
    load_config,
    parse_config,
)
from .storage import StoragePaths, get_storage_paths

__all__ = [
    "KNOWN_SOURCES",
    "AppConfig",
    "ConfigParseError",
    "ConfigurationError",
    "CredentialStore",
    "MissingConfigurationError",
    "ResolutionConfig",
    "SchedulerConfig",
    "SimklConfig",
    "StatusMappingConfig",
    "StoragePaths",
    "StorageUnavailableError",
    "SyncSettings",
    "TraktConfig",
    "configure_logging",
    "default_simkl_status_mapping",
    "default_trakt_status_mapping",
    "get_storage_paths",
    "last_sync_key",
    "load_config",
    "optional_env_var",
    "parse_config",
    "verbosity_level",
]
