"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.adapters.simkl import SimklSource
from totalrecall.adapters.snapshots import JsonSnapshotStore
from totalrecall.adapters.trakt import TraktSource
from totalrecall.adapters.trakt import default_resilience_config as trakt_resilience
from totalrecall.config import (
    AppConfig,
    ConfigurationError,
    CredentialStore,
    SimklConfig,
    StoragePaths,
    TraktConfig,
    get_storage_paths,
    load_config,
)
from totalrecall.domain.identity import IdCacheStorage, IdLookupService, IdResolver
from totalrecall.domain.sync import SyncOptions, SyncOrchestrator, SyncSetupError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from totalrecall.domain.model import DataType
    from totalrecall.domain.ports.sources import MediaSource
    from totalrecall.domain.sync import ProgressCallback, SyncResult

log = getLogger(__name__)


class ClearTarget(StrEnum):
    CACHE = "cache"
    CREDENTIALS = "credentials"
    TIMESTAMPS = "timestamps"
    ALL = "all"


def load_app_config(paths: StoragePaths | None = None) -> AppConfig:
    """Read and validate ``config.toml`` from the storage base directory."""

    effective_paths = paths or get_storage_paths()
    return load_config(effective_paths.config_file).validate()


def build_sources(
    config: AppConfig,
    credentials: CredentialStore,
    paths: StoragePaths,
) -> dict[str, MediaSource]:
    """Instantiate one adapter per enabled source, in preference order."""

    sources: dict[str, MediaSource] = {}
    for name in config.enabled_sources():
        source_config = config.source(name)
        match source_config:
            case TraktConfig():
                sources[name] = TraktSource(
                    config=source_config,
                    credentials=credentials,
                    resilience=trakt_resilience(paths.http_cache_path),
                )
            case SimklConfig():
                sources[name] = SimklSource(config=source_config, credentials=credentials)
            case _:
                raise ConfigurationError(f"No adapter for source {name!r}")
    return sources


def build_options(
    config: AppConfig,
    *,
    data_types: Iterable[DataType] | None = None,
    force_full_sync: bool = False,
    dry_run: Iterable[str] = (),
    use_cache: Iterable[str] = (),
) -> SyncOptions:
    sync = config.sync
    return SyncOptions(
        data_types=frozenset(data_types) if data_types is not None else sync.data_types(),
        force_full_sync=force_full_sync,
        dry_run=frozenset(dry_run),
        use_cache=frozenset(use_cache),
        remove_watched_from_watchlists=sync.remove_watched_from_watchlists,
        mark_rated_as_watched=sync.mark_rated_as_watched,
        remove_watchlist_items_older_than_days=sync.remove_watchlist_items_older_than_days,
    )


def run_sync(
    *,
    data_types: Iterable[DataType] | None = None,
    force_full_sync: bool = False,
    dry_run: Iterable[str] = (),
    use_cache: Iterable[str] = (),
    paths: StoragePaths | None = None,
    config: AppConfig | None = None,
    sources: dict[str, MediaSource] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> SyncResult:
    """Synchronise every enabled source using the configured adapters."""

    effective_paths = (paths or get_storage_paths()).ensure_directories()
    effective_config = config or load_app_config(effective_paths)
    credentials = CredentialStore.open(effective_paths.credentials_file)
    if sources is None:
        sources = build_sources(effective_config, credentials, effective_paths)
    options = build_options(
        effective_config,
        data_types=data_types,
        force_full_sync=force_full_sync,
        dry_run=dry_run,
        use_cache=use_cache,
    )

    lookup = IdLookupService.from_sources(sources.values())
    resolver = IdResolver.open(IdCacheStorage.in_directory(effective_paths.id_cache_dir), lookup)
    try:
        orchestrator = SyncOrchestrator(
            sources=sources,
            resolver=resolver,
            snapshots=JsonSnapshotStore.in_directory(effective_paths.cache_dir),
            timestamps=credentials,
            policy=effective_config.resolution.to_policy(),
            options=options,
            progress_callback=progress_callback,
        )
    except SyncSetupError as exc:
        raise ConfigurationError(str(exc)) from exc

    result = asyncio.run(orchestrator.run())
    log.info(
        "Finished sync: items_synced=%s, failures=%s, duration=%.1fs",
        result.items_synced,
        result.has_failures,
        result.duration_seconds,
    )
    return result


def clear(target: ClearTarget, *, paths: StoragePaths | None = None) -> list[str]:
    """Remove cached or stored state; returns a description of what was cleared."""

    effective_paths = paths or get_storage_paths()
    cleared: list[str] = []
    if target in {ClearTarget.CACHE, ClearTarget.ALL}:
        JsonSnapshotStore.in_directory(effective_paths.cache_dir).clear()
        IdCacheStorage.in_directory(effective_paths.id_cache_dir).delete()
        effective_paths.http_cache_path.unlink(missing_ok=True)
        cleared.append("cache")
    if target is ClearTarget.TIMESTAMPS:
        credentials = CredentialStore.open(effective_paths.credentials_file)
        removed = credentials.clear_timestamps()
        credentials.save()
        cleared.append(f"timestamps ({removed})")
    if target in {ClearTarget.CREDENTIALS, ClearTarget.ALL}:
        credentials = CredentialStore.open(effective_paths.credentials_file)
        credentials.clear()
        credentials.save()
        cleared.append("credentials")
    for item in cleared:
        log.info("Cleared %s", item)
    return cleared


__all__ = [
    "ClearTarget",
    "build_options",
    "build_sources",
    "clear",
    "load_app_config",
    "run_sync",
]
