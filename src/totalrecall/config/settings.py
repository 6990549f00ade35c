"""User configuration: ``config.toml`` parsed into frozen dataclasses and validated."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from logging import getLogger
from typing import TYPE_CHECKING, Final
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from totalrecall.domain.model import DataType, NormalizedStatus, ResolutionStrategy
from totalrecall.domain.reconciliation import ResolutionPolicy

from .env import optional_env_var
from .errors import ConfigParseError, ConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

log = getLogger(__name__)

KNOWN_SOURCES: Final[tuple[str, ...]] = ("trakt", "simkl")
PLACEHOLDER_VALUES: Final[frozenset[str]] = frozenset({"", "your_client_id", "your_client_secret"})
DEFAULT_SCHEDULE: Final[str] = "0 */6 * * *"
DEFAULT_TOLERANCE_SECONDS: Final[float] = 3600.0
OVERRIDABLE_STRATEGIES: Final[tuple[str, ...]] = ("watchlist_strategy", "ratings_strategy")
TRAKT_HISTORY_LIST: Final[str] = "watch_history"

ENV_OVERRIDES: Final[dict[str, tuple[str, str]]] = {
    "TRAKT_CLIENT_ID": ("trakt", "client_id"),
    "TRAKT_CLIENT_SECRET": ("trakt", "client_secret"),
    "SIMKL_CLIENT_ID": ("simkl", "client_id"),
    "SIMKL_CLIENT_SECRET": ("simkl", "client_secret"),
}


@dataclass(frozen=True, slots=True)
class StatusMappingConfig:
    """Both directions between a service's native status strings and ``NormalizedStatus``."""

    to_normalized: Mapping[str, NormalizedStatus]
    from_normalized: Mapping[NormalizedStatus, str]

    def normalize(self, native: str) -> NormalizedStatus | None:
        return self.to_normalized.get(native.strip().lower())

    def native(self, status: NormalizedStatus) -> str | None:
        return self.from_normalized.get(status)

    def statuses_sent_to(self, native: str) -> frozenset[NormalizedStatus]:
        return frozenset(status for status, value in self.from_normalized.items() if value == native)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {
            "to_normalized": {native: str(status) for native, status in self.to_normalized.items()},
            "from_normalized": {str(status): native for status, native in self.from_normalized.items()},
        }


def default_trakt_status_mapping() -> StatusMappingConfig:
    # Trakt has no status field; the list an item lives on implies one.
    return StatusMappingConfig(
        to_normalized={
            "watchlist": NormalizedStatus.WATCHLIST,
            TRAKT_HISTORY_LIST: NormalizedStatus.WATCHING,
        },
        from_normalized={
            NormalizedStatus.WATCHLIST: "watchlist",
            NormalizedStatus.WATCHING: TRAKT_HISTORY_LIST,
            NormalizedStatus.COMPLETED: TRAKT_HISTORY_LIST,
        },
    )


def default_simkl_status_mapping() -> StatusMappingConfig:
    pairs = {
        "plantowatch": NormalizedStatus.WATCHLIST,
        "watching": NormalizedStatus.WATCHING,
        "completed": NormalizedStatus.COMPLETED,
        "dropped": NormalizedStatus.DROPPED,
        "hold": NormalizedStatus.HOLD,
    }
    return StatusMappingConfig(
        to_normalized=dict(pairs),
        from_normalized={status: native for native, status in pairs.items()},
    )


@dataclass(frozen=True, slots=True)
class TraktConfig:
    enabled: bool = True
    client_id: str = ""
    client_secret: str = ""
    status_mapping: StatusMappingConfig = field(default_factory=default_trakt_status_mapping)

    @property
    def has_credentials(self) -> bool:
        return _is_real(self.client_id) and _is_real(self.client_secret)


@dataclass(frozen=True, slots=True)
class SimklConfig:
    enabled: bool = True
    client_id: str = ""
    client_secret: str = ""
    status_mapping: StatusMappingConfig = field(default_factory=default_simkl_status_mapping)

    @property
    def has_credentials(self) -> bool:
        return _is_real(self.client_id) and _is_real(self.client_secret)


@dataclass(frozen=True, slots=True)
class ResolutionConfig:
    strategy: ResolutionStrategy = ResolutionStrategy.PREFERENCE
    source_preference: tuple[str, ...] = ()
    timestamp_tolerance_seconds: float = DEFAULT_TOLERANCE_SECONDS
    watchlist_strategy: ResolutionStrategy | None = None
    ratings_strategy: ResolutionStrategy | None = None

    def to_policy(self) -> ResolutionPolicy:
        return ResolutionPolicy(
            strategy=self.strategy,
            source_preference=self.source_preference,
            timestamp_tolerance_seconds=self.timestamp_tolerance_seconds,
            watchlist_strategy=self.watchlist_strategy,
            ratings_strategy=self.ratings_strategy,
        )


@dataclass(frozen=True, slots=True)
class SyncSettings:
    sync_watchlist: bool = True
    sync_ratings: bool = True
    sync_reviews: bool = True
    sync_watch_history: bool = True
    remove_watched_from_watchlists: bool = False
    mark_rated_as_watched: bool = False
    remove_watchlist_items_older_than_days: int | None = None

    def data_types(self) -> frozenset[DataType]:
        toggles = {
            DataType.WATCHLIST: self.sync_watchlist,
            DataType.RATINGS: self.sync_ratings,
            DataType.REVIEWS: self.sync_reviews,
            DataType.WATCH_HISTORY: self.sync_watch_history,
        }
        return frozenset(data_type for data_type, enabled in toggles.items() if enabled)


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    schedule: str = DEFAULT_SCHEDULE
    timezone: str = field(default_factory=lambda: os.getenv("TZ") or "UTC")
    run_on_startup: bool = True


@dataclass(frozen=True, slots=True)
class AppConfig:
    trakt: TraktConfig | None = None
    simkl: SimklConfig | None = None
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)
    scheduler: SchedulerConfig | None = None

    def source(self, name: str) -> TraktConfig | SimklConfig | None:
        match name:
            case "trakt":
                return self.trakt
            case "simkl":
                return self.simkl
            case _:
                return None

    def enabled_sources(self) -> list[str]:
        """Sources taking part in a sync, in preference order."""

        return [
            name
            for name in self.resolution.source_preference
            if (source := self.source(name)) is not None and source.enabled
        ]

    def validate(self) -> AppConfig:
        resolution = self.resolution
        if resolution.timestamp_tolerance_seconds < 0:
            raise ConfigurationError("resolution.timestamp_tolerance_seconds must be non-negative")
        if not resolution.source_preference:
            raise ConfigurationError("resolution.source_preference is required and cannot be empty")
        seen: set[str] = set()
        for name in resolution.source_preference:
            if name not in KNOWN_SOURCES:
                raise ConfigurationError(f"Invalid source in source_preference: {name}")
            if name in seen:
                raise ConfigurationError(f"Source listed twice in source_preference: {name}")
            seen.add(name)
            source = self.source(name)
            if source is None or not source.enabled:
                raise ConfigurationError(f"{name} is in source_preference but is not enabled")
            if not source.has_credentials:
                raise ConfigurationError(
                    f"{name} is in source_preference but client_id/client_secret are not configured"
                )

        days = self.sync.remove_watchlist_items_older_than_days
        if days is not None and days < 1:
            raise ConfigurationError("sync.remove_watchlist_items_older_than_days must be at least 1")

        if self.scheduler is not None:
            if len(self.scheduler.schedule.split()) != 5:  # noqa: PLR2004
                schedule = self.scheduler.schedule
                raise ConfigurationError(f"scheduler.schedule is not a 5-field cron expression: {schedule!r}")
            try:
                ZoneInfo(self.scheduler.timezone)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ConfigurationError(f"Unknown scheduler.timezone {self.scheduler.timezone!r}") from exc
        return self

    def to_dict(self) -> dict[str, object]:
        """Plain representation for display; secrets are masked."""

        document: dict[str, object] = {}
        for name in KNOWN_SOURCES:
            source = self.source(name)
            if source is None:
                continue
            document[name] = {
                "enabled": source.enabled,
                "client_id": _mask(source.client_id),
                "client_secret": _mask(source.client_secret),
                "status_mapping": source.status_mapping.to_dict(),
            }
        resolution = self.resolution
        document["resolution"] = {
            "strategy": str(resolution.strategy),
            "source_preference": list(resolution.source_preference),
            "timestamp_tolerance_seconds": resolution.timestamp_tolerance_seconds,
            "watchlist_strategy": str(resolution.watchlist_strategy) if resolution.watchlist_strategy else None,
            "ratings_strategy": str(resolution.ratings_strategy) if resolution.ratings_strategy else None,
        }
        sync = self.sync
        document["sync"] = {
            "sync_watchlist": sync.sync_watchlist,
            "sync_ratings": sync.sync_ratings,
            "sync_reviews": sync.sync_reviews,
            "sync_watch_history": sync.sync_watch_history,
            "remove_watched_from_watchlists": sync.remove_watched_from_watchlists,
            "mark_rated_as_watched": sync.mark_rated_as_watched,
            "remove_watchlist_items_older_than_days": sync.remove_watchlist_items_older_than_days,
        }
        if self.scheduler is not None:
            document["scheduler"] = {
                "schedule": self.scheduler.schedule,
                "timezone": self.scheduler.timezone,
                "run_on_startup": self.scheduler.run_on_startup,
            }
        return document


def load_config(path: Path, *, env_overrides: bool = True) -> AppConfig:
    """Read ``config.toml``; structural problems raise ``ConfigurationError``."""

    if not path.exists():
        raise MissingConfigurationError(f"No configuration file at {path}")
    try:
        with path.open("rb") as handle:
            document = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigParseError(f"Cannot parse {path}: {exc}") from exc
    config = parse_config(document)
    if env_overrides:
        config = apply_env_overrides(config)
    log.debug("Loaded configuration from %s", path)
    return config


def parse_config(document: Mapping[str, object]) -> AppConfig:
    trakt_table = _optional_table(document, "trakt")
    simkl_table = _optional_table(document, "simkl")
    scheduler_table = _optional_table(document, "scheduler")
    return AppConfig(
        trakt=_parse_trakt(trakt_table) if trakt_table is not None else None,
        simkl=_parse_simkl(simkl_table) if simkl_table is not None else None,
        resolution=_parse_resolution(_optional_table(document, "resolution") or {}),
        sync=_parse_sync(_optional_table(document, "sync") or {}),
        scheduler=_parse_scheduler(scheduler_table) if scheduler_table is not None else None,
    )


def apply_env_overrides(config: AppConfig) -> AppConfig:
    for variable, (source_name, attribute) in ENV_OVERRIDES.items():
        value = optional_env_var(variable)
        source = config.source(source_name)
        if value is None or source is None:
            continue
        log.debug("Using %s from the environment", variable)
        config = replace(config, **{source_name: replace(source, **{attribute: value})})
    return config


def _parse_trakt(table: Mapping[str, object]) -> TraktConfig:
    return TraktConfig(
        enabled=_bool(table, "enabled", default=True, section="trakt"),
        client_id=_str(table, "client_id", section="trakt"),
        client_secret=_str(table, "client_secret", section="trakt"),
        status_mapping=_parse_status_mapping(table, "trakt", default_trakt_status_mapping()),
    )


def _parse_simkl(table: Mapping[str, object]) -> SimklConfig:
    return SimklConfig(
        enabled=_bool(table, "enabled", default=True, section="simkl"),
        client_id=_str(table, "client_id", section="simkl"),
        client_secret=_str(table, "client_secret", section="simkl"),
        status_mapping=_parse_status_mapping(table, "simkl", default_simkl_status_mapping()),
    )


def _parse_status_mapping(
    table: Mapping[str, object],
    section: str,
    default: StatusMappingConfig,
) -> StatusMappingConfig:
    mapping = _optional_table(table, "status_mapping", section=section)
    if mapping is None:
        return default
    to_normalized = dict(default.to_normalized)
    for native, status in (_optional_table(mapping, "to_normalized", section=section) or {}).items():
        to_normalized[native.strip().lower()] = _status(status, section)
    from_normalized = dict(default.from_normalized)
    for status, native in (_optional_table(mapping, "from_normalized", section=section) or {}).items():
        if not isinstance(native, str):
            raise ConfigurationError(f"{section}.status_mapping.from_normalized.{status} must be a string")
        from_normalized[_status(status, section)] = native
    return StatusMappingConfig(to_normalized=to_normalized, from_normalized=from_normalized)


def _parse_resolution(table: Mapping[str, object]) -> ResolutionConfig:
    for key in table:
        if key.endswith("_strategy") and key not in OVERRIDABLE_STRATEGIES:
            raise ConfigurationError(
                f"resolution.{key} is not supported; only watchlist and ratings take a strategy override "
                "(reviews and watch history always merge)"
            )
    preference = table.get("source_preference", [])
    if not isinstance(preference, list) or not all(isinstance(name, str) for name in preference):
        raise ConfigurationError("resolution.source_preference must be a list of source names")
    tolerance = table.get("timestamp_tolerance_seconds", DEFAULT_TOLERANCE_SECONDS)
    if isinstance(tolerance, bool) or not isinstance(tolerance, int | float):
        raise ConfigurationError("resolution.timestamp_tolerance_seconds must be a number")
    return ResolutionConfig(
        strategy=_strategy(table.get("strategy", ResolutionStrategy.PREFERENCE.value), "strategy"),
        source_preference=tuple(name.strip().lower() for name in preference),
        timestamp_tolerance_seconds=float(tolerance),
        watchlist_strategy=_optional_strategy(table.get("watchlist_strategy"), "watchlist_strategy"),
        ratings_strategy=_optional_strategy(table.get("ratings_strategy"), "ratings_strategy"),
    )


def _parse_sync(table: Mapping[str, object]) -> SyncSettings:
    days = table.get("remove_watchlist_items_older_than_days")
    if days is not None and (isinstance(days, bool) or not isinstance(days, int)):
        raise ConfigurationError("sync.remove_watchlist_items_older_than_days must be an integer")
    return SyncSettings(
        sync_watchlist=_bool(table, "sync_watchlist", default=True, section="sync"),
        sync_ratings=_bool(table, "sync_ratings", default=True, section="sync"),
        sync_reviews=_bool(table, "sync_reviews", default=True, section="sync"),
        sync_watch_history=_bool(table, "sync_watch_history", default=True, section="sync"),
        remove_watched_from_watchlists=_bool(table, "remove_watched_from_watchlists", default=False, section="sync"),
        mark_rated_as_watched=_bool(table, "mark_rated_as_watched", default=False, section="sync"),
        remove_watchlist_items_older_than_days=days,
    )


def _parse_scheduler(table: Mapping[str, object]) -> SchedulerConfig:
    defaults = SchedulerConfig()
    return SchedulerConfig(
        schedule=_str(table, "schedule", section="scheduler") or defaults.schedule,
        timezone=_str(table, "timezone", section="scheduler") or defaults.timezone,
        run_on_startup=_bool(table, "run_on_startup", default=True, section="scheduler"),
    )


def _optional_table(
    document: Mapping[str, object],
    key: str,
    *,
    section: str | None = None,
) -> Mapping[str, object] | None:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        name = f"{section}.{key}" if section else key
        raise ConfigurationError(f"[{name}] must be a table")
    return value  # pyright: ignore[reportUnknownVariableType]


def _bool(table: Mapping[str, object], key: str, *, default: bool, section: str) -> bool:
    value = table.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{section}.{key} must be true or false")
    return value


def _str(table: Mapping[str, object], key: str, *, section: str) -> str:
    value = table.get(key, "")
    if not isinstance(value, str):
        raise ConfigurationError(f"{section}.{key} must be a string")
    return value.strip()


def _status(value: object, section: str) -> NormalizedStatus:
    try:
        return NormalizedStatus(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(status.value for status in NormalizedStatus)
        message = f"{section}.status_mapping: unknown status {value!r} (expected one of {choices})"
        raise ConfigurationError(message) from None


def _strategy(value: object, key: str) -> ResolutionStrategy:
    if not isinstance(value, str):
        raise ConfigurationError(f"resolution.{key} must be a string")
    try:
        return ResolutionStrategy.parse(value)
    except ValueError as exc:
        raise ConfigurationError(f"resolution.{key}: {exc}") from exc


def _optional_strategy(value: object, key: str) -> ResolutionStrategy | None:
    if value is None:
        return None
    return _strategy(value, key)


def _is_real(value: str) -> bool:
    return value.strip().lower() not in PLACEHOLDER_VALUES


def _mask(value: str) -> str:
    if not value:
        return ""
    return value[:4] + "…" if len(value) > 8 else "…"  # noqa: PLR2004


__all__ = [
    "KNOWN_SOURCES",
    "AppConfig",
    "ResolutionConfig",
    "SchedulerConfig",
    "SimklConfig",
    "StatusMappingConfig",
    "SyncSettings",
    "TraktConfig",
    "apply_env_overrides",
    "default_simkl_status_mapping",
    "default_trakt_status_mapping",
    "load_config",
    "parse_config",
]
