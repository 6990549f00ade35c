"""Options, per-source reports and distribution plans for one sync run."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from totalrecall.domain.model import DataType

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from totalrecall.domain.model import (
        ExcludedItem,
        Rating,
        Review,
        WatchHistory,
        WatchlistItem,
    )

type ProgressCallback = Callable[[str, int], None]


def _lowered(names: Iterable[str]) -> frozenset[str]:
    return frozenset(name.lower() for name in names)


@dataclass(slots=True, frozen=True, kw_only=True)
class SyncOptions:
    data_types: frozenset[DataType] = frozenset(DataType)
    force_full_sync: bool = False
    dry_run: frozenset[str] = frozenset()
    use_cache: frozenset[str] = frozenset()
    remove_watched_from_watchlists: bool = False
    mark_rated_as_watched: bool = False
    remove_watchlist_items_older_than_days: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "dry_run", _lowered(self.dry_run))
        object.__setattr__(self, "use_cache", _lowered(self.use_cache))

    def syncs(self, data_type: DataType) -> bool:
        return data_type in self.data_types

    def is_dry_run(self, source: str) -> bool:
        return source.lower() in self.dry_run

    def uses_cache(self, source: str) -> bool:
        return source.lower() in self.use_cache


@dataclass(slots=True)
class SourceReport:
    """Counters for one source across all phases of a run."""

    fetched: int = 0
    resolved: int = 0
    pushed: int = 0
    failed: int = 0
    skipped: int = 0
    dry_run: bool = False
    errors: list[str] = field(default_factory=list[str])

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.errors

    def record_error(self, message: str, *, failed: int = 0) -> None:
        self.errors.append(message)
        self.failed += failed


@dataclass(slots=True)
class SyncResult:
    started_at: datetime
    finished_at: datetime | None = None
    per_source: dict[str, SourceReport] = field(default_factory=dict[str, SourceReport])
    errors: list[str] = field(default_factory=list[str])

    def report(self, source: str) -> SourceReport:
        return self.per_source.setdefault(source, SourceReport())

    @property
    def items_synced(self) -> int:
        return sum(report.pushed for report in self.per_source.values())

    @property
    def has_failures(self) -> bool:
        return bool(self.errors) or any(not report.ok for report in self.per_source.values())

    @property
    def nothing_to_do(self) -> bool:
        return not self.has_failures and self.items_synced == 0

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "items_synced": self.items_synced,
            "nothing_to_do": self.nothing_to_do,
            "success": not self.has_failures,
            "per_source": {name: asdict(report) for name, report in self.per_source.items()},
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class DistributionPlan:
    """Deltas prepared for one target; what a dry-run writes to disk."""

    target: str
    watchlist: list[WatchlistItem] = field(default_factory=list["WatchlistItem"])
    watchlist_to_history: list[WatchHistory] = field(default_factory=list["WatchHistory"])
    ratings: list[Rating] = field(default_factory=list["Rating"])
    reviews: list[Review] = field(default_factory=list["Review"])
    watch_history: list[WatchHistory] = field(default_factory=list["WatchHistory"])
    removal_list: list[WatchlistItem] = field(default_factory=list["WatchlistItem"])
    excluded: list[ExcludedItem] = field(default_factory=list["ExcludedItem"])

    def sections(self) -> dict[str, list[object]]:
        """Every named section in output order, empty ones included."""

        return {
            "watchlist": list(self.watchlist),
            "watchlist_to_history": list(self.watchlist_to_history),
            "ratings": list(self.ratings),
            "reviews": list(self.reviews),
            "watch_history": list(self.watch_history),
            "removal_list": list(self.removal_list),
            "excluded": list(self.excluded),
        }

    def pending(self) -> int:
        return (
            len(self.watchlist)
            + len(self.watchlist_to_history)
            + len(self.ratings)
            + len(self.reviews)
            + len(self.watch_history)
            + len(self.removal_list)
        )

    def is_empty(self) -> bool:
        return self.pending() == 0


__all__ = ["DistributionPlan", "ProgressCallback", "SourceReport", "SyncOptions", "SyncResult"]
