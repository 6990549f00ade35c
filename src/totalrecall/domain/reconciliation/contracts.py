"""Containers flowing between the collect, resolve and distribute stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from totalrecall.domain.model import DataType, Rating, Review, WatchHistory, WatchlistItem

if TYPE_CHECKING:
    from collections.abc import Sequence

    from totalrecall.domain.model import MediaItem


@dataclass(slots=True)
class _ItemCollections:
    watchlist: list[WatchlistItem] = field(default_factory=list[WatchlistItem])
    ratings: list[Rating] = field(default_factory=list[Rating])
    reviews: list[Review] = field(default_factory=list[Review])
    watch_history: list[WatchHistory] = field(default_factory=list[WatchHistory])

    def items(self, data_type: DataType) -> Sequence[MediaItem]:
        match data_type:
            case DataType.WATCHLIST:
                return self.watchlist
            case DataType.RATINGS:
                return self.ratings
            case DataType.REVIEWS:
                return self.reviews
            case DataType.WATCH_HISTORY:
                return self.watch_history

    def counts(self) -> dict[DataType, int]:
        return {data_type: len(self.items(data_type)) for data_type in DataType}

    def total(self) -> int:
        return sum(self.counts().values())

    def is_empty(self) -> bool:
        return self.total() == 0


@dataclass(slots=True)
class SourceData(_ItemCollections):
    """Everything collected from one source in one run."""


@dataclass(slots=True)
class ResolvedData(_ItemCollections):
    """Conflict-free union of all sources, ready for distribution."""


__all__ = ["ResolvedData", "SourceData"]
