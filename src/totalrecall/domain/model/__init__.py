"""Public domain model surface."""

from __future__ import annotations

from totalrecall.domain.model.enums import (
    DataType,
    IdType,
    MediaKind,
    NormalizedStatus,
    ResolutionStrategy,
)
from totalrecall.domain.model.items import (
    MAX_RATING,
    MIN_RATING,
    ExcludedItem,
    MediaItem,
    Rating,
    Review,
    WatchHistory,
    WatchlistItem,
    has_any_id,
    imdb_of,
    media_ids_of,
)
from totalrecall.domain.model.media_ids import (
    NUMERIC_PREFIXES,
    MediaIds,
    MediaType,
    ids_conflict,
    ids_overlap,
    normalize_imdb_id,
)

__all__ = [  # noqa: RUF022
    # identifiers
    "MediaIds",
    "MediaType",
    "NUMERIC_PREFIXES",
    "ids_conflict",
    "ids_overlap",
    "normalize_imdb_id",
    # items
    "MediaItem",
    "WatchlistItem",
    "Rating",
    "Review",
    "WatchHistory",
    "ExcludedItem",
    "MIN_RATING",
    "MAX_RATING",
    "has_any_id",
    "imdb_of",
    "media_ids_of",
    # enums
    "DataType",
    "IdType",
    "MediaKind",
    "NormalizedStatus",
    "ResolutionStrategy",
]
