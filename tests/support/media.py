from __future__ import annotations

from datetime import UTC, datetime

from totalrecall.domain.model import (
    MediaIds,
    MediaType,
    NormalizedStatus,
    Rating,
    Review,
    WatchHistory,
    WatchlistItem,
)

T0 = datetime(2024, 1, 1, 12, tzinfo=UTC)


def watchlist_item(
    source: str,
    *,
    imdb: str = "tt0000001",
    ids: MediaIds | None = None,
    title: str = "Sample Movie",
    year: int | None = 2001,
    added: datetime = T0,
    status: NormalizedStatus | None = None,
    media_type: MediaType | None = None,
) -> WatchlistItem:
    return WatchlistItem(
        imdb_id=imdb,
        ids=ids,
        title=title,
        year=year,
        media_type=media_type or MediaType.movie(),
        date_added=added,
        source=source,
        status=status,
    )


def rating(
    source: str,
    value: int,
    *,
    imdb: str = "tt0000001",
    ids: MediaIds | None = None,
    rated: datetime = T0,
    media_type: MediaType | None = None,
) -> Rating:
    return Rating(
        imdb_id=imdb,
        ids=ids,
        rating=value,
        date_added=rated,
        media_type=media_type or MediaType.movie(),
        source=source,
    )


def review(
    source: str,
    content: str,
    *,
    imdb: str = "tt0000001",
    ids: MediaIds | None = None,
    written: datetime = T0,
) -> Review:
    return Review(
        imdb_id=imdb,
        ids=ids,
        content=content,
        date_added=written,
        media_type=MediaType.movie(),
        source=source,
    )


def history(
    source: str,
    *,
    imdb: str = "tt0000001",
    ids: MediaIds | None = None,
    watched: datetime = T0,
    title: str | None = "Sample Movie",
    media_type: MediaType | None = None,
) -> WatchHistory:
    return WatchHistory(
        imdb_id=imdb,
        ids=ids,
        title=title,
        watched_at=watched,
        media_type=media_type or MediaType.movie(),
        source=source,
    )
