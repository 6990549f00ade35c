"""Translate Simkl payloads into domain items and domain items into Simkl request bodies."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Literal

from totalrecall.domain.model import (
    MAX_RATING,
    MIN_RATING,
    MediaIds,
    MediaType,
    Rating,
    WatchHistory,
    WatchlistItem,
    media_ids_of,
)

from .schema import ListEntry, SearchResult, SimklIds

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from datetime import datetime

    from totalrecall.config.settings import StatusMappingConfig
    from totalrecall.domain.model import MediaItem

log = getLogger(__name__)

SOURCE_NAME = "simkl"
DEFAULT_LIST = "plantowatch"

type Buckets = dict[str, list[dict[str, object]]]


def ids_from_simkl(ids: SimklIds) -> MediaIds:
    return MediaIds(
        imdb_id=ids.imdb,
        simkl_id=ids.simkl_number,
        tmdb_id=ids.tmdb,
        tvdb_id=ids.tvdb,
        slug=ids.slug,
    )


def ids_from_mapping(imdb_id: str | None, native: Mapping[str, object] | None) -> MediaIds | None:
    blob: dict[str, object] = dict(native or {})
    if imdb_id and not blob.get("imdb"):
        blob["imdb"] = imdb_id
    ids = ids_from_simkl(SimklIds.model_validate(blob))
    return None if ids.is_empty() else ids


def _media_type(kind: Literal["movie", "show"]) -> MediaType:
    return MediaType.movie() if kind == "movie" else MediaType.show()


def _identified(kind: Literal["movie", "show"], entry: ListEntry) -> tuple[str, int | None, MediaType, MediaIds] | None:
    media = entry.media()
    if media is None:
        return None
    title = media.title or ""
    ids = ids_from_simkl(media.ids)
    if ids.is_empty():
        log.debug("Skipping Simkl %s %r without ids", kind, title)
        return None
    media_type = _media_type(kind)
    return title, media.year, media_type, ids.with_metadata(title=title, year=media.year, media_type=media_type)


def parse_list_entry(
    kind: Literal["movie", "show"],
    entry: ListEntry,
    mapping: StatusMappingConfig,
    *,
    fallback: datetime,
) -> WatchlistItem | None:
    identified = _identified(kind, entry)
    if identified is None:
        return None
    title, year, media_type, ids = identified
    return WatchlistItem(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        title=title,
        year=year,
        media_type=media_type,
        date_added=entry.added_to_watchlist_at or fallback,
        source=SOURCE_NAME,
        status=mapping.normalize(entry.status) if entry.status else None,
    )


def parse_rating_entry(kind: Literal["movie", "show"], entry: ListEntry, *, fallback: datetime) -> Rating | None:
    if entry.user_rating is None:
        return None
    identified = _identified(kind, entry)
    if identified is None:
        return None
    _, _, media_type, ids = identified
    return Rating(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        rating=max(MIN_RATING, min(MAX_RATING, entry.user_rating)),
        date_added=entry.user_rated_at or entry.last_watched_at or fallback,
        media_type=media_type,
        source=SOURCE_NAME,
    )


def parse_history_entry(kind: Literal["movie", "show"], entry: ListEntry) -> WatchHistory | None:
    """Simkl keeps no play log; an item counts as watched once it has ``last_watched_at``."""

    if entry.last_watched_at is None:
        return None
    identified = _identified(kind, entry)
    if identified is None:
        return None
    title, year, media_type, ids = identified
    return WatchHistory(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        title=title,
        year=year,
        watched_at=entry.last_watched_at,
        media_type=media_type,
        source=SOURCE_NAME,
    )


def parse_search_result(result: SearchResult, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
    if result.type is not None:
        found_movie = result.type == "movie"
        if found_movie != media_type.is_movie:
            return None
    ids = ids_from_simkl(result.ids)
    if ids.is_empty():
        return None
    title = result.title or ""
    return title, result.year, ids.with_metadata(title=title, year=result.year, media_type=media_type)


def search_type_for(media_type: MediaType) -> str | None:
    if media_type.is_movie:
        return "movie"
    if media_type.is_show:
        return "tv"
    return None


def ids_payload(item: MediaItem) -> dict[str, object]:
    ids = media_ids_of(item)
    payload: dict[str, object] = {}
    if ids.imdb_id:
        payload["imdb"] = ids.imdb_id
    if ids.simkl_id is not None:
        payload["simkl"] = ids.simkl_id
    if ids.tmdb_id is not None:
        payload["tmdb"] = ids.tmdb_id
    if ids.tvdb_id is not None:
        payload["tvdb"] = ids.tvdb_id
    return payload


def build_sync_body[T: MediaItem](
    items: Iterable[T],
    extra: Callable[[T], Mapping[str, object]] | None = None,
) -> Buckets:
    """Group movies and shows into the arrays ``/sync/*`` expects; episodes are not accepted."""

    buckets: Buckets = {"movies": [], "shows": []}
    for item in items:
        if item.media_type.is_episode:
            log.debug("Simkl lists do not take episodes; skipping %s", media_ids_of(item).any_id())
            continue
        body: dict[str, object] = {"ids": ids_payload(item)}
        if extra is not None:
            body.update(extra(item))
        buckets["movies" if item.media_type.is_movie else "shows"].append(body)
    return buckets


def bucket_size(body: Buckets) -> int:
    return sum(len(entries) for entries in body.values())


def add_to_list_body(items: Iterable[WatchlistItem], mapping: StatusMappingConfig) -> Buckets:
    def describe(item: WatchlistItem) -> dict[str, object]:
        extra: dict[str, object] = {"to": (mapping.native(item.status) if item.status else None) or DEFAULT_LIST}
        if item.title:
            extra["title"] = item.title
        if item.year is not None:
            extra["year"] = item.year
        return extra

    return build_sync_body(items, describe)


def remove_body(items: Iterable[WatchlistItem]) -> Buckets:
    return build_sync_body(items)


def ratings_body(ratings: Iterable[Rating]) -> Buckets:
    return build_sync_body(
        ratings,
        lambda rating: {"rating": rating.rating, "rated_at": rating.date_added.isoformat()},
    )


def history_body(entries: Iterable[WatchHistory]) -> Buckets:
    return build_sync_body(entries, lambda entry: {"watched_at": entry.watched_at.isoformat()})


__all__ = [
    "DEFAULT_LIST",
    "SOURCE_NAME",
    "add_to_list_body",
    "bucket_size",
    "history_body",
    "ids_from_mapping",
    "ids_from_simkl",
    "parse_history_entry",
    "parse_list_entry",
    "parse_rating_entry",
    "parse_search_result",
    "ratings_body",
    "remove_body",
    "search_type_for",
]
