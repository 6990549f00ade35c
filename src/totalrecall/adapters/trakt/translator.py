"""Translate Trakt payloads into domain items and domain items into Trakt request bodies."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import (
    MediaIds,
    MediaType,
    NormalizedStatus,
    Rating,
    Review,
    WatchHistory,
    WatchlistItem,
    media_ids_of,
)

from .schema import (
    CommentEntry,
    HistoryEntry,
    RatingEntry,
    SearchResult,
    TraktEntry,
    TraktIds,
    WatchlistEntry,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from totalrecall.domain.model import MediaItem

log = getLogger(__name__)

SOURCE_NAME = "trakt"

type Buckets = dict[str, list[dict[str, object]]]


def ids_from_trakt(ids: TraktIds) -> MediaIds:
    return MediaIds(
        imdb_id=ids.imdb,
        trakt_id=ids.trakt,
        tmdb_id=ids.tmdb,
        tvdb_id=ids.tvdb,
        slug=ids.slug,
    )


def ids_from_mapping(imdb_id: str | None, native: Mapping[str, object] | None) -> MediaIds | None:
    """Build ``MediaIds`` from a raw ``ids`` object as found in any Trakt reply."""

    blob: dict[str, object] = dict(native or {})
    if imdb_id and not blob.get("imdb"):
        blob["imdb"] = imdb_id
    ids = ids_from_trakt(TraktIds.model_validate(blob))
    return None if ids.is_empty() else ids


def _describe(entry: TraktEntry) -> tuple[str, int | None, MediaType, TraktIds] | None:
    match entry.type:
        case "movie" if entry.movie is not None:
            media = entry.movie
            return media.title or "", media.year, MediaType.movie(), media.ids
        case "show" if entry.show is not None:
            media = entry.show
            return media.title or "", media.year, MediaType.show(), media.ids
        case "episode" if entry.episode is not None:
            episode = entry.episode
            show_title = entry.show.title if entry.show and entry.show.title else ""
            title = f"{show_title}: {episode.title}" if episode.title else show_title
            year = entry.show.year if entry.show else episode.year
            media_type = MediaType.for_episode(episode.season or 0, episode.number or 0)
            return title, year, media_type, episode.ids
        case _:
            return None


def _identified(entry: TraktEntry) -> tuple[str, int | None, MediaType, MediaIds] | None:
    described = _describe(entry)
    if described is None:
        log.debug("Skipping unsupported Trakt %s entry", entry.type)
        return None
    title, year, media_type, trakt_ids = described
    ids = ids_from_trakt(trakt_ids)
    if ids.is_empty():
        log.debug("Skipping Trakt %s %r without ids", entry.type, title)
        return None
    return title, year, media_type, ids.with_metadata(title=title, year=year, media_type=media_type)


def parse_watchlist_entry(entry: WatchlistEntry) -> WatchlistItem | None:
    identified = _identified(entry)
    if identified is None:
        return None
    title, year, media_type, ids = identified
    return WatchlistItem(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        title=title,
        year=year,
        media_type=media_type,
        date_added=entry.listed_at,
        source=SOURCE_NAME,
        status=NormalizedStatus.WATCHLIST,
    )


def parse_rating_entry(entry: RatingEntry) -> Rating | None:
    identified = _identified(entry)
    if identified is None:
        return None
    _, _, media_type, ids = identified
    return Rating(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        rating=max(1, min(10, entry.rating)),
        date_added=entry.rated_at,
        media_type=media_type,
        source=SOURCE_NAME,
    )


def parse_comment_entry(entry: CommentEntry) -> Review | None:
    identified = _identified(entry)
    if identified is None:
        return None
    _, _, media_type, ids = identified
    return Review(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        content=entry.comment.comment,
        date_added=entry.comment.created_at,
        media_type=media_type,
        source=SOURCE_NAME,
        is_spoiler=entry.comment.spoiler,
    )


def parse_history_entry(entry: HistoryEntry) -> WatchHistory | None:
    identified = _identified(entry)
    if identified is None:
        return None
    title, year, media_type, ids = identified
    return WatchHistory(
        imdb_id=ids.imdb_id or "",
        ids=ids,
        title=title,
        year=year,
        watched_at=entry.watched_at,
        media_type=media_type,
        source=SOURCE_NAME,
    )


def parse_search_result(result: SearchResult, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
    described = _describe(result)
    if described is None:
        return None
    title, year, found_type, trakt_ids = described
    if found_type.kind is not media_type.kind:
        return None
    ids = ids_from_trakt(trakt_ids)
    if ids.is_empty():
        return None
    return title, year, ids.with_metadata(title=title, year=year, media_type=media_type)


def search_type_for(media_type: MediaType) -> str | None:
    """Trakt's text search covers movies and shows; episodes are not searchable by title."""

    if media_type.is_movie:
        return "movie"
    if media_type.is_show:
        return "show"
    return None


def ids_payload(item: MediaItem) -> dict[str, object]:
    ids = media_ids_of(item)
    payload: dict[str, object] = {}
    if ids.imdb_id:
        payload["imdb"] = ids.imdb_id
    if ids.trakt_id is not None:
        payload["trakt"] = ids.trakt_id
    if ids.tmdb_id is not None:
        payload["tmdb"] = ids.tmdb_id
    if ids.tvdb_id is not None:
        payload["tvdb"] = ids.tvdb_id
    if ids.slug:
        payload["slug"] = ids.slug
    return payload


def bucket_key(media_type: MediaType) -> str:
    if media_type.is_movie:
        return "movies"
    if media_type.is_show:
        return "shows"
    return "episodes"


def build_sync_body[T: MediaItem](
    items: Iterable[T],
    extra: Callable[[T], Mapping[str, object]] | None = None,
) -> Buckets:
    """Group items into the ``movies``/``shows``/``episodes`` arrays ``/sync/*`` expects."""

    buckets: Buckets = {"movies": [], "shows": [], "episodes": []}
    for item in items:
        body: dict[str, object] = {"ids": ids_payload(item)}
        if extra is not None:
            body.update(extra(item))
        buckets[bucket_key(item.media_type)].append(body)
    return buckets


def watchlist_body(items: Iterable[WatchlistItem]) -> Buckets:
    return build_sync_body(items)


def ratings_body(ratings: Iterable[Rating]) -> Buckets:
    return build_sync_body(
        ratings,
        lambda rating: {"rating": rating.rating, "rated_at": rating.date_added.isoformat()},
    )


def history_body(entries: Iterable[WatchHistory]) -> Buckets:
    # Sending a show to /sync/history marks every episode watched.
    playable = [entry for entry in entries if not entry.media_type.is_show]
    return build_sync_body(playable, lambda entry: {"watched_at": entry.watched_at.isoformat()})


def comment_body(review: Review) -> dict[str, object]:
    key = bucket_key(review.media_type)[:-1]
    return {
        key: {"ids": ids_payload(review)},
        "comment": review.content,
        "spoiler": review.is_spoiler,
    }


__all__ = [
    "SOURCE_NAME",
    "comment_body",
    "history_body",
    "ids_from_mapping",
    "ids_from_trakt",
    "parse_comment_entry",
    "parse_history_entry",
    "parse_rating_entry",
    "parse_search_result",
    "parse_watchlist_entry",
    "ratings_body",
    "search_type_for",
    "watchlist_body",
]
