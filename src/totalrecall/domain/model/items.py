"""Per-source media items.

Every item carries an optional ``MediaIds`` record plus the legacy ``imdb_id``
string that predates identifier normalization. Items are frozen; resolver and
conflict stages produce new values via ``with_ids`` rather than mutating.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime  # noqa: TC003
from typing import Protocol, Self

from .enums import NormalizedStatus  # noqa: TC001
from .media_ids import MediaIds, MediaType

MIN_RATING = 1
MAX_RATING = 10


class MediaItem(Protocol):
    """Structural view shared by the four item containers."""

    @property
    def imdb_id(self) -> str: ...

    @property
    def ids(self) -> MediaIds | None: ...

    @property
    def media_type(self) -> MediaType: ...

    @property
    def source(self) -> str: ...

    @property
    def timestamp(self) -> datetime: ...

    def with_ids(self, ids: MediaIds) -> Self: ...


def media_ids_of(item: MediaItem) -> MediaIds:
    """Return the item's identifier record, folding in the legacy imdb string."""

    ids = item.ids or MediaIds()
    if item.imdb_id and ids.imdb_id is None:
        ids = ids.merge(MediaIds(imdb_id=item.imdb_id))
    return ids


def imdb_of(item: MediaItem) -> str:
    if item.imdb_id:
        return item.imdb_id
    if item.ids is not None and item.ids.imdb_id:
        return item.ids.imdb_id
    return ""


def has_any_id(item: MediaItem) -> bool:
    return not media_ids_of(item).is_empty()


def _with_ids[T: MediaItem](item: T, ids: MediaIds) -> T:
    imdb_id = item.imdb_id or ids.imdb_id or ""
    return replace(item, ids=ids, imdb_id=imdb_id)  # type: ignore[misc]


@dataclass(slots=True, frozen=True, kw_only=True)
class WatchlistItem:
    imdb_id: str
    title: str
    media_type: MediaType
    date_added: datetime
    source: str
    year: int | None = None
    ids: MediaIds | None = None
    status: NormalizedStatus | None = None

    @property
    def timestamp(self) -> datetime:
        return self.date_added

    def with_ids(self, ids: MediaIds) -> WatchlistItem:
        return _with_ids(self, ids)


@dataclass(slots=True, frozen=True, kw_only=True)
class Rating:
    imdb_id: str
    rating: int
    date_added: datetime
    media_type: MediaType
    source: str
    ids: MediaIds | None = None

    def __post_init__(self) -> None:
        if not MIN_RATING <= self.rating <= MAX_RATING:
            raise ValueError(f"Rating must be within {MIN_RATING}..{MAX_RATING}, got {self.rating}")

    @property
    def timestamp(self) -> datetime:
        return self.date_added

    def with_ids(self, ids: MediaIds) -> Rating:
        return _with_ids(self, ids)


@dataclass(slots=True, frozen=True, kw_only=True)
class Review:
    imdb_id: str
    content: str
    date_added: datetime
    media_type: MediaType
    source: str
    is_spoiler: bool = False
    ids: MediaIds | None = None

    @property
    def timestamp(self) -> datetime:
        return self.date_added

    def with_ids(self, ids: MediaIds) -> Review:
        return _with_ids(self, ids)


@dataclass(slots=True, frozen=True, kw_only=True)
class WatchHistory:
    imdb_id: str
    watched_at: datetime
    media_type: MediaType
    source: str
    title: str | None = None
    year: int | None = None
    ids: MediaIds | None = None

    @property
    def timestamp(self) -> datetime:
        return self.watched_at

    def with_ids(self, ids: MediaIds) -> WatchHistory:
        return _with_ids(self, ids)


@dataclass(slots=True, frozen=True, kw_only=True)
class ExcludedItem:
    """An item distribution could not send to a target, with the reason why."""

    media_type: MediaType
    reason: str
    source: str
    title: str | None = None
    imdb_id: str | None = None
    media_server_key: str | None = None
    date_added: datetime | None = None

    @classmethod
    def from_item(cls, item: MediaItem, *, reason: str, target: str) -> ExcludedItem:
        ids = media_ids_of(item)
        title = getattr(item, "title", None) or ids.title
        return cls(
            media_type=item.media_type,
            reason=reason,
            source=target,
            title=title,
            imdb_id=imdb_of(item) or None,
            media_server_key=ids.media_server_key,
            date_added=item.timestamp,
        )
