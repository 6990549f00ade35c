"""Cross-service identifier records.

A ``MediaIds`` value is the canonical bag of identifiers for one work. Records
are immutable; ``merge`` returns a new record and only ever fills empty slots,
so information about a work grows monotonically.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date  # noqa: TC003
from typing import TYPE_CHECKING, Final

from .enums import IdType, MediaKind

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(slots=True, frozen=True)
class MediaType:
    kind: MediaKind
    season: int | None = None
    episode: int | None = None

    @classmethod
    def movie(cls) -> MediaType:
        return cls(kind=MediaKind.MOVIE)

    @classmethod
    def show(cls) -> MediaType:
        return cls(kind=MediaKind.SHOW)

    @classmethod
    def for_episode(cls, season: int, episode: int) -> MediaType:
        return cls(kind=MediaKind.EPISODE, season=season, episode=episode)

    @property
    def is_movie(self) -> bool:
        return self.kind is MediaKind.MOVIE

    @property
    def is_show(self) -> bool:
        return self.kind is MediaKind.SHOW

    @property
    def is_episode(self) -> bool:
        return self.kind is MediaKind.EPISODE

    @property
    def key(self) -> str:
        """Stable discriminator used in composite index keys."""

        if self.kind is MediaKind.EPISODE:
            return f"episode:{self.season or 0}:{self.episode or 0}"
        return self.kind.value

    def __str__(self) -> str:
        return self.key


_ID_ATTRIBUTES: Final[dict[IdType, str]] = {
    IdType.IMDB: "imdb_id",
    IdType.TRAKT: "trakt_id",
    IdType.SIMKL: "simkl_id",
    IdType.TMDB: "tmdb_id",
    IdType.TVDB: "tvdb_id",
    IdType.SLUG: "slug",
    IdType.MEDIA_SERVER: "media_server_key",
}

# Prefixes used by ``any_id`` and understood by ``IdCache.find_by_any_id``.
NUMERIC_PREFIXES: Final[dict[IdType, str]] = {
    IdType.TRAKT: "trakt:",
    IdType.SIMKL: "simkl:",
    IdType.TMDB: "tmdb:",
    IdType.TVDB: "tvdb:",
}


def normalize_imdb_id(value: str | None) -> str | None:
    """Strip whitespace and stray slashes some services wrap around imdb ids."""

    if value is None:
        return None
    cleaned = value.strip().replace("/", "")
    return cleaned or None


@dataclass(slots=True, frozen=True, kw_only=True)
class MediaIds:
    imdb_id: str | None = None
    trakt_id: int | None = None
    simkl_id: int | None = None
    tmdb_id: int | None = None
    tvdb_id: int | None = None
    slug: str | None = None
    media_server_key: str | None = None

    title: str | None = None
    year: int | None = None
    media_type: MediaType | None = None
    show_title: str | None = None
    episode_title: str | None = None
    air_date: date | None = None

    def is_empty(self) -> bool:
        """True when no identifier is set; metadata does not count."""

        return all(getattr(self, attr) is None for attr in _ID_ATTRIBUTES.values())

    def get(self, id_type: IdType) -> str | int | None:
        return getattr(self, _ID_ATTRIBUTES[id_type])

    def has_id(self, id_type: IdType) -> bool:
        return self.get(id_type) is not None

    def id_items(self) -> Iterator[tuple[IdType, str | int]]:
        for id_type, attr in _ID_ATTRIBUTES.items():
            value = getattr(self, attr)
            if value is not None:
                yield id_type, value

    def merge(self, other: MediaIds) -> MediaIds:
        """Return a record with every empty slot of ``self`` filled from ``other``."""

        updates: dict[str, object] = {}
        for field in fields(self):
            if getattr(self, field.name) is None:
                value = getattr(other, field.name)
                if value is not None:
                    updates[field.name] = value
        if not updates:
            return self
        return replace(self, **updates)

    def with_metadata(
        self,
        *,
        title: str | None = None,
        year: int | None = None,
        media_type: MediaType | None = None,
    ) -> MediaIds:
        return self.merge(MediaIds(title=title or None, year=year, media_type=media_type))

    def any_id(self) -> str | None:
        """Best single lookup key, in ``find_by_any_id`` grammar."""

        if self.imdb_id:
            return self.imdb_id
        for id_type, prefix in NUMERIC_PREFIXES.items():
            value = self.get(id_type)
            if value is not None:
                return f"{prefix}{value}"
        return self.slug or self.media_server_key


def ids_overlap(left: MediaIds, right: MediaIds) -> bool:
    """True when any identifier space holds the same non-empty value on both sides."""

    for id_type, value in left.id_items():
        if right.get(id_type) == value:
            return True
    return False


def ids_conflict(left: MediaIds, right: MediaIds) -> bool:
    """True when some identifier space is set on both sides with different values."""

    for id_type, value in left.id_items():
        other = right.get(id_type)
        if other is not None and other != value:
            return True
    return False
