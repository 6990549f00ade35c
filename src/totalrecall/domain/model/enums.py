"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class MediaKind(StrEnum):
    MOVIE = "movie"
    SHOW = "show"
    EPISODE = "episode"


class NormalizedStatus(StrEnum):
    """Service-independent watch status shared by every source."""

    WATCHLIST = "watchlist"
    WATCHING = "watching"
    COMPLETED = "completed"
    DROPPED = "dropped"
    HOLD = "hold"


class DataType(StrEnum):
    WATCHLIST = "watchlist"
    RATINGS = "ratings"
    REVIEWS = "reviews"
    WATCH_HISTORY = "watch_history"


class ResolutionStrategy(StrEnum):
    NEWEST = "newest"
    OLDEST = "oldest"
    PREFERENCE = "preference"
    MERGE = "merge"

    @classmethod
    def parse(cls, value: str) -> ResolutionStrategy:
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise ValueError(f"Unknown resolution strategy {value!r} (expected one of {choices})") from None


class IdType(StrEnum):
    """Identifier spaces known to the identity cache."""

    IMDB = "imdb"
    TRAKT = "trakt"
    SIMKL = "simkl"
    TMDB = "tmdb"
    TVDB = "tvdb"
    SLUG = "slug"
    MEDIA_SERVER = "media_server"
