"""Pydantic models describing the Trakt API payloads."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TraktItemType = Literal["movie", "show", "season", "episode", "person", "list"]


def _strip_slashes(value: object) -> object:
    if isinstance(value, str):
        cleaned = value.strip().replace("/", "")
        return cleaned or None
    return value


class TraktBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TraktIds(TraktBaseModel):
    trakt: int | None = None
    slug: str | None = None
    imdb: str | None = None
    tmdb: int | None = None
    tvdb: int | None = None

    _normalize_imdb = field_validator("imdb", mode="before")(_strip_slashes)


class TraktMedia(TraktBaseModel):
    """Movie, show or episode body; episodes add season and number."""

    title: str | None = None
    year: int | None = None
    ids: TraktIds = Field(default_factory=TraktIds)
    season: int | None = None
    number: int | None = None


class TraktEntry(TraktBaseModel):
    type: TraktItemType
    movie: TraktMedia | None = None
    show: TraktMedia | None = None
    episode: TraktMedia | None = None

    def media(self) -> TraktMedia | None:
        match self.type:
            case "movie":
                return self.movie
            case "show":
                return self.show
            case "episode":
                return self.episode
            case _:
                return None


class WatchlistEntry(TraktEntry):
    listed_at: datetime


class RatingEntry(TraktEntry):
    rated_at: datetime
    rating: int


class HistoryEntry(TraktEntry):
    watched_at: datetime


class CommentBody(TraktBaseModel):
    id: int
    comment: str
    spoiler: bool = False
    review: bool = False
    created_at: datetime


class CommentEntry(TraktEntry):
    comment: CommentBody


class SearchResult(TraktEntry):
    score: float | None = None


class SyncCounts(TraktBaseModel):
    movies: int = 0
    shows: int = 0
    seasons: int = 0
    episodes: int = 0


class NotFound(TraktBaseModel):
    movies: list[object] = Field(default_factory=list[object])
    shows: list[object] = Field(default_factory=list[object])
    seasons: list[object] = Field(default_factory=list[object])
    episodes: list[object] = Field(default_factory=list[object])

    def count(self) -> int:
        return len(self.movies) + len(self.shows) + len(self.seasons) + len(self.episodes)


class SyncResponse(TraktBaseModel):
    """Reply to ``/sync/*`` mutations; ``not_found`` lists rejected items."""

    added: SyncCounts | None = None
    deleted: SyncCounts | None = None
    existing: SyncCounts | None = None
    not_found: NotFound = Field(default_factory=NotFound)


class UserSettings(TraktBaseModel):
    class User(TraktBaseModel):
        class Ids(TraktBaseModel):
            slug: str

        username: str
        ids: Ids

    user: User


class ErrorResponse(TraktBaseModel):
    error: str | None = None
    error_description: str | None = None
