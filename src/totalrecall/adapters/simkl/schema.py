"""Pydantic models describing the Simkl API payloads."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SimklItemType = Literal["movie", "show", "tv", "anime", "episode"]


def _strip_slashes(value: object) -> object:
    if isinstance(value, str):
        cleaned = value.strip().replace("/", "")
        return cleaned or None
    return value


def _numeric(value: object) -> object:
    # Simkl sends some numeric ids as strings, and "" for unknown ones.
    if isinstance(value, str):
        stripped = value.strip()
        return int(stripped) if stripped.isdigit() else None
    return value


def _utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SimklBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SimklIds(SimklBaseModel):
    simkl: int | None = None
    simkl_id: int | None = None
    slug: str | None = None
    imdb: str | None = None
    tmdb: int | None = None
    tvdb: int | None = None

    _normalize_imdb = field_validator("imdb", mode="before")(_strip_slashes)
    _normalize_numbers = field_validator("simkl", "simkl_id", "tmdb", "tvdb", mode="before")(_numeric)

    @property
    def simkl_number(self) -> int | None:
        # Search replies call it ``simkl_id``, sync replies ``simkl``.
        return self.simkl if self.simkl is not None else self.simkl_id


class SimklMedia(SimklBaseModel):
    title: str | None = None
    year: int | None = None
    ids: SimklIds = Field(default_factory=SimklIds)


class ListEntry(SimklBaseModel):
    """One row of ``/sync/all-items`` or ``/sync/ratings``."""

    added_to_watchlist_at: datetime | None = None
    last_watched_at: datetime | None = None
    user_rated_at: datetime | None = None
    user_rating: int | None = None
    status: str | None = None
    movie: SimklMedia | None = None
    show: SimklMedia | None = None
    anime: SimklMedia | None = None

    _aware = field_validator("added_to_watchlist_at", "last_watched_at", "user_rated_at", mode="after")(_utc)

    def media(self) -> SimklMedia | None:
        return self.movie or self.show or self.anime


class AllItems(SimklBaseModel):
    movies: list[ListEntry] | None = None
    shows: list[ListEntry] | None = None
    anime: list[ListEntry] | None = None

    def entries(self) -> list[tuple[Literal["movie", "show"], ListEntry]]:
        rows: list[tuple[Literal["movie", "show"], ListEntry]] = [("movie", entry) for entry in self.movies or ()]
        rows.extend(("show", entry) for entry in self.shows or ())
        rows.extend(("show", entry) for entry in self.anime or ())
        return rows


class MediaActivities(SimklBaseModel):
    all: str | None = None
    rated_at: str | None = None
    playback: str | None = None
    plantowatch: str | None = None
    watching: str | None = None
    completed: str | None = None
    hold: str | None = None
    dropped: str | None = None
    removed_from_list: str | None = None


class SettingsActivities(SimklBaseModel):
    all: str | None = None


class Activities(SimklBaseModel):
    """Reply of ``/sync/activities``: last-change stamps per list and category."""

    all: str | None = None
    settings: SettingsActivities | None = None
    tv_shows: MediaActivities | None = None
    anime: MediaActivities | None = None
    movies: MediaActivities | None = None

    def stamps(self, fields: tuple[str, ...]) -> dict[str, str | None]:
        stamps: dict[str, str | None] = {}
        for category in ("tv_shows", "anime", "movies"):
            activities: MediaActivities | None = getattr(self, category)
            for name in fields:
                stamps[f"{category}.{name}"] = getattr(activities, name) if activities is not None else None
        return stamps


class SearchResult(SimklBaseModel):
    type: SimklItemType | None = None
    title: str | None = None
    year: int | None = None
    ids: SimklIds = Field(default_factory=SimklIds)


class NotFound(SimklBaseModel):
    movies: list[object] = Field(default_factory=list[object])
    shows: list[object] = Field(default_factory=list[object])

    def count(self) -> int:
        return len(self.movies) + len(self.shows)


class SyncResponse(SimklBaseModel):
    """Reply to ``/sync/*`` mutations; ``not_found`` lists rejected items."""

    added: dict[str, object] | None = None
    deleted: dict[str, object] | None = None
    not_found: NotFound = Field(default_factory=NotFound)
