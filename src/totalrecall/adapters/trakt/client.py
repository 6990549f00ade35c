"""Trakt source adapter: full read/write plus identifier lookups."""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from totalrecall.adapters.http_resilience import (
    CacheConfig,
    HttpSourceError,
    RateLimit,
    ResilienceConfig,
    ResilientClient,
    ensure_success,
    non_empty_payload,
)
from totalrecall.config.settings import TRAKT_HISTORY_LIST, TraktConfig
from totalrecall.domain.model import MAX_RATING, MIN_RATING
from totalrecall.domain.ports.sources import AuthenticationError, PartialMutationError

from .schema import (
    CommentEntry,
    HistoryEntry,
    RatingEntry,
    SearchResult,
    SyncResponse,
    UserSettings,
    WatchlistEntry,
)
from .translator import (
    SOURCE_NAME,
    comment_body,
    history_body,
    ids_from_mapping,
    parse_comment_entry,
    parse_history_entry,
    parse_rating_entry,
    parse_search_result,
    parse_watchlist_entry,
    ratings_body,
    search_type_for,
    watchlist_body,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path

    from totalrecall.config.credentials import CredentialStore
    from totalrecall.domain.model import (
        MediaIds,
        MediaType,
        NormalizedStatus,
        Rating,
        Review,
        WatchHistory,
        WatchlistItem,
    )

log = getLogger(__name__)

TRAKT_BASE_URL: Final[str] = "https://api.trakt.tv"
TRAKT_API_VERSION: Final[str] = "2"
TRAKT_LOOKUP_PRIORITY: Final[int] = 80
_PAGE_LIMIT: Final[int] = 100
_DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0
_PAGE_COUNT_HEADER: Final[str] = "X-Pagination-Page-Count"
# Search replies are stable; everything the sync reads must be fresh.
SEARCH_CACHE_PATHS: Final[tuple[str, ...]] = ("/search/",)
SEARCH_CACHE_TTL_SECONDS: Final[float] = 7 * 24 * 3600.0


class TraktAPIError(HttpSourceError):
    """Raised when the Trakt API answers with an error status or an unexpected body."""


def default_resilience_config(cache_path: Path | None = None) -> ResilienceConfig:
    return ResilienceConfig(
        name=SOURCE_NAME,
        base_url=TRAKT_BASE_URL,
        timeout_seconds=_DEFAULT_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=3, per_seconds=1.0),
        cache=CacheConfig(
            sqlite_path=cache_path,
            ttl_seconds=SEARCH_CACHE_TTL_SECONDS,
            should_cache=non_empty_payload,
            paths=SEARCH_CACHE_PATHS,
        ),
    )


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class TraktSource:
    config: TraktConfig
    credentials: CredentialStore
    resilience: ResilienceConfig = field(default_factory=default_resilience_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _client: ResilientClient | None = field(default=None, init=False, repr=False)
    _user_slug: str | None = field(default=None, init=False, repr=False)

    @property
    def name(self) -> str:
        return SOURCE_NAME

    def is_authenticated(self) -> bool:
        return self._user_slug is not None

    async def authenticate(self) -> None:
        if not self.credentials.access_token(SOURCE_NAME):
            raise AuthenticationError(
                "No Trakt access token in credentials.toml (key 'trakt_access_token')", source=SOURCE_NAME
            )
        settings = await self._get("/users/settings", UserSettings)
        self._user_slug = settings.user.ids.slug
        log.info("Authenticated with Trakt as %s", settings.user.username)

    # -- fetch --------------------------------------------------------------

    async def get_watchlist(self) -> list[WatchlistItem]:
        entries = await self._get("/sync/watchlist", TypeAdapter(list[WatchlistEntry]))
        return [item for entry in entries if (item := parse_watchlist_entry(entry)) is not None]

    async def get_ratings(self) -> list[Rating]:
        entries = await self._get("/sync/ratings", TypeAdapter(list[RatingEntry]))
        return [rating for entry in entries if (rating := parse_rating_entry(entry)) is not None]

    async def get_reviews(self) -> list[Review]:
        if self._user_slug is None:
            await self.authenticate()
        entries = await self._get_paged(
            f"/users/{self._user_slug}/comments/reviews/all",
            CommentEntry,
            params={"include_replies": "false"},
        )
        return [review for entry in entries if (review := parse_comment_entry(entry)) is not None]

    async def get_watch_history(self) -> list[WatchHistory]:
        entries = await self._get_paged("/sync/history", HistoryEntry)
        return [watch for entry in entries if (watch := parse_history_entry(entry)) is not None]

    # -- mutate -------------------------------------------------------------

    async def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        await self._sync("/sync/watchlist", watchlist_body(items), len(items))

    async def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        await self._sync("/sync/watchlist/remove", watchlist_body(items), len(items))

    async def set_ratings(self, ratings: Sequence[Rating]) -> None:
        await self._sync("/sync/ratings", ratings_body(ratings), len(ratings))

    async def set_reviews(self, reviews: Sequence[Review]) -> None:
        failed = 0
        for review in reviews:
            try:
                await self._request("POST", "/comments", json=comment_body(review))
            except TraktAPIError as exc:
                failed += 1
                log.warning("Trakt rejected review for %s: %s", review.imdb_id or review.ids, exc)
        if failed:
            raise PartialMutationError(
                f"{failed} of {len(reviews)} review(s) were rejected",
                failed=failed,
                total=len(reviews),
                source=SOURCE_NAME,
            )

    async def add_watch_history(self, items: Sequence[WatchHistory]) -> None:
        await self._sync("/sync/history", history_body(items), len(items))

    # -- capabilities -------------------------------------------------------

    @property
    def native_rating_scale(self) -> int:
        return MAX_RATING

    def normalize_rating(self, rating: float) -> int:
        return max(MIN_RATING, min(MAX_RATING, round(rating)))

    def denormalize_rating(self, rating: int) -> float:
        return float(rating)

    def to_normalized(self, native: str) -> NormalizedStatus | None:
        return self.config.status_mapping.normalize(native)

    def from_normalized(self, status: NormalizedStatus) -> str | None:
        return self.config.status_mapping.native(status)

    def history_statuses(self) -> frozenset[NormalizedStatus]:
        return self.config.status_mapping.statuses_sent_to(TRAKT_HISTORY_LIST)

    @property
    def native_id_type(self) -> str:
        return SOURCE_NAME

    def extract_ids(self, imdb_id: str | None, native_ids: Mapping[str, object] | None) -> MediaIds | None:
        try:
            return ids_from_mapping(imdb_id, native_ids)
        except ValidationError:
            log.debug("Unusable Trakt id blob: %s", native_ids)
            return None

    @property
    def lookup_priority(self) -> int:
        return TRAKT_LOOKUP_PRIORITY

    @property
    def lookup_provider_name(self) -> str:
        return SOURCE_NAME

    def is_lookup_available(self) -> bool:
        return self.config.enabled and self.config.has_credentials

    async def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        search_type = search_type_for(media_type)
        if search_type is None:
            return None
        params: dict[str, str | int] = {"query": " ".join(title.replace(",", " ").split())}
        if year is not None:
            params["years"] = year
        results = await self._get(f"/search/{search_type}", TypeAdapter(list[SearchResult]), params=params)
        for result in results:
            found = parse_search_result(result, media_type)
            if found is not None:
                return found[2]
        return None

    async def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
        search_type = search_type_for(media_type)
        if search_type is None:
            return None
        results = await self._get(
            f"/search/imdb/{imdb_id}",
            TypeAdapter(list[SearchResult]),
            params={"type": search_type},
        )
        for result in results:
            found = parse_search_result(result, media_type)
            if found is not None:
                return found
        return None

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -- transport ----------------------------------------------------------

    def _http(self) -> ResilientClient:
        if self._client is None:
            self._client = self.client_factory(self.resilience)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "trakt-api-version": TRAKT_API_VERSION,
            "trakt-api-key": self.config.client_id,
        }
        token = self.credentials.access_token(SOURCE_NAME)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str | int] | None = None,
        json: object = None,
    ) -> httpx.Response:
        base_url = self.resilience.base_url or TRAKT_BASE_URL
        response = await self._http().request(
            method,
            f"{base_url}{path}",
            params=httpx.QueryParams(dict(params or {})),
            json=json,
            headers=self._headers(),
        )
        ensure_success(response, source=SOURCE_NAME, error_type=TraktAPIError)
        return response

    async def _get[T](
        self,
        path: str,
        model: type[T] | TypeAdapter[T],
        *,
        params: Mapping[str, str | int] | None = None,
    ) -> T:
        response = await self._request("GET", path, params=params)
        return _validate(response, model)

    async def _get_paged[T: BaseModel](
        self,
        path: str,
        model: type[T],
        *,
        params: Mapping[str, str | int] | None = None,
    ) -> list[T]:
        adapter = TypeAdapter(list[model])
        collected: list[T] = []
        page = 1
        while True:
            query: dict[str, str | int] = {**(params or {}), "page": page, "limit": _PAGE_LIMIT}
            response = await self._request("GET", path, params=query)
            collected.extend(_validate(response, adapter))
            page_count = int(response.headers.get(_PAGE_COUNT_HEADER, "1") or 1)
            if page >= page_count:
                return collected
            page += 1

    async def _sync(self, path: str, body: Mapping[str, object], total: int) -> None:
        if total == 0:
            return
        response = await self._request("POST", path, json=body)
        result = _validate(response, SyncResponse)
        missing = result.not_found.count()
        if missing:
            log.warning("Trakt could not find %s of %s item(s) for %s", missing, total, path)
            raise PartialMutationError(
                f"Trakt could not find {missing} of {total} item(s)",
                failed=missing,
                total=total,
                source=SOURCE_NAME,
            )
        log.debug("Trakt %s accepted %s item(s)", path, total)


def _validate[T](response: httpx.Response, model: type[T] | TypeAdapter[T]) -> T:
    adapter = model if isinstance(model, TypeAdapter) else TypeAdapter(model)
    try:
        return adapter.validate_json(response.content)
    except ValidationError as exc:
        raise TraktAPIError(
            f"Unexpected Trakt response for {response.request.url.path}: {exc.error_count()} validation error(s)",
            status=response.status_code,
            source=SOURCE_NAME,
        ) from exc


__all__ = [
    "TRAKT_BASE_URL",
    "TRAKT_LOOKUP_PRIORITY",
    "TraktAPIError",
    "TraktSource",
    "default_resilience_config",
]
