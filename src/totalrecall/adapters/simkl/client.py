"""Simkl source adapter.

Simkl has no review API and its sync bodies carry no episodes; ``accepts``
declares both so distribution never plans them. Lists are read in full;
``/sync/activities`` serves as the authentication check and tells the
orchestrator which lists changed since the last recorded run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import TypeAdapter, ValidationError

from totalrecall.adapters.http_resilience import (
    HttpSourceError,
    RateLimit,
    ResilienceConfig,
    ResilientClient,
    ensure_success,
)
from totalrecall.domain.model import MAX_RATING, MIN_RATING, DataType, MediaIds, MediaKind
from totalrecall.domain.ports.sources import AuthenticationError, PartialMutationError
from totalrecall.domain.time_windows import utcnow

from .schema import Activities, AllItems, SearchResult, SyncResponse
from .translator import (
    SOURCE_NAME,
    add_to_list_body,
    bucket_size,
    history_body,
    ids_from_mapping,
    parse_history_entry,
    parse_list_entry,
    parse_rating_entry,
    parse_search_result,
    ratings_body,
    remove_body,
    search_type_for,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from totalrecall.config.credentials import CredentialStore
    from totalrecall.config.settings import SimklConfig
    from totalrecall.domain.model import (
        MediaType,
        NormalizedStatus,
        Rating,
        Review,
        WatchHistory,
        WatchlistItem,
    )

    from .translator import Buckets

log = getLogger(__name__)

SIMKL_BASE_URL: Final[str] = "https://api.simkl.com"
SIMKL_LOOKUP_PRIORITY: Final[int] = 60
ACTIVITIES_KEY: Final[str] = "simkl_last_activities"
_DEFAULT_TIMEOUT_SECONDS: Final[float] = 30.0

# Activity stamps that move when the corresponding list changes.
_ACTIVITY_FIELDS: Final[dict[DataType, tuple[str, ...]]] = {
    DataType.WATCHLIST: ("all",),
    DataType.RATINGS: ("rated_at",),
    DataType.WATCH_HISTORY: ("completed", "watching", "playback"),
}

_ALL_ITEMS = TypeAdapter(AllItems | None)
_SEARCH_RESULTS = TypeAdapter(list[SearchResult] | None)


class SimklAPIError(HttpSourceError):
    """Raised when the Simkl API answers with an error status or an unexpected body."""


def default_resilience_config() -> ResilienceConfig:
    # List URLs never change between runs, so an HTTP cache would hide edits.
    return ResilienceConfig(
        name=SOURCE_NAME,
        base_url=SIMKL_BASE_URL,
        timeout_seconds=_DEFAULT_TIMEOUT_SECONDS,
        ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        cache=None,
    )


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


@dataclass(slots=True)
class SimklSource:
    config: SimklConfig
    credentials: CredentialStore
    resilience: ResilienceConfig = field(default_factory=default_resilience_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    _client: ResilientClient | None = field(default=None, init=False, repr=False)
    _activities: Activities | None = field(default=None, init=False, repr=False)
    _previous: Activities | None = field(default=None, init=False, repr=False)
    _all_items: AllItems | None = field(default=None, init=False, repr=False)
    _force_full_sync: bool = field(default=False, init=False, repr=False)
    _fetch_failed: bool = field(default=False, init=False, repr=False)

    @property
    def name(self) -> str:
        return SOURCE_NAME

    def is_authenticated(self) -> bool:
        return self._activities is not None

    async def authenticate(self) -> None:
        if not self.credentials.access_token(SOURCE_NAME):
            raise AuthenticationError(
                "No Simkl access token in credentials.toml (key 'simkl_access_token')", source=SOURCE_NAME
            )
        response = await self._request("POST", "/sync/activities")
        self._activities = _validate(response, Activities)
        self._previous = self._saved_activities()
        log.info("Authenticated with Simkl")

    # -- fetch --------------------------------------------------------------

    async def get_watchlist(self) -> list[WatchlistItem]:
        fallback = utcnow()
        items = await self._load_all_items()
        return [
            item
            for kind, entry in items.entries()
            if (item := parse_list_entry(kind, entry, self.config.status_mapping, fallback=fallback)) is not None
        ]

    async def get_ratings(self) -> list[Rating]:
        fallback = utcnow()
        try:
            response = await self._request("POST", "/sync/ratings")
            ratings = _validate(response, _ALL_ITEMS) or AllItems()
        except Exception:
            self._fetch_failed = True
            raise
        return [
            rating
            for kind, entry in ratings.entries()
            if (rating := parse_rating_entry(kind, entry, fallback=fallback)) is not None
        ]

    async def get_reviews(self) -> list[Review]:
        return []

    async def get_watch_history(self) -> list[WatchHistory]:
        items = await self._load_all_items()
        return [watch for kind, entry in items.entries() if (watch := parse_history_entry(kind, entry)) is not None]

    # -- mutate -------------------------------------------------------------

    async def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        await self._sync("/sync/add-to-list", add_to_list_body(items, self.config.status_mapping))

    async def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None:
        await self._sync("/sync/history/remove", remove_body(items))

    async def set_ratings(self, ratings: Sequence[Rating]) -> None:
        await self._sync("/sync/ratings", ratings_body(ratings))

    async def set_reviews(self, reviews: Sequence[Review]) -> None:
        if reviews:
            log.info("Simkl has no review API; skipping %s review(s)", len(reviews))

    async def add_watch_history(self, items: Sequence[WatchHistory]) -> None:
        await self._sync("/sync/history", history_body(items))

    # -- capabilities -------------------------------------------------------

    def supports_native_incremental_sync(self) -> bool:
        return True

    def set_force_full_sync(self, force: bool) -> None:
        self._force_full_sync = force

    def accepts(self, data_type: DataType, kind: MediaKind) -> bool:
        # No review API, and the /sync bodies only carry movies and shows.
        return data_type is not DataType.REVIEWS and kind is not MediaKind.EPISODE

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
        # Every Simkl status is a list entry; history is derived from it.
        return frozenset()

    @property
    def native_id_type(self) -> str:
        return SOURCE_NAME

    def extract_ids(self, imdb_id: str | None, native_ids: Mapping[str, object] | None) -> MediaIds | None:
        try:
            return ids_from_mapping(imdb_id, native_ids)
        except ValidationError:
            log.debug("Unusable Simkl id blob: %s", native_ids)
            return None

    @property
    def lookup_priority(self) -> int:
        return SIMKL_LOOKUP_PRIORITY

    @property
    def lookup_provider_name(self) -> str:
        return SOURCE_NAME

    def is_lookup_available(self) -> bool:
        return self.config.enabled and bool(self.config.client_id)

    async def lookup_ids(self, title: str, year: int | None, media_type: MediaType) -> MediaIds | None:
        search_type = search_type_for(media_type)
        if search_type is None:
            return None
        response = await self._request(
            "GET",
            f"/search/{search_type}",
            params={"q": " ".join(title.split()), "client_id": self.config.client_id},
        )
        for result in _validate(response, _SEARCH_RESULTS) or []:
            if year is not None and result.year is not None and result.year != year:
                continue
            found = parse_search_result(result, media_type)
            if found is not None:
                return found[2]
        return None

    async def lookup_by_imdb_id(self, imdb_id: str, media_type: MediaType) -> tuple[str, int | None, MediaIds] | None:
        if media_type.is_episode:
            return None
        response = await self._request(
            "GET",
            "/search/id",
            params={"imdb": imdb_id, "client_id": self.config.client_id},
        )
        for result in _validate(response, _SEARCH_RESULTS) or []:
            found = parse_search_result(result, media_type)
            if found is not None:
                title, year, ids = found
                return title, year, ids.merge(MediaIds(imdb_id=imdb_id))
        return None

    async def cleanup(self) -> None:
        if self._activities is not None and not self._fetch_failed:
            self.credentials.set(ACTIVITIES_KEY, self._activities.model_dump_json())
            self.credentials.save()
        self._all_items = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -- activities ---------------------------------------------------------

    def _saved_activities(self) -> Activities | None:
        raw = self.credentials.get(ACTIVITIES_KEY)
        if not raw:
            return None
        try:
            return Activities.model_validate_json(raw)
        except ValidationError:
            log.warning("Ignoring unreadable %s in credentials", ACTIVITIES_KEY)
            return None

    def changed_since_last_run(self, data_type: DataType) -> bool:
        """True unless the recorded activity stamps for ``data_type`` are unchanged."""

        if self._force_full_sync or self._activities is None or self._previous is None:
            return True
        fields = _ACTIVITY_FIELDS.get(data_type, ("all",))
        return self._activities.stamps(fields) != self._previous.stamps(fields)

    async def _load_all_items(self) -> AllItems:
        # Watchlist and history both come from /sync/all-items; fetch it once per run.
        if self._all_items is None:
            try:
                response = await self._request("GET", "/sync/all-items/")
                self._all_items = _validate(response, _ALL_ITEMS) or AllItems()
            except Exception:
                self._fetch_failed = True
                raise
        return self._all_items

    # -- transport ----------------------------------------------------------

    def _http(self) -> ResilientClient:
        if self._client is None:
            self._client = self.client_factory(self.resilience)
        return self._client

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "simkl-api-key": self.config.client_id,
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
        base_url = self.resilience.base_url or SIMKL_BASE_URL
        response = await self._http().request(
            method,
            f"{base_url}{path}",
            params=httpx.QueryParams(dict(params or {})),
            json=json,
            headers=self._headers(),
        )
        ensure_success(response, source=SOURCE_NAME, error_type=SimklAPIError)
        return response

    async def _sync(self, path: str, body: Buckets) -> None:
        total = bucket_size(body)
        if total == 0:
            return
        response = await self._request("POST", path, json=body)
        result = _validate(response, SyncResponse) if response.content.strip() else SyncResponse()
        missing = result.not_found.count()
        if missing:
            log.warning("Simkl could not find %s of %s item(s) for %s", missing, total, path)
            raise PartialMutationError(
                f"Simkl could not find {missing} of {total} item(s)",
                failed=missing,
                total=total,
                source=SOURCE_NAME,
            )
        log.debug("Simkl %s accepted %s item(s)", path, total)


def _validate[T](response: httpx.Response, model: type[T] | TypeAdapter[T]) -> T:
    adapter = model if isinstance(model, TypeAdapter) else TypeAdapter(model)
    try:
        return adapter.validate_json(response.content)
    except ValidationError as exc:
        raise SimklAPIError(
            f"Unexpected Simkl response for {response.request.url.path}: {exc.error_count()} validation error(s)",
            status=response.status_code,
            source=SOURCE_NAME,
        ) from exc


__all__ = [
    "ACTIVITIES_KEY",
    "SIMKL_BASE_URL",
    "SIMKL_LOOKUP_PRIORITY",
    "SimklAPIError",
    "SimklSource",
    "default_resilience_config",
]
