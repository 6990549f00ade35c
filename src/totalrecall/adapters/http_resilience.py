"""HTTP plumbing shared by the source adapters.

Each adapter owns one ``ResilientClient`` per run. The client retries
transport failures and 429/5xx replies with exponential backoff, stays under
the service's published rate limit and, when a ``CacheConfig`` is given,
answers the GETs it covers from a hishel cache. Statuses that survive the retries
are turned into ``SourceError`` subclasses by ``ensure_success``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from aiolimiter import AsyncLimiter
from hishel import AsyncSqliteStorage, FilterPolicy
from hishel import Response as HishelCacheResponse
from hishel._policies import BaseFilter
from hishel.httpx import AsyncCacheClient
from httpx_retries import Retry, RetryTransport

from totalrecall.domain.ports.sources import AuthenticationError, SourceError, TransientSourceError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

log = getLogger(__name__)

TOO_MANY_REQUESTS: Final[int] = 429
SERVER_ERROR: Final[int] = 500
AUTH_STATUSES: Final[frozenset[int]] = frozenset({401, 403})
_DETAIL_LIMIT: Final[int] = 200

ShouldCacheHook = Callable[[object], bool]


class HttpSourceError(SourceError):
    """HTTP-level failure reported by a source API; carries the response status."""

    def __init__(self, message: str, *, status: int | None = None, source: str | None = None) -> None:
        super().__init__(message, source=source)
        self.status = status
        self.retryable = status is not None and (status == TOO_MANY_REQUESTS or status >= SERVER_ERROR)


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    attempts: int = 4
    backoff_factor: float = 0.5
    max_backoff_wait: float = 60.0
    backoff_jitter: float = 1.0
    statuses: frozenset[int] = frozenset({TOO_MANY_REQUESTS, 500, 502, 503, 504})
    methods: frozenset[str] = frozenset({"GET", "POST"})

    def transport(self, inner: httpx.AsyncBaseTransport | None = None) -> RetryTransport:
        retry = Retry(
            total=self.attempts,
            backoff_factor=self.backoff_factor,
            max_backoff_wait=self.max_backoff_wait,
            backoff_jitter=self.backoff_jitter,
            respect_retry_after_header=True,
            status_forcelist=tuple(self.statuses),
            allowed_methods=tuple(self.methods),
            retry_on_exceptions=(httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
        )
        if inner is None:
            return RetryTransport(retry=retry)
        return RetryTransport(transport=inner, retry=retry)


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float

    def limiter(self) -> AsyncLimiter:
        return AsyncLimiter(self.max_calls, self.per_seconds)


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """GET-response cache; in memory unless ``sqlite_path`` is set.

    Only GETs whose URL path starts with one of ``paths`` are cached (every
    GET when ``paths`` is empty). Everything else, mutations included, goes
    straight to the API.
    """

    sqlite_path: Path | None = None
    ttl_seconds: float | None = None
    should_cache: ShouldCacheHook | None = None
    paths: tuple[str, ...] = ()

    def covers(self, method: str, url: str) -> bool:
        if method.upper() != "GET":
            return False
        if not self.paths:
            return True
        path = httpx.URL(url).path
        return any(path.startswith(prefix) for prefix in self.paths)

    def storage(self) -> AsyncSqliteStorage:
        if self.sqlite_path is None:
            database_path = ":memory:"
        else:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            database_path = str(self.sqlite_path)
        return AsyncSqliteStorage(
            database_path=database_path,
            default_ttl=self.ttl_seconds,
            refresh_ttl_on_access=False,
        )

    def policy(self) -> FilterPolicy | None:
        if self.should_cache is None:
            return None
        return FilterPolicy(response_filters=[_PayloadFilter(self.should_cache)])


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = field(default_factory=CacheConfig)


class ResilientClient:
    """``httpx`` client wrapped with retries, an optional rate limiter and a response cache.

    Requests the cache does not cover use a plain client, so list reads always
    see the service's current state. Transport failures that outlast the retry
    budget surface as ``TransientSourceError`` tagged with the config name.
    HTTP statuses are left to the adapter, which knows what each one means for
    its API.
    """

    def __init__(self, config: ResilienceConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._limiter = config.ratelimit.limiter() if config.ratelimit is not None else None
        self._client = httpx.AsyncClient(timeout=config.timeout_seconds, transport=config.retry.transport(transport))
        self._cached_client: httpx.AsyncClient | None = None
        if config.cache is not None:
            self._cached_client = AsyncCacheClient(
                timeout=config.timeout_seconds,
                transport=config.retry.transport(transport),
                storage=config.cache.storage(),
                policy=config.cache.policy(),
            )

    def caches(self, method: str, url: str) -> bool:
        cache = self.config.cache
        return self._cached_client is not None and cache is not None and cache.covers(method, url)

    async def aclose(self) -> None:
        await self._client.aclose()
        if self._cached_client is not None:
            await self._cached_client.aclose()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: httpx.QueryParams | Mapping[str, str | int] | None = None,
        json: object = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        client = self._client
        if self._cached_client is not None and self.caches(method, url):
            client = self._cached_client
        try:
            if self._limiter is None:
                return await client.request(method, url, params=params, json=json, headers=headers)
            async with self._limiter:
                return await client.request(method, url, params=params, json=json, headers=headers)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            log.warning("%s %s %s failed after retries: %s", self.config.name, method, url, exc)
            raise TransientSourceError(f"{method} {url} failed: {exc}", source=self.config.name) from exc


class _PayloadFilter(BaseFilter[HishelCacheResponse]):
    """hishel response filter that hands the decoded JSON body to a predicate."""

    def __init__(self, predicate: ShouldCacheHook) -> None:
        self._predicate = predicate

    def needs_body(self) -> bool:
        return True

    def apply(self, item: HishelCacheResponse, body: bytes | None) -> bool:  # noqa: ARG002
        if body is None:
            return True
        try:
            payload = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return True
        return bool(self._predicate(payload))


def ensure_success(
    response: httpx.Response,
    *,
    source: str,
    error_type: type[HttpSourceError] = HttpSourceError,
) -> None:
    """Raise the source error matching a non-2xx response.

    401 and 403 become ``AuthenticationError``; everything else becomes
    ``error_type`` with the status attached.
    """

    if response.is_success:
        return
    status = response.status_code
    detail = response.text.strip()[:_DETAIL_LIMIT] or response.reason_phrase
    request = response.request
    if status in AUTH_STATUSES:
        raise AuthenticationError(f"{source} rejected the credentials ({status}): {detail}", source=source)
    log.warning("%s %s %s returned %s", source, request.method, request.url.path, status)
    raise error_type(f"{request.method} {request.url.path} returned {status}: {detail}", status=status, source=source)


def non_empty_payload(payload: object) -> bool:
    """Cache predicate: keep replies that carry data, never empty search results."""

    return bool(payload)


__all__ = [
    "CacheConfig",
    "HttpSourceError",
    "RateLimit",
    "ResilienceConfig",
    "ResilientClient",
    "RetryPolicy",
    "ensure_success",
    "non_empty_payload",
]
