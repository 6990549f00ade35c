"""Source adapter contract.

Adapters implement ``MediaSource`` and may additionally implement any of the
capability protocols below. The core asks for a capability through the
``as_*`` helpers, which return the adapter typed as that capability or
``None``; it never compares source names.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from totalrecall.domain.model import (
        DataType,
        MediaIds,
        MediaKind,
        MediaType,
        NormalizedStatus,
        Rating,
        Review,
        WatchHistory,
        WatchlistItem,
    )


class SourceError(RuntimeError):
    """Raised by adapters when a call to the remote service fails."""

    retryable: bool = False

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class AuthenticationError(SourceError):
    """Raised when a source refuses or lacks credentials."""


class TransientSourceError(SourceError):
    """Network, rate-limit or timeout failure that survived the adapter's retries."""

    retryable = True


class PartialMutationError(SourceError):
    """Raised when some items of a mutation batch were rejected."""

    def __init__(self, message: str, *, failed: int, total: int, source: str | None = None) -> None:
        super().__init__(message, source=source)
        self.failed = failed
        self.total = total


@runtime_checkable
class MediaSource(Protocol):
    """A service that can be read from and written to by the sync pipeline."""

    @property
    def name(self) -> str: ...

    def is_authenticated(self) -> bool: ...

    async def authenticate(self) -> None: ...

    async def get_watchlist(self) -> list[WatchlistItem]: ...

    async def get_ratings(self) -> list[Rating]: ...

    async def get_reviews(self) -> list[Review]: ...

    async def get_watch_history(self) -> list[WatchHistory]: ...

    async def add_to_watchlist(self, items: Sequence[WatchlistItem]) -> None: ...

    async def remove_from_watchlist(self, items: Sequence[WatchlistItem]) -> None: ...

    async def set_ratings(self, ratings: Sequence[Rating]) -> None: ...

    async def set_reviews(self, reviews: Sequence[Review]) -> None: ...

    async def add_watch_history(self, items: Sequence[WatchHistory]) -> None: ...


@runtime_checkable
class Cleanup(Protocol):
    async def cleanup(self) -> None: ...


@runtime_checkable
class IncrementalSync(Protocol):
    """Source that can fetch only what changed since its own last checkpoint."""

    def supports_native_incremental_sync(self) -> bool: ...

    def set_force_full_sync(self, force: bool) -> None: ...

    def changed_since_last_run(self, data_type: DataType) -> bool:
        """False only when ``data_type`` is known to be unchanged since the previous run."""
        ...


@runtime_checkable
class AcceptedContent(Protocol):
    """Target that only stores some media kinds for some data types.

    Targets without this capability accept everything.
    """

    def accepts(self, data_type: DataType, kind: MediaKind) -> bool: ...


@runtime_checkable
class RatingNormalization(Protocol):
    """Source whose native rating scale differs from the canonical 1..10."""

    @property
    def native_rating_scale(self) -> int: ...

    def normalize_rating(self, rating: float) -> int: ...

    def denormalize_rating(self, rating: int) -> float: ...


@runtime_checkable
class StatusMapping(Protocol):
    """Source with native watch statuses mapped onto ``NormalizedStatus``."""

    def to_normalized(self, native: str) -> NormalizedStatus | None: ...

    def from_normalized(self, status: NormalizedStatus) -> str | None: ...

    def history_statuses(self) -> frozenset[NormalizedStatus]:
        """Statuses this source records as watch history rather than list entries."""
        ...


@runtime_checkable
class IdExtraction(Protocol):
    """Source able to turn its native id blob into ``MediaIds``."""

    @property
    def native_id_type(self) -> str: ...

    def extract_ids(
        self,
        imdb_id: str | None,
        native_ids: Mapping[str, object] | None,
    ) -> MediaIds | None: ...


@runtime_checkable
class IdLookupProvider(Protocol):
    """Source that participates in external identifier lookups."""

    @property
    def lookup_priority(self) -> int: ...

    @property
    def lookup_provider_name(self) -> str: ...

    def is_lookup_available(self) -> bool: ...

    async def lookup_ids(
        self,
        title: str,
        year: int | None,
        media_type: MediaType,
    ) -> MediaIds | None: ...

    async def lookup_by_imdb_id(
        self,
        imdb_id: str,
        media_type: MediaType,
    ) -> tuple[str, int | None, MediaIds] | None: ...


def as_accepted_content(source: object) -> AcceptedContent | None:
    return source if isinstance(source, AcceptedContent) else None


def as_incremental_sync(source: object) -> IncrementalSync | None:
    return source if isinstance(source, IncrementalSync) else None


def as_rating_normalization(source: object) -> RatingNormalization | None:
    return source if isinstance(source, RatingNormalization) else None


def as_status_mapping(source: object) -> StatusMapping | None:
    return source if isinstance(source, StatusMapping) else None


def as_id_extraction(source: object) -> IdExtraction | None:
    return source if isinstance(source, IdExtraction) else None


def as_id_lookup_provider(source: object) -> IdLookupProvider | None:
    return source if isinstance(source, IdLookupProvider) else None


def as_cleanup(source: object) -> Cleanup | None:
    return source if isinstance(source, Cleanup) else None


__all__ = [
    "AcceptedContent",
    "AuthenticationError",
    "Cleanup",
    "IdExtraction",
    "IdLookupProvider",
    "IncrementalSync",
    "MediaSource",
    "PartialMutationError",
    "RatingNormalization",
    "SourceError",
    "StatusMapping",
    "TransientSourceError",
    "as_accepted_content",
    "as_cleanup",
    "as_id_extraction",
    "as_id_lookup_provider",
    "as_incremental_sync",
    "as_rating_normalization",
    "as_status_mapping",
]
