"""External identifier lookups across every source that offers them."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Final

from totalrecall.domain.model import IdType, MediaIds
from totalrecall.domain.ports.sources import as_id_lookup_provider

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from totalrecall.domain.model import MediaType
    from totalrecall.domain.ports.sources import IdLookupProvider

log = getLogger(__name__)

SEARCH_COOLDOWN_SECONDS: Final[float] = 7 * 24 * 3600.0


class IdLookupError(RuntimeError):
    """Raised when every provider failed and nothing was found."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("All ID lookups failed: " + "; ".join(errors))
        self.errors = errors


def search_key(provider: str, title: str, year: int | None, media_type: MediaType) -> str:
    year_part = "none" if year is None else str(year)
    return f"{provider}:{title.strip().lower()}:{year_part}:{media_type.key}"


@dataclass(slots=True)
class IdLookupService:
    """Query lookup providers in priority order and merge their replies.

    Providers are captured once, at construction; a provider that is not
    available then (usually unauthenticated) is never queried.
    """

    providers: list[IdLookupProvider] = field(default_factory=list["IdLookupProvider"])
    cooldown_seconds: float = SEARCH_COOLDOWN_SECONDS
    clock: Callable[[], float] = time.monotonic
    _searched: dict[str, float] = field(default_factory=dict[str, float], repr=False)

    def __post_init__(self) -> None:
        self.providers = sorted(self.providers, key=lambda p: p.lookup_priority, reverse=True)

    @classmethod
    def from_sources(cls, sources: Iterable[object], **kwargs: object) -> IdLookupService:
        providers: list[IdLookupProvider] = []
        for source in sources:
            provider = as_id_lookup_provider(source)
            if provider is None:
                continue
            if not provider.is_lookup_available():
                log.debug("Lookup provider %s unavailable (not authenticated?)", provider.lookup_provider_name)
                continue
            log.debug(
                "Registered lookup provider %s with priority %s",
                provider.lookup_provider_name,
                provider.lookup_priority,
            )
            providers.append(provider)
        service = cls(providers=providers, **kwargs)  # type: ignore[arg-type]
        if not service.providers:
            log.warning("No ID lookup providers available; title based resolution is disabled")
        return service

    def available_providers(self) -> list[str]:
        return [provider.lookup_provider_name for provider in self.providers]

    async def lookup_ids(
        self,
        title: str,
        year: int | None,
        media_type: MediaType,
        *,
        cached: MediaIds | None = None,
        required: IdType = IdType.IMDB,
    ) -> MediaIds:
        """Search every provider concurrently for ``title``.

        The first reply carrying the ``required`` identifier wins and the
        remaining searches are cancelled. Otherwise all replies are merged in
        completion order. Raises ``IdLookupError`` only when every provider
        failed and the merged record is empty.
        """

        if cached is not None and cached.has_id(required):
            log.debug("Cached ids for %r already carry %s; skipping lookup", title, required)
            return cached
        if not self.providers:
            log.warning("No lookup providers for %r (%s, %s)", title, year, media_type)
            return MediaIds()

        pending: dict[asyncio.Task[MediaIds | None], str] = {}
        now = self.clock()
        for provider in self.providers:
            name = provider.lookup_provider_name
            key = search_key(name, title, year, media_type)
            last = self._searched.get(key)
            if last is not None and now - last < self.cooldown_seconds:
                log.debug("Skipping %s search for %r; searched %.1f days ago", name, title, (now - last) / 86400)
                continue
            self._searched[key] = now
            log.debug("Searching %s for %r (%s, %s)", name, title, year, media_type)
            task = asyncio.ensure_future(provider.lookup_ids(title, year, media_type))
            pending[task] = name

        merged = MediaIds()
        errors: list[str] = []
        try:
            while pending:
                done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    name = pending.pop(task)
                    try:
                        found = task.result()
                    except Exception as exc:  # noqa: BLE001
                        log.warning("ID lookup via %s failed for %r (%s): %s", name, title, year, exc)
                        errors.append(f"{name}: {exc}")
                        continue
                    if found is None:
                        continue
                    if found.has_id(required):
                        log.debug("ID lookup via %s matched %r: %s", name, title, found.any_id())
                        return found
                    merged = merged.merge(found)
        finally:
            for task in pending:
                task.cancel()

        if errors and merged.is_empty():
            raise IdLookupError(errors)
        return merged

    async def lookup_by_imdb_id(
        self,
        imdb_id: str,
        media_type: MediaType,
    ) -> tuple[str, int | None, MediaIds] | None:
        """Ask providers in priority order for the title and year behind ``imdb_id``."""

        for provider in self.providers:
            name = provider.lookup_provider_name
            try:
                found = await provider.lookup_by_imdb_id(imdb_id, media_type)
            except Exception as exc:  # noqa: BLE001
                log.warning("Reverse lookup via %s failed for %s: %s", name, imdb_id, exc)
                continue
            if found is not None:
                log.debug("Reverse lookup via %s found %r for %s", name, found[0], imdb_id)
                return found
        return None


__all__ = ["SEARCH_COOLDOWN_SECONDS", "IdLookupError", "IdLookupService", "search_key"]
