"""Identity resolution: cache first, title index second, external lookup last."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import IdType, MediaIds, ids_conflict, media_ids_of

from .lookup import IdLookupError, IdLookupService

if TYPE_CHECKING:
    from totalrecall.domain.model import MediaItem, MediaType

    from .cache import IdCache
    from .storage import IdCacheStorage

log = getLogger(__name__)


class SaveCadence(StrEnum):
    ALWAYS = "always"
    EVERY_N = "every_n"
    ON_DEMAND = "on_demand"


@dataclass(slots=True, frozen=True)
class ResolverSettings:
    cadence: SaveCadence = SaveCadence.ON_DEMAND
    save_interval: int = 100


@dataclass(slots=True)
class IdResolver:
    """Stateful owner of the identity cache during a sync run.

    The resolver is the only writer of ``cache``. Every record it returns is
    the canonical record after insertion, so callers never see less than the
    cache already knows about a work.
    """

    cache: IdCache
    storage: IdCacheStorage
    lookup: IdLookupService = field(default_factory=IdLookupService)
    settings: ResolverSettings = field(default_factory=ResolverSettings)
    _inserts_since_save: int = field(default=0, repr=False)

    @classmethod
    def open(
        cls,
        storage: IdCacheStorage,
        lookup: IdLookupService | None = None,
        settings: ResolverSettings | None = None,
    ) -> IdResolver:
        return cls(
            cache=storage.load(),
            storage=storage,
            lookup=lookup or IdLookupService(),
            settings=settings or ResolverSettings(),
        )

    def available_lookup_providers(self) -> list[str]:
        return self.lookup.available_providers()

    def find_by_any_id(self, value: str) -> MediaIds | None:
        return self.cache.find_by_any_id(value)

    def remember(
        self,
        ids: MediaIds,
        *,
        title: str | None = None,
        year: int | None = None,
        media_type: MediaType | None = None,
    ) -> MediaIds | None:
        """Insert ``ids`` with any missing metadata filled in; return the canonical record."""

        if ids.is_empty():
            return None
        canonical = self.cache.insert(ids.with_metadata(title=title, year=year, media_type=media_type))
        self._after_insert()
        return canonical

    async def resolve(
        self,
        title: str,
        year: int | None,
        media_type: MediaType,
        hint_imdb: str | None = None,
    ) -> MediaIds:
        ids = MediaIds()
        if hint_imdb:
            cached = self.cache.find_by_id(IdType.IMDB, hint_imdb)
            if cached is not None:
                return cached
            ids = MediaIds(imdb_id=hint_imdb)
        else:
            cached = self.cache.find_by_title_year(title, year, media_type)
            if cached is not None:
                log.debug("Resolved %r (%s) from the title index", title, year)
                return cached
            ids = await self._lookup(title, year, media_type)
            if not ids.is_empty():
                existing = self.cache.find(ids)
                if existing is not None:
                    log.debug("Lookup for %r matched cached record %s", title, existing.any_id())
                    merged = existing.merge(ids)
                    return self.remember(merged, title=title, year=year, media_type=media_type) or merged

        if ids.is_empty():
            return ids
        return self.remember(ids, title=title, year=year, media_type=media_type) or ids

    async def resolve_from_imdb(
        self,
        imdb_id: str,
        media_type: MediaType,
    ) -> tuple[str, int | None, MediaIds] | None:
        cached = self.cache.find_by_id(IdType.IMDB, imdb_id)
        if cached is not None and cached.title:
            return cached.title, cached.year, cached

        found = await self.lookup.lookup_by_imdb_id(imdb_id, media_type)
        if found is None:
            log.debug("Reverse lookup found nothing for %s", imdb_id)
            return None
        title, year, ids = found
        ids = ids.merge(MediaIds(imdb_id=imdb_id))
        canonical = self.remember(ids, title=title, year=year, media_type=media_type) or ids
        return title, year, canonical

    async def resolve_item[T: MediaItem](self, item: T, *, reverse_lookup: bool = False) -> T:
        """Return ``item`` with its identifier record completed from the cache and lookups.

        Items without any identifier are resolved by title when they carry one
        and returned unchanged otherwise. Items the cache does not know yet, or
        that still lack an imdb id, are linked to the cached work with the same
        title, year and type so services with disjoint ids meet in one record.
        """

        title: str | None = getattr(item, "title", None)
        year: int | None = getattr(item, "year", None)
        ids = media_ids_of(item)

        if ids.is_empty():
            if not title:
                return item
            resolved = await self.resolve(title, year, item.media_type)
            if resolved.is_empty():
                log.warning("Could not resolve ids for %r (%s)", title, year)
                return item
            return item.with_ids(resolved)

        cached = self.cache.find(ids)
        if cached is not None:
            ids = ids.merge(cached)
        if title and (cached is None or ids.imdb_id is None):
            ids = await self._link_by_title(ids, title, year, item.media_type)
        if reverse_lookup and ids.title is None and ids.imdb_id:
            found = await self.resolve_from_imdb(ids.imdb_id, item.media_type)
            if found is not None:
                ids = ids.merge(found[2])

        canonical = self.remember(
            ids,
            title=title or ids.title,
            year=year if year is not None else ids.year,
            media_type=item.media_type,
        )
        if canonical is not None:
            ids = ids.merge(canonical)
        return item.with_ids(ids)

    def save_if_dirty(self) -> bool:
        if not self.cache.is_dirty():
            return False
        self.storage.save(self.cache)
        self.cache.mark_clean()
        self._inserts_since_save = 0
        return True

    async def _link_by_title(
        self,
        ids: MediaIds,
        title: str,
        year: int | None,
        media_type: MediaType,
    ) -> MediaIds:
        """Attach ``ids`` to the work its title names, unless their identifiers disagree.

        The title index is tried first; an external lookup only runs while the
        record still lacks an imdb id.
        """

        by_title = self.cache.find_by_title_year(title, year, media_type)
        if by_title is not None and not ids_conflict(ids, by_title):
            log.debug("Linked %s to cached %r (%s) by title", ids.any_id(), title, year)
            ids = ids.merge(by_title)
        if ids.imdb_id is not None:
            return ids

        found = await self._lookup(title, year, media_type)
        if found.is_empty() or ids_conflict(ids, found):
            return ids
        existing = self.cache.find(found)
        if existing is not None and not ids_conflict(ids, existing):
            found = found.merge(existing)
        return ids.merge(found)

    async def _lookup(self, title: str, year: int | None, media_type: MediaType) -> MediaIds:
        try:
            found = await self.lookup.lookup_ids(title, year, media_type)
        except IdLookupError as exc:
            log.warning("ID lookup failed for %r (%s): %s", title, year, exc)
            return MediaIds()
        if found.is_empty():
            log.debug("Lookup for %r (%s) returned no ids from %s", title, year, self.available_lookup_providers())
        return found

    def _after_insert(self) -> None:
        self._inserts_since_save += 1
        match self.settings.cadence:
            case SaveCadence.ALWAYS:
                self.save_if_dirty()
            case SaveCadence.EVERY_N if self._inserts_since_save >= self.settings.save_interval:
                self.save_if_dirty()
            case _:
                pass


__all__ = ["IdResolver", "ResolverSettings", "SaveCadence"]
