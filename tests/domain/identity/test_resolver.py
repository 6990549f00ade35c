from __future__ import annotations

import asyncio
from pathlib import Path  # noqa: TC003

from tests.support.media import review, watchlist_item
from tests.support.sources import FakeLookupProvider
from totalrecall.domain.identity import (
    IdCacheStorage,
    IdLookupService,
    IdResolver,
    ResolverSettings,
    SaveCadence,
)
from totalrecall.domain.model import MediaIds, MediaType


def _resolver(
    tmp_path: Path,
    *providers: FakeLookupProvider,
    settings: ResolverSettings | None = None,
) -> IdResolver:
    return IdResolver.open(
        IdCacheStorage.in_directory(tmp_path),
        IdLookupService(providers=list(providers)),
        settings,
    )


def test_resolve_with_imdb_hint_uses_cache_without_lookup(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(trakt_id=99))
    resolver = _resolver(tmp_path, provider)
    resolver.remember(MediaIds(imdb_id="tt0113277", trakt_id=5))

    resolved = asyncio.run(resolver.resolve("Heat", 1995, MediaType.movie(), hint_imdb="tt0113277"))

    assert resolved.trakt_id == 5
    assert provider.calls == []


def test_resolve_by_title_uses_lookup_once_then_title_index(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(imdb_id="tt0113277", trakt_id=5))
    resolver = _resolver(tmp_path, provider)

    first = asyncio.run(resolver.resolve("Heat", 1995, MediaType.movie()))
    second = asyncio.run(resolver.resolve("heat", 1995, MediaType.movie()))

    assert first.imdb_id == "tt0113277"
    assert first.title == "Heat"
    assert second == first
    assert provider.calls == ["Heat"]
    assert len(resolver.cache) == 1


def test_lookup_reply_merges_into_cached_record(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(imdb_id="tt0113277", trakt_id=5))
    resolver = _resolver(tmp_path, provider)
    resolver.remember(MediaIds(imdb_id="tt0113277", simkl_id=7))

    resolved = asyncio.run(resolver.resolve("Heat", 1995, MediaType.movie()))

    assert resolved.simkl_id == 7
    assert resolved.trakt_id == 5
    assert len(resolver.cache) == 1


def test_failed_lookup_resolves_to_empty_record(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path, FakeLookupProvider("trakt", error=RuntimeError("offline")))

    resolved = asyncio.run(resolver.resolve("Heat", 1995, MediaType.movie()))

    assert resolved.is_empty()
    assert len(resolver.cache) == 0


def test_resolve_item_completes_ids_from_cache(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    resolver.remember(MediaIds(imdb_id="tt0113277", trakt_id=5, simkl_id=7))
    item = watchlist_item("simkl", imdb="tt0113277", title="Heat", year=1995)

    resolved = asyncio.run(resolver.resolve_item(item))

    assert resolved.ids is not None
    assert resolved.ids.trakt_id == 5
    assert resolved.ids.simkl_id == 7
    assert resolved.imdb_id == "tt0113277"
    cached = resolver.cache.find_by_title_year("Heat", 1995, MediaType.movie())
    assert cached is not None


def test_resolve_item_without_ids_resolves_by_title(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(imdb_id="tt0113277", trakt_id=5))
    resolver = _resolver(tmp_path, provider)
    item = watchlist_item("simkl", imdb="", title="Heat", year=1995)

    resolved = asyncio.run(resolver.resolve_item(item))

    assert resolved.imdb_id == "tt0113277"
    assert resolved.ids is not None
    assert resolved.ids.trakt_id == 5


def test_resolve_item_without_ids_or_title_is_unchanged(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(trakt_id=5))
    resolver = _resolver(tmp_path, provider)
    item = watchlist_item("simkl", imdb="", title="")

    resolved = asyncio.run(resolver.resolve_item(item))

    assert resolved is item
    assert provider.calls == []


def test_review_resolution_adds_title_through_reverse_lookup(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", reverse=("Heat", 1995, MediaIds(trakt_id=5)))
    resolver = _resolver(tmp_path, provider)

    item = review("trakt", "Great heist film", imdb="tt0113277")

    resolved = asyncio.run(resolver.resolve_item(item, reverse_lookup=True))

    assert resolved.ids is not None
    assert resolved.ids.title == "Heat"
    assert resolved.ids.trakt_id == 5
    assert provider.calls == ["tt0113277"]


def test_on_demand_cadence_saves_only_when_asked(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    resolver.remember(MediaIds(imdb_id="tt0113277"))

    assert not resolver.storage.exists()
    assert resolver.save_if_dirty()
    assert resolver.storage.exists()
    assert not resolver.save_if_dirty()


def test_always_cadence_saves_on_every_insert(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path, settings=ResolverSettings(cadence=SaveCadence.ALWAYS))

    resolver.remember(MediaIds(imdb_id="tt0113277"))

    assert resolver.storage.exists()
    assert not resolver.cache.is_dirty()


def test_every_n_cadence_saves_after_interval(tmp_path: Path) -> None:
    settings = ResolverSettings(cadence=SaveCadence.EVERY_N, save_interval=2)
    resolver = _resolver(tmp_path, settings=settings)

    resolver.remember(MediaIds(imdb_id="tt0000001"))
    assert not resolver.storage.exists()
    resolver.remember(MediaIds(imdb_id="tt0000002"))

    assert resolver.storage.exists()
    assert len(IdCacheStorage.in_directory(tmp_path).load()) == 2


def test_items_with_disjoint_ids_meet_through_the_title_index(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    from_trakt = watchlist_item("trakt", imdb="", ids=MediaIds(trakt_id=42), title="Dune", year=2021)
    from_simkl = watchlist_item("simkl", imdb="tt1160419", title="Dune", year=2021)

    first = asyncio.run(resolver.resolve_item(from_trakt))
    second = asyncio.run(resolver.resolve_item(from_simkl))

    assert first.ids == MediaIds(trakt_id=42, title="Dune", year=2021, media_type=MediaType.movie())
    assert second.ids is not None
    assert second.ids.trakt_id == 42
    assert second.imdb_id == "tt1160419"
    assert len(resolver.cache) == 1
    assert resolver.cache.find(MediaIds(trakt_id=42)) == resolver.cache.find(MediaIds(imdb_id="tt1160419"))


def test_title_index_does_not_link_conflicting_ids(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    resolver.remember(MediaIds(imdb_id="tt0087182", trakt_id=7), title="Dune", year=2021, media_type=MediaType.movie())
    item = watchlist_item("trakt", imdb="", ids=MediaIds(trakt_id=42), title="Dune", year=2021)

    resolved = asyncio.run(resolver.resolve_item(item))

    assert resolved.ids is not None
    assert resolved.ids.imdb_id is None
    assert resolved.ids.trakt_id == 42
    assert len(resolver.cache) == 2


def test_item_without_imdb_is_completed_by_lookup(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(imdb_id="tt1160419", trakt_id=42))
    resolver = _resolver(tmp_path, provider)
    item = watchlist_item("simkl", imdb="", ids=MediaIds(simkl_id=9), title="Dune", year=2021)

    resolved = asyncio.run(resolver.resolve_item(item))

    assert resolved.imdb_id == "tt1160419"
    assert resolved.ids is not None
    assert (resolved.ids.simkl_id, resolved.ids.trakt_id) == (9, 42)
    assert provider.calls == ["Dune"]


def test_lookup_reply_with_conflicting_ids_is_ignored(tmp_path: Path) -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(imdb_id="tt0087182", trakt_id=7))
    resolver = _resolver(tmp_path, provider)
    item = watchlist_item("trakt", imdb="", ids=MediaIds(trakt_id=42), title="Dune", year=2021)

    resolved = asyncio.run(resolver.resolve_item(item))

    assert resolved.ids is not None
    assert resolved.ids.imdb_id is None
    assert resolved.ids.trakt_id == 42
