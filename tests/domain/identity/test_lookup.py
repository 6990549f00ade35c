from __future__ import annotations

import asyncio

import pytest

from tests.support.sources import FakeLookupProvider
from totalrecall.domain.identity import IdLookupError, IdLookupService
from totalrecall.domain.model import IdType, MediaIds, MediaType


def test_providers_are_queried_in_priority_order() -> None:
    low = FakeLookupProvider("simkl", lookup_priority=60)
    high = FakeLookupProvider("trakt", lookup_priority=80)

    service = IdLookupService(providers=[low, high])

    assert service.available_providers() == ["trakt", "simkl"]


def test_from_sources_skips_unavailable_and_non_providers() -> None:
    offline = FakeLookupProvider("trakt", available=False)
    online = FakeLookupProvider("simkl")

    service = IdLookupService.from_sources([offline, object(), online])

    assert service.available_providers() == ["simkl"]


def test_first_reply_with_required_id_wins_and_cancels_the_rest() -> None:
    fast = FakeLookupProvider("simkl", found=MediaIds(imdb_id="tt0113277", simkl_id=7))
    slow = FakeLookupProvider("trakt", lookup_priority=80, found=MediaIds(trakt_id=5), delay=30.0)
    service = IdLookupService(providers=[fast, slow])

    found = asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie()))

    assert found == MediaIds(imdb_id="tt0113277", simkl_id=7)
    assert slow.calls == ["Heat"]


def test_replies_without_required_id_are_merged() -> None:
    trakt = FakeLookupProvider("trakt", found=MediaIds(trakt_id=5))
    simkl = FakeLookupProvider("simkl", found=MediaIds(simkl_id=7))
    service = IdLookupService(providers=[trakt, simkl])

    found = asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie()))

    assert found.trakt_id == 5
    assert found.simkl_id == 7
    assert found.imdb_id is None


def test_required_id_can_be_changed() -> None:
    trakt = FakeLookupProvider("trakt", found=MediaIds(trakt_id=5))
    service = IdLookupService(providers=[trakt])

    found = asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie(), required=IdType.TRAKT))

    assert found == MediaIds(trakt_id=5)


def test_one_failing_provider_does_not_hide_other_replies() -> None:
    broken = FakeLookupProvider("trakt", error=RuntimeError("boom"))
    working = FakeLookupProvider("simkl", found=MediaIds(simkl_id=7))
    service = IdLookupService(providers=[broken, working])

    found = asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie()))

    assert found == MediaIds(simkl_id=7)


def test_all_providers_failing_raises_lookup_error() -> None:
    service = IdLookupService(
        providers=[
            FakeLookupProvider("trakt", error=RuntimeError("timeout")),
            FakeLookupProvider("simkl", error=RuntimeError("503")),
        ]
    )

    with pytest.raises(IdLookupError) as excinfo:
        asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie()))

    assert len(excinfo.value.errors) == 2


def test_no_providers_returns_empty_record() -> None:
    found = asyncio.run(IdLookupService().lookup_ids("Heat", 1995, MediaType.movie()))

    assert found.is_empty()


def test_cached_record_with_required_id_skips_lookup() -> None:
    provider = FakeLookupProvider("trakt", found=MediaIds(trakt_id=5))
    service = IdLookupService(providers=[provider])
    cached = MediaIds(imdb_id="tt0113277")

    found = asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie(), cached=cached))

    assert found is cached
    assert provider.calls == []


def test_repeated_search_waits_for_cooldown() -> None:
    now = [1000.0]
    provider = FakeLookupProvider("trakt", found=MediaIds(trakt_id=5))
    service = IdLookupService(providers=[provider], cooldown_seconds=60.0, clock=lambda: now[0])

    asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie()))
    skipped = asyncio.run(service.lookup_ids(" heat ", 1995, MediaType.movie()))
    now[0] += 61.0
    retried = asyncio.run(service.lookup_ids("Heat", 1995, MediaType.movie()))

    assert skipped.is_empty()
    assert retried == MediaIds(trakt_id=5)
    assert provider.calls == ["Heat", "Heat"]


def test_reverse_lookup_falls_through_failing_providers() -> None:
    broken = FakeLookupProvider("trakt", lookup_priority=80, error=RuntimeError("boom"))
    working = FakeLookupProvider("simkl", reverse=("Heat", 1995, MediaIds(simkl_id=7)))
    service = IdLookupService(providers=[broken, working])

    found = asyncio.run(service.lookup_by_imdb_id("tt0113277", MediaType.movie()))

    assert found == ("Heat", 1995, MediaIds(simkl_id=7))
    assert broken.calls == ["tt0113277"]
