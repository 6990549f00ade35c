from __future__ import annotations

from datetime import timedelta

import pytest

from tests.support.media import T0, history, rating, review, watchlist_item
from totalrecall.domain.identity import IdCache
from totalrecall.domain.model import DataType, MediaIds, NormalizedStatus, ResolutionStrategy
from totalrecall.domain.reconciliation import ResolutionPolicy, SourceData, pick_winner, resolve_all_conflicts

PREFER_TRAKT = ResolutionPolicy(source_preference=("trakt", "simkl"), timestamp_tolerance_seconds=3600.0)


def test_preference_wins_inside_tolerance() -> None:
    sources = {
        "trakt": SourceData(ratings=[rating("trakt", 6, rated=T0)]),
        "simkl": SourceData(ratings=[rating("simkl", 9, rated=T0 + timedelta(minutes=10))]),
    }

    resolved = resolve_all_conflicts(sources, PREFER_TRAKT)

    assert [(item.source, item.rating) for item in resolved.ratings] == [("trakt", 6)]


def test_newest_wins_outside_tolerance_under_preference() -> None:
    sources = {
        "trakt": SourceData(ratings=[rating("trakt", 6, rated=T0)]),
        "simkl": SourceData(ratings=[rating("simkl", 9, rated=T0 + timedelta(hours=2))]),
    }

    resolved = resolve_all_conflicts(sources, PREFER_TRAKT)

    assert [(item.source, item.rating) for item in resolved.ratings] == [("simkl", 9)]


@pytest.mark.parametrize(
    ("strategy", "expected"),
    [
        (ResolutionStrategy.NEWEST, "simkl"),
        (ResolutionStrategy.OLDEST, "trakt"),
        (ResolutionStrategy.MERGE, "simkl"),
    ],
)
def test_timestamp_strategies_ignore_preference(strategy: ResolutionStrategy, expected: str) -> None:
    candidates = [
        ("trakt", rating("trakt", 6, rated=T0)),
        ("simkl", rating("simkl", 9, rated=T0 + timedelta(seconds=5))),
    ]
    policy = ResolutionPolicy(strategy=strategy, source_preference=("trakt", "simkl"))

    assert pick_winner(candidates, strategy, policy).source == expected


def test_pick_winner_rejects_empty_group() -> None:
    with pytest.raises(ValueError, match="empty group"):
        pick_winner([], ResolutionStrategy.NEWEST, PREFER_TRAKT)


def test_winner_carries_union_of_group_ids() -> None:
    sources = {
        "trakt": SourceData(
            watchlist=[watchlist_item("trakt", ids=MediaIds(imdb_id="tt0000001", trakt_id=5), added=T0)]
        ),
        "simkl": SourceData(
            watchlist=[watchlist_item("simkl", ids=MediaIds(imdb_id="tt0000001", simkl_id=9), added=T0)]
        ),
    }

    resolved = resolve_all_conflicts(sources, PREFER_TRAKT)

    assert len(resolved.watchlist) == 1
    winner = resolved.watchlist[0]
    assert winner.source == "trakt"
    assert winner.ids is not None
    assert (winner.ids.trakt_id, winner.ids.simkl_id) == (5, 9)


def test_cache_bridges_items_with_disjoint_ids() -> None:
    cache = IdCache()
    cache.insert(MediaIds(imdb_id="tt0000001", trakt_id=5, simkl_id=9))
    sources = {
        "trakt": SourceData(ratings=[rating("trakt", 6, imdb="", ids=MediaIds(trakt_id=5))]),
        "simkl": SourceData(ratings=[rating("simkl", 9, imdb="", ids=MediaIds(simkl_id=9))]),
    }

    unbridged = resolve_all_conflicts(sources, PREFER_TRAKT)
    bridged = resolve_all_conflicts(sources, PREFER_TRAKT, cache)

    assert len(unbridged.ratings) == 2
    assert len(bridged.ratings) == 1


def test_watchlist_strategy_override_applies_only_to_watchlist() -> None:
    policy = ResolutionPolicy(
        strategy=ResolutionStrategy.PREFERENCE,
        source_preference=("trakt",),
        watchlist_strategy=ResolutionStrategy.OLDEST,
    )

    assert policy.strategy_for(DataType.WATCHLIST) is ResolutionStrategy.OLDEST
    assert policy.strategy_for(DataType.RATINGS) is ResolutionStrategy.PREFERENCE
    assert policy.strategy_for(DataType.REVIEWS) is ResolutionStrategy.MERGE
    assert policy.strategy_for(DataType.WATCH_HISTORY) is ResolutionStrategy.MERGE


def test_merge_strategy_prefers_items_with_a_status() -> None:
    policy = ResolutionPolicy(source_preference=("trakt", "simkl"), watchlist_strategy=ResolutionStrategy.MERGE)
    sources = {
        "trakt": SourceData(watchlist=[watchlist_item("trakt", added=T0 + timedelta(days=1))]),
        "simkl": SourceData(watchlist=[watchlist_item("simkl", added=T0, status=NormalizedStatus.COMPLETED)]),
    }

    resolved = resolve_all_conflicts(sources, policy)

    assert [(item.source, item.status) for item in resolved.watchlist] == [("simkl", NormalizedStatus.COMPLETED)]


def test_reviews_keep_every_distinct_text() -> None:
    sources = {
        "trakt": SourceData(reviews=[review("trakt", "Loved it", written=T0)]),
        "simkl": SourceData(
            reviews=[
                review("simkl", "Loved it", written=T0 + timedelta(days=1)),
                review("simkl", "Second thoughts", written=T0 + timedelta(days=2)),
            ]
        ),
    }

    resolved = resolve_all_conflicts(sources, PREFER_TRAKT)

    assert [item.content for item in resolved.reviews] == ["Second thoughts", "Loved it"]


def test_history_merges_only_events_within_a_second() -> None:
    sources = {
        "trakt": SourceData(watch_history=[history("trakt", watched=T0)]),
        "simkl": SourceData(
            watch_history=[
                history("simkl", ids=MediaIds(imdb_id="tt0000001", simkl_id=9), watched=T0 + timedelta(seconds=1)),
                history("simkl", watched=T0 + timedelta(days=3)),
            ]
        ),
    }

    resolved = resolve_all_conflicts(sources, PREFER_TRAKT)

    assert [entry.watched_at for entry in resolved.watch_history] == [T0 + timedelta(days=3), T0]
    merged = resolved.watch_history[1]
    assert merged.source == "trakt"
    assert merged.ids is not None
    assert merged.ids.simkl_id == 9
