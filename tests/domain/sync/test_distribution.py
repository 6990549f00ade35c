from __future__ import annotations

from datetime import timedelta

from tests.support.media import T0, history, rating, review, watchlist_item
from tests.support.sources import FakeSource, StatusFakeSource
from totalrecall.domain.model import DataType, MediaKind, MediaType, NormalizedStatus
from totalrecall.domain.reconciliation import ResolvedData, SourceData
from totalrecall.domain.sync import (
    NO_ID_REASON,
    SHOW_HISTORY_REASON,
    UNSUPPORTED_REASON,
    SyncOptions,
    TargetProfile,
    build_removal_lists,
    mark_rated_as_watched,
    prepare_distribution,
)
from totalrecall.domain.time_windows import IncrementalWindow

HISTORY_TARGET = TargetProfile(
    name="trakt",
    history_statuses=frozenset({NormalizedStatus.WATCHING, NormalizedStatus.COMPLETED}),
)


def _everything(_: DataType) -> IncrementalWindow:
    return IncrementalWindow()


def test_target_profile_reads_capabilities() -> None:
    plain = TargetProfile.of(FakeSource("simkl"), "simkl")
    mapped = TargetProfile.of(
        StatusFakeSource("trakt", history=frozenset({NormalizedStatus.COMPLETED})),
        "trakt",
    )

    assert plain == TargetProfile(name="simkl")
    assert mapped.history_statuses == frozenset({NormalizedStatus.COMPLETED})
    assert not mapped.native_incremental


def test_watchlist_statuses_route_to_history_or_watchlist() -> None:
    planned = watchlist_item("simkl", imdb="tt0000001", status=NormalizedStatus.WATCHLIST)
    finished = watchlist_item("simkl", imdb="tt0000002", status=NormalizedStatus.COMPLETED)
    finished_show = watchlist_item(
        "simkl",
        imdb="tt0000003",
        status=NormalizedStatus.COMPLETED,
        media_type=MediaType.show(),
    )
    dropped = watchlist_item("simkl", imdb="tt0000004", status=NormalizedStatus.DROPPED)
    resolved = ResolvedData(watchlist=[planned, finished, finished_show, dropped])

    plan = prepare_distribution(HISTORY_TARGET, resolved, SourceData(), SyncOptions(), window_for=_everything)

    assert plan.watchlist == [planned]
    assert [entry.imdb_id for entry in plan.watchlist_to_history] == ["tt0000002"]
    assert plan.watchlist_to_history[0].watched_at == finished.date_added
    assert [(item.imdb_id, item.reason) for item in plan.excluded] == [("tt0000003", SHOW_HISTORY_REASON)]


def test_items_from_the_target_itself_are_not_sent_back() -> None:
    resolved = ResolvedData(watchlist=[watchlist_item("trakt", imdb="tt0000001")])

    plan = prepare_distribution(HISTORY_TARGET, resolved, SourceData(), SyncOptions(), window_for=_everything)

    assert plan.is_empty()


def test_items_without_ids_are_excluded_with_reason() -> None:
    resolved = ResolvedData(ratings=[rating("simkl", 7, imdb="")])

    plan = prepare_distribution(HISTORY_TARGET, resolved, SourceData(), SyncOptions(), window_for=_everything)

    assert plan.ratings == []
    assert [item.reason for item in plan.excluded] == [NO_ID_REASON]


def test_existing_entries_and_unchanged_ratings_are_skipped() -> None:
    resolved = ResolvedData(
        watchlist=[watchlist_item("simkl", imdb="tt0000001"), watchlist_item("simkl", imdb="tt0000002")],
        ratings=[rating("simkl", 8, imdb="tt0000001"), rating("simkl", 6, imdb="tt0000002")],
    )
    existing = SourceData(
        watchlist=[watchlist_item("trakt", imdb="tt0000001")],
        ratings=[rating("trakt", 8, imdb="tt0000001"), rating("trakt", 4, imdb="tt0000002")],
    )

    plan = prepare_distribution(TargetProfile(name="trakt"), resolved, existing, SyncOptions(), window_for=_everything)

    assert [item.imdb_id for item in plan.watchlist] == ["tt0000002"]
    assert [(item.imdb_id, item.rating) for item in plan.ratings] == [("tt0000002", 6)]


def test_window_limits_non_native_targets_only() -> None:
    resolved = ResolvedData(
        ratings=[
            rating("simkl", 8, imdb="tt0000001", rated=T0 - timedelta(days=1)),
            rating("simkl", 6, imdb="tt0000002", rated=T0 + timedelta(days=1)),
        ]
    )

    def since_t0(_: DataType) -> IncrementalWindow:
        return IncrementalWindow(T0)

    trakt = TargetProfile(name="trakt")
    windowed = prepare_distribution(trakt, resolved, SourceData(), SyncOptions(), window_for=since_t0)
    native = prepare_distribution(
        TargetProfile(name="trakt", native_incremental=True),
        resolved,
        SourceData(),
        SyncOptions(),
        window_for=since_t0,
    )

    assert [item.imdb_id for item in windowed.ratings] == ["tt0000002"]
    assert [item.imdb_id for item in native.ratings] == ["tt0000001", "tt0000002"]


def test_show_history_is_excluded() -> None:
    episode = history("simkl", imdb="tt0000001", media_type=MediaType.for_episode(1, 2))
    show = history("simkl", imdb="tt0000002", media_type=MediaType.show())
    resolved = ResolvedData(watch_history=[episode, show])

    plan = prepare_distribution(
        TargetProfile(name="trakt"), resolved, SourceData(), SyncOptions(), window_for=_everything
    )

    assert plan.watch_history == [episode]
    assert [(item.imdb_id, item.reason) for item in plan.excluded] == [("tt0000002", SHOW_HISTORY_REASON)]


def test_unselected_data_types_are_not_planned() -> None:
    resolved = ResolvedData(
        watchlist=[watchlist_item("simkl", imdb="tt0000001")],
        ratings=[rating("simkl", 8, imdb="tt0000001")],
    )
    options = SyncOptions(data_types=frozenset({DataType.RATINGS}))

    plan = prepare_distribution(TargetProfile(name="trakt"), resolved, SourceData(), options, window_for=_everything)

    assert plan.watchlist == []
    assert len(plan.ratings) == 1


def test_removal_lists_cover_watched_and_aged_entries_on_own_watchlist() -> None:
    watched = watchlist_item("trakt", imdb="tt0000001", added=T0)
    stale = watchlist_item("trakt", imdb="tt0000002", added=T0 - timedelta(days=40))
    fresh = watchlist_item("trakt", imdb="tt0000003", added=T0)
    collected = {"trakt": SourceData(watchlist=[watched, stale, fresh]), "simkl": SourceData()}
    resolved = ResolvedData(watch_history=[history("simkl", imdb="tt0000001")])
    options = SyncOptions(remove_watched_from_watchlists=True, remove_watchlist_items_older_than_days=30)

    removals = build_removal_lists(collected, resolved, options, now=T0)

    assert removals == {"trakt": [watched, stale]}


def test_dropped_entries_are_removed_only_where_they_are_held() -> None:
    dropped = watchlist_item("simkl", imdb="tt0000001", status=NormalizedStatus.DROPPED)
    collected = {
        "simkl": SourceData(watchlist=[dropped]),
        "trakt": SourceData(watchlist=[watchlist_item("trakt", imdb="tt0000001")]),
        "plex": SourceData(watchlist=[watchlist_item("plex", imdb="tt0000002")]),
    }

    removals = build_removal_lists(collected, ResolvedData(), SyncOptions(), now=T0, status_sources=["simkl"])

    assert removals == {"trakt": [dropped]}


def test_removal_list_blocks_re_adding_the_same_work() -> None:
    resolved = ResolvedData(watchlist=[watchlist_item("simkl", imdb="tt0000001")])
    removal = [watchlist_item("trakt", imdb="tt0000001")]

    plan = prepare_distribution(
        TargetProfile(name="trakt"),
        resolved,
        SourceData(),
        SyncOptions(),
        window_for=_everything,
        removal_list=removal,
    )

    assert plan.watchlist == []
    assert plan.removal_list == removal


def test_mark_rated_as_watched_adds_history_for_rated_movies() -> None:
    rated = rating("trakt", 8, imdb="tt0000001", rated=T0)
    already_seen = rating("trakt", 7, imdb="tt0000002")
    rated_show = rating("trakt", 9, imdb="tt0000003", media_type=MediaType.show())
    resolved = ResolvedData(
        ratings=[rated, already_seen, rated_show],
        watch_history=[history("trakt", imdb="tt0000002")],
    )

    added = mark_rated_as_watched(resolved)

    assert added == 1
    entry = resolved.watch_history[-1]
    assert (entry.imdb_id, entry.watched_at, entry.source) == ("tt0000001", T0, "rated")


def test_content_the_target_cannot_store_is_excluded_with_reason() -> None:
    episode = MediaType.for_episode(1, 3)
    target = TargetProfile.of(
        FakeSource(
            "simkl",
            rejects=frozenset(
                {(DataType.REVIEWS, kind) for kind in MediaKind}
                | {(data_type, MediaKind.EPISODE) for data_type in DataType}
            ),
        ),
        "simkl",
    )
    resolved = ResolvedData(
        watchlist=[
            watchlist_item("trakt", imdb="tt0000001"),
            watchlist_item("trakt", imdb="tt0000002", media_type=episode),
        ],
        ratings=[rating("trakt", 8, imdb="tt0000003"), rating("trakt", 6, imdb="tt0000004", media_type=episode)],
        reviews=[review("trakt", "Tense", imdb="tt0000003")],
        watch_history=[history("trakt", imdb="tt0000005", media_type=episode)],
    )

    plan = prepare_distribution(target, resolved, SourceData(), SyncOptions(), window_for=_everything)

    assert [item.imdb_id for item in plan.watchlist] == ["tt0000001"]
    assert [item.imdb_id for item in plan.ratings] == ["tt0000003"]
    assert plan.reviews == []
    assert plan.watch_history == []
    assert sorted((item.imdb_id, item.reason) for item in plan.excluded) == [
        ("tt0000002", UNSUPPORTED_REASON),
        ("tt0000003", UNSUPPORTED_REASON),
        ("tt0000004", UNSUPPORTED_REASON),
        ("tt0000005", UNSUPPORTED_REASON),
    ]


def test_history_bound_watchlist_entries_follow_history_acceptance() -> None:
    target = TargetProfile(
        name="trakt",
        history_statuses=frozenset({NormalizedStatus.COMPLETED}),
        rejected=frozenset({(DataType.WATCH_HISTORY, MediaKind.MOVIE)}),
    )
    finished = watchlist_item("simkl", imdb="tt0000001", status=NormalizedStatus.COMPLETED)
    planned = watchlist_item("simkl", imdb="tt0000002", status=NormalizedStatus.WATCHLIST)

    plan = prepare_distribution(
        target,
        ResolvedData(watchlist=[finished, planned]),
        SourceData(),
        SyncOptions(),
        window_for=_everything,
    )

    assert plan.watchlist == [planned]
    assert plan.watchlist_to_history == []
    assert [(item.imdb_id, item.reason) for item in plan.excluded] == [("tt0000001", UNSUPPORTED_REASON)]
