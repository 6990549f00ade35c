"""Per-target delta preparation.

Stage contract:
- narrow resolved data to what each target does not hold yet
- honour the target's incremental window unless it tracks changes natively
- route watched/finished watchlist entries to history for targets that model
  those statuses as history
- set aside what the target cannot store, so it is never counted as pushed
- build removal lists (watched, aged-out and dropped entries)

Nothing here performs I/O; the orchestrator executes the resulting plans.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import (
    DataType,
    ExcludedItem,
    MediaKind,
    NormalizedStatus,
    WatchHistory,
    media_ids_of,
)
from totalrecall.domain.ports.sources import as_accepted_content, as_incremental_sync, as_status_mapping
from totalrecall.domain.reconciliation import (
    ItemIndex,
    dedupe,
    filter_not_in,
    filter_ratings_changed,
    filter_reviews_changed,
)
from totalrecall.domain.time_windows import IncrementalWindow

from .results import DistributionPlan

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from datetime import datetime

    from totalrecall.domain.model import MediaItem, MediaType, WatchlistItem
    from totalrecall.domain.reconciliation import IdBridge, ResolvedData, SourceData

    from .results import SyncOptions

log = getLogger(__name__)

NO_ID_REASON = "no usable identifier for target"
SHOW_HISTORY_REASON = "shows cannot be recorded as watched; only movies and episodes"
UNSUPPORTED_REASON = "target does not store this media type for this data type"


@dataclass(slots=True, frozen=True)
class TargetProfile:
    """What distribution needs to know about a target, read from its capabilities."""

    name: str
    native_incremental: bool = False
    history_statuses: frozenset[NormalizedStatus] = frozenset()
    rejected: frozenset[tuple[DataType, MediaKind]] = frozenset()

    @classmethod
    def of(cls, source: object, name: str, *, force_full_sync: bool = False) -> TargetProfile:
        incremental = as_incremental_sync(source)
        status_mapping = as_status_mapping(source)
        content = as_accepted_content(source)
        rejected: frozenset[tuple[DataType, MediaKind]] = frozenset()
        if content is not None:
            rejected = frozenset(
                (data_type, kind)
                for data_type in DataType
                for kind in MediaKind
                if not content.accepts(data_type, kind)
            )
        return cls(
            name=name,
            native_incremental=(
                incremental is not None
                and incremental.supports_native_incremental_sync()
                and not force_full_sync
            ),
            history_statuses=status_mapping.history_statuses() if status_mapping else frozenset(),
            rejected=rejected,
        )

    def accepts(self, data_type: DataType, media_type: MediaType) -> bool:
        return (data_type, media_type.kind) not in self.rejected


type WindowLookup = Callable[[DataType], IncrementalWindow]


def mark_rated_as_watched(resolved: ResolvedData, bridge: IdBridge | None = None) -> int:
    """Append a history entry for every rated movie or episode not yet watched."""

    watched = ItemIndex.build(resolved.watch_history, bridge)
    added = 0
    for rating in resolved.ratings:
        if rating.media_type.is_show:
            continue
        ids = media_ids_of(rating)
        if ids.is_empty() or watched.contains(ids):
            continue
        resolved.watch_history.append(
            WatchHistory(
                imdb_id=rating.imdb_id,
                ids=rating.ids,
                watched_at=rating.date_added,
                media_type=rating.media_type,
                source="rated",
            )
        )
        watched.add(ids)
        added += 1
    if added:
        log.info("Marked %s rated item(s) as watched", added)
    return added


def build_removal_lists(
    collected: Mapping[str, SourceData],
    resolved: ResolvedData,
    options: SyncOptions,
    *,
    now: datetime,
    status_sources: Sequence[str] = (),
    bridge: IdBridge | None = None,
) -> dict[str, list[WatchlistItem]]:
    """Watchlist entries each target should drop.

    Only entries currently on a target's own watchlist are candidates for the
    watched and age rules. Entries marked ``Dropped`` by a status-mapping
    source are queued for removal on every other target that holds them.
    """

    watched = ItemIndex.build(resolved.watch_history, bridge)
    cutoff = None
    if options.remove_watchlist_items_older_than_days is not None:
        cutoff = now - timedelta(days=options.remove_watchlist_items_older_than_days)

    lists: dict[str, list[WatchlistItem]] = {}
    for name, data in collected.items():
        removals: list[WatchlistItem] = []
        for item in data.watchlist:
            if options.remove_watched_from_watchlists and watched.contains(media_ids_of(item)):
                removals.append(item)
            elif cutoff is not None and item.date_added < cutoff:
                removals.append(item)
        lists[name] = removals

    for origin in status_sources:
        if origin not in collected:
            continue
        dropped = [item for item in collected[origin].watchlist if item.status is NormalizedStatus.DROPPED]
        if not dropped:
            continue
        log.info("Found %s dropped item(s) on %s; queueing removal elsewhere", len(dropped), origin)
        for name, data in collected.items():
            if name == origin:
                continue
            held = ItemIndex.build(data.watchlist, bridge)
            lists[name].extend(item for item in dropped if held.contains(media_ids_of(item)))

    return {name: dedupe(items, bridge) for name, items in lists.items() if items}


def prepare_distribution(
    target: TargetProfile,
    resolved: ResolvedData,
    existing: SourceData,
    options: SyncOptions,
    *,
    window_for: WindowLookup,
    removal_list: Sequence[WatchlistItem] = (),
    bridge: IdBridge | None = None,
) -> DistributionPlan:
    plan = DistributionPlan(target=target.name, removal_list=list(removal_list))

    if options.syncs(DataType.WATCHLIST):
        _prepare_watchlist(plan, target, resolved, existing, options, window_for(DataType.WATCHLIST), bridge)
    if options.syncs(DataType.RATINGS):
        candidates = _incoming(plan, target, resolved.ratings, window_for(DataType.RATINGS), DataType.RATINGS)
        plan.ratings = filter_ratings_changed(candidates, existing.ratings, bridge)
    if options.syncs(DataType.REVIEWS):
        candidates = _incoming(plan, target, resolved.reviews, window_for(DataType.REVIEWS), DataType.REVIEWS)
        plan.reviews = filter_reviews_changed(candidates, existing.reviews, bridge)
    if options.syncs(DataType.WATCH_HISTORY):
        window = window_for(DataType.WATCH_HISTORY)
        candidates = _incoming(plan, target, resolved.watch_history, window, DataType.WATCH_HISTORY)
        candidates = _without_shows(plan, candidates)
        plan.watch_history = filter_not_in(candidates, existing.watch_history, bridge)

    log.info(
        "Prepared %s: watchlist=%s to_history=%s ratings=%s reviews=%s history=%s removals=%s excluded=%s",
        target.name,
        len(plan.watchlist),
        len(plan.watchlist_to_history),
        len(plan.ratings),
        len(plan.reviews),
        len(plan.watch_history),
        len(plan.removal_list),
        len(plan.excluded),
    )
    return plan


def _prepare_watchlist(
    plan: DistributionPlan,
    target: TargetProfile,
    resolved: ResolvedData,
    existing: SourceData,
    options: SyncOptions,
    window: IncrementalWindow,
    bridge: IdBridge | None,
) -> None:
    candidates = _incoming(plan, target, resolved.watchlist, window)
    candidates = [item for item in candidates if item.status is not NormalizedStatus.DROPPED]

    if plan.removal_list:
        removing = ItemIndex.build(plan.removal_list, bridge)
        candidates = [item for item in candidates if not removing.contains(media_ids_of(item))]
    if options.remove_watched_from_watchlists:
        watched = ItemIndex.build(resolved.watch_history, bridge)
        candidates = [item for item in candidates if not watched.contains(media_ids_of(item))]

    to_history: list[WatchHistory] = []
    to_watchlist: list[WatchlistItem] = []
    for item in candidates:
        if item.status is not None and item.status in target.history_statuses:
            if item.media_type.is_show:
                plan.excluded.append(ExcludedItem.from_item(item, reason=SHOW_HISTORY_REASON, target=target.name))
                continue
            if _accepted(plan, target, item, DataType.WATCH_HISTORY):
                to_history.append(_as_history(item))
        elif _accepted(plan, target, item, DataType.WATCHLIST):
            to_watchlist.append(item)

    plan.watchlist = filter_not_in(to_watchlist, existing.watchlist, bridge)
    plan.watchlist_to_history = filter_not_in(to_history, existing.watch_history, bridge)


def _incoming[T: MediaItem](
    plan: DistributionPlan,
    target: TargetProfile,
    items: Sequence[T],
    window: IncrementalWindow,
    data_type: DataType | None = None,
) -> list[T]:
    """Resolved items that did not come from the target, inside its window, with ids.

    With a ``data_type``, items the target cannot store under it are excluded too.
    """

    candidates = [item for item in items if item.source != target.name]
    if not target.native_incremental:
        candidates, outside = window.split(candidates)
        if outside:
            log.debug("%s: %s item(s) predate the last sync", target.name, len(outside))
    with_ids: list[T] = []
    for item in candidates:
        if media_ids_of(item).is_empty():
            plan.excluded.append(ExcludedItem.from_item(item, reason=NO_ID_REASON, target=target.name))
        elif data_type is None or _accepted(plan, target, item, data_type):
            with_ids.append(item)
    return with_ids


def _accepted(plan: DistributionPlan, target: TargetProfile, item: MediaItem, data_type: DataType) -> bool:
    if target.accepts(data_type, item.media_type):
        return True
    plan.excluded.append(ExcludedItem.from_item(item, reason=UNSUPPORTED_REASON, target=target.name))
    return False


def _without_shows(plan: DistributionPlan, entries: Sequence[WatchHistory]) -> list[WatchHistory]:
    kept: list[WatchHistory] = []
    for entry in entries:
        if entry.media_type.is_show:
            plan.excluded.append(ExcludedItem.from_item(entry, reason=SHOW_HISTORY_REASON, target=plan.target))
        else:
            kept.append(entry)
    return kept


def _as_history(item: WatchlistItem) -> WatchHistory:
    return WatchHistory(
        imdb_id=item.imdb_id,
        ids=item.ids,
        title=item.title,
        year=item.year,
        watched_at=item.date_added,
        media_type=item.media_type,
        source=item.source,
    )


__all__ = [
    "NO_ID_REASON",
    "SHOW_HISTORY_REASON",
    "UNSUPPORTED_REASON",
    "TargetProfile",
    "build_removal_lists",
    "mark_rated_as_watched",
    "prepare_distribution",
]
