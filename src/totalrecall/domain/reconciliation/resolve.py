"""Conflict resolution across sources.

Stage contract:
- group items of one data type across every source into conflict groups
  (direct id overlap plus cache bridging)
- pick one winner per group under the configured strategy
- give the winner the union of every group member's identifiers

Reviews and watch history are never resolved to a single winner: every
distinct review text and every distinct watch event survives.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import (
    DataType,
    MediaIds,
    ResolutionStrategy,
    media_ids_of,
)

from .contracts import ResolvedData
from .diff import review_key
from .matching import group_by_media_ids, items_match

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from totalrecall.domain.model import MediaItem, Rating, Review, WatchHistory, WatchlistItem

    from .contracts import SourceData
    from .matching import IdBridge

log = getLogger(__name__)

HISTORY_MATCH_SECONDS = 1.0

type Candidate[T] = tuple[str, T]


@dataclass(slots=True, frozen=True)
class ResolutionPolicy:
    strategy: ResolutionStrategy = ResolutionStrategy.PREFERENCE
    source_preference: tuple[str, ...] = ()
    timestamp_tolerance_seconds: float = 3600.0
    watchlist_strategy: ResolutionStrategy | None = None
    ratings_strategy: ResolutionStrategy | None = None

    def strategy_for(self, data_type: DataType) -> ResolutionStrategy:
        match data_type:
            case DataType.WATCHLIST:
                return self.watchlist_strategy or self.strategy
            case DataType.RATINGS:
                return self.ratings_strategy or self.strategy
            case DataType.REVIEWS | DataType.WATCH_HISTORY:
                return ResolutionStrategy.MERGE


def resolve_all_conflicts(
    sources: Mapping[str, SourceData],
    policy: ResolutionPolicy,
    bridge: IdBridge | None = None,
) -> ResolvedData:
    resolved = ResolvedData(
        watchlist=resolve_watchlist(sources, policy, bridge),
        ratings=resolve_ratings(sources, policy, bridge),
        reviews=resolve_reviews(sources, bridge),
        watch_history=resolve_watch_history(sources, bridge),
    )
    log.info(
        "Resolved %s watchlist, %s ratings, %s reviews, %s history entries from %s source(s)",
        len(resolved.watchlist),
        len(resolved.ratings),
        len(resolved.reviews),
        len(resolved.watch_history),
        len(sources),
    )
    return resolved


def resolve_watchlist(
    sources: Mapping[str, SourceData],
    policy: ResolutionPolicy,
    bridge: IdBridge | None = None,
) -> list[WatchlistItem]:
    strategy = policy.strategy_for(DataType.WATCHLIST)
    candidates = [(name, item) for name, data in sources.items() for item in data.watchlist]
    if strategy is ResolutionStrategy.MERGE:
        return [
            _merge_watchlist_group([candidates[i][1] for i in group])
            for group in _groups(candidates, bridge)
        ]
    return _resolve_groups(candidates, strategy, policy, bridge)


def resolve_ratings(
    sources: Mapping[str, SourceData],
    policy: ResolutionPolicy,
    bridge: IdBridge | None = None,
) -> list[Rating]:
    strategy = policy.strategy_for(DataType.RATINGS)
    candidates = [(name, rating) for name, data in sources.items() for rating in data.ratings]
    return _resolve_groups(candidates, strategy, policy, bridge)


def resolve_reviews(
    sources: Mapping[str, SourceData],
    bridge: IdBridge | None = None,
) -> list[Review]:
    kept: list[Review] = []
    for data in sources.values():
        for review in data.reviews:
            key = review_key(review.content)
            duplicate = next(
                (
                    position
                    for position, existing in enumerate(kept)
                    if review_key(existing.content) == key and items_match(existing, review, bridge)
                ),
                None,
            )
            if duplicate is None:
                kept.append(review)
            else:
                kept[duplicate] = _absorb_ids(kept[duplicate], review)
    kept.sort(key=lambda review: review.date_added, reverse=True)
    return kept


def resolve_watch_history(
    sources: Mapping[str, SourceData],
    bridge: IdBridge | None = None,
) -> list[WatchHistory]:
    kept: list[WatchHistory] = []
    for data in sources.values():
        for entry in data.watch_history:
            duplicate = next(
                (
                    position
                    for position, existing in enumerate(kept)
                    if abs((existing.watched_at - entry.watched_at).total_seconds()) <= HISTORY_MATCH_SECONDS
                    and items_match(existing, entry, bridge)
                ),
                None,
            )
            if duplicate is None:
                kept.append(entry)
            else:
                kept[duplicate] = _absorb_ids(kept[duplicate], entry)
    kept.sort(key=lambda entry: entry.watched_at, reverse=True)
    return kept


def pick_winner[T: MediaItem](
    candidates: Sequence[Candidate[T]],
    strategy: ResolutionStrategy,
    policy: ResolutionPolicy,
) -> T:
    """Choose one item out of a conflict group.

    Newest and Oldest take an end of the timestamp order. Preference takes the
    newest unless the two newest lie within the tolerance, in which case the
    earliest-listed preferred source wins. Merge degrades to newest for data
    types that can hold only one value per work.
    """

    if not candidates:
        raise ValueError("Cannot pick a winner from an empty group")
    newest_first = sorted(candidates, key=lambda candidate: candidate[1].timestamp, reverse=True)

    match strategy:
        case ResolutionStrategy.OLDEST:
            return min(candidates, key=lambda candidate: candidate[1].timestamp)[1]
        case ResolutionStrategy.PREFERENCE if len(newest_first) > 1:
            gap = abs((newest_first[0][1].timestamp - newest_first[1][1].timestamp).total_seconds())
            if gap <= policy.timestamp_tolerance_seconds:
                for preferred in policy.source_preference:
                    for name, item in newest_first:
                        if name == preferred:
                            return item
            return newest_first[0][1]
        case _:
            return newest_first[0][1]


def _groups[T: MediaItem](candidates: Sequence[Candidate[T]], bridge: IdBridge | None) -> list[list[int]]:
    return group_by_media_ids([item for _, item in candidates], bridge)


def _resolve_groups[T: MediaItem](
    candidates: Sequence[Candidate[T]],
    strategy: ResolutionStrategy,
    policy: ResolutionPolicy,
    bridge: IdBridge | None,
) -> list[T]:
    resolved: list[T] = []
    for group in _groups(candidates, bridge):
        members = [candidates[position] for position in group]
        if len(members) == 1:
            resolved.append(members[0][1])
            continue
        winner = pick_winner(members, strategy, policy)
        log.debug(
            "Resolved group of %s for %s under %s: winner from %s",
            len(members),
            media_ids_of(winner).any_id(),
            strategy,
            winner.source,
        )
        resolved.append(_with_group_ids(winner, [item for _, item in members]))
    return resolved


def _merge_watchlist_group(items: Sequence[WatchlistItem]) -> WatchlistItem:
    kept = items[0]
    for item in items[1:]:
        if item.status is not None and kept.status is None:
            kept = item
        elif (item.status is None) == (kept.status is None) and item.date_added > kept.date_added:
            kept = item
    return _with_group_ids(kept, items)


def _with_group_ids[T: MediaItem](winner: T, members: Sequence[MediaItem]) -> T:
    merged = media_ids_of(winner)
    for member in members:
        merged = merged.merge(media_ids_of(member))
    if merged.is_empty() or merged == winner.ids:
        return winner
    return winner.with_ids(merged)


def _absorb_ids[T: MediaItem](kept: T, duplicate: MediaItem) -> T:
    merged = media_ids_of(kept).merge(media_ids_of(duplicate))
    if merged == (kept.ids or MediaIds()):
        return kept
    return kept.with_ids(merged)


__all__ = [
    "HISTORY_MATCH_SECONDS",
    "ResolutionPolicy",
    "pick_winner",
    "resolve_all_conflicts",
    "resolve_ratings",
    "resolve_reviews",
    "resolve_watch_history",
    "resolve_watchlist",
]
