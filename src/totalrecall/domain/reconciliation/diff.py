"""Delta predicates over item collections.

All functions are generic over the four item types and match by any shared
identifier, optionally widened through the identity cache. They never mutate
their inputs and always preserve source order.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import has_any_id, media_ids_of

from .matching import ItemIndex

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from totalrecall.domain.model import MediaItem, Rating, Review

    from .matching import IdBridge

log = getLogger(__name__)

REVIEW_KEY_PREFIX = 100


def review_key(content: str) -> str:
    """Cheap identity for review text: leading characters plus total length."""

    return f"{content[:REVIEW_KEY_PREFIX]}:{len(content)}"


def filter_missing_ids[T: MediaItem](items: Iterable[T]) -> list[T]:
    return [item for item in items if has_any_id(item)]


def filter_not_in[T: MediaItem](
    source: Sequence[T],
    target: Sequence[MediaItem],
    bridge: IdBridge | None = None,
) -> list[T]:
    """Items of ``source`` the target does not hold yet; id-less items are dropped."""

    index = ItemIndex.build(target, bridge)
    kept: list[T] = []
    skipped_empty = 0
    for item in source:
        ids = media_ids_of(item)
        if ids.is_empty():
            skipped_empty += 1
            continue
        if index.contains(ids):
            continue
        kept.append(item)
    log.debug(
        "filter_not_in: source=%s target=%s kept=%s skipped_empty=%s",
        len(source),
        len(target),
        len(kept),
        skipped_empty,
    )
    return kept


def dedupe[T: MediaItem](items: Iterable[T], bridge: IdBridge | None = None) -> list[T]:
    """Drop every item sharing an id with an earlier one; id-less items pass through."""

    seen = ItemIndex(bridge=bridge)
    result: list[T] = []
    for item in items:
        ids = media_ids_of(item)
        if not ids.is_empty() and seen.contains(ids):
            continue
        seen.add(ids)
        result.append(item)
    return result


def filter_reviews_changed(
    source: Sequence[Review],
    target: Sequence[Review],
    bridge: IdBridge | None = None,
) -> list[Review]:
    """Reviews of ``source`` whose text the target does not already hold for that work."""

    index = ItemIndex.build(target, bridge)
    target_keys = [review_key(review.content) for review in target]
    changed: list[Review] = []
    for review in source:
        ids = media_ids_of(review)
        if ids.is_empty():
            continue
        key = review_key(review.content)
        if any(target_keys[position] == key for position in index.matches(ids)):
            continue
        changed.append(review)
    log.debug("filter_reviews_changed: source=%s target=%s changed=%s", len(source), len(target), len(changed))
    return changed


def filter_ratings_changed(
    source: Sequence[Rating],
    target: Sequence[Rating],
    bridge: IdBridge | None = None,
) -> list[Rating]:
    """Ratings the target lacks or holds with a different value."""

    index = ItemIndex.build(target, bridge)
    changed: list[Rating] = []
    for rating in source:
        ids = media_ids_of(rating)
        if ids.is_empty():
            continue
        positions = index.matches(ids)
        if positions and all(target[position].rating == rating.rating for position in positions):
            continue
        changed.append(rating)
    log.debug("filter_ratings_changed: source=%s target=%s changed=%s", len(source), len(target), len(changed))
    return changed


__all__ = [
    "REVIEW_KEY_PREFIX",
    "dedupe",
    "filter_missing_ids",
    "filter_not_in",
    "filter_ratings_changed",
    "filter_reviews_changed",
    "review_key",
]
