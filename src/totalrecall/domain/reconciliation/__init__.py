"""Cross-source matching, delta computation and conflict resolution."""

from __future__ import annotations

from .contracts import ResolvedData, SourceData
from .diff import (
    dedupe,
    filter_missing_ids,
    filter_not_in,
    filter_ratings_changed,
    filter_reviews_changed,
    review_key,
)
from .matching import (
    IdBridge,
    ItemIndex,
    group_by_media_ids,
    ids_match,
    items_match,
    match_by_any_id,
)
from .resolve import ResolutionPolicy, pick_winner, resolve_all_conflicts

__all__ = [
    "IdBridge",
    "ItemIndex",
    "ResolutionPolicy",
    "ResolvedData",
    "SourceData",
    "dedupe",
    "filter_missing_ids",
    "filter_not_in",
    "filter_ratings_changed",
    "filter_reviews_changed",
    "group_by_media_ids",
    "ids_match",
    "items_match",
    "match_by_any_id",
    "pick_winner",
    "resolve_all_conflicts",
    "review_key",
]
