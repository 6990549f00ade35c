"""Public interface for the Trakt adapter."""

from __future__ import annotations

from .client import TRAKT_BASE_URL, TRAKT_LOOKUP_PRIORITY, TraktAPIError, TraktSource, default_resilience_config
from .schema import CommentEntry, HistoryEntry, RatingEntry, SearchResult, SyncResponse, TraktIds, WatchlistEntry
from .translator import (
    SOURCE_NAME,
    parse_comment_entry,
    parse_history_entry,
    parse_rating_entry,
    parse_watchlist_entry,
)

__all__ = [
    "SOURCE_NAME",
    "TRAKT_BASE_URL",
    "TRAKT_LOOKUP_PRIORITY",
    "CommentEntry",
    "HistoryEntry",
    "RatingEntry",
    "SearchResult",
    "SyncResponse",
    "TraktAPIError",
    "TraktIds",
    "TraktSource",
    "WatchlistEntry",
    "default_resilience_config",
    "parse_comment_entry",
    "parse_history_entry",
    "parse_rating_entry",
    "parse_watchlist_entry",
]
