"""Public interface for the Simkl adapter."""

from __future__ import annotations

from .client import (
    ACTIVITIES_KEY,
    SIMKL_BASE_URL,
    SIMKL_LOOKUP_PRIORITY,
    SimklAPIError,
    SimklSource,
    default_resilience_config,
)
from .schema import Activities, AllItems, ListEntry, SearchResult, SimklIds
from .translator import SOURCE_NAME, parse_history_entry, parse_list_entry, parse_rating_entry

__all__ = [
    "ACTIVITIES_KEY",
    "SIMKL_BASE_URL",
    "SIMKL_LOOKUP_PRIORITY",
    "SOURCE_NAME",
    "Activities",
    "AllItems",
    "ListEntry",
    "SearchResult",
    "SimklAPIError",
    "SimklIds",
    "SimklSource",
    "default_resilience_config",
    "parse_history_entry",
    "parse_list_entry",
    "parse_rating_entry",
]
