"""Cross-service identity: cache, persistence, lookups and resolution."""

from __future__ import annotations

from totalrecall.domain.identity.cache import IdCache, title_key
from totalrecall.domain.identity.lookup import (
    SEARCH_COOLDOWN_SECONDS,
    IdLookupError,
    IdLookupService,
)
from totalrecall.domain.identity.resolver import IdResolver, ResolverSettings, SaveCadence
from totalrecall.domain.identity.storage import CACHE_FILENAME, IdCacheStorage

__all__ = [
    "CACHE_FILENAME",
    "SEARCH_COOLDOWN_SECONDS",
    "IdCache",
    "IdCacheStorage",
    "IdLookupError",
    "IdLookupService",
    "IdResolver",
    "ResolverSettings",
    "SaveCadence",
    "title_key",
]
