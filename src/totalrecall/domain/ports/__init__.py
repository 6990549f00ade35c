"""Domain port definitions for adapters."""

from __future__ import annotations

from .sources import (
    AcceptedContent,
    AuthenticationError,
    Cleanup,
    IdExtraction,
    IdLookupProvider,
    IncrementalSync,
    MediaSource,
    PartialMutationError,
    RatingNormalization,
    SourceError,
    StatusMapping,
    TransientSourceError,
    as_accepted_content,
    as_cleanup,
    as_id_extraction,
    as_id_lookup_provider,
    as_incremental_sync,
    as_rating_normalization,
    as_status_mapping,
)
from .storage import SnapshotStore, TimestampStore

__all__ = [
    "AcceptedContent",
    "AuthenticationError",
    "Cleanup",
    "IdExtraction",
    "IdLookupProvider",
    "IncrementalSync",
    "MediaSource",
    "PartialMutationError",
    "RatingNormalization",
    "SnapshotStore",
    "SourceError",
    "StatusMapping",
    "TimestampStore",
    "TransientSourceError",
    "as_accepted_content",
    "as_cleanup",
    "as_id_extraction",
    "as_id_lookup_provider",
    "as_incremental_sync",
    "as_rating_normalization",
    "as_status_mapping",
]
