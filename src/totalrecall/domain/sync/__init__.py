"""Sync run orchestration and per-target distribution planning."""

from __future__ import annotations

from .distribution import (
    NO_ID_REASON,
    SHOW_HISTORY_REASON,
    UNSUPPORTED_REASON,
    TargetProfile,
    build_removal_lists,
    mark_rated_as_watched,
    prepare_distribution,
)
from .orchestrator import ITEM_TYPES, SyncOrchestrator, SyncSetupError, validate_setup
from .results import DistributionPlan, ProgressCallback, SourceReport, SyncOptions, SyncResult

__all__ = [
    "ITEM_TYPES",
    "NO_ID_REASON",
    "SHOW_HISTORY_REASON",
    "UNSUPPORTED_REASON",
    "DistributionPlan",
    "ProgressCallback",
    "SourceReport",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncResult",
    "SyncSetupError",
    "TargetProfile",
    "build_removal_lists",
    "mark_rated_as_watched",
    "prepare_distribution",
    "validate_setup",
]
