"""Persistence ports used by the sync pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from totalrecall.domain.model import DataType


class SnapshotStore(Protocol):
    """Per-source collect cache and distribute (dry-run) output."""

    def load_collect[T](self, source: str, data_type: DataType, item_type: type[T]) -> list[T] | None:
        """Return the cached snapshot, or ``None`` when absent or unreadable."""
        ...

    def save_collect(self, source: str, data_type: DataType, items: Sequence[object]) -> None: ...

    def save_distribute(self, source: str, name: str, items: Sequence[object]) -> None: ...

    def clear_distribute(self, source: str) -> None: ...


class TimestampStore(Protocol):
    """Last successful sync time per (source, data type)."""

    def get_last_sync(self, source: str, data_type: DataType) -> datetime | None: ...

    def set_last_sync(self, source: str, data_type: DataType, when: datetime) -> None: ...

    def save(self) -> None: ...
