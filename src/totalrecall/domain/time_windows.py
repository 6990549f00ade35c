"""Utilities for constraining distribution to items changed since the last sync."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, time
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

    from totalrecall.domain.model import MediaItem


class Clock(Protocol):
    def __call__(self) -> datetime: ...


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_aware(value: datetime) -> datetime:
    """Return ``value`` in UTC; naive values are taken to be UTC already."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_date_only(value: datetime) -> bool:
    """True for timestamps that carry a calendar date but no time of day."""

    return ensure_aware(value).time() == time(0, 0)


@dataclass(frozen=True)
class IncrementalWindow:
    """Everything after ``since`` is new; ``since=None`` admits everything.

    Date-only timestamps (exactly midnight) compare by calendar day, so an item
    dated on the day of the last sync is still considered new.
    """

    since: datetime | None = None

    def admits(self, timestamp: datetime | None) -> bool:
        if self.since is None or timestamp is None:
            return True
        since = ensure_aware(self.since)
        value = ensure_aware(timestamp)
        if is_date_only(value):
            return value.date() >= since.date()
        return value > since

    def split[T: MediaItem](self, items: Iterable[T]) -> tuple[list[T], list[T]]:
        """Partition ``items`` into (admitted, excluded), preserving order."""

        admitted: list[T] = []
        excluded: list[T] = []
        for item in items:
            (admitted if self.admits(item.timestamp) else excluded).append(item)
        return admitted, excluded


__all__ = ["Clock", "IncrementalWindow", "ensure_aware", "is_date_only", "utcnow"]
