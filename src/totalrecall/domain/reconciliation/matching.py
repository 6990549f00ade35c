"""Cross-identifier matching between media items.

Two items match when their identifier records share a value in any id space.
When an identity cache is supplied, each record is first widened with the
canonical record the cache holds for it, which bridges items that only know
different aliases of the same work (a Trakt id on one side, an imdb id on the
other).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from totalrecall.domain.model import IdType, MediaIds, ids_overlap, media_ids_of

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from totalrecall.domain.model import MediaItem


class IdBridge(Protocol):
    """Anything that can map a record to its canonical record; ``IdCache`` qualifies."""

    def find(self, record: MediaIds) -> MediaIds | None: ...


def match_by_any_id(left: MediaIds, right: MediaIds) -> bool:
    return ids_overlap(left, right)


def widen(ids: MediaIds, bridge: IdBridge | None) -> MediaIds:
    if bridge is None or ids.is_empty():
        return ids
    canonical = bridge.find(ids)
    return ids if canonical is None else ids.merge(canonical)


def ids_match(left: MediaIds, right: MediaIds, bridge: IdBridge | None = None) -> bool:
    if left.is_empty() or right.is_empty():
        return False
    if match_by_any_id(left, right):
        return True
    if bridge is None:
        return False
    return match_by_any_id(widen(left, bridge), widen(right, bridge))


def items_match(left: MediaItem, right: MediaItem, bridge: IdBridge | None = None) -> bool:
    return ids_match(media_ids_of(left), media_ids_of(right), bridge)


@dataclass(slots=True)
class ItemIndex:
    """Position index over a collection of items, keyed by every known id."""

    bridge: IdBridge | None = None
    _positions: dict[tuple[IdType, str | int], list[int]] = field(default_factory=dict, repr=False)
    _size: int = 0

    @classmethod
    def build(cls, items: Iterable[MediaItem], bridge: IdBridge | None = None) -> ItemIndex:
        index = cls(bridge=bridge)
        for item in items:
            index.add(media_ids_of(item))
        return index

    def __len__(self) -> int:
        return self._size

    def add(self, ids: MediaIds) -> int:
        position = self._size
        self._size += 1
        for key in widen(ids, self.bridge).id_items():
            self._positions.setdefault(key, []).append(position)
        return position

    def matches(self, ids: MediaIds) -> list[int]:
        """Positions of indexed items sharing an id with ``ids``, ascending."""

        if ids.is_empty():
            return []
        found: set[int] = set()
        for key in widen(ids, self.bridge).id_items():
            found.update(self._positions.get(key, ()))
        return sorted(found)

    def first(self, ids: MediaIds) -> int | None:
        positions = self.matches(ids)
        return positions[0] if positions else None

    def contains(self, ids: MediaIds) -> bool:
        return self.first(ids) is not None


class _DisjointSet:
    def __init__(self, size: int) -> None:
        self._parent = list(range(size))

    def find(self, node: int) -> int:
        root = node
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[node] != root:
            self._parent[node], node = root, self._parent[node]
        return root

    def union(self, left: int, right: int) -> None:
        left_root, right_root = self.find(left), self.find(right)
        if left_root == right_root:
            return
        # the lower index stays root so groups keep first-seen order
        if right_root < left_root:
            left_root, right_root = right_root, left_root
        self._parent[right_root] = left_root


def group_by_media_ids(
    items: Sequence[MediaItem],
    bridge: IdBridge | None = None,
) -> list[list[int]]:
    """Partition item positions into transitively closed conflict groups.

    Items without identifiers form singleton groups. Groups are ordered by
    their first member and list members in input order.
    """

    sets = _DisjointSet(len(items))
    owners: dict[tuple[IdType, str | int], int] = {}
    for position, item in enumerate(items):
        for key in widen(media_ids_of(item), bridge).id_items():
            owner = owners.setdefault(key, position)
            if owner != position:
                sets.union(owner, position)

    groups: dict[int, list[int]] = {}
    for position in range(len(items)):
        groups.setdefault(sets.find(position), []).append(position)
    return [groups[root] for root in sorted(groups)]


__all__ = [
    "IdBridge",
    "ItemIndex",
    "group_by_media_ids",
    "ids_match",
    "items_match",
    "match_by_any_id",
    "widen",
]
