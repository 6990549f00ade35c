"""In-memory identity cache.

The cache keeps every canonical ``MediaIds`` record once, in a slot table, and
points one index per identifier space (plus a composite title/year/type index)
at those slots. Merging replaces the record stored in a slot, so every index
entry observes the merged record without being touched.

Invariants:
- every index entry references a live slot
- every identifier of a stored record is indexed to that record's slot
- stored records always carry at least one identifier

Identifiers that lose a merge conflict stay indexed as aliases of the
surviving slot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from totalrecall.domain.model import NUMERIC_PREFIXES, IdType, MediaIds

if TYPE_CHECKING:
    from totalrecall.domain.model import MediaType

log = getLogger(__name__)

type IdKey = str | int
type TitleKey = tuple[str, int | None, str]


def _new_id_indices() -> dict[IdType, dict[IdKey, int]]:
    return {id_type: {} for id_type in IdType}


def title_key(title: str, year: int | None, media_type: MediaType) -> TitleKey:
    return (title.strip().lower(), year, media_type.key)


def _title_key_for(record: MediaIds) -> TitleKey | None:
    if not record.title or not record.title.strip() or record.media_type is None:
        return None
    return title_key(record.title, record.year, record.media_type)


def _parse_numeric(value: str) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        return None


@dataclass(slots=True)
class IdCache:
    """Multi-index store of canonical identifier records."""

    _records: dict[int, MediaIds] = field(default_factory=dict[int, MediaIds], repr=False)
    _by_id: dict[IdType, dict[IdKey, int]] = field(default_factory=_new_id_indices, repr=False)
    _by_title: dict[TitleKey, int] = field(default_factory=dict[TitleKey, int], repr=False)
    _next_slot: int = field(default=0, repr=False)
    _dirty: bool = False

    def __len__(self) -> int:
        return len(self._records)

    def is_dirty(self) -> bool:
        return self._dirty

    def mark_clean(self) -> None:
        self._dirty = False

    def insert(self, record: MediaIds) -> MediaIds | None:
        """Insert ``record``, merging it into any canonical record sharing an identifier.

        When the incoming record links several previously disjoint canonical
        records, they collapse into the oldest slot. Records without any
        identifier are dropped and ``None`` is returned.
        """

        if record.is_empty():
            log.debug("Dropping identifier record without ids: title=%r", record.title)
            return None

        slots = self._colliding_slots(record)
        if not slots:
            slot = self._next_slot
            self._next_slot += 1
            canonical = record
        else:
            slot = slots[0]
            canonical = self._records[slot].merge(record)
            for absorbed in slots[1:]:
                canonical = canonical.merge(self._records.pop(absorbed))
                self._repoint(absorbed, slot)

        self._records[slot] = canonical
        self._index(slot, record)
        self._index(slot, canonical)
        self._dirty = True
        return canonical

    def find(self, record: MediaIds) -> MediaIds | None:
        """Return the canonical record sharing any identifier with ``record``."""

        for id_type, value in record.id_items():
            slot = self._by_id[id_type].get(value)
            if slot is not None:
                return self._records[slot]
        return None

    def find_by_id(self, id_type: IdType, value: IdKey) -> MediaIds | None:
        slot = self._by_id[id_type].get(value)
        return None if slot is None else self._records[slot]

    def find_by_any_id(self, value: str) -> MediaIds | None:
        """Look up a record by a single id string.

        ``tt...`` is an imdb id; ``trakt:``, ``simkl:``, ``tmdb:`` and ``tvdb:``
        prefixes select the numeric spaces; anything else is tried as a slug,
        then a media-server key, then a bare imdb id.
        """

        candidate = value.strip()
        if not candidate:
            return None
        if candidate.startswith("tt"):
            return self.find_by_id(IdType.IMDB, candidate)
        for id_type, prefix in NUMERIC_PREFIXES.items():
            if candidate.startswith(prefix):
                number = _parse_numeric(candidate.removeprefix(prefix))
                return None if number is None else self.find_by_id(id_type, number)
        for id_type in (IdType.SLUG, IdType.MEDIA_SERVER, IdType.IMDB):
            found = self.find_by_id(id_type, candidate)
            if found is not None:
                return found
        return None

    def find_by_title_year(
        self,
        title: str,
        year: int | None,
        media_type: MediaType,
    ) -> MediaIds | None:
        if not title.strip():
            return None
        slot = self._by_title.get(title_key(title, year, media_type))
        return None if slot is None else self._records[slot]

    def rebuild_title_index(self) -> None:
        self._by_title.clear()
        for slot, record in self._records.items():
            key = _title_key_for(record)
            if key is not None:
                self._by_title[key] = slot

    def snapshot_all(self) -> list[MediaIds]:
        """Return every canonical record once, in insertion order."""

        return [self._records[slot] for slot in sorted(self._records)]

    def clear(self) -> None:
        self._records.clear()
        self._by_id = _new_id_indices()
        self._by_title.clear()
        self._next_slot = 0
        self._dirty = True

    def validate_invariants(self) -> None:
        for id_type, index in self._by_id.items():
            for value, slot in index.items():
                if slot not in self._records:
                    raise ValueError(f"{id_type} index entry {value!r} references missing slot {slot}")
        for key, slot in self._by_title.items():
            if slot not in self._records:
                raise ValueError(f"Title index entry {key!r} references missing slot {slot}")
        for slot, record in self._records.items():
            if record.is_empty():
                raise ValueError(f"Slot {slot} holds a record without identifiers")
            for id_type, value in record.id_items():
                if self._by_id[id_type].get(value) != slot:
                    raise ValueError(f"{id_type}={value!r} of slot {slot} is not indexed")

    def _colliding_slots(self, record: MediaIds) -> list[int]:
        slots: set[int] = set()
        for id_type, value in record.id_items():
            slot = self._by_id[id_type].get(value)
            if slot is not None:
                slots.add(slot)
        return sorted(slots)

    def _index(self, slot: int, record: MediaIds) -> None:
        for id_type, value in record.id_items():
            self._by_id[id_type][value] = slot
        key = _title_key_for(record)
        if key is not None:
            self._by_title[key] = slot

    def _repoint(self, old_slot: int, new_slot: int) -> None:
        for index in self._by_id.values():
            for value, slot in index.items():
                if slot == old_slot:
                    index[value] = new_slot
        for key, slot in self._by_title.items():
            if slot == old_slot:
                self._by_title[key] = new_slot
