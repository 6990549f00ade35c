"""Persistent form of the identity cache.

Only the flat list of canonical records is stored; indices are rebuilt on
load. The payload is JSON validated by pydantic and framed with gzip when
compression is enabled. Loading detects the gzip header, so toggling
compression never strands an existing file.
"""

from __future__ import annotations

import gzip
import shutil
import zlib
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Final, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from totalrecall.domain.model import MediaIds  # noqa: TC001

from .cache import IdCache

if TYPE_CHECKING:
    from pathlib import Path

log = getLogger(__name__)

CACHE_FILENAME: Final[str] = "id_mappings.bin"
SCHEMA_VERSION: Final = 1
_GZIP_MAGIC: Final[bytes] = b"\x1f\x8b"


class _CacheDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = SCHEMA_VERSION
    records: list[MediaIds]


@dataclass(slots=True)
class IdCacheStorage:
    path: Path
    compress: bool = True

    @classmethod
    def in_directory(cls, directory: Path, *, compress: bool = True) -> IdCacheStorage:
        return cls(path=directory / CACHE_FILENAME, compress=compress)

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> IdCache:
        """Load the cache, recovering from unreadable files with an empty cache.

        An unreadable file is copied to ``<name>.bak`` before the empty cache is
        returned, so the next save never destroys the only copy.
        """

        cache = IdCache()
        if not self.exists():
            log.debug("No identity cache at %s, starting empty", self.path)
            return cache

        raw = self.path.read_bytes()
        try:
            document = _CacheDocument.model_validate_json(_decode(raw))
        except (OSError, EOFError, zlib.error, ValueError, ValidationError) as exc:
            shutil.copyfile(self.path, self.backup_path)
            log.warning(
                "Identity cache at %s is unreadable (%s); backed up to %s and starting empty",
                self.path,
                exc.__class__.__name__,
                self.backup_path,
            )
            return cache

        for record in document.records:
            cache.insert(record)
        cache.rebuild_title_index()
        cache.mark_clean()
        log.info("Loaded %s identity records from %s", len(cache), self.path)
        return cache

    def save(self, cache: IdCache) -> None:
        """Write the cache through a sibling temporary file and an atomic rename."""

        document = _CacheDocument(records=cache.snapshot_all())
        payload = document.model_dump_json().encode("utf-8")
        if self.compress:
            payload = gzip.compress(payload)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.temp_path
        tmp.write_bytes(payload)
        tmp.replace(self.path)
        log.debug("Saved %s identity records to %s", len(cache), self.path)

    def delete(self) -> None:
        for candidate in (self.path, self.temp_path, self.backup_path):
            candidate.unlink(missing_ok=True)


def _decode(raw: bytes) -> bytes:
    if raw.startswith(_GZIP_MAGIC):
        return gzip.decompress(raw)
    return raw
