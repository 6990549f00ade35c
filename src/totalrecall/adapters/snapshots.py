"""JSON snapshots of collected source data and dry-run distribution output.

Layout under the cache directory::

    collect/{source}/{data_type}.json
    distribute/{source}/{section}.json

Each file is a JSON array of items. A snapshot that no longer parses is
deleted and reported as a miss.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from functools import cache
from logging import getLogger
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter, ValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from totalrecall.domain.model import DataType

log = getLogger(__name__)


@cache
def _adapter_for(item_type: type[Any]) -> TypeAdapter[list[Any]]:
    return TypeAdapter(list[item_type])


_ANY_LIST: TypeAdapter[list[Any]] = TypeAdapter(list[Any])


@dataclass(slots=True)
class JsonSnapshotStore:
    collect_dir: Path
    distribute_dir: Path

    @classmethod
    def in_directory(cls, cache_dir: Path) -> JsonSnapshotStore:
        return cls(collect_dir=cache_dir / "collect", distribute_dir=cache_dir / "distribute")

    def collect_path(self, source: str, data_type: DataType) -> Path:
        return self.collect_dir / source.lower() / f"{data_type}.json"

    def distribute_path(self, source: str, name: str) -> Path:
        return self.distribute_dir / source.lower() / f"{name}.json"

    def load_collect[T](self, source: str, data_type: DataType, item_type: type[T]) -> list[T] | None:
        path = self.collect_path(source, data_type)
        if not path.is_file():
            return None
        try:
            items = _adapter_for(item_type).validate_json(path.read_bytes())
        except (ValidationError, ValueError) as exc:
            log.warning("Discarding corrupt snapshot %s: %s", path, exc)
            path.unlink(missing_ok=True)
            return None
        log.debug("Loaded %s %s item(s) for %s from %s", len(items), data_type, source, path)
        return items

    def save_collect(self, source: str, data_type: DataType, items: Sequence[object]) -> None:
        _write(self.collect_path(source, data_type), items)

    def save_distribute(self, source: str, name: str, items: Sequence[object]) -> None:
        _write(self.distribute_path(source, name), items)

    def clear_distribute(self, source: str) -> None:
        shutil.rmtree(self.distribute_dir / source.lower(), ignore_errors=True)

    def clear(self) -> None:
        for directory in (self.collect_dir, self.distribute_dir):
            shutil.rmtree(directory, ignore_errors=True)


def _write(path: Path, items: Sequence[object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + ".tmp")
    temp_path.write_bytes(_ANY_LIST.dump_json(list(items), indent=2))
    os.replace(temp_path, path)


__all__ = ["JsonSnapshotStore"]
