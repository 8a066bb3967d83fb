"""In-process DataStore.

Holds every collection in a dict guarded by a re-entrant lock.  Values are
deep-copied on the way in and out so callers never share state with the
store, and an overwrite replaces the whole record atomically.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from kvmapper.domain.models.records import IndexRange, SaveRequest, SaveResult, StoredItem
from kvmapper.domain.repositories.store import DataStore


@dataclass(frozen=True)
class _Record:
    value: dict[str, Any]
    index: dict[str, Any]


def _new_key() -> str:
    return uuid4().hex


def _same_value(stored: Any, wanted: Any) -> bool:
    """Equality that also requires matching types, so True never matches 1."""
    if type(stored) is not type(wanted):
        return False
    if isinstance(stored, (list, tuple)):
        return len(stored) == len(wanted) and all(map(_same_value, stored, wanted))
    if isinstance(stored, dict):
        return stored.keys() == wanted.keys() and all(
            _same_value(stored[k], wanted[k]) for k in stored
        )
    return stored == wanted


class MemoryDataStore(DataStore):
    def __init__(self, key_factory: Callable[[], str] = _new_key) -> None:
        self._key_factory = key_factory
        self._collections: dict[str, dict[str, _Record]] = {}
        self._lock = threading.RLock()

    def save(self, request: SaveRequest) -> SaveResult:
        record = _Record(value=copy.deepcopy(request.value), index=dict(request.index))
        with self._lock:
            key = request.key if request.key is not None else self._key_factory()
            self._collections.setdefault(request.collection, {})[key] = record
        return SaveResult(key=key)

    def delete(self, collection: str, key: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(key, None)

    def find_by_key(self, collection: str, key: str) -> StoredItem | None:
        with self._lock:
            record = self._collections.get(collection, {}).get(key)
        if record is None:
            return None
        return StoredItem(key=key, data=copy.deepcopy(record.value))

    def find_by_index(
        self,
        collection: str,
        field: str,
        value: Any | IndexRange,
    ) -> list[StoredItem]:
        with self._lock:
            records = list(self._collections.get(collection, {}).items())

        indexed = [(key, record) for key, record in records if field in record.index]
        if isinstance(value, IndexRange):
            matches = sorted(
                ((key, record) for key, record in indexed if record.index[field] in value),
                key=lambda item: (item[1].index[field], item[0]),
            )
        else:
            matches = [
                (key, record)
                for key, record in indexed
                if _same_value(record.index[field], value)
            ]

        return [StoredItem(key=key, data=copy.deepcopy(record.value)) for key, record in matches]

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))
