"""DataStore collaborator interface.

Timeouts, retries and connection handling belong to implementations of this
interface; the repository layer adds none and lets their exceptions
propagate unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from kvmapper.domain.models.records import IndexRange, SaveRequest, SaveResult, StoredItem


class DataStore(ABC):
    """A schemaless key-value store with secondary indexes."""

    @abstractmethod
    def save(self, request: SaveRequest) -> SaveResult:
        """Write a record.

        When request.key is None the store assigns a new key; otherwise the
        record at request.key is replaced in full (last write wins).  The
        record's index entries are replaced by request.index.
        """

    @abstractmethod
    def delete(self, collection: str, key: str) -> None:
        """Remove the record at key.  Behaviour for a missing key is store-defined."""

    @abstractmethod
    def find_by_key(self, collection: str, key: str) -> StoredItem | None:
        """Return the record at key, or None."""

    @abstractmethod
    def find_by_index(
        self,
        collection: str,
        field: str,
        value: Any | IndexRange,
    ) -> list[StoredItem] | None:
        """Return records whose index entry for field matches.

        An IndexRange matches inclusively and results come back in index
        order; any other value is an exact match in store-defined order.
        """
