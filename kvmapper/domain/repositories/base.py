"""Generic repository base interface.

Repository[T] is the root abstraction for all data-access interfaces in this
package.  The key-value implementation lives in
kvmapper/infrastructure/persistence/repositories/ and is wired at the
application boundary with its DataStore and (optionally) KeyProvider.

Design notes:
  - All methods are synchronous; each is a single request/response cycle
    against the store.
  - T is the domain entity type (never a stored record).
  - save() covers both create and update: an entity without an id is
    created, one with an id overwrites the record at that key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

T = TypeVar("T")


class Repository(ABC, Generic[T]):
    """Abstract persistence interface for an entity type."""

    @abstractmethod
    def find_by_id(self, id: str) -> T | None:
        """Return the entity stored under the given key, or None if not found."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist the entity's current state and return it (id and timestamps populated)."""

    @abstractmethod
    def delete(self, entity: T) -> None:
        """Remove the entity's record."""
