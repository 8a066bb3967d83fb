"""Domain exceptions.

Store failures are never wrapped: whatever the DataStore collaborator raises
reaches the repository's caller unchanged.  "Not found" is a None result,
not an exception.
"""

from __future__ import annotations


class KVMapperError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(KVMapperError):
    """An entity type or repository was configured inconsistently."""


class UnindexedFieldError(ConfigurationError):
    """A finder was requested for a field the entity type does not index."""

    def __init__(self, collection: str, field: str) -> None:
        super().__init__(f"Field {field!r} is not indexed on collection {collection!r}")
        self.collection = collection
        self.field = field


class MigrationError(KVMapperError):
    """A stored attribute map could not be brought to the current shape."""

    def __init__(self, collection: str, message: str, version: int | None = None) -> None:
        super().__init__(f"[{collection}] {message}")
        self.collection = collection
        self.version = version


class EnvelopeError(KVMapperError):
    """An encryption envelope is malformed or references an unknown key."""
