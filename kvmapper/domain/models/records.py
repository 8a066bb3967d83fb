"""Wire shapes exchanged with the DataStore collaborator.

These are pure value objects: no persistence or store-specific concerns.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class SaveRequest(BaseModel):
    """One record write.

    key is None for a keyed-assignment write (the store chooses the key);
    otherwise the record at that exact key is overwritten in full.
    value is either the plain attribute map or an encryption envelope.
    """

    model_config = ConfigDict(frozen=True)

    collection: str
    value: dict[str, Any]
    index: dict[str, Any]
    key: str | None = None


class SaveResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str


class StoredItem(BaseModel):
    """A record as returned by key or index lookups."""

    model_config = ConfigDict(frozen=True)

    key: str
    data: dict[str, Any]


class IndexRange(BaseModel):
    """Inclusive range over canonical (lexicographically ordered) index values."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str

    def __contains__(self, value: object) -> bool:
        return isinstance(value, str) and self.start <= value <= self.end


class EncryptionEnvelope(BaseModel):
    """Stored in place of the attribute map for encrypted entity types.

    encrypted_data is the base64 text of the ciphertext produced by the key
    named by encryption_key_id.
    """

    model_config = ConfigDict(frozen=True)

    encryption_key_id: str
    encrypted_data: str
