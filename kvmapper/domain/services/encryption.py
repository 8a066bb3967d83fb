"""Encryption envelope: the stored form of an encrypted entity's attributes.

Only the write side is wired into the repository.  Reads of an encrypted
collection hand the envelope map onward unchanged unless the entity's
configuration supplies a decrypt step; open_envelope() is the building
block for writing one.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from kvmapper.domain.exceptions import EnvelopeError
from kvmapper.domain.models.records import EncryptionEnvelope

if TYPE_CHECKING:
    from kvmapper.domain.repositories.keys import KeyProvider

ENVELOPE_FIELDS = frozenset(EncryptionEnvelope.model_fields)


def canonical_json(attributes: Mapping[str, Any]) -> str:
    """Deterministic JSON text (sorted keys, no whitespace) for encryption."""
    return json.dumps(attributes, sort_keys=True, separators=(",", ":"), default=str)


def seal(attributes: Mapping[str, Any], key_provider: KeyProvider) -> EncryptionEnvelope:
    """Encrypt an attribute map under the provider's currently active key."""
    key = key_provider.find_active()
    ciphertext = key.encrypt(canonical_json(attributes).encode("utf-8"))
    return EncryptionEnvelope(
        encryption_key_id=str(key.id),
        encrypted_data=base64.b64encode(ciphertext).decode("ascii"),
    )


def is_envelope(data: Mapping[str, Any]) -> bool:
    return set(data) == ENVELOPE_FIELDS


def open_envelope(data: Mapping[str, Any], find_key: Callable[[str], Any]) -> dict[str, Any]:
    """Decrypt an envelope map back into the plain attribute map.

    find_key maps an encryption_key_id to a key object exposing
    decrypt(bytes) -> bytes, or None when the id is unknown (e.g. a retired
    key that has since been destroyed).
    """
    if not is_envelope(data):
        raise EnvelopeError(f"Not an encryption envelope: keys={sorted(data)}")
    envelope = EncryptionEnvelope.model_validate(dict(data))

    key = find_key(envelope.encryption_key_id)
    if key is None:
        raise EnvelopeError(f"Unknown encryption key {envelope.encryption_key_id!r}")

    try:
        ciphertext = base64.b64decode(envelope.encrypted_data, validate=True)
    except binascii.Error as exc:
        raise EnvelopeError("encrypted_data is not valid base64") from exc

    attributes = json.loads(key.decrypt(ciphertext).decode("utf-8"))
    if not isinstance(attributes, dict):
        raise EnvelopeError("Decrypted payload is not an attribute map")
    return attributes
