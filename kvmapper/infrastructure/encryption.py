"""Fernet-backed encryption keys and a static in-process key provider.

Key material is generated and stored outside this package; these classes
only hold it for the lifetime of the process.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from cryptography.fernet import Fernet

from kvmapper.domain.exceptions import ConfigurationError
from kvmapper.domain.repositories.keys import KeyProvider
from kvmapper.domain.services.encryption import open_envelope

logger = logging.getLogger(__name__)


class FernetEncryptionKey:
    """An identified Fernet key (AES-128-CBC + HMAC-SHA256)."""

    def __init__(self, id: str, secret: bytes | str) -> None:
        self.id = id
        self._fernet = Fernet(secret)

    @classmethod
    def generate(cls, id: str) -> FernetEncryptionKey:
        return cls(id, Fernet.generate_key())

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._fernet.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return self._fernet.decrypt(ciphertext)

    def __repr__(self) -> str:
        return f"FernetEncryptionKey(id={self.id!r})"


class StaticKeyProvider(KeyProvider):
    """Keeps a fixed set of keys with exactly one active.

    Retired keys stay resolvable through find_by_id() so envelopes written
    under them can still be opened.
    """

    def __init__(self, keys: Iterable[FernetEncryptionKey], active_id: str) -> None:
        self._keys = {key.id: key for key in keys}
        if active_id not in self._keys:
            raise ConfigurationError(f"Active key {active_id!r} is not among the provided keys")
        self._active_id = active_id
        self._lock = threading.Lock()

    def find_active(self) -> FernetEncryptionKey:
        with self._lock:
            return self._keys[self._active_id]

    def find_by_id(self, key_id: str) -> FernetEncryptionKey | None:
        with self._lock:
            return self._keys.get(key_id)

    def rotate(self, key: FernetEncryptionKey) -> None:
        """Add key and make it the active key for new encryptions."""
        with self._lock:
            self._keys[key.id] = key
            retired, self._active_id = self._active_id, key.id
        logger.info("Rotated active encryption key %s -> %s", retired, key.id)


@dataclass(frozen=True)
class EnvelopeDecryptor:
    """Decrypt step for EntityConfig.decrypt backed by provider's keys.

    Two decryptors over the same provider compare equal, so repeated
    configure() calls with a fresh instance are not seen as a conflict.
    """

    provider: StaticKeyProvider

    def __call__(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return open_envelope(data, self.provider.find_by_id)
