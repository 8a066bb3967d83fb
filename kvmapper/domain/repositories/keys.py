"""Encryption key collaborator interfaces.

Key material, rotation and storage are managed outside this package.
Exactly one key is active for new encryptions at any time; envelopes
written earlier may reference keys that have since been retired.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class EncryptionKey(Protocol):
    id: str

    def encrypt(self, plaintext: bytes) -> bytes: ...


class KeyProvider(ABC):
    @abstractmethod
    def find_active(self) -> EncryptionKey:
        """Return the key to use for new encryptions."""
