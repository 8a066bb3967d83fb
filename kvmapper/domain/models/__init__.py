"""Domain models package.

Import from this package rather than individual modules.
"""

from .entity import Entity
from .records import (
    EncryptionEnvelope,
    IndexRange,
    SaveRequest,
    SaveResult,
    StoredItem,
)

__all__ = [
    "Entity",
    "EncryptionEnvelope",
    "IndexRange",
    "SaveRequest",
    "SaveResult",
    "StoredItem",
]
