"""Domain repository interfaces and entity configuration.

The concrete key-value repository lives in
kvmapper/infrastructure/persistence/repositories/ and is wired at the
application boundary via dependency injection.
"""

from .base import Repository
from .config import EntityConfig, configure, get_config, tableize
from .keys import EncryptionKey, KeyProvider
from .store import DataStore

__all__ = [
    "Repository",
    "DataStore",
    "EncryptionKey",
    "KeyProvider",
    "EntityConfig",
    "configure",
    "get_config",
    "tableize",
]
