"""kvmapper: typed entities on a schemaless key-value store.

    from kvmapper import Entity, KeyValueRepository, MemoryDataStore, configure

    class User(Entity):
        name: str
        email: str | None = None

    users = KeyValueRepository(MemoryDataStore(), configure(User, indexed_fields=("email",)))
    alice = users.save(User(name="alice", email="alice@example.com"))
    users.find_first_by_email("alice@example.com")
"""

from kvmapper.domain.exceptions import (
    ConfigurationError,
    EnvelopeError,
    KVMapperError,
    MigrationError,
    UnindexedFieldError,
)
from kvmapper.domain.models import Entity
from kvmapper.domain.repositories import EntityConfig, configure, get_config
from kvmapper.domain.services import Migration, Migrator, Serializer
from kvmapper.infrastructure.persistence.repositories import KeyValueRepository, get_repository
from kvmapper.infrastructure.persistence.stores import MemoryDataStore, SqlDataStore

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "EnvelopeError",
    "Entity",
    "EntityConfig",
    "KVMapperError",
    "KeyValueRepository",
    "MemoryDataStore",
    "Migration",
    "MigrationError",
    "Migrator",
    "Serializer",
    "SqlDataStore",
    "UnindexedFieldError",
    "configure",
    "get_config",
    "get_repository",
]
