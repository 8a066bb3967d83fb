"""Concrete repository implementations and the repository factory."""

from __future__ import annotations

from kvmapper.domain.repositories.config import get_config
from kvmapper.domain.repositories.keys import KeyProvider
from kvmapper.domain.repositories.store import DataStore

from .keyvalue import KeyValueRepository


def get_repository(
    entity_type: type,
    store: DataStore,
    key_provider: KeyProvider | None = None,
) -> KeyValueRepository:
    """Construct a repository for an entity type registered with configure().

        configure(User, indexed_fields=("email",))
        users = get_repository(User, store)
        alice = users.find_first_by_email("alice@example.com")
    """
    return KeyValueRepository(store, get_config(entity_type), key_provider=key_provider)


__all__ = [
    "KeyValueRepository",
    "get_repository",
]
