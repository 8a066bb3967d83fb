"""Per-entity-type persistence configuration.

An EntityConfig is built once per entity type and is immutable afterwards:
collection name, indexed fields, encryption switch, migrations and
serializer are fixed for the life of the process, and so is the finder
table derived from the indexed fields.  configure() keeps a
process-wide registry so every repository for a type shares one config.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, NamedTuple, TypeVar

import inflection

from kvmapper.domain.exceptions import ConfigurationError
from kvmapper.domain.models.entity import Entity
from kvmapper.domain.services.index_codec import shadowed_fields
from kvmapper.domain.services.migrations import Migration, Migrator
from kvmapper.domain.services.serialization import Serializer

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Entity)

Decryptor = Callable[[Mapping[str, Any]], Mapping[str, Any]]


class Finder(NamedTuple):
    """Index query behind a find_by_<field> or find_first_by_<field> name."""

    field: str
    first: bool


def tableize(type_name: str) -> str:
    """CamelCase type name -> pluralized snake_case collection name.

    >>> tableize("BlogPost")
    'blog_posts'
    >>> tableize("Person")
    'people'
    """
    return inflection.tableize(type_name)


def _finder_table(indexed_fields: Iterable[str]) -> dict[str, Finder]:
    table: dict[str, Finder] = {}
    for name in indexed_fields:
        table[f"find_by_{name}"] = Finder(name, first=False)
        table[f"find_first_by_{name}"] = Finder(name, first=True)
    return table


@dataclass(frozen=True)
class EntityConfig(Generic[T]):
    """Immutable persistence settings for one entity type.

    decrypt is an optional caller-supplied step applied to every stored map
    before migration.  Without it, an encrypted collection's envelopes reach
    the Migrator unchanged.
    """

    entity_type: type[T]
    collection_name: str = ""
    indexed_fields: tuple[str, ...] = ()
    encrypted: bool = False
    migrations: tuple[Migration, ...] = ()
    serializer: Serializer[T] = field(default_factory=Serializer)
    decrypt: Decryptor | None = None
    migrator: Migrator = field(init=False, repr=False, compare=False)
    finders: Mapping[str, Finder] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.collection_name:
            object.__setattr__(self, "collection_name", tableize(self.entity_type.__name__))
        object.__setattr__(self, "indexed_fields", tuple(self.indexed_fields))
        object.__setattr__(self, "migrations", tuple(self.migrations))
        object.__setattr__(self, "migrator", Migrator(self.collection_name, self.migrations))
        object.__setattr__(self, "finders", MappingProxyType(_finder_table(self.indexed_fields)))

        for name in shadowed_fields(self.indexed_fields):
            logger.warning(
                "Indexed field %r on %s is shadowed by the canonical timestamp index",
                name,
                self.collection_name,
            )

    def signature(self) -> tuple[Any, ...]:
        """Comparable summary used to detect conflicting re-configuration."""
        return (
            self.entity_type,
            self.collection_name,
            self.indexed_fields,
            self.encrypted,
            tuple((type(m), m.version) for m in self.migrations),
            type(self.serializer),
            self.decrypt,
        )


_registry: dict[type, EntityConfig[Any]] = {}
_registry_lock = threading.Lock()


def configure(
    entity_type: type[T],
    *,
    collection_name: str = "",
    indexed_fields: Iterable[str] = (),
    encrypted: bool = False,
    migrations: Iterable[Migration] = (),
    serializer: Serializer[T] | None = None,
    decrypt: Decryptor | None = None,
) -> EntityConfig[T]:
    """Register (or fetch) the process-wide config for entity_type.

    The first call wins.  Later calls with identical options return the
    same instance; calls with different options raise ConfigurationError,
    since switching e.g. the encryption flag would mix record shapes within
    one collection.  decrypt is compared with ==, so a plain function only
    matches itself; pass the same callable or one with value equality.
    """
    candidate = EntityConfig(
        entity_type=entity_type,
        collection_name=collection_name,
        indexed_fields=tuple(indexed_fields),
        encrypted=encrypted,
        migrations=tuple(migrations),
        serializer=serializer or Serializer(),
        decrypt=decrypt,
    )
    with _registry_lock:
        existing = _registry.get(entity_type)
        if existing is None:
            _registry[entity_type] = candidate
            return candidate
    if existing.signature() != candidate.signature():
        raise ConfigurationError(
            f"{entity_type.__name__} is already configured with different options"
        )
    return existing


def get_config(entity_type: type[T]) -> EntityConfig[T]:
    """Return the registered config for entity_type."""
    with _registry_lock:
        config = _registry.get(entity_type)
    if config is None:
        raise ConfigurationError(f"{entity_type.__name__} has not been configured")
    return config
