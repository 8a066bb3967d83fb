"""Key-value implementation of Repository.

KeyValueRepository orchestrates the domain services for one entity type:

  save:  stamp + serialize -> index map -> (envelope) -> DataStore.save
  read:  DataStore lookup -> (decrypt step) -> migrate -> deserialize
         -> stamp id and timestamps

Finders for indexed fields come from the registration table on EntityConfig,
built once per entity type and shared by every repository for it.  They are
reachable as find_by(field, value) / find_first_by(field, value) and under
the names find_by_<field> / find_first_by_<field>.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from functools import partial
from typing import Any, TypeVar

from kvmapper.domain.exceptions import ConfigurationError, UnindexedFieldError
from kvmapper.domain.models.entity import Entity
from kvmapper.domain.models.records import IndexRange, SaveRequest, StoredItem
from kvmapper.domain.repositories.base import Repository
from kvmapper.domain.repositories.config import EntityConfig
from kvmapper.domain.repositories.keys import KeyProvider
from kvmapper.domain.repositories.store import DataStore
from kvmapper.domain.services.encryption import seal
from kvmapper.domain.services.index_codec import build_index, format_timestamp
from kvmapper.domain.services.migrations import VERSION_KEY
from kvmapper.domain.services.serialization import materialize, stamp_and_serialize

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Entity)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueRepository(Repository[T]):
    def __init__(
        self,
        store: DataStore,
        config: EntityConfig[T],
        key_provider: KeyProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if config.encrypted and key_provider is None:
            raise ConfigurationError(
                f"{config.collection_name} is encrypted but no key provider was given"
            )
        self._store = store
        self._config = config
        self._key_provider = key_provider
        self._clock = clock

    @property
    def config(self) -> EntityConfig[T]:
        return self._config

    @property
    def collection_name(self) -> str:
        return self._config.collection_name

    @property
    def indexed_fields(self) -> tuple[str, ...]:
        return self._config.indexed_fields

    # --- writes ---

    def save(self, entity: T) -> T:
        config = self._config
        attributes = stamp_and_serialize(entity, config.serializer, self._clock())
        if config.migrator.current_version:
            attributes[VERSION_KEY] = config.migrator.current_version

        if config.encrypted:
            value = seal(attributes, self._key_provider).model_dump()
        else:
            value = attributes

        request = SaveRequest(
            collection=config.collection_name,
            value=value,
            index=build_index(entity, config.indexed_fields),
            key=entity.id,
        )
        result = self._store.save(request)
        if entity.id is None:
            entity.id = result.key
        logger.debug("Saved %s/%s", config.collection_name, entity.id)
        return entity

    def delete(self, entity: T) -> None:
        self._store.delete(self._config.collection_name, entity.id)
        logger.debug("Deleted %s/%s", self._config.collection_name, entity.id)

    # --- reads ---

    def find_by_id(self, id: str) -> T | None:
        item = self._store.find_by_key(self._config.collection_name, id)
        return self._load(item) if item else None

    def find_by(self, field: str, value: Any) -> list[T]:
        return self._find_by_index(self._indexed(field), value)

    def find_first_by(self, field: str, value: Any) -> T | None:
        return self._find_first_by_index(self._indexed(field), value)

    def find_by_created_at(self, start: datetime, end: datetime) -> list[T]:
        return self._find_by_index("created_at", self._time_range(start, end))

    def find_by_updated_at(self, start: datetime, end: datetime) -> list[T]:
        return self._find_by_index("updated_at", self._time_range(start, end))

    def __getattr__(self, name: str) -> Callable[[Any], Any]:
        config = self.__dict__.get("_config")
        finder = config.finders.get(name) if config is not None else None
        if finder is not None:
            query = self._find_first_by_index if finder.first else self._find_by_index
            return partial(query, finder.field)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # --- internals ---

    def _indexed(self, field: str) -> str:
        if field not in self._config.indexed_fields:
            raise UnindexedFieldError(self._config.collection_name, field)
        return field

    def _find_by_index(self, field: str, value: Any) -> list[T]:
        results = self._store.find_by_index(self._config.collection_name, field, value)
        return [self._load(item) for item in results or ()]

    def _find_first_by_index(self, field: str, value: Any) -> T | None:
        results = self._find_by_index(field, value)
        return results[0] if results else None

    @staticmethod
    def _time_range(start: datetime, end: datetime) -> IndexRange:
        return IndexRange(start=format_timestamp(start), end=format_timestamp(end))

    def _load(self, item: StoredItem) -> T:
        config = self._config
        raw = item.data
        if config.decrypt is not None:
            raw = config.decrypt(raw)
        return materialize(config.entity_type, config.serializer, config.migrator, item.key, raw)
