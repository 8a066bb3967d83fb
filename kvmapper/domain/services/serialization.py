"""Serializer: conversion between entities and flat attribute maps.

The Serializer class is the per-entity-type strategy (override serialize()
to exclude or rename fields).  The module functions implement the parts
that are not negotiable per type: save-time stamping, sparse storage and
the read pipeline.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

from kvmapper.domain.models.entity import Entity
from kvmapper.domain.services.index_codec import format_timestamp, parse_timestamp
from kvmapper.domain.services.migrations import Migrator

T = TypeVar("T", bound=Entity)


class Serializer(Generic[T]):
    """Default strategy: every model field except id, dumped in JSON mode."""

    exclude: frozenset[str] = frozenset({"id"})

    def serialize(self, entity: T) -> dict[str, Any]:
        return entity.model_dump(mode="json", exclude=set(self.exclude))

    def deserialize(self, entity_type: type[T], attributes: Mapping[str, Any]) -> T:
        return entity_type.model_validate(dict(attributes))


def stamp_and_serialize(entity: T, serializer: Serializer[T], now: datetime) -> dict[str, Any]:
    """Stamp timestamps onto the entity and return its storable attribute map.

    created_at is kept if already set; updated_at is always ``now``.  None
    values are dropped (absent means never set).
    """
    created_at = entity.created_at or now
    entity.created_at = created_at
    entity.updated_at = now

    attributes = {
        name: value
        for name, value in serializer.serialize(entity).items()
        if value is not None
    }
    attributes["created_at"] = format_timestamp(created_at)
    attributes["updated_at"] = format_timestamp(now)
    return attributes


def materialize(
    entity_type: type[T],
    serializer: Serializer[T],
    migrator: Migrator,
    key: str,
    raw: Mapping[str, Any],
) -> T:
    """Build an entity from a stored record.

    Every field comes from the migrated map except created_at/updated_at,
    which are taken from the raw map as stored.  A migration that renames
    or reformats the timestamp keys is therefore not reflected on them.
    """
    migrated = migrator.migrate(raw)
    entity = serializer.deserialize(entity_type, migrated)
    entity.id = key
    if raw.get("created_at"):
        entity.created_at = parse_timestamp(raw["created_at"])
    if raw.get("updated_at"):
        entity.updated_at = parse_timestamp(raw["updated_at"])
    return entity
