"""Read-time schema migration.

A Migrator is bound to one collection and upgrades attribute maps of any
historical shape to the current one before an entity is constructed.  Old
records are never rewritten in bulk; they are migrated every time they are
read, and re-persisted in the new shape only when the application saves
them again.

Shape recognition is driven by an integer "_schema_version" attribute.  The
leading underscore keeps it out of reach of entity fields (pydantic treats
underscored names as private), so an entity may declare its own "version":

  - a record without "_schema_version" is version 0 (written before any migration
    existed for the collection);
  - each registered Migration with a higher version is applied in order and
    "_schema_version" is stamped after it;
  - a record already at current_version passes through untouched, which
    makes migrate() idempotent.

With no migrations registered the Migrator is the identity transform and
the "_schema_version" key is neither read nor written.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from kvmapper.domain.exceptions import ConfigurationError, MigrationError

logger = logging.getLogger(__name__)

VERSION_KEY = "_schema_version"


class Migration(ABC):
    """One schema step for a collection.

    Subclasses set a positive integer ``version`` and implement migrate().
    migrate() receives a private copy of the map and may mutate and return
    it; raising any exception aborts the read with MigrationError.

    Example:
        class SplitName(Migration):
            version = 1

            def migrate(self, attributes):
                first, _, last = attributes.pop("name", "").partition(" ")
                attributes["first_name"] = first
                attributes["last_name"] = last
                return attributes
    """

    version: int = 0

    @abstractmethod
    def migrate(self, attributes: dict[str, Any]) -> Mapping[str, Any]:
        """Return the attribute map upgraded to this migration's version."""


class Migrator:
    def __init__(self, collection_name: str, migrations: Iterable[Migration] = ()) -> None:
        ordered = sorted(migrations, key=lambda m: m.version)
        seen: set[int] = set()
        for migration in ordered:
            version = migration.version
            if isinstance(version, bool) or not isinstance(version, int) or version < 1:
                raise ConfigurationError(
                    f"{type(migration).__name__}.version must be a positive integer, "
                    f"got {version!r}"
                )
            if version in seen:
                raise ConfigurationError(
                    f"Duplicate migration version {version} for collection {collection_name!r}"
                )
            seen.add(version)

        self.collection_name = collection_name
        self._migrations: tuple[Migration, ...] = tuple(ordered)

    @property
    def migrations(self) -> tuple[Migration, ...]:
        return self._migrations

    @property
    def current_version(self) -> int:
        """Version stamped on freshly written records (0 when nothing is registered)."""
        return self._migrations[-1].version if self._migrations else 0

    def migrate(self, attributes: Mapping[str, Any]) -> dict[str, Any]:
        """Upgrade a raw stored map to the current shape.

        The input is never mutated.  Raises MigrationError rather than
        returning a partially migrated or truncated map.
        """
        migrated = dict(attributes)
        if not self._migrations:
            return migrated

        version = self._version_of(migrated)
        if version > self.current_version:
            raise MigrationError(
                self.collection_name,
                f"record version {version} is newer than the latest known "
                f"migration ({self.current_version})",
                version=version,
            )

        for migration in self._migrations:
            if migration.version <= version:
                continue
            try:
                result = migration.migrate(dict(migrated))
            except MigrationError:
                raise
            except Exception as exc:
                raise MigrationError(
                    self.collection_name,
                    f"{type(migration).__name__} failed: {exc}",
                    version=migration.version,
                ) from exc
            if not isinstance(result, Mapping):
                raise MigrationError(
                    self.collection_name,
                    f"{type(migration).__name__} returned {type(result).__name__}, "
                    "expected a mapping",
                    version=migration.version,
                )
            migrated = dict(result)
            migrated[VERSION_KEY] = migration.version
            logger.debug(
                "Migrated %s record to version %d", self.collection_name, migration.version
            )

        return migrated

    def _version_of(self, attributes: Mapping[str, Any]) -> int:
        version = attributes.get(VERSION_KEY, 0)
        if version is None:
            return 0
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise MigrationError(
                self.collection_name,
                f"unrecognised record version {version!r}",
            )
        return version
