"""Persistence package.

Importing this package registers every ORM mapper with Base.metadata
(required for Alembic and SQLAlchemy mapper configuration) and exports the
stores, the repository implementation and the factory.
"""

from kvmapper.infrastructure.persistence.models import *  # noqa: F401, F403
from kvmapper.infrastructure.persistence.models import __all__ as _orm_all
from kvmapper.infrastructure.persistence.repositories import (
    KeyValueRepository,
    get_repository,
)
from kvmapper.infrastructure.persistence.stores import MemoryDataStore, SqlDataStore

__all__ = _orm_all + [
    "KeyValueRepository",
    "MemoryDataStore",
    "SqlDataStore",
    "get_repository",
]
