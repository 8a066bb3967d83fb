"""SQLAlchemy implementation of DataStore.

Records live in kv_records (one JSON value per collection/key) and their
index entries in kv_index_entries.  Every operation runs in its own session
and transaction taken from the injected sessionmaker, so one store instance
can be shared across threads.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from kvmapper.domain.models.records import IndexRange, SaveRequest, SaveResult, StoredItem
from kvmapper.domain.repositories.store import DataStore
from kvmapper.infrastructure.database import SessionLocal
from kvmapper.infrastructure.persistence.models.records import IndexEntryRow, RecordRow

logger = logging.getLogger(__name__)


def encode_index_value(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class SqlDataStore(DataStore):
    def __init__(self, session_factory: sessionmaker[Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def save(self, request: SaveRequest) -> SaveResult:
        key = request.key if request.key is not None else uuid4().hex
        with self._session_factory.begin() as session:
            row = session.get(RecordRow, (request.collection, key))
            if row is None:
                row = RecordRow(collection=request.collection, key=key)
                session.add(row)
            row.value = dict(request.value)
            row.index_entries = [
                IndexEntryRow(field=field, value=encode_index_value(value))
                for field, value in request.index.items()
            ]
        logger.debug("Wrote %s/%s", request.collection, key)
        return SaveResult(key=key)

    def delete(self, collection: str, key: str) -> None:
        with self._session_factory.begin() as session:
            row = session.get(RecordRow, (collection, key))
            if row is not None:
                session.delete(row)

    def find_by_key(self, collection: str, key: str) -> StoredItem | None:
        with self._session_factory() as session:
            row = session.get(RecordRow, (collection, key))
            return StoredItem(key=row.key, data=dict(row.value)) if row else None

    def find_by_index(
        self,
        collection: str,
        field: str,
        value: Any | IndexRange,
    ) -> list[StoredItem]:
        stmt = (
            select(RecordRow)
            .join(RecordRow.index_entries)
            .where(RecordRow.collection == collection, IndexEntryRow.field == field)
        )
        if isinstance(value, IndexRange):
            stmt = stmt.where(
                IndexEntryRow.value.between(
                    encode_index_value(value.start), encode_index_value(value.end)
                )
            ).order_by(IndexEntryRow.value, RecordRow.key)
        else:
            stmt = stmt.where(IndexEntryRow.value == encode_index_value(value)).order_by(
                RecordRow.key
            )

        with self._session_factory() as session:
            rows = session.scalars(stmt).all()
            return [StoredItem(key=row.key, data=dict(row.value)) for row in rows]
