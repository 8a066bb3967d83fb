"""ORM models backing SqlDataStore: one row per record, one per index entry."""

from __future__ import annotations

from sqlalchemy import JSON, ForeignKeyConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kvmapper.infrastructure.database import Base


class RecordRow(Base):
    """A stored record.  value holds the attribute map or encryption envelope."""

    __tablename__ = "kv_records"

    collection: Mapped[str] = mapped_column(String(255), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)

    index_entries: Mapped[list["IndexEntryRow"]] = relationship(
        back_populates="record", cascade="all, delete-orphan"
    )


class IndexEntryRow(Base):
    """One secondary index entry.

    value is JSON text so that equality is type-aware ("1" != 1) while
    canonical timestamp strings still compare in chronological order.
    """

    __tablename__ = "kv_index_entries"
    __table_args__ = (
        ForeignKeyConstraint(
            ["collection", "key"],
            ["kv_records.collection", "kv_records.key"],
            ondelete="CASCADE",
        ),
        Index("ix_kv_index_entries_lookup", "collection", "field", "value"),
    )

    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    field: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    record: Mapped[RecordRow] = relationship(back_populates="index_entries")
