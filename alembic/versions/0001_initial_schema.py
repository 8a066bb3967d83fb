"""Initial schema — record and index entry tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "kv_records",
        sa.Column("collection", sa.String(255), primary_key=True),
        sa.Column("key", sa.String(255), primary_key=True),
        sa.Column("value", sa.JSON, nullable=False),
    )

    op.create_table(
        "kv_index_entries",
        sa.Column("entry_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("collection", sa.String(255), nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("field", sa.String(255), nullable=False),
        sa.Column("value", sa.Text, nullable=False),
        sa.ForeignKeyConstraint(
            ["collection", "key"],
            ["kv_records.collection", "kv_records.key"],
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_kv_index_entries_lookup",
        "kv_index_entries",
        ["collection", "field", "value"],
    )


def downgrade() -> None:
    op.drop_index("ix_kv_index_entries_lookup", table_name="kv_index_entries")
    op.drop_table("kv_index_entries")
    op.drop_table("kv_records")
