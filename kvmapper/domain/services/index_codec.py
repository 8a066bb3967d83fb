"""Index codec: canonical, lexicographically sortable index values.

Timestamps are rendered as fixed-width UTC text so that byte order in the
store equals chronological order:

    2024-03-01T09:30:00.000000Z

Every other indexed field is stored as-is; lookups on those fields are
exact-match only and must use the representation the value was saved with.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

TIMESTAMP_FIELDS: tuple[str, ...] = ("created_at", "updated_at")


def format_timestamp(value: datetime) -> str:
    """Render a datetime as canonical index text (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return utc.isoformat(timespec="microseconds") + "Z"


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse canonical (or any ISO-8601) timestamp text into an aware datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def shadowed_fields(indexed_fields: Iterable[str]) -> list[str]:
    """Declared index fields that the canonical timestamp entries overwrite."""
    return [name for name in indexed_fields if name in TIMESTAMP_FIELDS]


def build_index(entity: Any, indexed_fields: Iterable[str]) -> dict[str, Any]:
    """Compute the full index map for a save.

    Declared fields are read straight off the entity; the canonical
    created_at/updated_at entries are written last, so a declared field
    with either name is shadowed.  The entity must already be stamped.
    """
    index: dict[str, Any] = {name: getattr(entity, name) for name in indexed_fields}
    for name in TIMESTAMP_FIELDS:
        index[name] = format_timestamp(getattr(entity, name))
    return index
