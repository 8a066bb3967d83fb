"""Domain services package."""

from .encryption import canonical_json, is_envelope, open_envelope, seal
from .index_codec import build_index, format_timestamp, parse_timestamp, shadowed_fields
from .migrations import Migration, Migrator
from .serialization import Serializer, materialize, stamp_and_serialize

__all__ = [
    "Migration",
    "Migrator",
    "Serializer",
    "build_index",
    "canonical_json",
    "format_timestamp",
    "is_envelope",
    "materialize",
    "open_envelope",
    "parse_timestamp",
    "seal",
    "shadowed_fields",
    "stamp_and_serialize",
]
