"""Concrete DataStore implementations."""

from .memory import MemoryDataStore
from .sql import SqlDataStore, encode_index_value

__all__ = ["MemoryDataStore", "SqlDataStore", "encode_index_value"]
