"""Persistent test/function graph."""

from .schema import FunctionRecord, GraphStats, LinkRecord, TestRecord
from .store import GraphStore, GraphStoreError, LinkIntegrityError, SQLiteGraphStore

__all__ = [
    "FunctionRecord",
    "GraphStats",
    "GraphStore",
    "GraphStoreError",
    "LinkIntegrityError",
    "LinkRecord",
    "SQLiteGraphStore",
    "TestRecord",
]
