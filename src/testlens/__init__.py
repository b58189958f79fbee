"""Function-level test impact analysis: learn which tests exercise which functions."""

from .analysis import ChangedFile, ChangedFunctionKey, ChangedRange, ChangeType, ImpactResolver, parse_hunks
from .graph import GraphStore, SQLiteGraphStore
from .learning import CoverageLearner, CoverageSnapshot, DiscoveredTest

__all__ = [
    "ChangeType",
    "ChangedFile",
    "ChangedFunctionKey",
    "ChangedRange",
    "CoverageLearner",
    "CoverageSnapshot",
    "DiscoveredTest",
    "GraphStore",
    "ImpactResolver",
    "SQLiteGraphStore",
    "parse_hunks",
]
