"""Diff parsing and changed-function resolution."""

from .declarations import SyntaxAnalyzer, parse_declarations
from .diff_hunks import ChangedRange, ChangeType, parse_hunks
from .function_index import Declaration, FunctionRangeIndex, ranges_overlap
from .resolver import ChangedFile, ChangedFunctionKey, ImpactResolver, Resolution, resolve_changed_functions

__all__ = [
    "ChangeType",
    "ChangedFile",
    "ChangedFunctionKey",
    "ChangedRange",
    "Declaration",
    "FunctionRangeIndex",
    "ImpactResolver",
    "Resolution",
    "SyntaxAnalyzer",
    "parse_declarations",
    "parse_hunks",
    "ranges_overlap",
    "resolve_changed_functions",
]
