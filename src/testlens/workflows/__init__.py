"""LEARN and SELECT orchestration."""

from .learn import LearnOptions, LearnOutcome, LearnWorkflow
from .select import SelectionMode, SelectOptions, SelectOutcome, SelectWorkflow

__all__ = [
    "LearnOptions",
    "LearnOutcome",
    "LearnWorkflow",
    "SelectOptions",
    "SelectOutcome",
    "SelectWorkflow",
    "SelectionMode",
]
