"""Tool integrations used by the workflows."""

from .pytest_runner import PytestResult, PytestStatus, collect_tests, run_pytest
from .vcs import FileDiff, GitError, GitRepository

__all__ = [
    "FileDiff",
    "GitError",
    "GitRepository",
    "PytestResult",
    "PytestStatus",
    "collect_tests",
    "run_pytest",
]
