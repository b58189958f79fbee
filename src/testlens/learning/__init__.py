"""Coverage-driven learning of test-to-function links."""

from .discovery import DiscoveredTest, TestDiscoveryError, load_test_report, parse_collect_output, parse_test_report
from .learner import CoverageLearner, LearnResult
from .snapshot import CoverageSnapshot, CoverageSnapshotError, load_snapshot

__all__ = [
    "CoverageLearner",
    "CoverageSnapshot",
    "CoverageSnapshotError",
    "DiscoveredTest",
    "LearnResult",
    "TestDiscoveryError",
    "load_snapshot",
    "load_test_report",
    "parse_collect_output",
    "parse_test_report",
]
