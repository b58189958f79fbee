"""Build test-to-function links from a whole-suite coverage snapshot.

Coverage is collected once for the entire run, so it cannot say which test
executed which function.  Every test of every discovered test file is linked
to every covered function of every non-test source file.  Finer attribution
needs per-test coverage isolation, which this learner does not attempt.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..graph.schema import FunctionRecord
from ..graph.store import GraphStore
from ..paths import is_test_file, normalise_path
from .discovery import DiscoveredTest
from .snapshot import CoverageSnapshot

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class LearnResult:
    """Counters reported after a learning pass."""

    functions_upserted: int = 0
    tests_upserted: int = 0
    links_created: int = 0
    links_existing: int = 0
    test_files: int = 0
    source_files: int = 0


def group_tests_by_file(tests: Iterable[DiscoveredTest]) -> Dict[str, List[DiscoveredTest]]:
    grouped: Dict[str, List[DiscoveredTest]] = defaultdict(list)
    for test in tests:
        grouped[normalise_path(test.file)].append(test)
    return dict(grouped)


class CoverageLearner:
    """Persist the coverage snapshot of one run into a :class:`GraphStore`."""

    def __init__(self, store: GraphStore) -> None:
        self.store = store

    def learn(
        self,
        snapshot: CoverageSnapshot,
        discovered_tests: Iterable[DiscoveredTest],
        *,
        commit_hash: Optional[str] = None,
    ) -> LearnResult:
        result = LearnResult()
        tests_by_file = group_tests_by_file(discovered_tests)
        result.test_files = len(tests_by_file)

        with self.store.transaction():
            functions = self._upsert_covered_functions(snapshot, commit_hash, result)
            if not functions:
                LOGGER.warning("Coverage snapshot contains no executed source functions")
            for test_file, tests in sorted(tests_by_file.items()):
                for test in tests:
                    record = self.store.upsert_test(test_file, test.name)
                    result.tests_upserted += 1
                    for function in functions:
                        if self.store.create_link(record.id, function.id) is None:
                            result.links_existing += 1
                        else:
                            result.links_created += 1
                LOGGER.debug(
                    "Linked %d test(s) in %s to %d function(s)",
                    len(tests),
                    test_file,
                    len(functions),
                )

        LOGGER.info(
            "Learned %d function(s), %d test(s), %d new link(s)",
            result.functions_upserted,
            result.tests_upserted,
            result.links_created,
        )
        return result

    def _upsert_covered_functions(
        self,
        snapshot: CoverageSnapshot,
        commit_hash: Optional[str],
        result: LearnResult,
    ) -> List[FunctionRecord]:
        records: List[FunctionRecord] = []
        for path in snapshot.paths():
            if is_test_file(path):
                continue
            covered = snapshot.covered_functions(path)
            if not covered:
                continue
            result.source_files += 1
            for function in covered:
                records.append(
                    self.store.upsert_function(
                        function.file_path,
                        function.function_name,
                        function.start_line,
                        function.end_line,
                        commit_hash,
                    )
                )
                result.functions_upserted += 1
        return list({record.id: record for record in records}.values())


__all__ = ["CoverageLearner", "LearnResult", "group_tests_by_file"]
