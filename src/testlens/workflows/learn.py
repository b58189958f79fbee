"""LEARN workflow: run the suite with coverage and record the test graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..analysis.declarations import SyntaxAnalyzer
from ..graph.store import GraphStore
from ..learning.discovery import DiscoveredTest, load_test_report
from ..learning.learner import CoverageLearner, LearnResult
from ..learning.snapshot import load_snapshot
from ..tools.pytest_runner import PytestResult, collect_tests, coverage_args, run_pytest
from ..tools.vcs import GitError

LOGGER = logging.getLogger(__name__)

DEFAULT_COVERAGE_REPORT = Path(".testlens") / "coverage.json"


@dataclass(slots=True)
class LearnOptions:
    """Inputs for a learning run."""

    coverage_path: Optional[Path] = None
    tests_path: Optional[Path] = None
    pytest_args: Sequence[str] = ()
    coverage_source: Sequence[str] = ()
    reset: bool = False


@dataclass(slots=True)
class LearnOutcome:
    """What a learning run discovered and stored."""

    result: LearnResult
    tests: List[DiscoveredTest] = field(default_factory=list)
    coverage_path: Optional[Path] = None
    commit_hash: Optional[str] = None
    test_run: Optional[PytestResult] = None


class LearnWorkflow:
    """Sequence test discovery, the coverage run and the learner.

    Collaborators are injected so tests can substitute fakes for pytest and
    git.  Coverage and discovery inputs are fully parsed before the first
    write, so malformed input never leaves a partial graph behind.
    """

    def __init__(
        self,
        store: GraphStore,
        repo_root: Path | str,
        *,
        analyzer: Optional[SyntaxAnalyzer] = None,
        git=None,
        run_tests: Callable[..., PytestResult] = run_pytest,
        collect: Callable[..., List[DiscoveredTest]] = collect_tests,
    ) -> None:
        self.store = store
        self.repo_root = Path(repo_root).resolve()
        self.analyzer = analyzer or SyntaxAnalyzer(self.repo_root)
        self.git = git
        self.run_tests = run_tests
        self.collect = collect

    def run(self, options: Optional[LearnOptions] = None) -> LearnOutcome:
        options = options or LearnOptions()

        tests = self._discover_tests(options)
        LOGGER.info("Discovered %d test(s)", len(tests))

        test_run: Optional[PytestResult] = None
        coverage_path = options.coverage_path
        if coverage_path is None:
            coverage_path = self.repo_root / DEFAULT_COVERAGE_REPORT
            coverage_path.parent.mkdir(parents=True, exist_ok=True)
            coverage_path.unlink(missing_ok=True)
            LOGGER.info("Running full test suite with coverage")
            test_run = self.run_tests(
                [*coverage_args(coverage_path, options.coverage_source), *options.pytest_args],
                cwd=self.repo_root,
            )
            if not test_run.ok:
                LOGGER.warning(
                    "Test suite finished with status %s; continuing with coverage analysis",
                    test_run.status,
                )
        elif not coverage_path.is_absolute():
            coverage_path = self.repo_root / coverage_path

        snapshot = load_snapshot(coverage_path, self.analyzer, self.repo_root)
        LOGGER.info("Loaded coverage for %d file(s) from %s", len(snapshot), coverage_path)

        commit_hash = self._commit_hash()
        learner = CoverageLearner(self.store)
        with self.store.transaction():
            if options.reset:
                self.store.clear_all_links()
            result = learner.learn(snapshot, tests, commit_hash=commit_hash)

        return LearnOutcome(
            result=result,
            tests=tests,
            coverage_path=coverage_path,
            commit_hash=commit_hash,
            test_run=test_run,
        )

    def _discover_tests(self, options: LearnOptions) -> List[DiscoveredTest]:
        if options.tests_path is not None:
            path = options.tests_path
            if not path.is_absolute():
                path = self.repo_root / path
            return load_test_report(path, self.repo_root)
        return self.collect(options.pytest_args, cwd=self.repo_root)

    def _commit_hash(self) -> Optional[str]:
        if self.git is None:
            LOGGER.warning("No git repository available; functions are stored without a commit hash")
            return None
        try:
            commit = self.git.head_commit()
        except GitError as error:
            LOGGER.warning("Could not resolve commit hash: %s", error)
            return None
        LOGGER.info("Current commit: %s", commit[:8])
        return commit


__all__ = ["DEFAULT_COVERAGE_REPORT", "LearnOptions", "LearnOutcome", "LearnWorkflow"]
