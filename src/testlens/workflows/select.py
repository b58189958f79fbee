"""SELECT workflow: map a diff to impacted tests and run only those."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..analysis.declarations import SyntaxAnalyzer
from ..analysis.diff_hunks import parse_hunks
from ..analysis.resolver import ChangedFile, ChangedFunctionKey, ImpactResolver
from ..graph.schema import FunctionRecord, TestRecord
from ..graph.store import GraphStore
from ..paths import DEFAULT_SOURCE_EXTENSIONS, has_source_extension
from ..tools.pytest_runner import PytestResult, run_pytest

LOGGER = logging.getLogger(__name__)


class SelectionMode(str, Enum):
    """Which tests a selection run decided on."""

    SELECTED = "selected"
    ALL = "all"
    NONE = "none"


@dataclass(slots=True)
class SelectOptions:
    """Inputs for a selection run."""

    base_branch: str = "main"
    head: str = "HEAD"
    fallback_to_all: bool = True
    dry_run: bool = False
    include_file_functions: bool = False
    source_extensions: Sequence[str] = DEFAULT_SOURCE_EXTENSIONS
    max_workers: int = 1
    pytest_args: Sequence[str] = ()


@dataclass(slots=True)
class SelectOutcome:
    """Summary of a selection run."""

    mode: SelectionMode
    changed_files: List[ChangedFile] = field(default_factory=list)
    changed_functions: List[ChangedFunctionKey] = field(default_factory=list)
    matched_functions: List[FunctionRecord] = field(default_factory=list)
    impacted_tests: List[TestRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    test_run: Optional[PytestResult] = None

    @property
    def test_files(self) -> List[str]:
        return sorted({test.file_path for test in self.impacted_tests})


def match_functions(
    store: GraphStore,
    changed: Iterable[ChangedFunctionKey],
    *,
    include_file_functions: bool = False,
) -> List[FunctionRecord]:
    """Find stored function rows for the changed functions.

    The exact natural key is tried first.  Editing a function usually moves
    its span, so when no exact row exists every stored version with the same
    file and name is used instead.
    """

    keys = sorted(set(changed))
    stored = store.get_functions_by_file_paths([key.file_path for key in keys])
    by_key = {record.natural_key: record for record in stored}
    by_name: Dict[Tuple[str, str], List[FunctionRecord]] = defaultdict(list)
    for record in stored:
        by_name[(record.file_path, record.function_name)].append(record)

    matched: Dict[int, FunctionRecord] = {}
    for key in keys:
        exact = by_key.get((key.file_path, key.function_name, key.start_line, key.end_line))
        if exact is not None:
            matched[exact.id] = exact
            continue
        versions = by_name.get((key.file_path, key.function_name), [])
        if versions:
            LOGGER.debug("Matched %s by name to %d stored version(s)", key.describe(), len(versions))
            matched.update((record.id, record) for record in versions)
        else:
            LOGGER.debug("Function not found in graph: %s", key.describe())

    if include_file_functions:
        matched.update((record.id, record) for record in stored)
    return sorted(matched.values(), key=lambda record: record.id)


class SelectWorkflow:
    """Sequence the diff, impact resolution, graph lookup and test run."""

    def __init__(
        self,
        store: GraphStore,
        git,
        *,
        analyzer: Optional[SyntaxAnalyzer] = None,
        run_tests: Callable[..., PytestResult] = run_pytest,
        repo_root: Path | str | None = None,
    ) -> None:
        self.store = store
        self.git = git
        self.repo_root = Path(repo_root or git.root).resolve()
        self.analyzer = analyzer
        self.run_tests = run_tests

    def run(self, options: Optional[SelectOptions] = None) -> SelectOutcome:
        options = options or SelectOptions()
        LOGGER.info("Comparing %s against base branch %s", options.head, options.base_branch)
        try:
            return self._select(options)
        except Exception:
            LOGGER.exception("Test selection failed; falling back to the full test suite")
            if not options.dry_run:
                try:
                    self._run_all(options)
                except Exception:  # noqa: BLE001 - the original failure is re-raised below
                    LOGGER.exception("Full-suite fallback run failed as well")
            raise

    def _select(self, options: SelectOptions) -> SelectOutcome:
        changed_files = self._changed_files(options)
        if not changed_files:
            LOGGER.info("No source files changed; running all tests")
            outcome = SelectOutcome(mode=SelectionMode.ALL)
            if not options.dry_run:
                outcome.test_run = self._run_all(options)
            return outcome

        LOGGER.info("Found %d changed file(s)", len(changed_files))
        # Declarations are read at the diffed head, not from the working tree.
        analyzer = self.analyzer or SyntaxAnalyzer.at_revision(self.git, options.head, self.repo_root)
        resolver = ImpactResolver(analyzer, max_workers=options.max_workers)
        resolution = resolver.resolve(changed_files)
        changed_functions = sorted(resolution.functions)
        LOGGER.info("Found %d changed function(s)", len(changed_functions))
        for key in changed_functions:
            LOGGER.debug("  - %s", key.describe())

        matched = match_functions(
            self.store,
            changed_functions,
            include_file_functions=options.include_file_functions,
        )
        impacted = self.store.get_tests_for_functions(record.id for record in matched)
        outcome = SelectOutcome(
            mode=SelectionMode.SELECTED,
            changed_files=changed_files,
            changed_functions=changed_functions,
            matched_functions=matched,
            impacted_tests=impacted,
            warnings=list(resolution.warnings),
        )

        if not impacted:
            LOGGER.warning("No tests found in the graph for the changed functions")
            if options.fallback_to_all:
                outcome.mode = SelectionMode.ALL
                if not options.dry_run:
                    outcome.test_run = self._run_all(options)
            else:
                outcome.mode = SelectionMode.NONE
            return outcome

        if not options.dry_run:
            LOGGER.info(
                "Running %d impacted test(s) from %d file(s)",
                len(impacted),
                len(outcome.test_files),
            )
            outcome.test_run = self.run_tests(
                [*outcome.test_files, *options.pytest_args],
                cwd=self.repo_root,
            )
        return outcome

    def _changed_files(self, options: SelectOptions) -> List[ChangedFile]:
        changed: List[ChangedFile] = []
        for entry in self.git.changed_files(options.base_branch, options.head):
            if entry.binary or not has_source_extension(entry.path, options.source_extensions):
                continue
            changed.append(
                ChangedFile(
                    path=entry.path,
                    ranges=parse_hunks(entry.diff_text, entry.path),
                    insertions=entry.insertions,
                    deletions=entry.deletions,
                )
            )
        return changed

    def _run_all(self, options: SelectOptions) -> PytestResult:
        LOGGER.info("Running full test suite")
        return self.run_tests(list(options.pytest_args), cwd=self.repo_root)


__all__ = [
    "SelectOptions",
    "SelectOutcome",
    "SelectWorkflow",
    "SelectionMode",
    "match_functions",
]
