"""Turn changed line ranges into the identities of changed functions."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Set

from .diff_hunks import ChangedRange
from .function_index import Declaration, FunctionRangeIndex

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ChangedFile:
    """A file touched by the diff together with its changed ranges."""

    path: str
    ranges: List[ChangedRange] = field(default_factory=list)
    insertions: int = 0
    deletions: int = 0


@dataclass(frozen=True, slots=True, order=True)
class ChangedFunctionKey:
    """Deduplication key for a changed function."""

    file_path: str
    function_name: str
    start_line: int
    end_line: int

    @classmethod
    def from_declaration(cls, file_path: str, declaration: Declaration) -> "ChangedFunctionKey":
        return cls(file_path, declaration.name, declaration.start_line, declaration.end_line)

    def describe(self) -> str:
        return f"{self.file_path}::{self.function_name} ({self.start_line}-{self.end_line})"


@dataclass(slots=True)
class Resolution:
    """Outcome of resolving a set of changed files."""

    functions: Set[ChangedFunctionKey] = field(default_factory=set)
    fallback_files: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(slots=True)
class _FileOutcome:
    path: str
    functions: Set[ChangedFunctionKey]
    used_fallback: bool = False
    warning: str | None = None


class ImpactResolver:
    """Resolve changed functions using a declaration provider.

    ``provider`` is any object exposing ``declarations_for(path)``; the
    orchestrator owns it and may share its cache across calls.  With
    ``max_workers`` above one, files are analysed concurrently and merged by
    the calling thread.
    """

    def __init__(self, provider, *, max_workers: int = 1) -> None:
        self.provider = provider
        self.max_workers = max(1, int(max_workers))

    def resolve(self, changed_files: Sequence[ChangedFile]) -> Resolution:
        if self.max_workers > 1 and len(changed_files) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = list(pool.map(self._resolve_file, changed_files))
        else:
            outcomes = [self._resolve_file(changed) for changed in changed_files]

        resolution = Resolution()
        for outcome in outcomes:
            resolution.functions.update(outcome.functions)
            if outcome.used_fallback:
                resolution.fallback_files.append(outcome.path)
            if outcome.warning:
                resolution.warnings.append(outcome.warning)
        return resolution

    def _resolve_file(self, changed: ChangedFile) -> _FileOutcome:
        try:
            declarations = list(self.provider.declarations_for(changed.path))
        except Exception as error:  # noqa: BLE001 - provider failures degrade per file
            message = f"Failed to load declarations for {changed.path}: {error}"
            LOGGER.warning(message)
            return _FileOutcome(changed.path, set(), warning=message)

        if not declarations:
            LOGGER.debug("No declarations in %s; it contributes no functions", changed.path)
            return _FileOutcome(changed.path, set())

        index = FunctionRangeIndex(declarations)
        hits = _overlapping_keys(changed.path, index, changed.ranges)
        if hits:
            return _FileOutcome(changed.path, hits)

        LOGGER.debug(
            "No function overlaps a change in %s; treating all %d declaration(s) as changed",
            changed.path,
            len(index),
        )
        everything = {ChangedFunctionKey.from_declaration(changed.path, item) for item in index}
        return _FileOutcome(changed.path, everything, used_fallback=True)


def _overlapping_keys(
    path: str,
    index: FunctionRangeIndex,
    ranges: Iterable[ChangedRange],
) -> Set[ChangedFunctionKey]:
    hits: Set[ChangedFunctionKey] = set()
    for changed_range in ranges:
        for declaration in index.find_overlapping(changed_range):
            hits.add(ChangedFunctionKey.from_declaration(path, declaration))
    return hits


def resolve_changed_functions(
    changed_files: Sequence[ChangedFile],
    provider,
    *,
    max_workers: int = 1,
) -> Set[ChangedFunctionKey]:
    """Return the deduplicated set of functions touched by ``changed_files``."""

    return ImpactResolver(provider, max_workers=max_workers).resolve(changed_files).functions


__all__ = [
    "ChangedFile",
    "ChangedFunctionKey",
    "ImpactResolver",
    "Resolution",
    "resolve_changed_functions",
]
