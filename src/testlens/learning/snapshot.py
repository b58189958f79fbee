"""Coverage snapshot model and loaders.

The canonical snapshot maps each source path to a ``fnMap`` describing the
declared functions and an ``f`` table of execution counts.  A coverage.py JSON
report (``coverage json``) only lists executed lines, so it is converted by
pairing those lines with function declarations from the syntax analyzer.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..paths import normalise_path


class CoverageSnapshotError(ValueError):
    """Raised when a coverage snapshot is missing or malformed."""


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Position(_SnapshotModel):
    line: int
    column: int = 0


class Span(_SnapshotModel):
    start: Position
    end: Position


class FunctionEntry(_SnapshotModel):
    name: str = ""
    decl: Span


class FileCoverage(_SnapshotModel):
    fn_map: Dict[str, FunctionEntry] = Field(default_factory=dict, alias="fnMap")
    f: Dict[str, int] = Field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CoveredFunction:
    """A function with a positive execution count."""

    file_path: str
    function_name: str
    start_line: int
    end_line: int
    count: int


class CoverageSnapshot:
    """Per-file function coverage for one test-suite run."""

    def __init__(self, files: Mapping[str, FileCoverage] | None = None) -> None:
        self.files: Dict[str, FileCoverage] = dict(files or {})

    def __len__(self) -> int:
        return len(self.files)

    def paths(self) -> List[str]:
        return sorted(self.files)

    def covered_functions(self, path: str) -> List[CoveredFunction]:
        """Return functions of ``path`` whose execution count is above zero."""

        coverage = self.files.get(path)
        if coverage is None:
            return []
        covered: List[CoveredFunction] = []
        for fn_id, entry in coverage.fn_map.items():
            count = coverage.f.get(fn_id, 0)
            if not count or count <= 0:
                continue
            start = entry.decl.start.line
            end = max(entry.decl.end.line, start)
            covered.append(
                CoveredFunction(
                    file_path=normalise_path(path),
                    function_name=entry.name or "<anonymous>",
                    start_line=start,
                    end_line=end,
                    count=count,
                )
            )
        covered.sort(key=lambda item: (item.start_line, item.function_name))
        return covered

    def iter_covered(self) -> Iterator[CoveredFunction]:
        for path in self.paths():
            yield from self.covered_functions(path)

    @classmethod
    def from_payload(cls, payload: Any, root: Path | None = None) -> "CoverageSnapshot":
        """Build a snapshot from canonical JSON, keying files by repo-relative path."""

        if not isinstance(payload, dict):
            raise CoverageSnapshotError("Coverage snapshot must be a JSON object keyed by file path.")
        files: Dict[str, FileCoverage] = {}
        for path, entry in payload.items():
            try:
                files[normalise_path(str(path), root)] = FileCoverage.model_validate(entry)
            except ValidationError as error:
                raise CoverageSnapshotError(f"Invalid coverage entry for {path}: {error}") from error
        return cls(files)


def is_coverage_py_report(payload: Any) -> bool:
    """Return ``True`` when ``payload`` looks like ``coverage json`` output."""

    return isinstance(payload, dict) and isinstance(payload.get("files"), dict) and "meta" in payload


def snapshot_from_coverage_py(payload: Mapping[str, Any], analyzer, root: Path | None = None) -> CoverageSnapshot:
    """Convert a coverage.py JSON report into a function-level snapshot.

    A function's count is the number of executed lines within its body, so the
    ``def`` line and decorators, which run at import time, never mark it as
    covered on their own.  Functions and lambdas written on a single line have
    no body line of their own, so they are never counted and never linked to tests.
    """

    files: Dict[str, FileCoverage] = {}
    for raw_path, details in (payload.get("files") or {}).items():
        if not isinstance(details, dict):
            raise CoverageSnapshotError(f"Invalid coverage.py entry for {raw_path}")
        path = normalise_path(raw_path, root)
        executed = {int(line) for line in details.get("executed_lines") or []}
        fn_map: Dict[str, FunctionEntry] = {}
        counts: Dict[str, int] = {}
        for index, declaration in enumerate(analyzer.declarations_for(path)):
            fn_id = str(index)
            fn_map[fn_id] = FunctionEntry(
                name=declaration.name,
                decl=Span(
                    start=Position(line=declaration.start_line),
                    end=Position(line=declaration.end_line),
                ),
            )
            if declaration.body_line is None:
                counts[fn_id] = 0
            else:
                counts[fn_id] = sum(
                    1 for line in executed if declaration.body_line <= line <= declaration.end_line
                )
        files[path] = FileCoverage(fn_map=fn_map, f=counts)
    return CoverageSnapshot(files)


def load_snapshot(path: Path | str, analyzer=None, root: Path | None = None) -> CoverageSnapshot:
    """Read a snapshot from ``path``.

    Raises :class:`CoverageSnapshotError` for missing files, invalid JSON, or
    a coverage.py report when no ``analyzer`` is available to convert it.
    """

    source = Path(path)
    if not source.is_file():
        raise CoverageSnapshotError(f"Coverage file not found: {source}")
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise CoverageSnapshotError(f"Coverage file {source} is not valid JSON: {error}") from error

    if is_coverage_py_report(payload):
        if analyzer is None:
            raise CoverageSnapshotError(
                f"{source} is a coverage.py report; a syntax analyzer is required to convert it."
            )
        return snapshot_from_coverage_py(payload, analyzer, root)
    return CoverageSnapshot.from_payload(payload, root)


__all__ = [
    "CoverageSnapshot",
    "CoverageSnapshotError",
    "CoveredFunction",
    "FileCoverage",
    "FunctionEntry",
    "is_coverage_py_report",
    "load_snapshot",
    "snapshot_from_coverage_py",
]
