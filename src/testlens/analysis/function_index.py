"""Line-span index over a file's function declarations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple

from .diff_hunks import ChangedRange


@dataclass(frozen=True, slots=True)
class Declaration:
    """A named function or method span reported by the syntax analyzer.

    ``body_line`` is the first line of the function body when that body sits
    on its own line.  It is ``None`` for one-line functions and lambdas, whose
    body cannot be told apart from the definition in line coverage.
    """

    name: str
    start_line: int
    end_line: int
    is_exported: bool = True
    is_async: bool = False
    body_line: int | None = None

    def __post_init__(self) -> None:
        if self.start_line > self.end_line:
            raise ValueError(
                f"Declaration {self.name!r} ends before it starts "
                f"({self.start_line}-{self.end_line})"
            )


def ranges_overlap(first: Tuple[int, int], second: Tuple[int, int]) -> bool:
    """Return ``True`` when two inclusive line spans share at least one line."""

    first_start, first_end = first
    second_start, second_end = second
    return first_start <= second_end and first_end >= second_start


class FunctionRangeIndex:
    """Answer "which declarations touch this range" for a single file.

    A linear scan is plenty for per-file declaration counts; the index keeps
    declarations in the order they were reported.
    """

    def __init__(self, declarations: Iterable[Declaration]) -> None:
        self._declarations: List[Declaration] = list(declarations)

    def __len__(self) -> int:
        return len(self._declarations)

    def __iter__(self) -> Iterator[Declaration]:
        return iter(self._declarations)

    def __bool__(self) -> bool:
        return bool(self._declarations)

    def find_overlapping(self, changed: ChangedRange) -> List[Declaration]:
        span = (changed.start_line, changed.end_line)
        return [
            declaration
            for declaration in self._declarations
            if ranges_overlap((declaration.start_line, declaration.end_line), span)
        ]


__all__ = ["Declaration", "FunctionRangeIndex", "ranges_overlap"]
