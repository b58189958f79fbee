"""Extract changed line ranges from a single file's unified diff.

Line numbers are reported in the coordinate space of the *new* revision of the
file because that is what the function declarations are parsed from.  Removed
lines do not exist in the new file, so a pure deletion is anchored at the line
that now occupies its position.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

LOGGER = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")


class ChangeType(str, Enum):
    """Classification of a contiguous run of edited lines."""

    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"


@dataclass(frozen=True, slots=True)
class ChangedRange:
    """Inclusive span of new-file lines attributed to one edit."""

    start_line: int
    end_line: int
    change_type: ChangeType


@dataclass(slots=True)
class _Run:
    start: int
    end: int
    change_type: ChangeType

    def absorb(self, change_type: ChangeType) -> None:
        if self.change_type is not change_type:
            self.change_type = ChangeType.MODIFIED

    def freeze(self) -> ChangedRange:
        return ChangedRange(self.start, self.end, self.change_type)


def parse_hunks(diff_text: str, file_path: str = "") -> List[ChangedRange]:
    """Return the changed ranges described by ``diff_text``.

    The parser is a two-state machine (outside / inside a hunk).  Inside a
    hunk, ``+`` lines open or extend an ``added`` run and advance the new-file
    cursor, ``-`` lines open or extend a ``deleted`` run without advancing it,
    and context lines close the open run.  A run mixing both kinds becomes
    ``modified``.  Ranges come out ordered and non-overlapping.
    """

    ranges: List[ChangedRange] = []
    in_hunk = False
    cursor = 0
    run: Optional[_Run] = None

    def flush() -> None:
        nonlocal run
        if run is not None:
            ranges.append(run.freeze())
            run = None

    for line in diff_text.splitlines():
        header = HUNK_HEADER_RE.match(line)
        if header:
            flush()
            in_hunk = True
            cursor = int(header.group(3))
            continue

        if not in_hunk:
            continue

        if line.startswith("diff --git"):
            flush()
            in_hunk = False
        elif line.startswith("+") and not line.startswith("+++"):
            if run is None:
                run = _Run(cursor, cursor, ChangeType.ADDED)
            else:
                run.absorb(ChangeType.ADDED)
                run.end = cursor
            cursor += 1
        elif line.startswith("-") and not line.startswith("---"):
            if run is None:
                run = _Run(cursor, cursor, ChangeType.DELETED)
            else:
                run.absorb(ChangeType.DELETED)
        elif line.startswith(" "):
            flush()
            cursor += 1
        # "\ No newline at end of file" and blank separators carry no position.

    flush()
    if file_path:
        LOGGER.debug("Parsed %d changed range(s) from %s", len(ranges), file_path)
    return ranges


__all__ = ["ChangeType", "ChangedRange", "HUNK_HEADER_RE", "parse_hunks"]
