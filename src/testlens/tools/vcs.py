"""Git access for SELECT and LEARN.

Git answers where the checkout lives, which commit a reference names, how
two revisions differ file by file, and what a file held at a revision.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import logging
import subprocess

from ..paths import normalise_path

LOGGER = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when git is unavailable, a reference is unknown, or a command fails."""


@dataclass(slots=True)
class FileDiff:
    """One file's entry in a diff between two revisions."""

    path: str
    insertions: int
    deletions: int
    binary: bool = False
    diff_text: str = ""


def _git(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(  # noqa: S603 - fixed executable, arguments built here
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as error:
        raise GitError("git executable not found") from error


class GitRepository:
    """A git checkout rooted at ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Return the repository containing ``start`` (default: the working directory)."""

        origin = Path(start or Path.cwd()).resolve()
        result = _git(origin, "rev-parse", "--show-toplevel")
        toplevel = result.stdout.strip()
        if result.returncode != 0 or not toplevel:
            raise GitError(f"No git repository contains {origin}")
        return cls(toplevel)

    def _run(self, *args: str) -> str:
        result = _git(self.root, *args)
        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip() or f"exit status {result.returncode}"
            raise GitError(f"git {args[0]} failed: {detail}")
        return result.stdout

    def head_commit(self) -> str:
        """Return the full SHA of ``HEAD``."""

        return self.verify_ref("HEAD")

    def verify_ref(self, ref: str) -> str:
        """Resolve ``ref`` to a commit SHA, raising :class:`GitError` when unknown."""

        result = _git(self.root, "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        sha = result.stdout.strip()
        if result.returncode != 0 or not sha:
            raise GitError(f"Unknown git reference: {ref}")
        return sha

    def diff_between(self, base: str, head: str, path: Optional[str] = None) -> str:
        """Return the unified diff from ``base`` to ``head``, optionally for one path."""

        args = ["diff", "--no-color", "--no-ext-diff", "--no-renames", base, head]
        if path:
            args += ["--", path]
        return self._run(*args)

    def show_file(self, revision: str, path: str) -> Optional[str]:
        """Return the text of ``path`` at ``revision``, or ``None`` when it is absent there."""

        result = _git(self.root, "cat-file", "blob", f"{revision}:{normalise_path(path)}")
        if result.returncode != 0:
            LOGGER.debug("%s does not exist at %s", path, revision)
            return None
        return result.stdout

    def numstat(self, base: str, head: str) -> List[FileDiff]:
        """Per-file insertion and deletion counts; ``-`` counts mark binary files."""

        entries: List[FileDiff] = []
        for line in self._run("diff", "--numstat", "--no-renames", base, head).splitlines():
            added, sep, rest = line.partition("\t")
            removed, sep2, raw_path = rest.partition("\t")
            if not (sep and sep2 and raw_path):
                continue
            binary = added == "-" and removed == "-"
            entries.append(
                FileDiff(
                    path=normalise_path(raw_path),
                    insertions=0 if binary else int(added),
                    deletions=0 if binary else int(removed),
                    binary=binary,
                )
            )
        return entries

    def changed_files(
        self,
        base: str,
        head: str = "HEAD",
        *,
        include_binary: bool = False,
    ) -> List[FileDiff]:
        """Return the files that differ between ``base`` and ``head`` with their diffs.

        Both references are verified first so an unknown base fails loudly
        instead of producing an empty diff.
        """

        base_sha = self.verify_ref(base)
        head_sha = self.verify_ref(head)
        LOGGER.debug("Diffing %s (%s) against %s (%s)", base, base_sha[:8], head, head_sha[:8])

        files: List[FileDiff] = []
        for entry in self.numstat(base_sha, head_sha):
            if not entry.binary:
                entry.diff_text = self.diff_between(base_sha, head_sha, entry.path)
            elif not include_binary:
                continue
            files.append(entry)
        return files


__all__ = ["FileDiff", "GitError", "GitRepository"]
