"""Path helpers shared by the learning and selection workflows."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

DEFAULT_SOURCE_EXTENSIONS = (".py",)
_TEST_NAME_MARKERS = (".spec.", ".test.")


def normalise_path(path: Path | str, root: Optional[Path] = None) -> str:
    """Return a POSIX, repository-relative form of ``path``.

    Absolute paths inside ``root`` are made relative; a leading ``./`` is
    dropped so the same file always produces the same key.
    """

    candidate = Path(path)
    if root is not None and candidate.is_absolute():
        try:
            candidate = candidate.resolve().relative_to(root.resolve())
        except ValueError:
            pass
    text = candidate.as_posix().replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    return text


def is_test_file(path: Path | str) -> bool:
    """Return ``True`` for files that hold tests rather than code under test."""

    name = PurePosixPath(str(path).replace("\\", "/")).name
    if name == "conftest.py":
        return True
    if name.startswith("test_") and name.endswith(".py"):
        return True
    if name.endswith("_test.py"):
        return True
    return any(marker in name for marker in _TEST_NAME_MARKERS)


def has_source_extension(path: Path | str, extensions: Iterable[str] = DEFAULT_SOURCE_EXTENSIONS) -> bool:
    suffix = PurePosixPath(str(path)).suffix
    return suffix in set(extensions)


__all__ = ["DEFAULT_SOURCE_EXTENSIONS", "has_source_extension", "is_test_file", "normalise_path"]
