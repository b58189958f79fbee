"""Function declaration extraction built on libcst position metadata."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import libcst as cst
from libcst import metadata

from ..paths import normalise_path
from .function_index import Declaration

LOGGER = logging.getLogger(__name__)

SourceReader = Callable[[str], Optional[str]]


class _DeclarationCollector(cst.CSTVisitor):
    """Collect functions, methods and named lambdas with their line spans."""

    METADATA_DEPENDENCIES = (metadata.PositionProvider,)

    def __init__(self) -> None:
        self._scope: List[str] = []
        self.declarations: List[Declaration] = []

    def visit_ClassDef(self, node: cst.ClassDef) -> None:
        self._scope.append(node.name.value)

    def leave_ClassDef(self, original_node: cst.ClassDef) -> None:
        self._scope.pop()

    def visit_FunctionDef(self, node: cst.FunctionDef) -> None:
        start, end = self._line_span(node)
        body = node.body
        body_line: Optional[int] = None
        if isinstance(body, cst.IndentedBlock) and body.body:
            body_line = self._line_span(body.body[0])[0]
        self.declarations.append(
            Declaration(
                name=self._display_name(node.name.value),
                start_line=start,
                end_line=end,
                is_exported=not node.name.value.startswith("_"),
                is_async=node.asynchronous is not None,
                body_line=body_line,
            )
        )
        self._scope.append(node.name.value)

    def leave_FunctionDef(self, original_node: cst.FunctionDef) -> None:
        self._scope.pop()

    def visit_Assign(self, node: cst.Assign) -> None:
        if not isinstance(node.value, cst.Lambda) or len(node.targets) != 1:
            return
        target = node.targets[0].target
        if not isinstance(target, cst.Name):
            return
        start, end = self._line_span(node)
        self.declarations.append(
            Declaration(
                name=self._display_name(target.value),
                start_line=start,
                end_line=end,
                is_exported=not target.value.startswith("_"),
                body_line=self._own_line(node.value.body, node.value),
            )
        )

    def _own_line(self, body: cst.CSTNode, header: cst.CSTNode) -> Optional[int]:
        # A body sharing its header's line runs whenever the header does.
        line = self._line_span(body)[0]
        return line if line > self._line_span(header)[0] else None

    def _display_name(self, name: str) -> str:
        return ".".join([*self._scope, name]) if self._scope else name

    def _line_span(self, node: cst.CSTNode) -> tuple[int, int]:
        code_range = self.get_metadata(metadata.PositionProvider, node)
        start, end = code_range.start.line, code_range.end.line
        # A range ending at column 0 stops before that line's first character.
        if code_range.end.column == 0 and end > start:
            end -= 1
        return start, end


def parse_declarations(source: str) -> List[Declaration]:
    """Return every declaration in ``source``.

    Raises :class:`libcst.ParserSyntaxError` for unparseable input.
    """

    module = cst.parse_module(source)
    wrapper = metadata.MetadataWrapper(module)
    collector = _DeclarationCollector()
    wrapper.visit(collector)
    return collector.declarations


class SyntaxAnalyzer:
    """Caching declaration provider rooted at a repository checkout.

    Sources come from ``reader``, which maps a repository-relative path to its
    text or ``None`` when the file does not exist.  The default reads the
    working tree under ``root``.

    Missing files and files that fail to parse yield an empty list; the
    failure is logged rather than raised.
    """

    def __init__(self, root: Path | str, *, reader: Optional[SourceReader] = None) -> None:
        self.root = Path(root).resolve()
        self._reader = reader or self._read_working_tree
        self._cache: Dict[str, List[Declaration]] = {}

    @classmethod
    def at_revision(cls, git, revision: str, root: Path | str | None = None) -> "SyntaxAnalyzer":
        """Analyzer that reads every file as it is at ``revision`` in ``git``."""

        return cls(root or git.root, reader=lambda key: git.show_file(revision, key))

    def _read_working_tree(self, key: str) -> Optional[str]:
        absolute = self.root / key
        if not absolute.is_file():
            return None
        return absolute.read_text(encoding="utf-8")

    def declarations_for(self, path: Path | str) -> List[Declaration]:
        key = normalise_path(path, self.root)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        declarations: List[Declaration] = []
        try:
            source = self._reader(key)
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.warning("Could not read %s: %s", key, error)
            source = ""
        if source is None:
            LOGGER.debug("Source file %s does not exist", key)
        elif source:
            try:
                declarations = parse_declarations(source)
            except cst.ParserSyntaxError as error:
                LOGGER.warning("Could not parse %s: %s", key, error)

        self._cache[key] = declarations
        return list(declarations)

    def preload(self, paths: Sequence[Path | str]) -> None:
        """Parse ``paths`` ahead of time so later lookups hit the cache."""

        for path in paths:
            self.declarations_for(path)

    def invalidate(self, path: Optional[Path | str] = None) -> None:
        if path is None:
            self._cache.clear()
            return
        self._cache.pop(normalise_path(path, self.root), None)


__all__ = ["SourceReader", "SyntaxAnalyzer", "parse_declarations"]
