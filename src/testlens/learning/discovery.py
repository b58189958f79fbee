"""Parse discovered test names from runner output."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional

from ..paths import normalise_path

NAME_SEPARATOR = " > "


class TestDiscoveryError(ValueError):
    """Raised when a test report cannot be interpreted."""

    __test__ = False


@dataclass(frozen=True, slots=True)
class DiscoveredTest:
    """A test identified by its file and fully qualified title."""

    __test__ = False

    file: str
    name: str


def parse_node_id(node_id: str) -> Optional[DiscoveredTest]:
    """Translate a pytest node id into a :class:`DiscoveredTest`.

    ``tests/test_user.py::TestUser::test_create`` becomes file
    ``tests/test_user.py`` and name ``TestUser > test_create``.
    """

    text = node_id.strip()
    if "::" not in text:
        return None
    file_part, _, remainder = text.partition("::")
    parts = [part for part in remainder.split("::") if part]
    if not file_part or not parts:
        return None
    return DiscoveredTest(file=normalise_path(file_part), name=NAME_SEPARATOR.join(parts))


def parse_collect_output(output: str) -> List[DiscoveredTest]:
    """Extract tests from ``pytest --collect-only -q`` output."""

    tests: List[DiscoveredTest] = []
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped or " " in stripped.split("::", 1)[0]:
            continue
        discovered = parse_node_id(stripped)
        if discovered is not None:
            tests.append(discovered)
    return _dedupe(tests)


def parse_test_report(payload: Any, root: Path | None = None) -> List[DiscoveredTest]:
    """Interpret a structured test report.

    Accepted shapes are a list of ``{"file", "name"}`` objects, a list of
    pytest node ids, and a Jest-style report with ``testResults`` whose
    ``assertionResults`` carry ancestor titles.
    """

    tests: List[DiscoveredTest] = []
    if isinstance(payload, list):
        for entry in payload:
            if isinstance(entry, str):
                discovered = parse_node_id(entry)
                if discovered is None:
                    raise TestDiscoveryError(f"Not a test node id: {entry!r}")
                tests.append(discovered)
            elif isinstance(entry, dict) and entry.get("file") and entry.get("name"):
                tests.append(
                    DiscoveredTest(file=normalise_path(str(entry["file"]), root), name=str(entry["name"]))
                )
            else:
                raise TestDiscoveryError(f"Unrecognised test entry: {entry!r}")
        return _dedupe(tests)

    if isinstance(payload, dict) and isinstance(payload.get("testResults"), list):
        for result in payload["testResults"]:
            file_path = result.get("name") or result.get("testFilePath")
            if not file_path:
                raise TestDiscoveryError("Test result without a file name")
            for assertion in result.get("assertionResults") or []:
                ancestors = assertion.get("ancestorTitles") or assertion.get("ancestors") or []
                title = assertion.get("title") or assertion.get("fullName")
                if not title:
                    continue
                tests.append(
                    DiscoveredTest(
                        file=normalise_path(str(file_path), root),
                        name=NAME_SEPARATOR.join([*map(str, ancestors), str(title)]),
                    )
                )
        return _dedupe(tests)

    raise TestDiscoveryError("Unsupported test report format")


def load_test_report(path: Path | str, root: Path | None = None) -> List[DiscoveredTest]:
    source = Path(path)
    if not source.is_file():
        raise TestDiscoveryError(f"Test report not found: {source}")
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise TestDiscoveryError(f"Test report {source} is not valid JSON: {error}") from error
    return parse_test_report(payload, root)


def _dedupe(tests: Iterable[DiscoveredTest]) -> List[DiscoveredTest]:
    return list(dict.fromkeys(tests))


__all__ = [
    "DiscoveredTest",
    "NAME_SEPARATOR",
    "TestDiscoveryError",
    "load_test_report",
    "parse_collect_output",
    "parse_node_id",
    "parse_test_report",
]
