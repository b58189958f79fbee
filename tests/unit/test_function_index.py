from __future__ import annotations

import pytest

from testlens.analysis.diff_hunks import ChangedRange, ChangeType
from testlens.analysis.function_index import Declaration, FunctionRangeIndex, ranges_overlap
from testlens.paths import has_source_extension, is_test_file, normalise_path


@pytest.mark.parametrize(
    ("first", "second", "expected"),
    [
        ((1, 5), (5, 9), True),
        ((5, 9), (1, 5), True),
        ((1, 4), (5, 9), False),
        ((10, 20), (12, 12), True),
        ((12, 12), (10, 20), True),
        ((3, 3), (4, 4), False),
    ],
)
def test_ranges_overlap_is_inclusive_and_symmetric(first, second, expected) -> None:
    assert ranges_overlap(first, second) is expected


def test_declaration_rejects_inverted_span() -> None:
    with pytest.raises(ValueError):
        Declaration(name="broken", start_line=9, end_line=3)


def test_find_overlapping_returns_every_touching_declaration() -> None:
    index = FunctionRangeIndex(
        [
            Declaration("UserService", 1, 20),
            Declaration("UserService.create_user", 5, 9),
            Declaration("UserService.delete_user", 11, 14),
        ]
    )

    hits = index.find_overlapping(ChangedRange(8, 12, ChangeType.MODIFIED))

    assert [item.name for item in hits] == [
        "UserService",
        "UserService.create_user",
        "UserService.delete_user",
    ]


def test_find_overlapping_misses_ranges_outside_any_declaration() -> None:
    index = FunctionRangeIndex([Declaration("helper", 3, 6)])

    assert index.find_overlapping(ChangedRange(1, 2, ChangeType.ADDED)) == []
    assert len(index) == 1
    assert bool(FunctionRangeIndex([])) is False


def test_normalise_path_makes_absolute_paths_relative(tmp_path) -> None:
    inside = tmp_path / "src" / "app" / "models.py"

    assert normalise_path(inside, tmp_path) == "src/app/models.py"
    assert normalise_path("./src/app/models.py") == "src/app/models.py"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("tests/test_user_service.py", True),
        ("tests/user_service_test.py", True),
        ("tests/conftest.py", True),
        ("web/user.spec.ts", True),
        ("src/app/user_service.py", False),
        ("src/app/testing_utils.py", False),
    ],
)
def test_is_test_file(path, expected) -> None:
    assert is_test_file(path) is expected


def test_has_source_extension_filters_by_suffix() -> None:
    assert has_source_extension("src/app/models.py")
    assert not has_source_extension("README.md")
    assert has_source_extension("web/app.ts", (".ts", ".js"))
