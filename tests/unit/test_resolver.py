from __future__ import annotations

from typing import Dict, List

from testlens.analysis.diff_hunks import ChangedRange, ChangeType
from testlens.analysis.function_index import Declaration
from testlens.analysis.resolver import (
    ChangedFile,
    ChangedFunctionKey,
    ImpactResolver,
    resolve_changed_functions,
)


class FakeProvider:
    def __init__(self, declarations: Dict[str, List[Declaration]], failing=()) -> None:
        self.declarations = declarations
        self.failing = set(failing)
        self.calls: List[str] = []

    def declarations_for(self, path: str) -> List[Declaration]:
        self.calls.append(path)
        if path in self.failing:
            raise OSError(f"cannot read {path}")
        return list(self.declarations.get(path, []))


SERVICE = "src/app/user_service.py"
SERVICE_DECLARATIONS = [
    Declaration("UserService.__init__", 5, 6),
    Declaration("UserService.create_user", 8, 11),
    Declaration("UserService.delete_user", 13, 14),
]


def _modified(start: int, end: int) -> ChangedRange:
    return ChangedRange(start, end, ChangeType.MODIFIED)


def test_overlapping_declarations_are_reported() -> None:
    provider = FakeProvider({SERVICE: SERVICE_DECLARATIONS})

    functions = resolve_changed_functions([ChangedFile(SERVICE, [_modified(9, 9)])], provider)

    assert functions == {ChangedFunctionKey(SERVICE, "UserService.create_user", 8, 11)}


def test_change_outside_functions_falls_back_to_whole_file() -> None:
    provider = FakeProvider({SERVICE: SERVICE_DECLARATIONS})

    resolution = ImpactResolver(provider).resolve([ChangedFile(SERVICE, [_modified(1, 2)])])

    assert {key.function_name for key in resolution.functions} == {
        "UserService.__init__",
        "UserService.create_user",
        "UserService.delete_user",
    }
    assert resolution.fallback_files == [SERVICE]


def test_file_without_declarations_contributes_nothing() -> None:
    provider = FakeProvider({"src/app/constants.py": []})

    resolution = ImpactResolver(provider).resolve(
        [ChangedFile("src/app/constants.py", [_modified(1, 3)])]
    )

    assert resolution.functions == set()
    assert resolution.fallback_files == []


def test_provider_failure_becomes_warning_and_other_files_continue() -> None:
    provider = FakeProvider({SERVICE: SERVICE_DECLARATIONS}, failing=["src/app/broken.py"])

    resolution = ImpactResolver(provider).resolve(
        [
            ChangedFile("src/app/broken.py", [_modified(1, 1)]),
            ChangedFile(SERVICE, [_modified(13, 13)]),
        ]
    )

    assert resolution.functions == {ChangedFunctionKey(SERVICE, "UserService.delete_user", 13, 14)}
    assert len(resolution.warnings) == 1
    assert "src/app/broken.py" in resolution.warnings[0]


def test_functions_touched_by_several_ranges_are_deduplicated() -> None:
    provider = FakeProvider({SERVICE: SERVICE_DECLARATIONS})

    functions = resolve_changed_functions(
        [ChangedFile(SERVICE, [_modified(8, 8), _modified(10, 11), _modified(14, 14)])],
        provider,
    )

    assert sorted(key.function_name for key in functions) == [
        "UserService.create_user",
        "UserService.delete_user",
    ]


def test_concurrent_resolution_matches_sequential() -> None:
    declarations = {
        f"src/pkg/module_{number}.py": [
            Declaration("first", 1, 4),
            Declaration("second", 6, 9),
        ]
        for number in range(8)
    }
    changed = [
        ChangedFile(path, [_modified(2 + index % 2 * 5, 2 + index % 2 * 5)])
        for index, path in enumerate(sorted(declarations))
    ]

    sequential = ImpactResolver(FakeProvider(declarations)).resolve(changed)
    concurrent = ImpactResolver(FakeProvider(declarations), max_workers=4).resolve(changed)

    assert concurrent.functions == sequential.functions
    assert len(sequential.functions) == 8


def test_changed_function_key_describe() -> None:
    key = ChangedFunctionKey(SERVICE, "UserService.create_user", 8, 11)

    assert key.describe() == "src/app/user_service.py::UserService.create_user (8-11)"
