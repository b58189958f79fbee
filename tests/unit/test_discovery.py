from __future__ import annotations

import json

import pytest

from testlens.learning.discovery import (
    DiscoveredTest,
    TestDiscoveryError,
    load_test_report,
    parse_collect_output,
    parse_node_id,
    parse_test_report,
)


def test_parse_node_id_joins_classes_and_functions() -> None:
    assert parse_node_id("tests/test_user_service.py::TestUserService::test_create_user") == DiscoveredTest(
        file="tests/test_user_service.py",
        name="TestUserService > test_create_user",
    )
    assert parse_node_id("tests/test_misc.py::test_plain") == DiscoveredTest(
        "tests/test_misc.py", "test_plain"
    )
    assert parse_node_id("tests/test_misc.py") is None


def test_parse_collect_output_ignores_summary_lines() -> None:
    output = "\n".join(
        [
            "tests/test_user_service.py::TestUserService::test_create_user",
            "tests/test_user_service.py::test_delete_user[ada lovelace]",
            "tests/test_user_service.py::test_delete_user[ada lovelace]",
            "",
            "2 tests collected in 0.01s",
            "no tests ran:: oddity",
        ]
    )

    assert parse_collect_output(output) == [
        DiscoveredTest("tests/test_user_service.py", "TestUserService > test_create_user"),
        DiscoveredTest("tests/test_user_service.py", "test_delete_user[ada lovelace]"),
    ]


def test_parse_test_report_accepts_objects_and_node_ids() -> None:
    payload = [
        {"file": "./tests/test_a.py", "name": "suite > works"},
        "tests/test_b.py::test_b",
    ]

    assert parse_test_report(payload) == [
        DiscoveredTest("tests/test_a.py", "suite > works"),
        DiscoveredTest("tests/test_b.py", "test_b"),
    ]


def test_parse_test_report_accepts_jest_style_results() -> None:
    payload = {
        "testResults": [
            {
                "name": "tests/user.spec.ts",
                "assertionResults": [
                    {"ancestorTitles": ["UserService", "create"], "title": "stores the user"},
                    {"ancestorTitles": [], "title": "top level"},
                    {"ancestorTitles": ["skipped"]},
                ],
            }
        ]
    }

    assert parse_test_report(payload) == [
        DiscoveredTest("tests/user.spec.ts", "UserService > create > stores the user"),
        DiscoveredTest("tests/user.spec.ts", "top level"),
    ]


@pytest.mark.parametrize(
    "payload",
    [
        {"unexpected": True},
        ["no-separator"],
        [{"file": "tests/test_a.py"}],
        {"testResults": [{"assertionResults": []}]},
    ],
)
def test_parse_test_report_rejects_unknown_shapes(payload) -> None:
    with pytest.raises(TestDiscoveryError):
        parse_test_report(payload)


def test_load_test_report(tmp_path) -> None:
    report = tmp_path / "tests.json"
    report.write_text(json.dumps(["tests/test_a.py::test_a"]), encoding="utf-8")

    assert load_test_report(report) == [DiscoveredTest("tests/test_a.py", "test_a")]
    with pytest.raises(TestDiscoveryError):
        load_test_report(tmp_path / "missing.json")
