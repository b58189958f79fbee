from __future__ import annotations

from pathlib import Path

import pytest

from testlens.graph.store import LinkIntegrityError, SQLiteGraphStore
from testlens.learning.discovery import DiscoveredTest
from testlens.learning.learner import CoverageLearner, group_tests_by_file
from testlens.learning.snapshot import CoverageSnapshot


def _entry(functions):
    fn_map = {}
    counts = {}
    for index, (name, start, end, count) in enumerate(functions):
        fn_map[str(index)] = {
            "name": name,
            "decl": {"start": {"line": start, "column": 4}, "end": {"line": end, "column": 0}},
        }
        counts[str(index)] = count
    return {"fnMap": fn_map, "f": counts}


SNAPSHOT = CoverageSnapshot.from_payload(
    {
        "src/app/user_service.py": _entry(
            [
                ("UserService.__init__", 5, 6, 2),
                ("UserService.create_user", 8, 11, 1),
                ("UserService.delete_user", 13, 14, 0),
            ]
        ),
        "src/app/unused.py": _entry([("unused", 1, 2, 0)]),
        "tests/test_user_service.py": _entry([("TestUserService.test_create_user", 5, 7, 1)]),
    }
)

TESTS = [
    DiscoveredTest("tests/test_user_service.py", "TestUserService > test_create_user"),
    DiscoveredTest("tests/test_user_service.py", "TestUserService > test_delete_user"),
    DiscoveredTest("tests/test_models.py", "test_model"),
]


@pytest.fixture()
def store(tmp_path: Path):
    graph = SQLiteGraphStore(tmp_path / "graph.sqlite")
    yield graph
    graph.close()


def test_every_test_links_to_every_covered_source_function(store: SQLiteGraphStore) -> None:
    result = CoverageLearner(store).learn(SNAPSHOT, TESTS, commit_hash="abc123")

    assert result.functions_upserted == 2
    assert result.source_files == 1
    assert result.tests_upserted == 3
    assert result.test_files == 2
    assert result.links_created == 6
    assert result.links_existing == 0

    stored = store.get_functions_by_file_paths(["src/app/user_service.py", "tests/test_user_service.py"])
    assert [(record.function_name, record.commit_hash) for record in stored] == [
        ("UserService.__init__", "abc123"),
        ("UserService.create_user", "abc123"),
    ]
    test = store.get_test("tests/test_models.py", "test_model")
    assert test is not None
    assert [record.function_name for record in store.get_functions_for_test(test.id)] == [
        "UserService.__init__",
        "UserService.create_user",
    ]


def test_relearning_reuses_rows_and_reports_existing_links(store: SQLiteGraphStore) -> None:
    learner = CoverageLearner(store)
    learner.learn(SNAPSHOT, TESTS, commit_hash="abc123")

    again = learner.learn(SNAPSHOT, TESTS)

    assert again.links_created == 0
    assert again.links_existing == 6
    assert store.stats().model_dump() == {"tests": 3, "functions": 2, "links": 6}
    stored = store.get_functions_by_file_paths(["src/app/user_service.py"])
    assert {record.commit_hash for record in stored} == {"abc123"}


def test_snapshot_without_executed_functions_still_records_tests(store: SQLiteGraphStore, caplog) -> None:
    empty = CoverageSnapshot.from_payload({"src/app/unused.py": _entry([("unused", 1, 2, 0)])})

    with caplog.at_level("WARNING"):
        result = CoverageLearner(store).learn(empty, TESTS)

    assert result.functions_upserted == 0
    assert result.links_created == 0
    assert store.stats().tests == 3
    assert "no executed source functions" in caplog.text


class _FailingLinkStore(SQLiteGraphStore):
    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self.links_seen = 0

    def create_link(self, test_id: int, function_id: int):
        self.links_seen += 1
        if self.links_seen == 3:
            raise LinkIntegrityError("simulated failure")
        return super().create_link(test_id, function_id)


def test_failed_learn_leaves_graph_untouched(tmp_path: Path) -> None:
    store = _FailingLinkStore(tmp_path / "graph.sqlite")
    try:
        with pytest.raises(LinkIntegrityError):
            CoverageLearner(store).learn(SNAPSHOT, TESTS)

        assert store.stats().model_dump() == {"tests": 0, "functions": 0, "links": 0}
    finally:
        store.close()


def test_group_tests_by_file_normalises_paths() -> None:
    grouped = group_tests_by_file(
        [DiscoveredTest("./tests/test_a.py", "one"), DiscoveredTest("tests/test_a.py", "two")]
    )

    assert list(grouped) == ["tests/test_a.py"]
    assert [test.name for test in grouped["tests/test_a.py"]] == ["one", "two"]
