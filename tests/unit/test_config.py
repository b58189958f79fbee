from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from testlens.config import (
    ConfigError,
    load_config,
    resolve_base_branch,
    write_default_config,
)


def test_defaults_when_no_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config["select"]["fallback_to_all"] is True
    assert config["project"]["repo_root"] == str(tmp_path.resolve())
    assert config["database"]["path"] == str((tmp_path / ".testlens" / "graph.sqlite").resolve())


def test_explicit_missing_config_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.yaml", environ={})


def test_values_merge_over_defaults_and_resolve_against_file(tmp_path: Path) -> None:
    config_path = tmp_path / "ci" / "testlens.yaml"
    config_path.parent.mkdir()
    config_path.write_text(
        yaml.safe_dump(
            {
                "project": {"repo_root": ".."},
                "database": {"path": "state/graph.db"},
                "select": {"fallback_to_all": False},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_path, environ={})

    assert config["project"]["repo_root"] == str(tmp_path.resolve())
    assert config["database"]["path"] == str((tmp_path / "state" / "graph.db").resolve())
    assert config["select"]["fallback_to_all"] is False
    assert config["select"]["source_extensions"] == [".py"]


def test_database_path_can_be_overridden_from_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "testlens.yaml"
    write_default_config(config_path)

    config = load_config(config_path, environ={"TESTLENS_DB_PATH": "/var/tmp/graph.sqlite"})

    assert config["database"]["path"] == "/var/tmp/graph.sqlite"


def test_invalid_yaml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "testlens.yaml"
    config_path.write_text("select: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(config_path, environ={})

    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(config_path, environ={})


def test_base_branch_precedence() -> None:
    config = {"select": {"base_branch": "develop"}}
    ci_env = {"GITHUB_BASE_REF": "release", "BASE_BRANCH": "staging"}

    assert resolve_base_branch("feature", config, environ=ci_env) == "feature"
    assert resolve_base_branch(None, config, environ=ci_env) == "release"
    assert resolve_base_branch(None, config, environ={"BASE_BRANCH": "staging"}) == "staging"
    assert resolve_base_branch(None, config, environ={}) == "develop"
    assert resolve_base_branch(None, {}, environ={"GITHUB_BASE_REF": ""}) == "main"


def test_written_default_config_round_trips(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "testlens.yaml"

    write_default_config(config_path)
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))

    assert list(data) == ["project", "database", "learn", "select"]
    assert data["select"]["max_workers"] == 1
