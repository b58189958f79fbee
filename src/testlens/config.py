"""Configuration loading for the testlens CLI."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

DEFAULT_CONFIG_NAME = "testlens.yaml"
DEFAULT_BASE_BRANCH = "main"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "repo_root": ".",
    },
    "database": {
        "path": ".testlens/graph.sqlite",
    },
    "learn": {
        "coverage_path": "",
        "tests_path": "",
        "pytest_args": [],
        "coverage_source": [],
        "reset": False,
    },
    "select": {
        "base_branch": "",
        "fallback_to_all": True,
        "include_file_functions": False,
        "source_extensions": [".py"],
        "max_workers": 1,
        "pytest_args": [],
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used."""


def _copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(
    config_path: Path | str | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Load YAML configuration merged over the defaults.

    Without an explicit ``config_path`` a missing ``testlens.yaml`` simply
    yields the defaults; a named file that does not exist is an error.
    """

    env = os.environ if environ is None else environ
    explicit = config_path is not None
    path = Path(config_path) if explicit else Path(DEFAULT_CONFIG_NAME)

    data: Dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as error:
            raise ConfigError(f"Failed to parse config {path}: {error}") from error
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping at the top level.")
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")

    config = _deep_merge(_copy_config_template(), data)
    config["_source"] = str(path.resolve()) if path.exists() else ""

    db_override = env.get("TESTLENS_DB_PATH")
    if db_override:
        config["database"]["path"] = db_override

    _resolve_paths(config, path.parent if path.exists() else Path.cwd())
    return config


def _resolve_paths(config: Dict[str, Any], anchor: Path) -> None:
    """Resolve repo and database paths relative to the config file location."""

    repo_root = Path(config["project"].get("repo_root") or ".")
    if not repo_root.is_absolute():
        repo_root = (anchor / repo_root).resolve()
    config["project"]["repo_root"] = str(repo_root)

    db_path = Path(config["database"].get("path") or DEFAULT_CONFIG_TEMPLATE["database"]["path"])
    if not db_path.is_absolute():
        db_path = (repo_root / db_path).resolve()
    config["database"]["path"] = str(db_path)


def resolve_base_branch(
    cli_value: Optional[str],
    config: Mapping[str, Any],
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Pick the base branch: flag, then CI environment, then config, then ``main``."""

    env = os.environ if environ is None else environ
    for candidate in (
        cli_value,
        env.get("GITHUB_BASE_REF"),
        env.get("BASE_BRANCH"),
        (config.get("select") or {}).get("base_branch"),
    ):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return DEFAULT_BASE_BRANCH


def write_default_config(path: Path) -> None:
    """Persist the default configuration with stable formatting."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(_copy_config_template(), handle, sort_keys=False)


__all__ = [
    "ConfigError",
    "DEFAULT_BASE_BRANCH",
    "DEFAULT_CONFIG_NAME",
    "load_config",
    "resolve_base_branch",
    "write_default_config",
]
