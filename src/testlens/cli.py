"""CLI commands for learning and selecting impacted tests."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import ConfigError, DEFAULT_CONFIG_NAME, load_config, resolve_base_branch, write_default_config
from .graph.store import GraphStoreError, SQLiteGraphStore
from .learning.discovery import TestDiscoveryError
from .learning.snapshot import CoverageSnapshotError
from .tools.vcs import GitError, GitRepository
from .workflows.learn import LearnOptions, LearnWorkflow
from .workflows.select import SelectionMode, SelectOptions, SelectOutcome, SelectWorkflow

APP_HELP = "Function-level test impact analysis for pytest projects."

app = typer.Typer(help=APP_HELP)

_STATE: Dict[str, Any] = {"config_path": None}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (default: {DEFAULT_CONFIG_NAME} if present).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Function-level test impact analysis for pytest projects."""
    _configure_logging(verbose)
    _STATE["config_path"] = config


def _load() -> Dict[str, Any]:
    try:
        return load_config(_STATE.get("config_path"))
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _open_store(config: Dict[str, Any]) -> SQLiteGraphStore:
    try:
        return SQLiteGraphStore.from_config(config)
    except (OSError, sqlite3.Error, GraphStoreError) as error:
        typer.echo(f"Failed to open graph database: {error}")
        raise typer.Exit(code=1) from error


def _optional_path(value: Optional[str], fallback: Any) -> Optional[Path]:
    chosen = value or fallback
    if isinstance(chosen, str) and chosen.strip():
        return Path(chosen.strip())
    return None


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(item) for item in value]


@app.command()
def init(
    write_config: bool = typer.Option(
        False,
        "--write-config",
        help=f"Also write a default {DEFAULT_CONFIG_NAME} when none exists.",
    ),
) -> None:
    """Initialise the graph database schema."""
    if write_config:
        target = Path(_STATE.get("config_path") or DEFAULT_CONFIG_NAME)
        if target.exists():
            typer.echo(f"Configuration already present at {target}")
        else:
            write_default_config(target)
            typer.echo(f"Wrote default configuration to {target}")
    config = _load()
    with _open_store(config) as store:
        typer.echo(f"Graph database ready at {store.db_path}")


@app.command()
def learn(
    coverage_path: Optional[str] = typer.Option(
        None,
        "--coverage-path",
        help="Existing coverage report to learn from instead of running the suite.",
    ),
    tests_path: Optional[str] = typer.Option(
        None,
        "--tests-path",
        help="JSON test report listing discovered tests instead of pytest collection.",
    ),
    reset: bool = typer.Option(False, "--reset", help="Clear all links before learning."),
) -> None:
    """Run the full suite with coverage and store test-to-function links."""
    config = _load()
    learn_cfg = config.get("learn") or {}
    repo_root = Path(config["project"]["repo_root"])

    try:
        git: Optional[GitRepository] = GitRepository.discover(repo_root)
    except GitError:
        git = None

    options = LearnOptions(
        coverage_path=_optional_path(coverage_path, learn_cfg.get("coverage_path")),
        tests_path=_optional_path(tests_path, learn_cfg.get("tests_path")),
        pytest_args=_as_list(learn_cfg.get("pytest_args")),
        coverage_source=_as_list(learn_cfg.get("coverage_source")),
        reset=reset or bool(learn_cfg.get("reset")),
    )

    with _open_store(config) as store:
        workflow = LearnWorkflow(store, repo_root, git=git)
        try:
            outcome = workflow.run(options)
        except (
            CoverageSnapshotError,
            TestDiscoveryError,
            GraphStoreError,
            sqlite3.Error,
            OSError,
            RuntimeError,
        ) as error:
            typer.echo(f"Learn failed: {error}")
            raise typer.Exit(code=1) from error

    result = outcome.result
    typer.echo(f"Coverage: {outcome.coverage_path}")
    if outcome.commit_hash:
        typer.echo(f"Commit: {outcome.commit_hash[:8]}")
    typer.echo(f"Tests mapped: {result.tests_upserted} ({result.test_files} file(s))")
    typer.echo(f"Functions recorded: {result.functions_upserted} ({result.source_files} file(s))")
    typer.echo(f"Links created: {result.links_created} (already known: {result.links_existing})")


def _render_selection(outcome: SelectOutcome, *, dry_run: bool) -> None:
    typer.echo(f"Changed files: {len(outcome.changed_files)}")
    typer.echo(f"Changed functions: {len(outcome.changed_functions)}")
    typer.echo(f"Impacted tests: {len(outcome.impacted_tests)}")
    for warning in outcome.warnings:
        typer.echo(f"Warning: {warning}")

    if outcome.mode is SelectionMode.SELECTED:
        for test in outcome.impacted_tests:
            typer.echo(f"  - {test.file_path}::{test.test_name}")
        if dry_run:
            typer.echo(
                f"Dry run: would run {len(outcome.impacted_tests)} test(s) "
                f"from {len(outcome.test_files)} file(s)"
            )
    elif outcome.mode is SelectionMode.ALL:
        typer.echo("Dry run: would run all tests" if dry_run else "Ran the full test suite.")
    else:
        typer.echo("No impacted tests; fallback disabled, nothing to run.")

    if outcome.test_run is not None:
        verdict = "passed" if outcome.test_run.ok else f"finished with status {outcome.test_run.status}"
        typer.echo(f"Tests {verdict}.")


@app.command()
def select(
    base_branch: Optional[str] = typer.Option(
        None,
        "--base-branch",
        "-b",
        help="Base reference to diff against (default: GITHUB_BASE_REF, BASE_BRANCH, config, main).",
    ),
    head: str = typer.Option("HEAD", "--head", help="Revision holding the changes."),
    fallback: Optional[bool] = typer.Option(
        None,
        "--fallback/--no-fallback",
        help="Run all tests when no impacted tests are found.",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report the selection without running tests."),
) -> None:
    """Detect changed functions and run only the impacted tests."""
    config = _load()
    select_cfg = config.get("select") or {}
    repo_root = Path(config["project"]["repo_root"])

    try:
        git = GitRepository.discover(repo_root)
    except GitError as error:
        typer.echo(f"Failed to open repository at {repo_root}: {error}")
        raise typer.Exit(code=1) from error

    options = SelectOptions(
        base_branch=resolve_base_branch(base_branch, config),
        head=head,
        fallback_to_all=bool(select_cfg.get("fallback_to_all", True)) if fallback is None else fallback,
        dry_run=dry_run,
        include_file_functions=bool(select_cfg.get("include_file_functions", False)),
        source_extensions=tuple(_as_list(select_cfg.get("source_extensions")) or (".py",)),
        max_workers=int(select_cfg.get("max_workers") or 1),
        pytest_args=_as_list(select_cfg.get("pytest_args")),
    )
    typer.echo(f"Comparing against base branch: {options.base_branch}")

    with _open_store(config) as store:
        workflow = SelectWorkflow(store, git, repo_root=repo_root)
        try:
            outcome = workflow.run(options)
        except Exception as error:
            typer.echo(f"Select failed: {error}")
            raise typer.Exit(code=1) from error

    _render_selection(outcome, dry_run=dry_run)
    if outcome.test_run is not None and not outcome.test_run.ok:
        raise typer.Exit(code=max(outcome.test_run.exit_code, 1))


@app.command()
def status() -> None:
    """Report graph database counts."""
    config = _load()
    with _open_store(config) as store:
        stats = store.stats()
        typer.echo(f"Database: {store.db_path}")
    typer.echo(f"Tests: {stats.tests}")
    typer.echo(f"Functions: {stats.functions}")
    typer.echo(f"Links: {stats.links}")


if __name__ == "__main__":
    app()
