"""Run pytest inside the analysed project and summarise each invocation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Mapping, Sequence

import logging
import os
import re
import subprocess
import sys

from ..learning.discovery import DiscoveredTest, parse_collect_output

LOGGER = logging.getLogger(__name__)

PytestStatus = Literal["passed", "failed", "error", "no-tests", "timeout"]

_EXIT_STATUS: Dict[int, PytestStatus] = {0: "passed", 1: "failed", 5: "no-tests"}
_COLLECTED_RE = re.compile(r"(\d+)\s+tests?\s+collected|collected\s+(\d+)\s+items?")
_OUTCOME_RE = re.compile(r"(\d+)\s+(?:passed|failed|errors?|skipped|xfailed|xpassed)\b")


@dataclass(slots=True)
class PytestResult:
    """Exit status and captured output of one pytest subprocess."""

    command: tuple[str, ...]
    cwd: Path
    exit_code: int
    status: PytestStatus
    collected: int | None
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.status in ("passed", "no-tests")


def status_for_exit_code(exit_code: int) -> PytestStatus:
    """Map pytest's exit code onto a status; unknown codes are errors."""
    return _EXIT_STATUS.get(exit_code, "error")


def count_collected(output: str) -> int | None:
    """Read the collected-test count from pytest output, or sum the outcome tallies."""
    match = _COLLECTED_RE.search(output)
    if match:
        return int(match.group(1) or match.group(2))
    outcomes = _OUTCOME_RE.findall(output)
    if not outcomes:
        return None
    return sum(int(amount) for amount in outcomes)


def build_env(workdir: Path, extra: Mapping[str, str] | None = None) -> Dict[str, str]:
    """Copy the process environment, apply ``extra`` and put ``src/`` first on ``PYTHONPATH``."""
    env: Dict[str, str] = dict(os.environ)
    env.update({str(key): str(value) for key, value in (extra or {}).items()})
    src_dir = workdir / "src"
    if src_dir.is_dir():
        entries = [entry for entry in env.get("PYTHONPATH", "").split(os.pathsep) if entry]
        if str(src_dir) not in entries:
            env["PYTHONPATH"] = os.pathsep.join([str(src_dir), *entries])
    return env


def _as_text(stream: str | bytes | None) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


def run_pytest(
    args: Sequence[str] | None = None,
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
) -> PytestResult:
    """Run ``python -m pytest`` with ``args`` in ``cwd``.

    A run that exceeds ``timeout`` seconds is reported with status
    ``"timeout"`` instead of raising.
    """

    workdir = Path(cwd or Path.cwd()).resolve()
    command = (sys.executable, "-m", "pytest", *(args or ("-q",)))
    LOGGER.debug("Running %s in %s", " ".join(command[1:]), workdir)

    try:
        process = subprocess.run(  # noqa: S603 - fixed interpreter, caller-supplied pytest args
            command,
            cwd=workdir,
            env=build_env(workdir, env),
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as error:
        LOGGER.warning("pytest did not finish within %s second(s)", timeout)
        return PytestResult(
            command=command,
            cwd=workdir,
            exit_code=-1,
            status="timeout",
            collected=None,
            stdout=_as_text(error.stdout),
            stderr=_as_text(error.stderr),
        )

    output = "\n".join(part for part in (process.stdout, process.stderr) if part)
    return PytestResult(
        command=command,
        cwd=workdir,
        exit_code=process.returncode,
        status=status_for_exit_code(process.returncode),
        collected=count_collected(output),
        stdout=process.stdout,
        stderr=process.stderr,
    )


def collect_tests(
    args: Sequence[str] = (),
    *,
    cwd: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> List[DiscoveredTest]:
    """Return the tests pytest would run, from ``--collect-only -q`` node ids."""

    result = run_pytest(("--collect-only", "-q", *args), cwd=cwd, env=env)
    if result.status in ("error", "timeout"):
        raise RuntimeError(
            f"pytest collection failed (exit {result.exit_code}): "
            f"{result.stderr.strip() or result.stdout.strip()}"
        )
    return parse_collect_output(result.stdout)


def coverage_args(report_path: Path, sources: Sequence[str] = ()) -> List[str]:
    """Build pytest-cov arguments that write a JSON report to ``report_path``."""

    args = [f"--cov={source}" for source in sources] or ["--cov"]
    args.append(f"--cov-report=json:{report_path}")
    return args


__all__ = [
    "PytestResult",
    "PytestStatus",
    "build_env",
    "collect_tests",
    "count_collected",
    "coverage_args",
    "run_pytest",
    "status_for_exit_code",
]
