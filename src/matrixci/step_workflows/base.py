# step_workflows/base.py
from __future__ import annotations

import time
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from ..errors import FailureCause, StepFailure
from .command import CommandResult, CommandRunner

# Upper bound for the `tool --version` check when the step has no tighter budget.
TOOL_CHECK_TIMEOUT = 60.0

TOOL_HINTS = {
    "git": "Install Git or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "cargo": "Install a Rust toolchain with rustup or fix PATH.",
}


def check_tool_available(
    runner: CommandRunner,
    tool: str,
    step: str,
    env: Mapping[str, str],
    cwd: Path,
    timeout: Optional[float] = None,
) -> None:
    """
    Raise a CollaboratorUnavailable StepFailure if `tool --version` cannot run.

    The check counts against the step's `timeout`; running out of it there is a
    TimedOut failure.
    """
    budget = TOOL_CHECK_TIMEOUT if timeout is None else min(timeout, TOOL_CHECK_TIMEOUT)
    try:
        result = runner.execute([tool, "--version"], env, cwd, timeout=budget)
    except OSError as e:
        hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
        raise StepFailure(
            cause=FailureCause.COLLABORATOR_UNAVAILABLE,
            step=step,
            message=f"{tool} is not available: {e}\nHint: {hint}",
        ) from e

    if result.timed_out and budget < TOOL_CHECK_TIMEOUT:
        raise StepFailure(
            cause=FailureCause.TIMED_OUT,
            step=step,
            message=f"timed out after {budget:g}s while checking for {tool}",
        )

    if not result.ok:
        hint = TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")
        raise StepFailure(
            cause=FailureCause.COLLABORATOR_UNAVAILABLE,
            step=step,
            message=f"{tool} is not available\n{result.diagnostic}\nHint: {hint}".strip(),
            exit_code=result.exit_code,
        )


def time_left(timeout: Optional[float], started: float) -> Optional[float]:
    """What remains of `timeout` seconds since `started` (a `time.monotonic()` value)."""
    if timeout is None:
        return None
    return max(timeout - (time.monotonic() - started), 0.001)


def run_sequence(
    runner: CommandRunner,
    commands: Sequence[Sequence[str]],
    env: Mapping[str, str],
    cwd: Path,
    timeout: Optional[float] = None,
) -> CommandResult:
    """
    Run commands in order, stopping at the first one that does not succeed.

    Output of every command that ran is concatenated into the returned result.
    `timeout` bounds the whole sequence.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    stdout: List[str] = []
    stderr: List[str] = []
    last = CommandResult(exit_code=0)

    for cmd in commands:
        remaining = None if deadline is None else max(deadline - time.monotonic(), 0.001)
        last = runner.execute(cmd, env, cwd, remaining)
        stdout.append(last.stdout)
        stderr.append(last.stderr)
        if not last.ok:
            break

    return CommandResult(
        exit_code=last.exit_code,
        stdout="".join(stdout),
        stderr="".join(stderr),
        timed_out=last.timed_out,
    )
