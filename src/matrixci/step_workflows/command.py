# step_workflows/command.py
from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence, Union

# Keep only the tail of captured output so huge build logs stay readable.
DEFAULT_OUTPUT_TAIL = 4000


@dataclass(frozen=True)
class CommandResult:
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0

    @property
    def diagnostic(self) -> str:
        parts = [p for p in (self.stderr.strip(), self.stdout.strip()) if p]
        return "\n".join(parts)


class CommandRunner(Protocol):
    def execute(
        self,
        command: Union[str, Sequence[str]],
        env: Mapping[str, str],
        cwd: Path,
        timeout: Optional[float] = None,
    ) -> CommandResult: ...


def _tail(text: Union[str, bytes, None], limit: int) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[-limit:]


class SubprocessRunner:
    """
    Runs commands on the local host.

    This is the only place in matrixci that spawns external processes.
    Strings run through the shell; sequences run directly.
    """

    def __init__(self, output_tail: int = DEFAULT_OUTPUT_TAIL):
        self.output_tail = output_tail

    def execute(
        self,
        command: Union[str, Sequence[str]],
        env: Mapping[str, str],
        cwd: Path,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        cwd = Path(cwd)
        if not cwd.exists():
            raise FileNotFoundError(f"working directory not found: {cwd}")

        shell = isinstance(command, str)
        try:
            proc = subprocess.run(
                command if shell else list(command),
                shell=shell,
                cwd=str(cwd),
                env=dict(env),
                text=True,
                capture_output=True,  # so failures can be reported verbatim
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            return CommandResult(
                exit_code=None,
                stdout=_tail(e.stdout, self.output_tail),
                stderr=_tail(e.stderr, self.output_tail),
                timed_out=True,
            )

        return CommandResult(
            exit_code=proc.returncode,
            stdout=_tail(proc.stdout, self.output_tail),
            stderr=_tail(proc.stderr, self.output_tail),
        )
