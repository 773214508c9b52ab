# executor.py
from __future__ import annotations

import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .errors import FailureCause, StepFailure
from .expressions import substitute
from .model import (
    CheckoutStep,
    InstanceState,
    JobInstance,
    RunResult,
    RunStep,
    Step,
    StepOutcome,
    StepStatus,
    ToolchainStep,
)
from .step_workflows import (
    CheckoutProvider,
    CommandResult,
    CommandRunner,
    GitCheckout,
    RustupToolchain,
    SubprocessRunner,
    ToolchainProvider,
)
from .ui.console import Console, get_console

# Called for every state change of an instance; the coordinator's status table
# is the usual target.
Transition = Callable[[JobInstance, InstanceState], None]

# Steps export variables to later steps by appending to this file.
ENV_FILE_VARS = ("GITHUB_ENV", "MATRIXCI_ENV")


def parse_env_file(text: str) -> Dict[str, str]:
    """
    Parse exported variables.

    Supports `NAME=value` lines and heredoc blocks:

        NAME<<EOF
        line 1
        line 2
        EOF
    """
    out: Dict[str, str] = {}
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        if not line.strip():
            continue
        if "<<" in line and ("=" not in line or line.index("<<") < line.index("=")):
            name, delim = line.split("<<", 1)
            delim = delim.strip()
            body: List[str] = []
            while i < len(lines) and lines[i] != delim:
                body.append(lines[i])
                i += 1
            if i >= len(lines):
                raise ValueError(f"unterminated heredoc for {name.strip()!r} (delimiter {delim!r})")
            i += 1  # skip delimiter
            out[name.strip()] = "\n".join(body)
        elif "=" in line:
            name, value = line.split("=", 1)
            out[name.strip()] = value
        else:
            raise ValueError(f"invalid env export line: {line!r}")
    return out


class StepExecutor:
    """
    Runs one job instance's steps strictly in order.

    State machine: pending -> running -> succeeded | failed, plus cancelled
    from pending or running when `cancel` is set. Cancellation is checked
    before each step; a step already running is allowed to finish.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        checkout: Optional[CheckoutProvider] = None,
        toolchain: Optional[ToolchainProvider] = None,
        *,
        workspace: str | Path = ".",
        default_timeout: Optional[float] = None,
        console: Optional[Console] = None,
    ):
        self.runner = runner or SubprocessRunner()
        self.checkout = checkout or GitCheckout(self.runner)
        self.toolchain = toolchain or RustupToolchain(self.runner)
        self.workspace = Path(workspace).resolve()
        self.default_timeout = default_timeout
        self.console = console or get_console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        instance: JobInstance,
        cancel: Optional[threading.Event] = None,
        transition: Optional[Transition] = None,
    ) -> RunResult:
        cancel = cancel or threading.Event()
        transition = transition or (lambda _inst, _state: None)
        outcomes: List[StepOutcome] = []

        if cancel.is_set():
            transition(instance, InstanceState.CANCELLED)
            return RunResult(instance=instance, state=InstanceState.CANCELLED)

        transition(instance, InstanceState.RUNNING)
        self.console.print_instance_start(instance)

        env: Dict[str, str] = dict(instance.env)
        for idx, step in enumerate(instance.job.steps, start=1):
            if cancel.is_set():
                transition(instance, InstanceState.CANCELLED)
                return RunResult(instance=instance, state=InstanceState.CANCELLED, steps=tuple(outcomes))

            self.console.print_step(instance, step.name)
            outcome, exported = self._run_step(instance, idx, step, env)
            outcomes.append(outcome)

            if outcome.failed:
                self.console.print_step_failure(instance, outcome)
                transition(instance, InstanceState.FAILED)
                return RunResult(instance=instance, state=InstanceState.FAILED, steps=tuple(outcomes))

            env.update(exported)

        transition(instance, InstanceState.SUCCEEDED)
        return RunResult(instance=instance, state=InstanceState.SUCCEEDED, steps=tuple(outcomes))

    # ------------------------------------------------------------------
    # Execution primitives
    # ------------------------------------------------------------------

    def _timeout_for(self, instance: JobInstance, step: Step) -> Optional[float]:
        if step.timeout_minutes is not None:
            return step.timeout_minutes * 60
        if instance.job.timeout_minutes is not None:
            return instance.job.timeout_minutes * 60
        return self.default_timeout

    def _step_env(self, instance: JobInstance, step: Step, env: Mapping[str, str]) -> Dict[str, str]:
        matrix = instance.combination.as_dict()
        step_env = dict(env)
        for k, v in step.env.items():
            step_env[k] = substitute(v, matrix=matrix, env=step_env)
        return step_env

    def _invoke(self, instance: JobInstance, step: Step, env: Mapping[str, str], timeout: Optional[float]) -> CommandResult:
        if isinstance(step, RunStep):
            matrix = instance.combination.as_dict()
            command = substitute(step.run, matrix=matrix, env=env)
            cwd = self.workspace
            if step.working_directory:
                cwd = (self.workspace / substitute(step.working_directory, matrix=matrix, env=env)).resolve()
            self.console.print_debug(f"[{instance.instance_id}] $ {command} (cwd={cwd}, timeout={timeout})")
            return self.runner.execute(command, env, cwd, timeout)
        if isinstance(step, CheckoutStep):
            return self.checkout.checkout(step, env, self.workspace, timeout)
        if isinstance(step, ToolchainStep):
            return self.toolchain.install(step, env, self.workspace, timeout)
        raise TypeError(f"unknown step type: {type(step).__name__}")

    def _run_step(
        self,
        instance: JobInstance,
        idx: int,
        step: Step,
        env: Mapping[str, str],
    ) -> Tuple[StepOutcome, Dict[str, str]]:
        started = time.monotonic()
        timeout = self._timeout_for(instance, step)

        with tempfile.TemporaryDirectory(prefix="matrixci-") as tmp:
            env_file = Path(tmp) / "env"
            env_file.touch()
            step_env = self._step_env(instance, step, env)
            for var in ENV_FILE_VARS:
                step_env[var] = str(env_file)

            try:
                result = self._invoke(instance, step, step_env, timeout)
            except StepFailure as e:
                return self._failed(idx, step, started, e.cause, str(e.message), e.exit_code), {}
            except Exception as e:
                # collaborator blew up; keep its message verbatim
                return self._failed(idx, step, started, FailureCause.COLLABORATOR_UNAVAILABLE, str(e)), {}

            if result.timed_out:
                msg = f"timed out after {timeout:g}s" if timeout is not None else "timed out"
                diag = f"{msg}\n{result.diagnostic}".strip()
                return self._failed(idx, step, started, FailureCause.TIMED_OUT, diag), {}

            if result.exit_code != 0:
                return self._failed(
                    idx, step, started, FailureCause.NON_ZERO_EXIT, result.diagnostic, result.exit_code
                ), {}

            try:
                exported = parse_env_file(env_file.read_text(encoding="utf-8"))
            except ValueError as e:
                return self._failed(idx, step, started, FailureCause.NON_ZERO_EXIT, f"bad env export: {e}", 0), {}

        outcome = StepOutcome(
            index=idx,
            name=step.name,
            status=StepStatus.SUCCEEDED,
            exit_code=result.exit_code,
            duration=time.monotonic() - started,
        )
        return outcome, exported

    @staticmethod
    def _failed(
        idx: int,
        step: Step,
        started: float,
        cause: FailureCause,
        diagnostic: str,
        exit_code: Optional[int] = None,
    ) -> StepOutcome:
        return StepOutcome(
            index=idx,
            name=step.name,
            status=StepStatus.FAILED,
            exit_code=exit_code,
            cause=cause,
            diagnostic=diagnostic,
            duration=time.monotonic() - started,
        )
