"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional

from ..model import (
    InstanceState,
    JobInstance,
    RunResult,
    StepOutcome,
    WorkflowDefinition,
    WorkflowRunResult,
)


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # Instances print from worker threads; keep each message whole.
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        workflow: WorkflowDefinition,
        source: str,
        event: Optional[str] = None,
        repository: Optional[str] = None,
    ) -> None:
        """Print run start information."""
        lines = ["\nRUN STARTED"]
        if repository:
            lines.append(f"Repository: {repository}")
        lines.append(f"Workflow: {workflow.name} ({source})")
        lines.append(f"Triggers: {', '.join(workflow.triggers)}")
        if event:
            lines.append(f"Event: {event}")
        lines.append(f"Jobs: {len(workflow.jobs)}")
        lines.append("")
        self._emit(*lines)

    def print_run_skipped(self, event: str, triggers: Iterable[str]) -> None:
        self._emit(f"SKIPPED: event '{event}' does not match triggers ({', '.join(triggers)})")

    def print_job_start(self, job_id: str, instance_count: int, fail_fast: bool) -> None:
        """Print job start message."""
        mode = "fail-fast" if fail_fast else "no fail-fast"
        self._emit(f"\nJOB STARTED: {job_id} ({instance_count} instance(s), {mode})")

    def print_instance_start(self, instance: JobInstance) -> None:
        self._emit(f"[{instance.instance_id}] runner: {instance.runner}")

    def print_step(self, instance: JobInstance, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{instance.instance_id}] ▶ {name}")

    def print_step_failure(self, instance: JobInstance, outcome: StepOutcome) -> None:
        lines = [f"[{instance.instance_id}] STEP FAILED: {outcome.name}"]
        if outcome.cause is not None:
            lines.append(f"[{instance.instance_id}] Cause: {outcome.cause.value}")
        if outcome.exit_code is not None:
            lines.append(f"[{instance.instance_id}] Exit code: {outcome.exit_code}")
        if self.debug and outcome.diagnostic:
            lines.append(outcome.diagnostic)
        self._emit(*lines)

    def print_instance_done(self, result: RunResult) -> None:
        self._emit(f"[{result.instance.instance_id}] STATUS: {result.state.value}")

    def print_cancel_issued(self, job_id: str, instance_ids: list[str]) -> None:
        if instance_ids:
            self._emit(f"FAIL-FAST: cancelling {len(instance_ids)} instance(s) of {job_id}")

    def print_plan(self, instances: Iterable[JobInstance]) -> None:
        """Print expanded job instances without running them."""
        lines = []
        for inst in instances:
            lines.append(f"  {inst.instance_id} -> runner {inst.runner} ({len(inst.job.steps)} step(s))")
            for i, step in enumerate(inst.job.steps, start=1):
                lines.append(f"    {i}. [{step.kind}] {step.name}")
        self._emit(*lines)

    def print_results(self, result: WorkflowRunResult) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for job_result in result.jobs:
            if job_result.expansion_error is not None:
                lines.append(f"  {job_result.job.id}: EXPANSION FAILED")
                lines.append(f"    {job_result.expansion_error.message}")
                continue
            for r in job_result.results:
                lines.append(f"  {r.instance.instance_id}: {r.state.value.upper()}")
                failure = r.first_failure
                if failure is not None:
                    lines.append(f"    failed step {failure.index}: {failure.name}")
                    if failure.diagnostic:
                        lines.extend(f"      {ln}" for ln in failure.diagnostic.splitlines())
                elif r.state is InstanceState.CANCELLED:
                    lines.append(f"    cancelled after {len(r.steps)} step(s)")
        lines.append(f"\nOVERALL: {result.status.value.upper()}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
