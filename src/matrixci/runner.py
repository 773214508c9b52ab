# runner.py
from __future__ import annotations

import threading
from typing import List, Mapping, Optional, Tuple

from .config import EngineConfig
from .coordinator import RunCoordinator
from .errors import ExpansionError
from .executor import StepExecutor
from .matrix import instantiate
from .model import Job, JobInstance, JobResult, WorkflowDefinition, WorkflowRunResult
from .step_workflows import SubprocessRunner
from .triggers import is_eligible
from .ui.console import Console, get_console

PlanEntry = Tuple[Job, List[JobInstance], Optional[ExpansionError]]


def plan(
    definition: WorkflowDefinition,
    environ: Optional[Mapping[str, str]] = None,
) -> List[PlanEntry]:
    """
    Expand every job without running anything.

    An expansion error is reported for its own job only.
    """
    global_env = definition.global_env(environ)
    entries: List[PlanEntry] = []
    for job in definition.jobs:
        try:
            entries.append((job, instantiate(job, global_env), None))
        except ExpansionError as e:
            entries.append((job, [], e))
    return entries


class WorkflowRunner:
    """
    Runs the jobs of one workflow, one after another in declared order.

    Each job's instances go through their own RunCoordinator so fail-fast only
    ever cancels siblings from the same matrix.
    """

    def __init__(
        self,
        executor: Optional[StepExecutor] = None,
        *,
        config: Optional[EngineConfig] = None,
        fail_fast: Optional[bool] = None,
        console: Optional[Console] = None,
    ):
        self.config = config or EngineConfig()
        self.console = console or get_console()
        self.executor = executor or StepExecutor(
            SubprocessRunner(output_tail=self.config.output_tail),
            workspace=self.config.workspace,
            default_timeout=self.config.step_timeout,
            console=self.console,
        )
        self.fail_fast = fail_fast
        self._current: Optional[RunCoordinator] = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Stop the run: cancel the job in flight and skip jobs not started yet."""
        self._stopped.set()
        with self._lock:
            if self._current is not None:
                self._current.cancel_all()

    def run(
        self,
        definition: WorkflowDefinition,
        *,
        event: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> WorkflowRunResult:
        event = event if event is not None else self.config.event
        if not is_eligible(definition, event):
            self.console.print_run_skipped(event, definition.triggers)
            return WorkflowRunResult(workflow=definition, skipped=True)

        job_results: List[JobResult] = []
        for job, instances, error in plan(definition, environ):
            if error is not None:
                self.console.print_error("Matrix expansion failed", str(error))
                job_results.append(JobResult(job=job, expansion_error=error))
                continue

            fail_fast = job.fail_fast if self.fail_fast is None else self.fail_fast
            coordinator = RunCoordinator(
                self.executor,
                max_workers=self.config.workers,
                console=self.console,
            )
            with self._lock:
                self._current = coordinator
                if self._stopped.is_set():
                    # every instance of a job started after cancel() ends cancelled
                    coordinator.cancel_all()

            self.console.print_job_start(job.id, len(instances), fail_fast)
            results = coordinator.run_all(instances, fail_fast)
            job_results.append(JobResult(job=job, results=tuple(results)))

        with self._lock:
            self._current = None

        return WorkflowRunResult(workflow=definition, jobs=tuple(job_results))


def run_workflow(
    definition: WorkflowDefinition,
    *,
    event: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    executor: Optional[StepExecutor] = None,
    config: Optional[EngineConfig] = None,
    fail_fast: Optional[bool] = None,
    console: Optional[Console] = None,
) -> WorkflowRunResult:
    runner = WorkflowRunner(executor, config=config, fail_fast=fail_fast, console=console)
    return runner.run(definition, event=event, environ=environ)
