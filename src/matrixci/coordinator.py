# coordinator.py
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvalidTransition
from .executor import StepExecutor
from .model import InstanceState, JobInstance, RunResult, RunStatus, aggregate
from .ui.console import Console, get_console

InstanceKey = Tuple[str, int]

ALLOWED_TRANSITIONS = {
    InstanceState.PENDING: {InstanceState.RUNNING, InstanceState.CANCELLED},
    InstanceState.RUNNING: {InstanceState.SUCCEEDED, InstanceState.FAILED, InstanceState.CANCELLED},
    InstanceState.SUCCEEDED: set(),
    InstanceState.FAILED: set(),
    InstanceState.CANCELLED: set(),
}


class StatusTable:
    """
    Instance key (job id, matrix index) -> state.

    The only mutable structure shared between instance threads. Writes are
    serialised and checked against the state machine; readers get copies.
    """

    def __init__(self, instances: Sequence[JobInstance] = ()):
        self._lock = threading.Lock()
        self._states: Dict[InstanceKey, InstanceState] = {}
        self._instances: Dict[InstanceKey, JobInstance] = {}
        for inst in instances:
            self.add(inst)

    def add(self, instance: JobInstance) -> None:
        with self._lock:
            if instance.key in self._states:
                raise ValueError(f"Duplicate job instance: {instance.instance_id} (index {instance.index})")
            self._states[instance.key] = InstanceState.PENDING
            self._instances[instance.key] = instance

    def transition(self, instance: JobInstance, new: InstanceState) -> None:
        with self._lock:
            current = self._states[instance.key]
            if new not in ALLOWED_TRANSITIONS[current]:
                raise InvalidTransition(
                    f"{instance.instance_id}: {current.value} -> {new.value} is not allowed"
                )
            self._states[instance.key] = new

    def state(self, instance: JobInstance) -> InstanceState:
        with self._lock:
            return self._states[instance.key]

    def snapshot(self) -> Dict[InstanceKey, InstanceState]:
        with self._lock:
            return dict(self._states)

    def active(self) -> List[JobInstance]:
        """Instances still pending or running."""
        with self._lock:
            return [self._instances[k] for k, s in self._states.items() if not s.terminal]


class RunCoordinator:
    """
    Runs job instances concurrently and applies the fail-fast policy.

    With fail-fast, the first failed instance sets the cancel event of every
    instance that is still pending or running. Pending instances then end
    cancelled without running a step; running ones stop before their next
    step.
    """

    def __init__(
        self,
        executor: StepExecutor,
        *,
        max_workers: Optional[int] = None,
        console: Optional[Console] = None,
    ):
        self.executor = executor
        self.max_workers = max_workers
        self.console = console or get_console()
        self.table = StatusTable()
        self._fail_fast = False
        self._stopped = False
        self._cancel: Dict[InstanceKey, threading.Event] = {}
        self._cancel_lock = threading.Lock()

    def cancel_all(self) -> List[str]:
        """Signal cancellation to every instance not yet terminal; returns their ids."""
        with self._cancel_lock:
            self._stopped = True
            active = self.table.active()
            for inst in active:
                ev = self._cancel.get(inst.key)
                if ev is not None:
                    ev.set()
            return [inst.instance_id for inst in active]

    def _on_transition(self, instance: JobInstance, state: InstanceState) -> None:
        self.table.transition(instance, state)
        # cancel from the failing worker itself so no pending sibling can start first
        if self._fail_fast and state is InstanceState.FAILED:
            cancelled = self.cancel_all()
            self.console.print_cancel_issued(instance.job.id, cancelled)

    def _workers_for(self, instances: Sequence[JobInstance]) -> int:
        if self.max_workers is not None:
            return max(1, self.max_workers)
        job_caps = [i.job.max_parallel for i in instances if i.job.max_parallel]
        if job_caps:
            return max(1, min(job_caps))
        return max(1, len(instances))

    def run_all(self, instances: Sequence[JobInstance], fail_fast: bool) -> List[RunResult]:
        """Run every instance; results come back in instance order."""
        instances = list(instances)
        if not instances:
            return []
        self._fail_fast = fail_fast

        for inst in instances:
            self.table.add(inst)
            with self._cancel_lock:
                ev = threading.Event()
                if self._stopped:
                    ev.set()
                self._cancel[inst.key] = ev

        results: Dict[InstanceKey, RunResult] = {}
        in_flight: Dict[Future, JobInstance] = {}

        workers = self._workers_for(instances)
        mode = "on" if fail_fast else "off"
        self.console.print_debug(f"{len(instances)} instance(s), {workers} worker(s), fail-fast {mode}")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            for inst in instances:
                fut = pool.submit(
                    self.executor.run,
                    inst,
                    self._cancel[inst.key],
                    self._on_transition,
                )
                in_flight[fut] = inst

            for fut in as_completed(list(in_flight)):
                inst = in_flight.pop(fut)
                # executor.run records failures itself; an exception here is a bug
                result = fut.result()
                results[inst.key] = result
                self.console.print_instance_done(result)

        return [results[inst.key] for inst in instances]

    def status(self, results: Sequence[RunResult]) -> RunStatus:
        return aggregate(results)
