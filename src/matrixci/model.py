# model.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import ExpansionError, FailureCause


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CheckoutStep:
    """Fetch the repository into the workspace (actions/checkout)."""
    name: str
    uses: str = "actions/checkout"
    submodules: bool = False
    recursive: bool = False
    ref: Optional[str] = None
    repository: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: Optional[float] = None

    kind = "checkout"


@dataclass(frozen=True)
class ToolchainStep:
    """Make a named toolchain available to later steps (actions-rs/toolchain)."""
    name: str
    toolchain: str
    uses: str = "actions-rs/toolchain"
    profile: Optional[str] = None
    override: bool = False
    components: Tuple[str, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: Optional[float] = None

    kind = "toolchain"


@dataclass(frozen=True)
class RunStep:
    """A literal shell command."""
    name: str
    run: str
    working_directory: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: Optional[float] = None

    kind = "run"


Step = Union[CheckoutStep, ToolchainStep, RunStep]


# ---------------------------------------------------------------------
# Jobs / workflow
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Job:
    """
    A CI job: runner selector + matrix + ordered steps.

    `matrix` maps axis name -> tuple of values, in declaration order.
    An empty matrix means a single implicit combination.
    """
    id: str
    runs_on: str
    steps: Tuple[Step, ...]
    matrix: Dict[str, Tuple[Any, ...]] = field(default_factory=dict)
    fail_fast: bool = True
    env: Dict[str, str] = field(default_factory=dict)
    name: Optional[str] = None
    max_parallel: Optional[int] = None
    timeout_minutes: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    triggers: Tuple[str, ...]
    jobs: Tuple[Job, ...]
    env: Dict[str, str] = field(default_factory=dict)

    def global_env(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """
        Process environment overlaid with the workflow's declared env.

        The result is a fresh dict; `os.environ` is never written.
        """
        base = dict(os.environ if environ is None else environ)
        base.update(self.env)
        return base


# ---------------------------------------------------------------------
# Expansion products
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class MatrixCombination:
    """One concrete value per matrix axis, in axis declaration order."""
    values: Tuple[Tuple[str, Any], ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)

    def label(self) -> str:
        return ", ".join(str(v) for _, v in self.values)

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class JobInstance:
    """A job bound to one matrix combination and one resolved runner."""
    job: Job
    combination: MatrixCombination
    runner: str
    env: Dict[str, str]
    index: int = 0

    @property
    def instance_id(self) -> str:
        """Display name; two combinations may stringify alike, so not a key."""
        label = self.combination.label()
        return f"{self.job.id} ({label})" if label else self.job.id

    @property
    def key(self) -> Tuple[str, int]:
        return (self.job.id, self.index)


# ---------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------

class InstanceState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (InstanceState.SUCCEEDED, InstanceState.FAILED, InstanceState.CANCELLED)


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepOutcome:
    index: int
    name: str
    status: StepStatus
    exit_code: Optional[int] = None
    cause: Optional[FailureCause] = None
    diagnostic: str = ""
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.status is StepStatus.FAILED


@dataclass(frozen=True)
class RunResult:
    instance: JobInstance
    state: InstanceState
    steps: Tuple[StepOutcome, ...] = ()

    @property
    def first_failure(self) -> Optional[StepOutcome]:
        for outcome in self.steps:
            if outcome.failed:
                return outcome
        return None


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


def aggregate(results: "list[RunResult] | Tuple[RunResult, ...]") -> RunStatus:
    """Failed if any instance failed, else Cancelled if any was cancelled, else Succeeded."""
    states = {r.state for r in results}
    if InstanceState.FAILED in states:
        return RunStatus.FAILED
    if InstanceState.CANCELLED in states:
        return RunStatus.CANCELLED
    return RunStatus.SUCCEEDED


@dataclass(frozen=True)
class JobResult:
    job: Job
    results: Tuple[RunResult, ...] = ()
    expansion_error: Optional[ExpansionError] = None

    @property
    def status(self) -> RunStatus:
        if self.expansion_error is not None:
            return RunStatus.FAILED
        return aggregate(self.results)


@dataclass(frozen=True)
class WorkflowRunResult:
    workflow: WorkflowDefinition
    jobs: Tuple[JobResult, ...] = ()
    skipped: bool = False

    @property
    def results(self) -> Tuple[RunResult, ...]:
        return tuple(r for j in self.jobs for r in j.results)

    @property
    def expansion_errors(self) -> Tuple[ExpansionError, ...]:
        return tuple(j.expansion_error for j in self.jobs if j.expansion_error is not None)

    @property
    def status(self) -> RunStatus:
        if self.expansion_errors:
            return RunStatus.FAILED
        return aggregate(self.results)
