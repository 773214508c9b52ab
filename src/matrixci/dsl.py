# dsl.py
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import ParseError, ParseErrorKind
from .matrix import repeated_values
from .model import CheckoutStep, Job, RunStep, Step, ToolchainStep, WorkflowDefinition
from .triggers import unsupported


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def run(
    cmd: str,
    name: str | None = None,
    *,
    cwd: str | None = None,
    env: Optional[Dict[str, str]] = None,
    timeout_minutes: float | None = None,
) -> RunStep:
    """Create a shell step."""
    if not cmd.strip():
        raise ParseError(ParseErrorKind.MALFORMED, "run() needs a command")
    first = cmd.strip().splitlines()[0]
    return RunStep(
        name=name or f"Run {first}",
        run=cmd,
        working_directory=cwd,
        env={k: str(v) for k, v in (env or {}).items()},
        timeout_minutes=timeout_minutes,
    )


def checkout(
    name: str = "checkout",
    *,
    submodules: bool | str = False,
    ref: str | None = None,
    repository: str | None = None,
    timeout_minutes: float | None = None,
) -> CheckoutStep:
    recursive = submodules == "recursive"
    return CheckoutStep(
        name=name,
        submodules=bool(submodules),
        recursive=recursive,
        ref=ref,
        repository=repository,
        timeout_minutes=timeout_minutes,
    )


def toolchain(
    toolchain: str = "stable",
    name: str | None = None,
    *,
    profile: str | None = None,
    override: bool = False,
    components: Sequence[str] = (),
    timeout_minutes: float | None = None,
) -> ToolchainStep:
    return ToolchainStep(
        name=name or f"Install {toolchain} toolchain",
        toolchain=toolchain,
        profile=profile,
        override=override,
        components=tuple(components),
        timeout_minutes=timeout_minutes,
    )


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

def matrix(**axes: Iterable[Any]) -> Dict[str, tuple]:
    """
    Matrix axes in keyword order.

    Example:
        job("check", run("cargo test"),
            runs_on="${{ matrix.os }}",
            matrix=matrix(os=["ubuntu-latest", "windows-latest"], build_type=["Release"]))
    """
    return {k: tuple(v) for k, v in axes.items()}


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    id: str,
    *steps: Step,  # allow: job("x", run(...), run(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    runs_on: str = "local",
    matrix: Optional[Dict[str, Iterable[Any]]] = None,
    fail_fast: bool = True,
    env: Optional[Dict[str, str]] = None,
    name: str | None = None,
    max_parallel: int | None = None,
    timeout_minutes: float | None = None,
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ParseError(ParseErrorKind.MALFORMED, f"job({id!r}) must have at least one step")
    if not runs_on:
        raise ParseError(ParseErrorKind.MALFORMED, f"job({id!r}) needs a runner selector")

    axes = {k: tuple(v) for k, v in (matrix or {}).items()}
    for axis, values in axes.items():
        repeated = repeated_values(values)
        if repeated:
            raise ParseError(
                ParseErrorKind.MALFORMED,
                f"job({id!r}) matrix axis {axis!r} repeats values",
                {"values": repeated},
            )

    return Job(
        id=id,
        runs_on=runs_on,
        steps=tuple(steps_final),
        matrix=axes,
        fail_fast=fail_fast,
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        name=name,
        max_parallel=max_parallel,
        timeout_minutes=timeout_minutes,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, id: str):
        self.id = id
        self._runs_on: str = "local"
        self._steps: list[Step] = []
        self._matrix: dict[str, tuple] = {}
        self._fail_fast: bool = True
        self._env: dict[str, str] = {}
        self._max_parallel: int | None = None

    def runs_on(self, selector: str):
        self._runs_on = selector
        return self

    def with_axis(self, axis: str, *values: Any):
        self._matrix[axis] = tuple(values)
        return self

    def fail_fast(self, enabled: bool = True):
        self._fail_fast = enabled
        return self

    def max_parallel(self, n: int):
        self._max_parallel = n
        return self

    def with_env(self, **env):
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def checkout(self, **kwargs):
        self._steps.append(checkout(**kwargs))
        return self

    def toolchain(self, name: str = "stable", **kwargs):
        self._steps.append(toolchain(name, **kwargs))
        return self

    def define_step(self, cmd: str, name: str | None = None, cwd: str | None = None):
        self._steps.append(run(cmd, name, cwd=cwd))
        return self

    def build(self) -> Job:
        return job(
            self.id,
            steps_list=self._steps,
            runs_on=self._runs_on,
            matrix=self._matrix,
            fail_fast=self._fail_fast,
            env=self._env,
            max_parallel=self._max_parallel,
        )


def build(id: str) -> JobBuilder:
    """Convenience: build('test').define_step('cargo test').build()"""
    return JobBuilder(id)


# ---------------------------------------------------------------------
# Workflow helper
# ---------------------------------------------------------------------

def wf(
    *jobs: Job,
    name: str = "workflow",
    on: Sequence[str] = ("push", "pull_request"),
    env: Optional[Dict[str, str]] = None,
) -> WorkflowDefinition:
    """
    Workflow definition helper.

    Users can write:
        from matrixci import wf, job, run

        def workflow():
            return wf(
                job("check", run("cargo build"), run("cargo test")),
            )
    """
    if not jobs:
        raise ParseError(ParseErrorKind.MALFORMED, "workflow has no jobs")
    bad = unsupported(on)
    if bad:
        raise ParseError(
            ParseErrorKind.UNSUPPORTED_TRIGGER,
            f"unsupported trigger: {', '.join(bad)}",
            {"triggers": bad},
        )
    ids = [j.id for j in jobs]
    if len(set(ids)) != len(ids):
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        raise ParseError(ParseErrorKind.MALFORMED, f"Duplicate job ids: {dupes}")

    return WorkflowDefinition(
        name=name,
        triggers=tuple(on),
        jobs=tuple(jobs),
        env={k: str(v) for k, v in (env or {}).items()},
    )
