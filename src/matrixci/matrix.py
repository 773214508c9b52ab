# matrix.py
from __future__ import annotations

import itertools
import re
from typing import Any, Dict, List, Mapping, Sequence

from .errors import ExpansionError, ExpansionErrorKind
from .expressions import substitute
from .model import Job, JobInstance, MatrixCombination


def expand(job: Job) -> List[MatrixCombination]:
    """
    Cartesian product of the job's matrix axes.

    Axes are iterated in declaration order with the last-declared axis
    varying fastest:

        {os: [a, b], build_type: [X, Y]} -> (a,X) (a,Y) (b,X) (b,Y)

    A job with no axes yields exactly one empty combination.
    """
    axes = list(job.matrix.items())
    for axis, values in axes:
        if len(values) == 0:
            raise ExpansionError(
                kind=ExpansionErrorKind.EMPTY_AXIS,
                job=job.id,
                message=f"matrix axis '{axis}' has no values",
            )

    names = [axis for axis, _ in axes]
    return [
        MatrixCombination(values=tuple(zip(names, combo)))
        for combo in itertools.product(*(values for _, values in axes))
    ]


def repeated_values(values: Sequence[Any]) -> List[Any]:
    """Values that appear more than once on one axis; `1` and `"1"` count as different."""
    seen: List[Any] = []
    repeated: List[Any] = []
    for v in values:
        if any(type(s) is type(v) and s == v for s in seen):
            if not any(type(r) is type(v) and r == v for r in repeated):
                repeated.append(v)
        else:
            seen.append(v)
    return repeated


def matrix_env_name(axis: str) -> str:
    """`build_type` -> `MATRIX_BUILD_TYPE`; `node-version` -> `MATRIX_NODE_VERSION`."""
    return "MATRIX_" + re.sub(r"[^A-Za-z0-9]", "_", axis).upper()


def _instance_env(job: Job, combination: MatrixCombination, global_env: Mapping[str, str]) -> Dict[str, str]:
    matrix = combination.as_dict()
    env = dict(global_env)
    for k, v in job.env.items():
        env[k] = substitute(v, matrix=matrix, env=env)
    for axis, value in combination.values:
        env[matrix_env_name(axis)] = "" if value is None else str(value)
    return env


def instantiate(job: Job, global_env: Mapping[str, str]) -> List[JobInstance]:
    """Expand `job` and bind each combination into a JobInstance with a private env copy."""
    instances: List[JobInstance] = []
    for idx, combination in enumerate(expand(job)):
        env = _instance_env(job, combination, global_env)
        runner = substitute(job.runs_on, matrix=combination.as_dict(), env=env)
        instances.append(
            JobInstance(
                job=job,
                combination=combination,
                runner=runner,
                env=env,
                index=idx,
            )
        )
    return instances
