# parser.py
"""
YAML workflow text -> WorkflowDefinition.

Accepts the GitHub Actions workflow shape:

    on: [push, pull_request]
    env: {CARGO_TERM_COLOR: always}
    jobs:
      check:
        runs-on: ${{ matrix.os }}
        strategy:
          fail-fast: false
          matrix: {os: [windows-latest], build_type: [Release]}
        steps:
          - uses: actions/checkout@v3
            with: {submodules: 'true'}
          - run: cargo build
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ParseError, ParseErrorKind
from .matrix import repeated_values
from .model import CheckoutStep, Job, RunStep, Step, ToolchainStep, WorkflowDefinition
from .triggers import unsupported

CHECKOUT_ACTIONS = ("actions/checkout",)
TOOLCHAIN_ACTIONS = ("actions-rs/toolchain", "dtolnay/rust-toolchain")


def _malformed(message: str, **details: Any) -> ParseError:
    return ParseError(kind=ParseErrorKind.MALFORMED, message=message, details=details)


def _as_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def _as_bool(value: Any, where: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise _malformed(f"expected a boolean for {where}", value=value)


def _as_number(value: Any, where: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _malformed(f"expected a number for {where}", value=value)
    if value <= 0:
        raise _malformed(f"{where} must be positive", value=value)
    return float(value)


def _as_env(value: Any, where: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _malformed(f"{where} must be a mapping", value=value)
    return {str(k): _as_str(v) for k, v in value.items()}


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def _parse_triggers(doc: dict) -> Tuple[str, ...]:
    # PyYAML follows YAML 1.1, which reads a bare `on` key as boolean True.
    raw = doc.get("on", doc.get(True))
    if raw is None:
        raise _malformed("workflow has no 'on' triggers")

    if isinstance(raw, str):
        names = [raw]
    elif isinstance(raw, list):
        names = [_as_str(t) for t in raw]
    elif isinstance(raw, dict):
        names = [_as_str(t) for t in raw.keys()]
    else:
        raise _malformed("'on' must be an event name, a list or a mapping", value=raw)

    if not names:
        raise _malformed("workflow has no 'on' triggers")

    bad = unsupported(names)
    if bad:
        raise ParseError(
            kind=ParseErrorKind.UNSUPPORTED_TRIGGER,
            message=f"unsupported trigger: {', '.join(bad)}",
            details={"triggers": bad},
        )
    return tuple(names)


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

def _action_name(uses: str) -> Tuple[str, str]:
    name, _, ref = uses.partition("@")
    return name.strip(), ref.strip()


def _default_step_name(raw: dict) -> str:
    if "run" in raw:
        lines = [ln for ln in _as_str(raw["run"]).splitlines() if ln.strip()]
        return f"Run {lines[0].strip()}" if lines else "Run"
    return f"Run {raw.get('uses')}"


def _parse_checkout(name: str, uses: str, with_: dict, common: dict) -> CheckoutStep:
    submodules = with_.get("submodules", False)
    recursive = False
    if isinstance(submodules, str) and submodules.strip().lower() == "recursive":
        submodules, recursive = True, True
    else:
        submodules = _as_bool(submodules, f"step '{name}' with.submodules")

    return CheckoutStep(
        name=name,
        uses=uses,
        submodules=submodules,
        recursive=recursive,
        ref=_as_str(with_["ref"]) if with_.get("ref") else None,
        repository=_as_str(with_["repository"]) if with_.get("repository") else None,
        **common,
    )


def _parse_toolchain(name: str, uses: str, with_: dict, common: dict) -> ToolchainStep:
    action, ref = _action_name(uses)
    toolchain = with_.get("toolchain")
    if toolchain is None and action == "dtolnay/rust-toolchain" and ref not in ("", "master", "v1"):
        toolchain = ref
    if not toolchain:
        raise _malformed(f"step '{name}' needs with.toolchain", uses=uses)

    components = with_.get("components") or ()
    if isinstance(components, str):
        components = tuple(c.strip() for c in components.split(",") if c.strip())
    else:
        components = tuple(_as_str(c) for c in components)

    return ToolchainStep(
        name=name,
        uses=uses,
        toolchain=_as_str(toolchain),
        profile=_as_str(with_["profile"]) if with_.get("profile") else None,
        override=_as_bool(with_.get("override", False), f"step '{name}' with.override"),
        components=components,
        **common,
    )


def _parse_step(raw: Any, job_id: str, index: int) -> Step:
    if not isinstance(raw, dict):
        raise _malformed(f"job '{job_id}' step {index} must be a mapping", value=raw)

    name = _as_str(raw.get("name")) or _default_step_name(raw)
    common = {
        "env": _as_env(raw.get("env"), f"job '{job_id}' step '{name}' env"),
        "timeout_minutes": _as_number(raw.get("timeout-minutes"), f"step '{name}' timeout-minutes"),
    }

    if "run" in raw and "uses" in raw:
        raise _malformed(f"job '{job_id}' step '{name}' has both 'run' and 'uses'")

    if "run" in raw:
        cmd = _as_str(raw["run"])
        if not cmd.strip():
            raise _malformed(f"job '{job_id}' step '{name}' has an empty 'run'")
        wd = raw.get("working-directory")
        return RunStep(
            name=name,
            run=cmd,
            working_directory=_as_str(wd) if wd else None,
            **common,
        )

    if "uses" in raw:
        uses = _as_str(raw["uses"])
        with_ = raw.get("with") or {}
        if not isinstance(with_, dict):
            raise _malformed(f"job '{job_id}' step '{name}' 'with' must be a mapping")
        action, _ = _action_name(uses)
        if action in CHECKOUT_ACTIONS:
            return _parse_checkout(name, uses, with_, common)
        if action in TOOLCHAIN_ACTIONS:
            return _parse_toolchain(name, uses, with_, common)
        raise _malformed(f"job '{job_id}' step '{name}' uses an unsupported action", uses=uses)

    raise _malformed(f"job '{job_id}' step '{name}' needs 'run' or 'uses'")


# ---------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------

def _parse_matrix(raw: Any, job_id: str) -> Dict[str, Tuple[Any, ...]]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise _malformed(f"job '{job_id}' strategy.matrix must be a mapping", value=raw)

    axes: Dict[str, Tuple[Any, ...]] = {}
    for axis, values in raw.items():
        if axis in ("include", "exclude"):
            raise _malformed(f"job '{job_id}' matrix '{axis}' is not supported")
        if not isinstance(values, list):
            raise _malformed(f"job '{job_id}' matrix axis '{axis}' must be a list", value=values)
        repeated = repeated_values(values)
        if repeated:
            raise _malformed(f"job '{job_id}' matrix axis '{axis}' repeats values", values=repeated)
        axes[str(axis)] = tuple(values)
    return axes


def _parse_job(job_id: str, raw: Any) -> Job:
    if not isinstance(raw, dict):
        raise _malformed(f"job '{job_id}' must be a mapping")

    runs_on = raw.get("runs-on")
    if isinstance(runs_on, list):
        runs_on = ",".join(_as_str(r) for r in runs_on)
    if not runs_on:
        raise _malformed(f"job '{job_id}' has no 'runs-on'")

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise _malformed(f"job '{job_id}' has no steps")
    steps = tuple(_parse_step(s, job_id, i) for i, s in enumerate(raw_steps, start=1))

    strategy = raw.get("strategy") or {}
    if not isinstance(strategy, dict):
        raise _malformed(f"job '{job_id}' strategy must be a mapping")

    max_parallel = strategy.get("max-parallel")
    if max_parallel is not None:
        if isinstance(max_parallel, bool) or not isinstance(max_parallel, int) or max_parallel < 1:
            raise _malformed(f"job '{job_id}' strategy.max-parallel must be a positive integer")

    return Job(
        id=job_id,
        runs_on=_as_str(runs_on),
        steps=steps,
        matrix=_parse_matrix(strategy.get("matrix"), job_id),
        fail_fast=_as_bool(strategy.get("fail-fast", True), f"job '{job_id}' strategy.fail-fast"),
        env=_as_env(raw.get("env"), f"job '{job_id}' env"),
        name=_as_str(raw["name"]) if raw.get("name") else None,
        max_parallel=max_parallel,
        timeout_minutes=_as_number(raw.get("timeout-minutes"), f"job '{job_id}' timeout-minutes"),
    )


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def parse(raw_text: str) -> WorkflowDefinition:
    try:
        doc = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise _malformed("workflow is not valid YAML", error=str(e)) from e

    if not isinstance(doc, dict):
        raise _malformed("workflow must be a YAML mapping")

    triggers = _parse_triggers(doc)

    raw_jobs = doc.get("jobs")
    if not isinstance(raw_jobs, dict) or not raw_jobs:
        raise _malformed("workflow has no jobs")
    jobs: List[Job] = [_parse_job(str(job_id), raw) for job_id, raw in raw_jobs.items()]

    return WorkflowDefinition(
        name=_as_str(doc.get("name")) or "workflow",
        triggers=triggers,
        jobs=tuple(jobs),
        env=_as_env(doc.get("env"), "workflow env"),
    )


def parse_file(path: str | Path) -> WorkflowDefinition:
    wf_path = Path(path).expanduser()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    return parse(wf_path.read_text(encoding="utf-8"))
