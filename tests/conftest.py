"""Shared pytest fixtures for matrixci tests."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Union

import pytest
from click.testing import CliRunner

from matrixci.executor import StepExecutor
from matrixci.step_workflows import CommandResult
from matrixci.ui.console import Console

RUST_WORKFLOW = """\
name: Rust

on:
  push:
  pull_request:

env:
  CARGO_TERM_COLOR: always

jobs:
  check:
    runs-on: ${{ matrix.os }}

    strategy:
      fail-fast: false
      matrix:
        os: [windows-latest]
        build_type: [Release]

    steps:
      - name: checkout
        uses: actions/checkout@v3
        with:
          submodules: 'true'

      - uses: actions-rs/toolchain@v1
        with:
          profile: minimal
          toolchain: stable
          override: true

      - run: cargo build

      - run: cargo test
"""

Handler = Callable[[str, Mapping[str, str]], Union[CommandResult, Exception]]


class FakeRunner:
    """
    Command runner that never spawns processes.

    `handler(command, env)` decides the result; returning an exception raises it.
    Every call is recorded as (command, env, cwd, timeout).
    """

    def __init__(self, handler: Optional[Handler] = None):
        self.handler = handler or (lambda cmd, env: CommandResult(exit_code=0))
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def execute(self, command, env, cwd, timeout=None):
        cmd = command if isinstance(command, str) else " ".join(command)
        with self._lock:
            self.calls.append((cmd, dict(env), Path(cwd), timeout))
        result = self.handler(cmd, env)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def commands(self) -> List[str]:
        return [c[0] for c in self.calls]


class FakeCheckout:
    def __init__(self, result: Optional[CommandResult] = None, error: Optional[Exception] = None):
        self.result = result or CommandResult(exit_code=0)
        self.error = error
        self.calls: List[tuple] = []

    def checkout(self, step, env, workspace, timeout=None):
        self.calls.append((step, dict(env), workspace, timeout))
        if self.error is not None:
            raise self.error
        return self.result


class FakeToolchain:
    def __init__(self, result: Optional[CommandResult] = None, error: Optional[Exception] = None):
        self.result = result or CommandResult(exit_code=0)
        self.error = error
        self.calls: List[tuple] = []

    def install(self, step, env, workspace, timeout=None):
        self.calls.append((step, dict(env), workspace, timeout))
        if self.error is not None:
            raise self.error
        return self.result


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(exit_code=0, stdout=stdout)


def fail(code: int = 1, stderr: str = "boom") -> CommandResult:
    return CommandResult(exit_code=code, stderr=stderr)


@pytest.fixture
def console():
    return Console()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def make_executor(tmp_path, console):
    """Build a StepExecutor over fakes rooted at tmp_path."""

    def _make(runner=None, checkout=None, toolchain=None, **kwargs) -> StepExecutor:
        return StepExecutor(
            runner or FakeRunner(),
            checkout or FakeCheckout(),
            toolchain or FakeToolchain(),
            workspace=tmp_path,
            console=kwargs.pop("console", console),
            **kwargs,
        )

    return _make


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def rust_workflow_text() -> str:
    return RUST_WORKFLOW


@pytest.fixture
def env_base() -> Dict[str, str]:
    """A small, fixed process environment so tests do not depend on the host."""
    return {"PATH": "/usr/bin", "HOME": "/home/ci"}
