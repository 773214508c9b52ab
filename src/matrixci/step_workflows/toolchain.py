# step_workflows/toolchain.py
from __future__ import annotations

import time
from pathlib import Path
from typing import List, Mapping, Optional, Protocol

from ..model import ToolchainStep
from .base import check_tool_available, run_sequence, time_left
from .command import CommandResult, CommandRunner


class ToolchainProvider(Protocol):
    def install(
        self,
        step: ToolchainStep,
        env: Mapping[str, str],
        workspace: Path,
        timeout: Optional[float] = None,
    ) -> CommandResult: ...


class RustupToolchain:
    """Install Rust toolchains with rustup; `override` pins the toolchain for the workspace."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def commands(self, step: ToolchainStep) -> List[List[str]]:
        install = ["rustup", "toolchain", "install", step.toolchain]
        if step.profile:
            install += ["--profile", step.profile]
        for component in step.components:
            install += ["--component", component]

        cmds = [install]
        if step.override:
            cmds.append(["rustup", "override", "set", step.toolchain])
        return cmds

    def install(
        self,
        step: ToolchainStep,
        env: Mapping[str, str],
        workspace: Path,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        started = time.monotonic()
        check_tool_available(self.runner, "rustup", step.name, env, workspace, timeout)
        return run_sequence(self.runner, self.commands(step), env, workspace, time_left(timeout, started))
