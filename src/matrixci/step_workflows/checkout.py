# step_workflows/checkout.py
from __future__ import annotations

import time
from pathlib import Path
from typing import List, Mapping, Optional, Protocol

from ..model import CheckoutStep
from .base import check_tool_available, run_sequence, time_left
from .command import CommandResult, CommandRunner


class CheckoutProvider(Protocol):
    def checkout(
        self,
        step: CheckoutStep,
        env: Mapping[str, str],
        workspace: Path,
        timeout: Optional[float] = None,
    ) -> CommandResult: ...


class GitCheckout:
    """
    Fetch sources into the workspace with the git CLI.

    Without `repository` the workspace is expected to already be a work tree
    (a local run); the step then only moves to `ref` and syncs submodules.
    """

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def commands(self, step: CheckoutStep, workspace: Path) -> List[List[str]]:
        cmds: List[List[str]] = []

        if step.repository:
            if (workspace / ".git").exists():
                cmds.append(["git", "fetch", "origin"])
            else:
                cmds.append(["git", "clone", step.repository, "."])
        else:
            cmds.append(["git", "rev-parse", "--is-inside-work-tree"])

        if step.ref:
            cmds.append(["git", "checkout", step.ref])

        if step.submodules:
            cmds.append(["git", "submodule", "sync"] + (["--recursive"] if step.recursive else []))
            update = ["git", "submodule", "update", "--init"]
            if step.recursive:
                update.append("--recursive")
            cmds.append(update)

        return cmds

    def checkout(
        self,
        step: CheckoutStep,
        env: Mapping[str, str],
        workspace: Path,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        started = time.monotonic()
        check_tool_available(self.runner, "git", step.name, env, workspace, timeout)
        cmds = self.commands(step, workspace)
        return run_sequence(self.runner, cmds, env, workspace, time_left(timeout, started))
