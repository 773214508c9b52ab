# triggers.py
from __future__ import annotations

from typing import Iterable, Optional

from .model import WorkflowDefinition

# Event names the host integration can deliver.
KNOWN_TRIGGERS = frozenset({
    "push",
    "pull_request",
    "pull_request_target",
    "workflow_dispatch",
    "workflow_call",
    "schedule",
    "release",
    "create",
    "delete",
    "merge_group",
    "repository_dispatch",
})


def unsupported(triggers: Iterable[str]) -> list[str]:
    return [t for t in triggers if t not in KNOWN_TRIGGERS]


def is_eligible(definition: WorkflowDefinition, event: Optional[str]) -> bool:
    """
    True when `event` activates the workflow.

    No event means the caller did not filter (local runs), which is always eligible.
    """
    if event is None:
        return True
    return event in definition.triggers
