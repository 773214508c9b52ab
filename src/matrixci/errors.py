# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ParseErrorKind(str, Enum):
    MALFORMED = "Malformed"
    UNSUPPORTED_TRIGGER = "UnsupportedTrigger"


class ExpansionErrorKind(str, Enum):
    EMPTY_AXIS = "EmptyAxis"


class FailureCause(str, Enum):
    NON_ZERO_EXIT = "NonZeroExit"
    TIMED_OUT = "TimedOut"
    COLLABORATOR_UNAVAILABLE = "CollaboratorUnavailable"


@dataclass
class ParseError(Exception):
    """
    Raised while turning workflow text (or a Python workflow file) into a
    WorkflowDefinition. Nothing has executed when this surfaces.
    """
    kind: ParseErrorKind
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind.value}: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class ExpansionError(Exception):
    """Raised by the matrix expander; fatal for one job only."""
    kind: ExpansionErrorKind
    job: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}\njob={self.job}"


@dataclass
class StepFailure(Exception):
    """
    A failed step inside one job instance.

    The executor records this as a StepOutcome; it never propagates out of
    the executor.
    """
    cause: FailureCause
    step: str
    message: str
    exit_code: int | None = None

    def __str__(self) -> str:
        code = f" (exit={self.exit_code})" if self.exit_code is not None else ""
        return f"step '{self.step}' failed [{self.cause.value}]{code}: {self.message}"


class InvalidTransition(RuntimeError):
    """Raised when an instance status change is not allowed by the state machine."""
