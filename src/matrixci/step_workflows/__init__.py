from .base import TOOL_CHECK_TIMEOUT, TOOL_HINTS, check_tool_available, run_sequence, time_left
from .checkout import CheckoutProvider, GitCheckout
from .command import CommandResult, CommandRunner, SubprocessRunner
from .toolchain import RustupToolchain, ToolchainProvider

__all__ = [
    "TOOL_CHECK_TIMEOUT",
    "TOOL_HINTS",
    "check_tool_available",
    "run_sequence",
    "time_left",
    "CheckoutProvider",
    "GitCheckout",
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "RustupToolchain",
    "ToolchainProvider",
]
