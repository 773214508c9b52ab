from .dsl import job, run, checkout, toolchain, matrix, wf, JobBuilder, build
from .parser import parse, parse_file
from .matrix import expand, instantiate
from .executor import StepExecutor
from .coordinator import RunCoordinator
from .runner import run_workflow, WorkflowRunner
from .model import Job, WorkflowDefinition, JobInstance, RunResult, WorkflowRunResult

__all__ = [
    "job", "run", "checkout", "toolchain", "matrix", "wf", "JobBuilder", "build",
    "parse", "parse_file", "expand", "instantiate",
    "StepExecutor", "RunCoordinator", "run_workflow", "WorkflowRunner",
    "Job", "WorkflowDefinition", "JobInstance", "RunResult", "WorkflowRunResult",
]
