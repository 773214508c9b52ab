# cli.py
from __future__ import annotations

import sys
import threading
from pathlib import Path

import click

from matrixci.config import ConfigError, load_config
from matrixci.errors import ParseError
from matrixci.git_facts.git import describe_repository
from matrixci.loader import load_workflow
from matrixci.model import InstanceState, RunStatus, WorkflowDefinition, WorkflowRunResult
from matrixci.runner import WorkflowRunner, plan
from matrixci.ui.console import Console, get_console, set_console

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 2
EXIT_PARSE_ERROR = 3
EXIT_EXPANSION_ERROR = 4
EXIT_INTERRUPTED = 130

WORKFLOW_DIR = Path(".github") / "workflows"


def exit_code_for(result: WorkflowRunResult) -> int:
    if result.skipped:
        return EXIT_OK
    status = result.status
    if status is RunStatus.SUCCEEDED:
        return EXIT_OK
    if status is RunStatus.CANCELLED:
        return EXIT_CANCELLED
    if any(r.state is InstanceState.FAILED for r in result.results):
        return EXIT_FAILED
    if result.expansion_errors:
        return EXIT_EXPANSION_ERROR
    return EXIT_FAILED


def find_workflow_files() -> list[Path]:
    """
    Find workflow files in the current directory.

    Looks at .github/workflows/*.yml|*.yaml and ./*_workflow.py.
    """
    found: list[Path] = []
    if WORKFLOW_DIR.is_dir():
        found.extend(WORKFLOW_DIR.glob("*.yml"))
        found.extend(WORKFLOW_DIR.glob("*.yaml"))
    found.extend(Path(".").glob("*_workflow.py"))
    return sorted(found)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Resolve the workflow file from the argument or by discovery.

    Exits with EXIT_PARSE_ERROR if nothing (or more than one file) is found.
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Specify an existing file:\n  matrixci run .github/workflows/ci.yml",
            )
            sys.exit(EXIT_PARSE_ERROR)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                "  .github/workflows/*.yml",
                "  *_workflow.py",
            ],
            suggestion="Specify a workflow explicitly:\n  matrixci run path/to/workflow.yml",
        )
        sys.exit(EXIT_PARSE_ERROR)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion=f"Specify a workflow explicitly:\n  matrixci run {workflow_files[0]}",
        )
        sys.exit(EXIT_PARSE_ERROR)

    return workflow_files[0]


def _load(workflow_path: Path) -> WorkflowDefinition:
    console = get_console()
    try:
        return load_workflow(workflow_path)
    except ParseError as e:
        console.print_error(
            "Invalid workflow",
            f"Could not parse {workflow_path}",
            details=str(e).splitlines(),
        )
        sys.exit(EXIT_PARSE_ERROR)
    except FileNotFoundError as e:
        console.print_error("Workflow file not found", str(e))
        sys.exit(EXIT_PARSE_ERROR)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and step diagnostics as they happen)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: run CI workflow matrices locally."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("workflow", required=False)
@click.option("--event", default=None, help="Triggering event (e.g. push); skip the run if the workflow ignores it")
@click.option("--workers", default=None, type=int, help="Max job instances running at once")
@click.option("--timeout", default=None, type=float, help="Default per-step timeout in seconds")
@click.option("--fail-fast/--no-fail-fast", default=None, help="Override every job's strategy.fail-fast")
@click.option(
    "--workspace",
    default=None,
    type=click.Path(exists=True, file_okay=False),
    help="Directory steps run in (defaults to the current directory)",
)
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="Config file")
@click.pass_context
def run(ctx, workflow, event, workers, timeout, fail_fast, workspace, config_path):
    """Run a workflow: expand every job's matrix and execute the instances."""
    console = get_console()

    try:
        config = load_config(config_path).with_overrides(
            workers=workers,
            step_timeout=timeout,
            workspace=Path(workspace) if workspace else None,
            event=event,
        )
    except ConfigError as e:
        console.print_error("Invalid configuration", str(e))
        sys.exit(EXIT_PARSE_ERROR)

    workflow_path = discover_workflow(workflow)
    definition = _load(workflow_path)

    console.print_run_started(
        definition,
        source=str(workflow_path),
        event=config.event,
        repository=describe_repository(config.workspace),
    )

    runner = WorkflowRunner(config=config, fail_fast=fail_fast, console=console)
    outcome: dict = {}

    def target() -> None:
        try:
            outcome["result"] = runner.run(definition)
        except Exception as e:
            outcome["error"] = e

    # Run off the main thread so Ctrl-C can cancel instances cooperatively.
    worker = threading.Thread(target=target, name="matrixci-run", daemon=True)
    worker.start()
    interrupted = False
    while worker.is_alive():
        try:
            worker.join(0.2)
        except KeyboardInterrupt:
            if interrupted:
                console.print_info("\nInterrupted again, exiting")
                sys.exit(EXIT_INTERRUPTED)
            interrupted = True
            console.print_info("\nInterrupted by user, cancelling (running steps finish first)")
            runner.cancel()

    if "error" in outcome:
        console.print_exception(outcome["error"])
        sys.exit(EXIT_FAILED)

    result: WorkflowRunResult = outcome["result"]
    if not result.skipped:
        console.print_results(result)

    if interrupted:
        sys.exit(EXIT_INTERRUPTED)
    sys.exit(exit_code_for(result))


@cli.command("plan")
@click.argument("workflow", required=False)
@click.pass_context
def plan_cmd(ctx, workflow):
    """Show the job instances a workflow expands to, without running them."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    definition = _load(workflow_path)

    failed = False
    for job, instances, error in plan(definition):
        console.print_header(f"{job.id} ({len(instances)} instance(s))")
        if error is not None:
            console.print_error("Matrix expansion failed", str(error))
            failed = True
            continue
        console.print_plan(instances)

    sys.exit(EXIT_EXPANSION_ERROR if failed else EXIT_OK)


@cli.command()
@click.argument("workflow", required=False)
@click.pass_context
def validate(ctx, workflow):
    """Parse a workflow and expand its matrices."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    definition = _load(workflow_path)

    entries = plan(definition)
    errors = [error for _job, _instances, error in entries if error is not None]
    for error in errors:
        console.print_error("Matrix expansion failed", str(error))
    if errors:
        sys.exit(EXIT_EXPANSION_ERROR)

    total = sum(len(instances) for _job, instances, _e in entries)
    console.print_info(f"OK: {definition.name} ({len(definition.jobs)} job(s), {total} instance(s))")


if __name__ == "__main__":
    cli()
