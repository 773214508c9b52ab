# loader.py
from __future__ import annotations

import runpy
from pathlib import Path

from .errors import ParseError, ParseErrorKind
from .model import WorkflowDefinition
from .parser import parse_file

YAML_SUFFIXES = (".yml", ".yaml")


def load_workflow(path: str | Path) -> WorkflowDefinition:
    """
    Load a workflow from a YAML file or a python file.

    A python file must define either:
      - workflow() -> WorkflowDefinition
      - WORKFLOW = WorkflowDefinition(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix in YAML_SUFFIXES:
        return parse_file(wf_path)
    if wf_path.suffix != ".py":
        raise ParseError(
            ParseErrorKind.MALFORMED,
            f"Workflow must be a .yml, .yaml or .py file, got: {wf_path.name}",
        )

    module_name = f"matrixci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    definition = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        try:
            definition = globals_dict["workflow"]()
        except TypeError as e:
            if "positional argument" in str(e):
                raise TypeError(
                    "Your workflow() is being called with arguments (name collision with a helper). "
                    "Use the 'wf' helper instead: `from matrixci import wf, job, run` then "
                    "`def workflow(): return wf(job(...), job(...))`"
                ) from e
            raise
    elif "WORKFLOW" in globals_dict:
        definition = globals_dict["WORKFLOW"]

    if not isinstance(definition, WorkflowDefinition):
        raise ParseError(
            ParseErrorKind.MALFORMED,
            "Workflow must return/define a WorkflowDefinition. "
            "Define workflow() -> wf(...) or WORKFLOW = wf(...).",
            {"file": str(wf_path)},
        )

    return definition
