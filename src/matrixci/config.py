# config.py
"""
Engine settings: optional YAML file, then MATRIXCI_* environment variables.

Example .matrixci.yaml:

    workers: 4
    step_timeout: 1800     # seconds, used when a step/job sets no timeout-minutes
    workspace: .
    output_tail: 4000
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .step_workflows.command import DEFAULT_OUTPUT_TAIL

DEFAULT_CONFIG_FILE = ".matrixci.yaml"

ENV_VARS = {
    "workers": "MATRIXCI_WORKERS",
    "step_timeout": "MATRIXCI_STEP_TIMEOUT",
    "workspace": "MATRIXCI_WORKSPACE",
    "event": "MATRIXCI_EVENT",
    "output_tail": "MATRIXCI_OUTPUT_TAIL",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    workers: Optional[int] = None
    step_timeout: Optional[float] = None
    workspace: Path = field(default_factory=Path.cwd)
    event: Optional[str] = None
    output_tail: int = DEFAULT_OUTPUT_TAIL

    def with_overrides(self, **overrides: Any) -> "EngineConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if name in ("workers", "output_tail"):
            n = int(value)
            if n < 1:
                raise ConfigError(f"{name} must be >= 1, got {value!r}")
            return n
        if name == "step_timeout":
            t = float(value)
            if t <= 0:
                raise ConfigError(f"{name} must be > 0, got {value!r}")
            return t
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"invalid value for {name}: {value!r}") from e
    if name == "workspace":
        return Path(str(value)).expanduser()
    return str(value)


def load_config(
    path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """
    Build an EngineConfig.

    `path` must exist when given; otherwise `.matrixci.yaml` in the current
    directory is used if present. Environment variables win over the file.
    """
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(EngineConfig)}
    values: dict[str, Any] = {}

    cfg_path = Path(path).expanduser() if path is not None else Path(DEFAULT_CONFIG_FILE)
    if path is not None and not cfg_path.exists():
        raise ConfigError(f"config file not found: {cfg_path}")

    if cfg_path.exists():
        with open(cfg_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"config file must be a mapping: {cfg_path}")
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config keys in {cfg_path}: {unknown}")
        values.update({k: _coerce(k, v) for k, v in data.items()})

    for name, var in ENV_VARS.items():
        if raw := environ.get(var):
            values[name] = _coerce(name, raw)

    return EngineConfig(**{k: v for k, v in values.items() if v is not None})
