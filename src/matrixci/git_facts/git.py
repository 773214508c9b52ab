# git.py
# Small wrapper around the Git CLI for run metadata (repository name, ref,
# workspace root). Step execution never goes through here; checkout steps use
# the command runner.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Raises subprocess.CalledProcessError on a non-zero exit and
    FileNotFoundError when git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str | Path] = None) -> Path:
    """Absolute path to the root of the repository containing `cwd`."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)


def get_current_ref(cwd: Optional[str | Path] = None) -> str:
    """Current branch name, or the HEAD SHA when detached."""
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return head_sha(cwd)
    return ref


def describe_repository(cwd: Optional[str | Path] = None) -> Optional[str]:
    """
    `name@ref` for the run header, or None outside a git repository.
    """
    try:
        try:
            url = get_remote_url("origin", cwd=cwd)
            name = url.rstrip("/").split("/")[-1].replace(".git", "")
        except subprocess.CalledProcessError:
            name = repo_root(cwd).name
        return f"{name}@{get_current_ref(cwd)}"
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
