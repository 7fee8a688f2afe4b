"""Detect the local agent's own address and workspace from its environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from .address import MAYOR

_ROLE_DIRS = ("polecats", "crew")


def detect_sender(env: Mapping[str, str] | None = None, cwd: str | Path | None = None) -> str:
    """Return the address of the agent running in this process.

    ``GT_RIG`` plus ``GT_POLECAT`` (set by session start) win. Otherwise a
    working directory under ``<rig>/polecats/<name>`` or ``<rig>/crew/<name>``
    yields ``<rig>/<name>``. Anything else is the mayor.
    """
    environ = os.environ if env is None else env
    rig = environ.get("GT_RIG", "")
    polecat = environ.get("GT_POLECAT", "")
    if rig and polecat:
        return f"{rig}/{polecat}"

    if cwd is None:
        try:
            cwd = os.getcwd()
        except OSError:
            return f"{MAYOR}/"

    parts = Path(cwd).parts
    for role in _ROLE_DIRS:
        if role not in parts:
            continue
        idx = parts.index(role)
        if 0 < idx < len(parts) - 1:
            rig_name = parts[idx - 1]
            name = parts[idx + 1]
            if rig_name and rig_name != os.sep:
                return f"{rig_name}/{name}"
    return f"{MAYOR}/"


def find_beads_workdir(start: str | Path | None = None) -> Path | None:
    """Walk up from ``start`` (default: CWD) to the first directory holding ``.beads``."""
    path = Path(start if start is not None else Path.cwd()).resolve()
    for candidate in (path, *path.parents):
        if (candidate / ".beads").is_dir():
            return candidate
    return None


__all__ = ["detect_sender", "find_beads_workdir"]
