"""venv materializer.

Creates an isolated venv at the given prefix with the resolved interpreter:
``<python> -m venv <prefix>``. Package installation is left to pip inside
the environment.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from pyve.logging import get_logger
from pyve.types import Backend, ToolLocation

log = get_logger(__name__)


def create_venv(tool: ToolLocation, prefix: Path, *, environ: dict[str, str] | None = None) -> None:
    """Run ``<python> -m venv <prefix>``; raise ``CalledProcessError`` on failure.

    Parameters
    ----------
    tool: ToolLocation
        Interpreter to create the venv with; must belong to the venv backend.
    prefix: Path
        Directory of the new environment. Must not already hold one.
    """
    if tool.backend is not Backend.VENV:
        raise ValueError(f"Cannot create a venv with a {tool.backend.value} tool")
    cmd = [str(tool.executable_path), "-m", "venv", str(prefix)]
    log.info(f"creating venv: {' '.join(cmd)}")
    subprocess.run(cmd, cwd=prefix.parent, env=environ or None, check=True)
