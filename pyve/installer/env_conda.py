"""micromamba materializer.

Creates a prefix environment from the project's environment file via
``micromamba create -p <prefix> -f <env_file> -y``, adding ``-c`` for each
configured channel.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

from pyve.detect.indicators import CONDA_LOCK_FILE
from pyve.errors import EnvironmentCreationFailed
from pyve.logging import get_logger
from pyve.types import Backend, ToolLocation

log = get_logger(__name__)


def environment_file(project_dir: Path, configured: str | None) -> Path:
    """Return the file to create the environment from.

    The configured file wins; otherwise ``environment.yml`` and then
    ``conda-lock.yml`` are used if present.
    """
    if configured:
        path = project_dir / configured
        if not path.is_file():
            raise EnvironmentCreationFailed(
                f"Environment file not found: {path}",
                hint="Fix 'micromamba.env_file' in .pyve/config",
            )
        return path
    for name in ("environment.yml", "environment.yaml", CONDA_LOCK_FILE):
        if (project_dir / name).is_file():
            return project_dir / name
    raise EnvironmentCreationFailed(
        "No environment file found (environment.yml or conda-lock.yml)",
        hint="Create environment.yml with the packages you need, then run 'pyve init'",
    )


def create_prefix(
    tool: ToolLocation,
    prefix: Path,
    env_file: Path,
    *,
    channels: Sequence[str] = (),
    environ: dict[str, str] | None = None,
) -> None:
    if tool.backend is not Backend.MICROMAMBA:
        raise ValueError(f"Cannot create a micromamba env with a {tool.backend.value} tool")
    cmd = [str(tool.executable_path), "create", "-p", str(prefix), "-f", str(env_file), "-y"]
    for ch in channels:
        cmd += ["-c", ch]
    log.info(f"creating micromamba env: {' '.join(cmd)}")
    subprocess.run(cmd, cwd=env_file.parent, env=environ or None, check=True)
