"""Tool resolution.

Finds the executable that operates a backend, searching a fixed list of
locations and returning the first one that exists and is executable:

* micromamba: project sandbox, user sandbox, ``PATH``
* venv: asdf interpreter for the pinned version, pyenv interpreter for the
  pinned version, ``python3``/``python`` on ``PATH``

Resolution only reads the filesystem. Probing the version runs the tool.
"""

from __future__ import annotations

import os
import re
import shutil
import subprocess
from collections.abc import Iterator
from pathlib import Path

from pyve.context import ProjectContext
from pyve.installer.sandboxes import search_sandboxes
from pyve.logging import get_logger
from pyve.types import Backend, ToolLocation, ToolOrigin
from pyve.versions import asdf_interpreter, pyenv_interpreter, read_pinned_version

SYSTEM_PYTHONS = ("python3", "python")
PROBE_TIMEOUT = 15

_VERSION_RE = re.compile(r"(\d+\.\d+\.\d+)")

log = get_logger(__name__)


def _executable(path: Path) -> bool:
    try:
        return path.is_file() and os.access(path, os.X_OK)
    except OSError:
        return False


def _on_path(ctx: ProjectContext, name: str) -> Path | None:
    found = shutil.which(name, path=ctx.search_path)
    return Path(found) if found else None


def _micromamba_candidates(ctx: ProjectContext) -> Iterator[tuple[Path, ToolOrigin]]:
    for sb in search_sandboxes(ctx):
        yield sb.executable("micromamba"), sb.origin
    found = _on_path(ctx, "micromamba")
    if found is not None:
        yield found, ToolOrigin.SYSTEM_PATH


def _python_candidates(
    ctx: ProjectContext, pinned: str | None = None
) -> Iterator[tuple[Path, ToolOrigin]]:
    pinned = pinned or read_pinned_version(ctx)
    if pinned:
        if ctx.asdf_data_dir is not None:
            yield asdf_interpreter(ctx, pinned), ToolOrigin.ASDF
        if ctx.pyenv_root is not None:
            yield pyenv_interpreter(ctx, pinned), ToolOrigin.PYENV
    for name in SYSTEM_PYTHONS:
        found = _on_path(ctx, name)
        if found is not None:
            yield found, ToolOrigin.SYSTEM_PATH


def candidates(
    ctx: ProjectContext, backend: Backend, pinned: str | None = None
) -> Iterator[tuple[Path, ToolOrigin]]:
    """Candidate locations for *backend*, lazily and in search order.

    *pinned* overrides the project's pinned Python version for the venv backend.
    """
    if backend is Backend.MICROMAMBA:
        return _micromamba_candidates(ctx)
    if backend is Backend.VENV:
        return _python_candidates(ctx, pinned)
    raise ValueError(f"Unhandled backend: {backend}")


def probe_version(executable: Path, environ: dict[str, str] | None = None) -> str | None:
    """Run ``<executable> --version`` and return the first ``X.Y.Z`` it prints."""
    try:
        proc = subprocess.run(
            [str(executable), "--version"],
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT,
            env=environ or None,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        log.warning(f"version probe failed for {executable}: {e}")
        return None
    m = _VERSION_RE.search((proc.stdout or "") + (proc.stderr or ""))
    return m.group(1) if m else None


def resolve_tool(
    ctx: ProjectContext, backend: Backend, *, probe: bool = False, pinned: str | None = None
) -> ToolLocation | None:
    """Return the first executable tool location for *backend*, or None.

    Candidates after the first executable one are never looked up.
    """
    for path, origin in candidates(ctx, backend, pinned):
        if not _executable(path):
            continue
        version = probe_version(path, ctx.environ) if probe else None
        log.info(
            f"{backend.tool_name} resolved: {path} ({origin.value})",
            extra={"backend": backend.value, "tool": path},
        )
        return ToolLocation(backend=backend, executable_path=path, origin=origin, version=version)
    log.info(f"{backend.tool_name} not found")
    return None
