"""Command runner: execute a command inside a project environment.

No shell activation is involved. The runner builds the child's environment
from a copy of the caller's (the parent's ``os.environ`` is never touched),
starts the child in its own process group, forwards SIGINT/SIGTERM to that
group and returns the child's exit code verbatim.

Family isolation is enforced here: the handle and the tool must belong to the
resolved backend, and the other family's package installers are refused
unless explicitly allowed.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
from collections.abc import Sequence
from pathlib import Path

from pyve.errors import FamilyIsolationViolation
from pyve.logging import get_logger
from pyve.types import Backend, EnvironmentHandle, ResolvedBackend, ToolLocation

EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126

PIP_TOOLS = frozenset({"pip", "pip3"})
CONDA_TOOLS = frozenset({"conda", "mamba", "micromamba"})

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _base(arg: str) -> str:
    name = Path(arg).name
    return name[:-4] if name.lower().endswith(".exe") else name


def _is_pip_install(argv: Sequence[str]) -> bool:
    head = _base(argv[0])
    if head in PIP_TOOLS or (head.startswith("pip") and head[3:].replace(".", "").isdigit()):
        return "install" in argv[1:]
    if head.startswith("python") and len(argv) >= 3 and argv[1] == "-m" and argv[2] == "pip":
        return "install" in argv[3:]
    return False


def _is_conda_tool(argv: Sequence[str]) -> bool:
    return _base(argv[0]) in CONDA_TOOLS


def check_isolation(
    resolved: ResolvedBackend,
    tool: ToolLocation,
    handle: EnvironmentHandle,
    argv: Sequence[str],
    allow_cross_family: bool = False,
) -> None:
    """Raise :class:`FamilyIsolationViolation` if running *argv* would cross families."""
    backend = resolved.backend
    if handle.backend is not backend:
        raise FamilyIsolationViolation(
            f"Project resolves to {backend.value} but environment '{handle.name}' "
            f"is {handle.backend.value}",
            hint=f"pyve run --backend {handle.backend.value} -- ...",
        )
    if tool.backend is not backend:
        raise FamilyIsolationViolation(
            f"Project resolves to {backend.value} but the tool {tool.executable_path} "
            f"operates {tool.backend.value}"
        )
    if allow_cross_family or not argv:
        return
    if backend is Backend.MICROMAMBA and _is_pip_install(argv):
        raise FamilyIsolationViolation(
            f"Refusing to run pip installs inside micromamba environment '{handle.name}'",
            hint="Add the package to environment.yml, or pass --allow-cross-family",
        )
    if backend is Backend.VENV and _is_conda_tool(argv):
        raise FamilyIsolationViolation(
            f"Refusing to run {_base(argv[0])} inside venv '{handle.name}'",
            hint="Use pip inside the venv, or pass --allow-cross-family",
        )


def build_invocation(
    tool: ToolLocation,
    handle: EnvironmentHandle,
    argv: Sequence[str],
    environ: dict[str, str],
) -> tuple[list[str], dict[str, str]]:
    """Return the command line and environment for the child process."""
    env = dict(environ)
    prefix = handle.prefix_path
    if handle.backend is Backend.VENV:
        env["VIRTUAL_ENV"] = str(prefix)
        bin_dir = prefix / ("Scripts" if os.name == "nt" else "bin")
        path = env.get("PATH", "")
        env["PATH"] = f"{bin_dir}{os.pathsep}{path}" if path else str(bin_dir)
        env.pop("PYTHONHOME", None)
        env.pop("CONDA_PREFIX", None)
        return list(argv), env
    if handle.backend is Backend.MICROMAMBA:
        env.pop("VIRTUAL_ENV", None)
        env.pop("PYTHONHOME", None)
        cmd = [str(tool.executable_path), "run", "-p", str(prefix), *argv]
        return cmd, env
    raise ValueError(f"Unhandled backend: {handle.backend}")


def _exit_code(rc: int) -> int:
    # Popen reports death by signal N as -N
    return 128 - rc if rc < 0 else rc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run(
    resolved: ResolvedBackend,
    tool: ToolLocation,
    handle: EnvironmentHandle,
    argv: Sequence[str],
    *,
    allow_cross_family: bool = False,
    environ: dict[str, str] | None = None,
    cwd: Path | None = None,
) -> int:
    if not argv:
        raise ValueError("No command given")
    check_isolation(resolved, tool, handle, argv, allow_cross_family)
    cmd, env = build_invocation(tool, handle, argv, dict(os.environ if environ is None else environ))
    log.info(f"run ({handle.backend.value}:{handle.name}): {' '.join(cmd)}")

    try:
        proc = subprocess.Popen(cmd, cwd=cwd, env=env, start_new_session=True)
    except FileNotFoundError:
        log.error(f"command not found: {argv[0]}")
        return EXIT_NOT_FOUND
    except PermissionError:
        log.error(f"command not executable: {argv[0]}")
        return EXIT_NOT_EXECUTABLE

    def _forward(signum, _frame):
        try:
            os.killpg(proc.pid, signum)
        except ProcessLookupError:
            pass

    previous = {}
    if threading.current_thread() is threading.main_thread():
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _forward)
    try:
        rc = proc.wait()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
    return _exit_code(rc)
