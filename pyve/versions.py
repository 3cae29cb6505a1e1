"""Python version pinning through asdf or pyenv.

asdf is preferred when both are installed. Pins are written by the version
manager itself (``.tool-versions`` / ``.python-version``) and mirrored into
``python.version`` in ``.pyve/config``. Nothing here creates environments.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from pyve.config import load_config, save_config
from pyve.context import ProjectContext
from pyve.errors import PyveError, VersionManagerNotFound
from pyve.logging import get_logger
from pyve.prompts import ChoiceProvider
from pyve.validator import validate_python_version

ASDF_PIN_FILE = ".tool-versions"
PYENV_PIN_FILE = ".python-version"

log = get_logger(__name__)


@dataclass(frozen=True)
class VersionManager:
    name: str  # "asdf" | "pyenv"
    executable: Path
    pin_file: str


def detect_version_manager(ctx: ProjectContext) -> VersionManager | None:
    asdf = shutil.which("asdf", path=ctx.search_path)
    if asdf:
        return VersionManager("asdf", Path(asdf), ASDF_PIN_FILE)
    pyenv = shutil.which("pyenv", path=ctx.search_path)
    if pyenv:
        return VersionManager("pyenv", Path(pyenv), PYENV_PIN_FILE)
    return None


def _read_tool_versions(path: Path) -> str | None:
    for line in path.read_text(encoding="utf-8").splitlines():
        parts = line.split("#", 1)[0].split()
        if len(parts) >= 2 and parts[0] == "python":
            return parts[1]
    return None


def read_pinned_version(ctx: ProjectContext) -> str | None:
    """Return the project's pinned Python version, if any.

    Lookup order: ``.tool-versions``, ``.python-version``, then
    ``python.version`` from the config.
    """
    tv = ctx.root / ASDF_PIN_FILE
    if tv.is_file():
        v = _read_tool_versions(tv)
        if v:
            return v
    pv = ctx.root / PYENV_PIN_FILE
    if pv.is_file():
        lines = pv.read_text(encoding="utf-8").split()
        if lines:
            return lines[0]
    try:
        return load_config(ctx).python.version
    except PyveError:
        return None


def asdf_interpreter(ctx: ProjectContext, version: str) -> Path:
    return ctx.asdf_data_dir / "installs" / "python" / version / "bin" / "python"


def pyenv_interpreter(ctx: ProjectContext, version: str) -> Path:
    return ctx.pyenv_root / "versions" / version / "bin" / "python"


def is_installed(ctx: ProjectContext, manager: VersionManager, version: str) -> bool:
    if manager.name == "asdf":
        return asdf_interpreter(ctx, version).exists()
    return pyenv_interpreter(ctx, version).exists()


def _run(cmd: list[str], ctx: ProjectContext) -> subprocess.CompletedProcess:
    log.info(f"running: {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=ctx.root, env=ctx.environ or None, check=False)


def _install(ctx: ProjectContext, manager: VersionManager, version: str) -> None:
    exe = str(manager.executable)
    if manager.name == "asdf":
        cmd = [exe, "install", "python", version]
    else:
        cmd = [exe, "install", "-s", version]
    if _run(cmd, ctx).returncode != 0:
        raise PyveError(
            f"Failed to install Python {version} with {manager.name}",
            hint=f"Check available versions: {manager.name} "
            + ("list all python" if manager.name == "asdf" else "install --list"),
        )


def _pin(ctx: ProjectContext, manager: VersionManager, version: str) -> None:
    exe = str(manager.executable)
    if manager.name == "asdf":
        # asdf 0.18 replaced 'local' with 'set'
        if _run([exe, "set", "python", version], ctx).returncode != 0:
            if _run([exe, "local", "python", version], ctx).returncode != 0:
                raise PyveError(f"Failed to set Python {version} with asdf")
        _run([exe, "reshim", "python"], ctx)
        return
    if _run([exe, "local", version], ctx).returncode != 0:
        raise PyveError(f"Failed to set Python {version} with pyenv")
    _run([exe, "rehash"], ctx)


def set_python_version(
    ctx: ProjectContext, version: str, choices: ChoiceProvider
) -> VersionManager:
    """Pin *version* for the project without touching any environment."""
    try:
        validate_python_version(version)
    except ValueError as e:
        raise PyveError(str(e)) from e

    manager = detect_version_manager(ctx)
    if manager is None:
        raise VersionManagerNotFound(
            "No Python version manager found (asdf or pyenv)",
            hint="Install asdf (https://asdf-vm.com/) or pyenv (https://github.com/pyenv/pyenv)",
        )

    if not is_installed(ctx, manager, version):
        if not choices.confirm(f"Python {version} is not installed. Install it with {manager.name}?"):
            raise PyveError(
                f"Python {version} is not installed",
                hint=f"{manager.name} install "
                + (f"python {version}" if manager.name == "asdf" else version),
            )
        _install(ctx, manager, version)

    _pin(ctx, manager, version)

    config = load_config(ctx)
    config.python.version = version
    save_config(ctx, config)
    log.info(f"pinned python {version} via {manager.name}")
    return manager
