"""Lock-file freshness checks.

A lock is stale when the environment spec was modified after the lock file.
The check is advisory: callers decide whether a stale lock is fatal
(``enforce(state, strict=True)``).
"""

from __future__ import annotations

from pathlib import Path

from pyve.config import DEFAULT_ENV_FILE, ProjectConfig, load_config
from pyve.context import ProjectContext
from pyve.detect.indicators import CONDA_LOCK_FILE
from pyve.errors import LockOutOfSync
from pyve.logging import get_logger
from pyve.types import Backend, LockReason, LockState

log = get_logger(__name__)


def check(spec_file: Path | None, lock_file: Path | None) -> LockState:
    if lock_file is None:
        return LockState(spec_file, None, True, LockReason.NO_LOCK_REQUIRED)

    spec_exists = spec_file is not None and spec_file.is_file()
    lock_exists = lock_file.is_file()

    if spec_exists and not lock_exists:
        return LockState(spec_file, lock_file, True, LockReason.LOCK_MISSING)
    if not spec_exists and lock_exists:
        return LockState(spec_file, lock_file, True, LockReason.LOCK_ONLY)
    if not spec_exists and not lock_exists:
        return LockState(spec_file, lock_file, True, LockReason.LOCK_MISSING)

    if lock_file.stat().st_mtime < spec_file.stat().st_mtime:
        return LockState(spec_file, lock_file, False, LockReason.STALE_LOCK)
    return LockState(spec_file, lock_file, True, LockReason.UP_TO_DATE)


def spec_file_for(ctx: ProjectContext, config: ProjectConfig) -> Path:
    return ctx.root / (config.micromamba.env_file or DEFAULT_ENV_FILE)


def check_project(
    ctx: ProjectContext, backend: Backend, config: ProjectConfig | None = None
) -> LockState:
    """Check the lock files that belong to *backend* in this project."""
    if backend is Backend.VENV:
        return check(None, None)
    if backend is Backend.MICROMAMBA:
        config = config if config is not None else load_config(ctx)
        return check(spec_file_for(ctx, config), ctx.root / CONDA_LOCK_FILE)
    raise ValueError(f"Unhandled backend: {backend}")


def describe(state: LockState) -> str:
    spec = state.spec_file.name if state.spec_file else "spec"
    lock = state.lock_file.name if state.lock_file else "lock"
    if state.reason is LockReason.NO_LOCK_REQUIRED:
        return "no lock file required"
    if state.reason is LockReason.LOCK_MISSING:
        return f"{lock} not found"
    if state.reason is LockReason.LOCK_ONLY:
        return f"{lock} present without {spec}"
    if state.reason is LockReason.STALE_LOCK:
        return f"{lock} is older than {spec}"
    return f"{lock} is up to date"


def enforce(state: LockState, strict: bool) -> None:
    """Log lock problems; raise :class:`LockOutOfSync` only in strict mode."""
    if state.reason not in (LockReason.STALE_LOCK, LockReason.LOCK_MISSING):
        return
    msg = describe(state)
    hint = "conda-lock -f environment.yml -p <platform>"
    if state.spec_file is not None:
        hint = f"conda-lock -f {state.spec_file.name} -p <platform>"
    if strict:
        raise LockOutOfSync(f"Lock file out of sync: {msg}", hint=hint)
    log.warning(f"{msg}; regenerate with: {hint}")
