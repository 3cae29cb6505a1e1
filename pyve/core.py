"""Orchestration: scan → resolve → tool (→ bootstrap) → lock → registry / runner."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx

from pyve.config import PYVE_VERSION, ProjectConfig, load_config, parse_config, save_config
from pyve.context import ProjectContext
from pyve.detect.base import scan
from pyve.errors import (
    AmbiguousSignal,
    EnvironmentNotInitialized,
    FamilyIsolationViolation,
    ReinitCancelled,
    ToolNotFound,
)
from pyve.installer.bootstrap import bootstrap
from pyve.installer.env_conda import create_prefix, environment_file
from pyve.installer.env_python import create_venv
from pyve.installer.tools import resolve_tool
from pyve.lock import check_project, enforce
from pyve.logging import get_logger
from pyve.naming import name_for, resolve_environment_name
from pyve.prompts import ChoiceProvider
from pyve.registry import EnvironmentRegistry, Materializer, is_healthy
from pyve.resolver import parse_backend_choice, resolve
from pyve.runner import run as run_in_env
from pyve.types import (
    Backend,
    BackendChoice,
    EnvironmentHandle,
    LockState,
    ResolvedBackend,
    SandboxTarget,
    ToolLocation,
    ToolOrigin,
)
from pyve.versions import VersionManager, set_python_version

log = get_logger(__name__)


@dataclass
class InitResult:
    resolved: ResolvedBackend
    tool: ToolLocation
    lock: LockState
    handle: EnvironmentHandle
    config_path: Path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _apply_overrides(
    config: ProjectConfig,
    *,
    backend: BackendChoice | None,
    python_version: str | None,
    venv_dir: str | None,
    env_name: str | None,
) -> ProjectConfig:
    raw = config.model_dump(mode="json")
    if backend is not None and backend is not BackendChoice.AUTO:
        raw["backend"] = backend.value
    if python_version:
        raw["python"]["version"] = python_version
    if venv_dir:
        raw["venv"]["directory"] = venv_dir
    if env_name:
        raw["micromamba"]["env_name"] = env_name
    return parse_config(raw, source="command line options")


def resolve_project(
    ctx: ProjectContext, explicit: str | BackendChoice | None, config: ProjectConfig
) -> ResolvedBackend:
    return resolve(explicit, config, scan(ctx.root))


def _missing_tool(backend: Backend) -> ToolNotFound:
    if backend is Backend.MICROMAMBA:
        return ToolNotFound(
            "micromamba not found",
            hint="pyve init --auto-bootstrap --bootstrap-to project",
        )
    return ToolNotFound(
        "No Python interpreter found (asdf, pyenv or python3 on PATH)",
        hint="pyve python-version 3.12.4",
    )


def _acquire_tool(
    ctx: ProjectContext,
    backend: Backend,
    *,
    auto_bootstrap: bool,
    bootstrap_to: SandboxTarget | None,
    choices: ChoiceProvider | None,
    client: httpx.Client | None,
    pinned: str | None = None,
) -> ToolLocation:
    tool = resolve_tool(ctx, backend, probe=backend is Backend.VENV, pinned=pinned)
    if tool is not None:
        if pinned and tool.origin is ToolOrigin.SYSTEM_PATH and tool.version != pinned:
            raise ToolNotFound(
                f"Python {pinned} is not installed (found {tool.version or 'unknown'} "
                f"at {tool.executable_path})",
                hint=f"pyve python-version {pinned}",
            )
        return tool
    if backend is not Backend.MICROMAMBA:
        raise _missing_tool(backend)
    if auto_bootstrap:
        return bootstrap(ctx, backend, target=bootstrap_to or SandboxTarget.PROJECT, client=client)
    if choices is not None:
        return bootstrap(ctx, backend, target=bootstrap_to, choices=choices, client=client)
    raise _missing_tool(backend)


def _confirm_purge(prefix: Path, assume_yes: bool, choices: ChoiceProvider | None) -> None:
    if assume_yes:
        return
    if choices is not None and choices.confirm(f"Remove {prefix} and create it again?"):
        return
    raise ReinitCancelled(
        "Re-initialization cancelled; the environment was kept",
        hint="pyve init --force --yes",
    )


def environment_prefix(ctx: ProjectContext, backend: Backend, config: ProjectConfig) -> Path:
    if backend is Backend.VENV:
        return ctx.root / config.venv.directory
    if backend is Backend.MICROMAMBA:
        if config.micromamba.prefix:
            return ctx.root / config.micromamba.prefix
        return ctx.envs_dir / resolve_environment_name(ctx, config)
    raise ValueError(f"Unhandled backend: {backend}")


def _default_materializer(
    ctx: ProjectContext, backend: Backend, config: ProjectConfig
) -> Materializer:
    if backend is Backend.VENV:
        return lambda tool, prefix: create_venv(tool, prefix, environ=ctx.environ)
    if backend is Backend.MICROMAMBA:

        def _conda(tool: ToolLocation, prefix: Path) -> None:
            env_file = environment_file(ctx.root, config.micromamba.env_file)
            create_prefix(
                tool, prefix, env_file, channels=config.micromamba.channels, environ=ctx.environ
            )

        return _conda
    raise ValueError(f"Unhandled backend: {backend}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_project(
    ctx: ProjectContext,
    *,
    backend: str | BackendChoice | None = None,
    auto_bootstrap: bool = False,
    bootstrap_to: SandboxTarget | None = None,
    python_version: str | None = None,
    venv_dir: str | None = None,
    env_name: str | None = None,
    strict: bool = False,
    force: bool = False,
    assume_yes: bool = False,
    choices: ChoiceProvider | None = None,
    client: httpx.Client | None = None,
    materializer: Materializer | None = None,
) -> InitResult:
    """Resolve the backend, make sure its tool exists and create the environment.

    Re-running on an initialized project returns the registered environment
    without invoking the backend tool again. With *force* the environment is
    purged and recreated once confirmed (*assume_yes* or *choices*); declining
    raises :class:`ReinitCancelled`.
    """
    flag = parse_backend_choice(backend) if backend else None
    config = _apply_overrides(
        load_config(ctx),
        backend=flag,
        python_version=python_version,
        venv_dir=venv_dir,
        env_name=env_name,
    )

    resolved = resolve_project(ctx, flag, config)
    for note in resolved.notes:
        log.info(note)
    if resolved.ambiguous and strict:
        raise AmbiguousSignal(
            resolved.notes[-1],
            hint="pyve init --backend micromamba (or --backend venv)",
        )
    log.info(
        f"backend: {resolved.backend.value} (from {resolved.winning_signal.kind.value})"
    )

    tool = _acquire_tool(
        ctx,
        resolved.backend,
        auto_bootstrap=auto_bootstrap,
        bootstrap_to=bootstrap_to,
        choices=choices,
        client=client,
        pinned=python_version if resolved.backend is Backend.VENV else None,
    )

    lock = check_project(ctx, resolved.backend, config)
    enforce(lock, strict)

    if resolved.backend is Backend.MICROMAMBA:
        name = resolve_environment_name(ctx, config)
        py = config.python.version
    else:
        name = name_for(ctx.root)
        py = tool.version or config.python.version

    registry = EnvironmentRegistry(ctx)
    prefix = environment_prefix(ctx, resolved.backend, config)
    if force:
        _confirm_purge(prefix, assume_yes, choices)
        registry.purge(resolved.backend, prefix)

    handle = registry.get_or_create(
        name,
        resolved.backend,
        tool,
        py,
        prefix=prefix,
        materializer=materializer or _default_materializer(ctx, resolved.backend, config),
    )
    config_path = save_config(ctx, config.model_copy(update={"pyve_version": PYVE_VERSION}))
    return InitResult(resolved=resolved, tool=tool, lock=lock, handle=handle, config_path=config_path)


def find_environment(ctx: ProjectContext, resolved: ResolvedBackend) -> EnvironmentHandle:
    """Return the registered environment for the resolved backend.

    Raises :class:`FamilyIsolationViolation` when only the other family's
    environment exists and :class:`EnvironmentNotInitialized` when none does.
    """
    registry = EnvironmentRegistry(ctx)
    handle = registry.lookup(resolved.backend)
    if handle is None:
        others = [h for h in registry.entries() if h.backend is not resolved.backend]
        if others:
            other = others[0]
            raise FamilyIsolationViolation(
                f"Project resolves to {resolved.backend.value} but only a "
                f"{other.backend.value} environment exists ({other.name})",
                hint=f"pyve run --backend {other.backend.value} -- ...",
            )
        raise EnvironmentNotInitialized(
            f"No {resolved.backend.value} environment for {ctx.root}",
            hint=f"pyve init --backend {resolved.backend.value}",
        )
    if not is_healthy(handle.backend, handle.prefix_path):
        raise EnvironmentNotInitialized(
            f"Environment {handle.name} at {handle.prefix_path} is missing or broken",
            hint=f"pyve init --backend {resolved.backend.value}",
        )
    return handle


def run_project(
    ctx: ProjectContext,
    argv: Sequence[str],
    *,
    backend: str | BackendChoice | None = None,
    allow_cross_family: bool = False,
) -> int:
    config = load_config(ctx)
    resolved = resolve_project(ctx, parse_backend_choice(backend) if backend else None, config)
    handle = find_environment(ctx, resolved)
    tool = resolve_tool(ctx, resolved.backend)
    if tool is None:
        raise _missing_tool(resolved.backend)
    return run_in_env(
        resolved,
        tool,
        handle,
        list(argv),
        allow_cross_family=allow_cross_family,
        environ=ctx.environ or None,
    )


def pin_python_version(
    ctx: ProjectContext, version: str, choices: ChoiceProvider
) -> VersionManager:
    return set_python_version(ctx, version, choices)
