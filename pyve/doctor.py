"""Doctor: a read-only report of how pyve sees the project.

Stages run in a fixed order and each one degrades to a ``fail`` entry instead
of raising. Nothing here installs, creates or locks anything.
"""

from __future__ import annotations

from collections.abc import Callable

from pyve.config import PYVE_VERSION, ProjectConfig, config_exists, load_config
from pyve.context import ProjectContext
from pyve.detect.base import scan
from pyve.errors import PyveError
from pyve.installer.tools import probe_version, resolve_tool
from pyve.lock import check_project, describe
from pyve.registry import EnvironmentRegistry, is_healthy
from pyve.resolver import parse_backend_choice, resolve
from pyve.types import (
    Backend,
    BackendChoice,
    BackendSignal,
    DoctorStage,
    EnvironmentHandle,
    LockReason,
    ResolvedBackend,
    ToolLocation,
)
from pyve.versions import read_pinned_version

STAGES = ("Config", "Signals", "Backend", "Tool", "Lock", "Environment", "Python", "Pyve version")


class _Report:
    def __init__(self) -> None:
        self.stages: list[DoctorStage] = []

    def add(self, stage: str, status: str, detail: str, *hints: str) -> None:
        self.stages.append(DoctorStage(stage, status, detail, tuple(h for h in hints if h)))

    def guard(self, stage: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except PyveError as e:
            self.add(stage, "fail", e.message, e.hint or "")
        except Exception as e:  # noqa: BLE001
            self.add(stage, "fail", f"{type(e).__name__}: {e}")


def _signal_summary(signals: list[BackendSignal]) -> str:
    if not signals:
        return "no indicator files"
    return "; ".join(f"{s.kind.value}: {', '.join(p.name for p in s.matches)}" for s in signals)


def diagnose(
    ctx: ProjectContext,
    explicit_flag: str | BackendChoice | None = None,
    probe_versions: bool = False,
) -> list[DoctorStage]:
    report = _Report()
    state: dict[str, object] = {"config": ProjectConfig()}

    def config_stage() -> None:
        if not config_exists(ctx):
            report.add("Config", "info", "no .pyve/config (using defaults)", "pyve init")
            return
        state["config"] = load_config(ctx)
        report.add("Config", "ok", str(ctx.config_path))

    def signals_stage() -> None:
        signals = scan(ctx.root)
        flag = parse_backend_choice(explicit_flag) if explicit_flag else None
        resolved = resolve(flag, state["config"], signals)
        state["resolved"] = resolved
        status = "warn" if resolved.notes else "ok"
        report.add("Signals", status, _signal_summary(signals), *resolved.notes)

    def backend_stage() -> None:
        resolved: ResolvedBackend = state["resolved"]
        src = resolved.winning_signal
        origin = src.kind.value + (f" ({src.source_path.name})" if src.source_path else "")
        report.add("Backend", "ok", resolved.backend.value, f"decided by {origin}")

    def tool_stage() -> None:
        backend: Backend = state["resolved"].backend
        tool = resolve_tool(ctx, backend, probe=probe_versions)
        state["tool"] = tool
        if tool is None:
            hint = (
                "pyve init --auto-bootstrap --bootstrap-to project"
                if backend is Backend.MICROMAMBA
                else "pyve python-version 3.12.4"
            )
            report.add("Tool", "fail", "not found", hint)
            return
        detail = f"found: {tool.executable_path} ({tool.origin.value})"
        if tool.version:
            detail += f" version {tool.version}"
        report.add("Tool", "ok", detail)

    def lock_stage() -> None:
        lock = check_project(ctx, state["resolved"].backend, state["config"])
        if lock.reason is LockReason.STALE_LOCK:
            spec = lock.spec_file.name if lock.spec_file else "environment.yml"
            report.add("Lock", "warn", describe(lock), f"conda-lock -f {spec} -p <platform>")
        elif lock.reason is LockReason.UP_TO_DATE:
            report.add("Lock", "ok", describe(lock))
        else:
            report.add("Lock", "info", describe(lock))

    def environment_stage() -> None:
        backend: Backend = state["resolved"].backend
        handle = EnvironmentRegistry(ctx).lookup(backend)
        if handle is None:
            report.add("Environment", "warn", "not initialized", f"pyve init --backend {backend.value}")
            return
        state["handle"] = handle
        if not is_healthy(handle.backend, handle.prefix_path):
            report.add(
                "Environment",
                "fail",
                f"{handle.name} missing or broken at {handle.prefix_path}",
                f"pyve init --backend {backend.value}",
            )
            return
        report.add("Environment", "ok", f"{handle.name} at {handle.prefix_path}")

    def python_stage() -> None:
        handle: EnvironmentHandle | None = state.get("handle")
        pinned = read_pinned_version(ctx)
        current = handle.python_version if handle else None
        if probe_versions and handle is not None and handle.backend is Backend.VENV:
            current = probe_version(handle.prefix_path / "bin" / "python", ctx.environ) or current
        if current is None:
            tool: ToolLocation | None = state.get("tool")
            current = tool.version if tool else None
        detail = current or "unknown"
        if pinned:
            detail += f" (pinned {pinned})"
        if pinned and current and pinned != current:
            report.add("Python", "warn", detail, f"pyve python-version {pinned}")
        else:
            report.add("Python", "info" if current is None else "ok", detail)

    def version_stage() -> None:
        recorded = state["config"].pyve_version
        if recorded is None:
            report.add("Pyve version", "info", f"{PYVE_VERSION} (not recorded in config)")
        elif recorded != PYVE_VERSION:
            report.add(
                "Pyve version",
                "warn",
                f"config written by {recorded}, running {PYVE_VERSION}",
                "pyve init",
            )
        else:
            report.add("Pyve version", "ok", PYVE_VERSION)

    report.guard("Config", config_stage)
    report.guard("Signals", signals_stage)
    if "resolved" not in state:
        state["resolved"] = resolve(None, ProjectConfig(), [])
    report.guard("Backend", backend_stage)
    report.guard("Tool", tool_stage)
    report.guard("Lock", lock_stage)
    report.guard("Environment", environment_stage)
    report.guard("Python", python_stage)
    report.guard("Pyve version", version_stage)
    return report.stages
