"""Sandbox locations and download sources for bootstrapped tools.

A sandbox is a ``bin`` directory owned by pyve: ``<project>/.pyve/bin`` or
``~/.pyve/bin``. Bootstrapped executables live there and nowhere else.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass
from pathlib import Path

from pyve.context import ProjectContext
from pyve.types import SandboxTarget, ToolOrigin

MICROMAMBA_URL_TEMPLATE = "https://micro.mamba.pm/api/micromamba/{platform}/{version}"

_PLATFORMS = {
    ("darwin", "arm64"): "osx-arm64",
    ("darwin", "aarch64"): "osx-arm64",
    ("darwin", "x86_64"): "osx-64",
    ("linux", "x86_64"): "linux-64",
    ("linux", "amd64"): "linux-64",
    ("linux", "aarch64"): "linux-aarch64",
    ("linux", "arm64"): "linux-aarch64",
    ("linux", "ppc64le"): "linux-ppc64le",
}


@dataclass(frozen=True)
class Sandbox:
    target: SandboxTarget
    bin_dir: Path

    @property
    def origin(self) -> ToolOrigin:
        if self.target is SandboxTarget.PROJECT:
            return ToolOrigin.PROJECT_SANDBOX
        return ToolOrigin.USER_SANDBOX

    def executable(self, tool: str) -> Path:
        return self.bin_dir / tool


def sandbox_for(ctx: ProjectContext, target: SandboxTarget) -> Sandbox:
    if target is SandboxTarget.PROJECT:
        return Sandbox(target, ctx.project_sandbox)
    if target is SandboxTarget.USER:
        return Sandbox(target, ctx.user_sandbox)
    raise ValueError(f"Unknown sandbox target: {target}")


def search_sandboxes(ctx: ProjectContext) -> list[Sandbox]:
    """Sandboxes in lookup order: project first, then user."""
    return [sandbox_for(ctx, SandboxTarget.PROJECT), sandbox_for(ctx, SandboxTarget.USER)]


def conda_platform(system: str | None = None, machine: str | None = None) -> str | None:
    """Return the conda platform string for this host, or None if unsupported."""
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    return _PLATFORMS.get((system, machine))


def micromamba_download_url(
    system: str | None = None, machine: str | None = None, version: str = "latest"
) -> str | None:
    plat = conda_platform(system, machine)
    if plat is None:
        return None
    return MICROMAMBA_URL_TEMPLATE.format(platform=plat, version=version)
