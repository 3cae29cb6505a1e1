"""Shared models.

Transient, per-invocation values are frozen dataclasses; anything persisted to
disk is a Pydantic model.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel


class Backend(str, Enum):
    VENV = "venv"
    MICROMAMBA = "micromamba"

    @property
    def tool_name(self) -> str:
        if self is Backend.VENV:
            return "python"
        if self is Backend.MICROMAMBA:
            return "micromamba"
        raise ValueError(f"Unhandled backend: {self}")


class BackendChoice(str, Enum):
    """Backend values accepted from the CLI and the config file."""

    AUTO = "auto"
    VENV = "venv"
    MICROMAMBA = "micromamba"

    def as_backend(self) -> Backend | None:
        if self is BackendChoice.AUTO:
            return None
        return Backend(self.value)


class SignalKind(str, Enum):
    EXPLICIT_FLAG = "explicit_flag"
    CONFIG = "config"
    CONDA_INDICATOR_FILE = "conda_indicator_file"
    PIP_INDICATOR_FILE = "pip_indicator_file"
    DEFAULT_FALLBACK = "default_fallback"


class ToolOrigin(str, Enum):
    PROJECT_SANDBOX = "project_sandbox"
    USER_SANDBOX = "user_sandbox"
    ASDF = "asdf"
    PYENV = "pyenv"
    SYSTEM_PATH = "system_path"


class SandboxTarget(str, Enum):
    PROJECT = "project"
    USER = "user"


class LockReason(str, Enum):
    NO_LOCK_REQUIRED = "no_lock_required"
    LOCK_MISSING = "lock_missing"
    LOCK_ONLY = "lock_only"
    STALE_LOCK = "stale_lock"
    UP_TO_DATE = "up_to_date"


@dataclass(frozen=True)
class BackendSignal:
    kind: SignalKind
    implied_backend: Backend
    source_path: Path | None = None
    matches: tuple[Path, ...] = ()


@dataclass(frozen=True)
class ResolvedBackend:
    backend: Backend
    winning_signal: BackendSignal
    considered: tuple[BackendSignal, ...] = ()
    ambiguous: bool = False
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolLocation:
    backend: Backend
    executable_path: Path
    origin: ToolOrigin
    version: str | None = None


@dataclass(frozen=True)
class LockState:
    spec_file: Path | None
    lock_file: Path | None
    in_sync: bool
    reason: LockReason


@dataclass(frozen=True)
class DoctorStage:
    stage: str
    status: str  # "ok" | "warn" | "fail" | "info"
    detail: str
    hints: tuple[str, ...] = ()


class EnvironmentHandle(BaseModel):
    name: str
    backend: Backend
    prefix_path: Path
    python_version: str | None = None
    created_at: str
    project_dir: Path
