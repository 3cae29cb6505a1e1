"""Project configuration store (``.pyve/config``).

The config is a small YAML document holding the project's sticky intent:
explicit backend choice, per-backend settings and the Python version pin.
Unknown keys are ignored; invalid values raise :class:`ConfigError`.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pyve.context import ProjectContext
from pyve.errors import ConfigError
from pyve.logging import get_logger
from pyve.types import BackendChoice
from pyve.validator import (
    validate_environment_name,
    validate_python_version,
    validate_venv_dir_name,
)

PYVE_VERSION = "0.1.0"
DEFAULT_VENV_DIR = ".venv"
DEFAULT_ENV_FILE = "environment.yml"

BACKEND_ALIASES = {"conda": "micromamba", "condafamily": "micromamba", "pip": "venv"}

log = get_logger(__name__)


class PythonSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str | None = None

    @field_validator("version", mode="before")
    @classmethod
    def _check_version(cls, v):
        if v is None:
            return None
        return validate_python_version(str(v))


class VenvSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    directory: str = DEFAULT_VENV_DIR

    @field_validator("directory", mode="before")
    @classmethod
    def _check_directory(cls, v):
        if v is None:
            return DEFAULT_VENV_DIR
        return validate_venv_dir_name(str(v))


class MicromambaSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    env_name: str | None = None
    env_file: str | None = None
    channels: list[str] = Field(default_factory=list)
    prefix: str | None = None

    @field_validator("env_name", mode="before")
    @classmethod
    def _check_env_name(cls, v):
        if v is None:
            return None
        return validate_environment_name(str(v))

    @field_validator("channels", mode="before")
    @classmethod
    def _coerce_channels(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [c for c in v.replace(",", " ").split() if c]
        return v


class ProjectConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pyve_version: str | None = None
    backend: BackendChoice = BackendChoice.AUTO
    python: PythonSettings = Field(default_factory=PythonSettings)
    venv: VenvSettings = Field(default_factory=VenvSettings)
    micromamba: MicromambaSettings = Field(default_factory=MicromambaSettings)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, v):
        if v is None or v == "":
            return BackendChoice.AUTO
        if isinstance(v, str):
            key = v.strip().lower()
            return BACKEND_ALIASES.get(key, key)
        return v

    @field_validator("python", "venv", "micromamba", mode="before")
    @classmethod
    def _none_section(cls, v):
        return {} if v is None else v


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via a sibling temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _describe(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()))
        parts.append(f"{loc}: {e.get('msg')}" if loc else str(e.get("msg")))
    return "; ".join(parts)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_config(raw: dict | None, source: str = "config") -> ProjectConfig:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid {source}: expected a mapping at top level")
    try:
        return ProjectConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid {source}: {_describe(e)}",
            hint="Fix the value or run 'pyve init --backend <venv|micromamba>' to rewrite it",
        ) from e


def load_config(ctx: ProjectContext) -> ProjectConfig:
    """Load ``.pyve/config``; a missing file yields the default config."""
    path = ctx.config_path
    if not path.exists():
        return ProjectConfig()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}") from e
    return parse_config(raw, source=str(path))


def dump_config(config: ProjectConfig) -> str:
    data = config.model_dump(mode="json", exclude_none=True)
    # Keep empty sections out of the file so hand-edited configs stay small.
    for section in ("python", "micromamba"):
        if not data.get(section) or data[section] == {"channels": []}:
            data.pop(section, None)
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def save_config(ctx: ProjectContext, config: ProjectConfig) -> Path:
    if config.pyve_version is None:
        config = config.model_copy(update={"pyve_version": PYVE_VERSION})
    atomic_write_text(ctx.config_path, dump_config(config))
    log.info(f"config written: {ctx.config_path}")
    return ctx.config_path


def config_exists(ctx: ProjectContext) -> bool:
    return ctx.config_path.is_file()
