"""Value validation and schema helpers."""

from __future__ import annotations

import json
import re
from importlib import resources

from jsonschema import Draft202012Validator

PYTHON_VERSION_RE = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")
VENV_DIR_RE = re.compile(r"^[a-zA-Z0-9._-]+$")
ENV_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")
MAX_ENV_NAME = 255

RESERVED_VENV_DIRS = frozenset(
    {".env", ".git", ".gitignore", ".tool-versions", ".python-version", ".envrc", ".pyve"}
)
RESERVED_ENV_NAMES = frozenset({"base", "root", "default", "conda", "mamba", "micromamba"})

# --- Schema loaders ---------------------------------------------------------


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _registry_schema() -> dict:
    return _load_schema("pyve.schema", "registry.schema.json")


# --- Public validators ------------------------------------------------------


def validate_registry(data: dict) -> None:
    Draft202012Validator(_registry_schema()).validate(data)


def validate_python_version(version: str) -> str:
    """Return *version* if it is a full ``major.minor.patch`` string."""
    if not version or not PYTHON_VERSION_RE.match(version):
        raise ValueError(
            f"Invalid Python version format '{version}'. Expected #.#.# (e.g., 3.13.7)"
        )
    return version


def validate_venv_dir_name(name: str) -> str:
    if not name:
        raise ValueError("Virtual environment directory name cannot be empty")
    if not VENV_DIR_RE.match(name):
        raise ValueError(
            f"Invalid directory name '{name}'. "
            "Use only alphanumeric characters, dots, underscores, and hyphens"
        )
    if name in RESERVED_VENV_DIRS:
        raise ValueError(f"Directory name '{name}' is reserved and cannot be used")
    return name


def validate_environment_name(name: str) -> str:
    if not name:
        raise ValueError("Environment name cannot be empty")
    if name in RESERVED_ENV_NAMES:
        reserved = ", ".join(sorted(RESERVED_ENV_NAMES))
        raise ValueError(f"Environment name '{name}' is reserved (reserved: {reserved})")
    if len(name) > MAX_ENV_NAME:
        raise ValueError(f"Environment name too long (max {MAX_ENV_NAME} characters)")
    if not ENV_NAME_RE.match(name):
        raise ValueError(
            f"Invalid environment name '{name}'. Use alphanumerics, hyphens and "
            "underscores, starting with a letter or underscore"
        )
    return name
