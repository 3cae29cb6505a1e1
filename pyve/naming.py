"""Deterministic environment names.

``name_for`` derives the name from the project's canonical path: the
sanitized directory name plus the first 8 hex chars of the path's sha256.
Two checkouts with the same basename therefore never share a name, and the
same checkout always maps to the same one.
"""

from __future__ import annotations

import re
from pathlib import Path

from pyve.config import ProjectConfig, load_config
from pyve.context import ProjectContext
from pyve.signing.checks import sha256_text
from pyve.validator import MAX_ENV_NAME, validate_environment_name

DIGEST_CHARS = 8

_INVALID = re.compile(r"[^a-z0-9_-]+")


def canonical(project_dir: Path) -> Path:
    return Path(project_dir).expanduser().resolve()


def sanitize(raw: str) -> str:
    name = _INVALID.sub("-", raw.lower()).strip("-")
    if not re.match(r"^[a-z_]", name):
        name = f"env-{name}" if name else "env"
    return name[:MAX_ENV_NAME]


def name_for(project_dir: Path) -> str:
    path = canonical(project_dir)
    digest = sha256_text(str(path))[:DIGEST_CHARS]
    base = sanitize(path.name or "root")
    name = f"{base[: MAX_ENV_NAME - DIGEST_CHARS - 1]}-{digest}"
    return validate_environment_name(name)


def resolve_environment_name(ctx: ProjectContext, config: ProjectConfig | None = None) -> str:
    """Configured ``micromamba.env_name`` if set, else :func:`name_for`."""
    config = config if config is not None else load_config(ctx)
    if config.micromamba.env_name:
        return config.micromamba.env_name
    return name_for(ctx.root)
