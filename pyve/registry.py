"""Environment registry (``.pyve/registry.json``).

Maps (canonical project path, backend) to an :class:`EnvironmentHandle`.
``get_or_create`` is idempotent: a registered, healthy environment is
returned without running any tool, and creation happens under an exclusive
``filelock`` so concurrent invocations create at most one environment.
Reads (``lookup``, ``entries``) never lock.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from filelock import FileLock
from jsonschema import ValidationError

from pyve.config import atomic_write_text
from pyve.context import ProjectContext
from pyve.errors import ConfigError, EnvironmentCreationFailed, FamilyIsolationViolation
from pyve.logging import get_logger
from pyve.naming import canonical
from pyve.types import Backend, EnvironmentHandle, ToolLocation
from pyve.validator import validate_registry

REGISTRY_VERSION = 1

Materializer = Callable[[ToolLocation, Path], None]

log = get_logger(__name__)


def is_healthy(backend: Backend, prefix: Path) -> bool:
    """True if *prefix* looks like a usable environment for *backend*."""
    if backend is Backend.VENV:
        return (prefix / "bin" / "python").exists() or (prefix / "Scripts" / "python.exe").exists()
    if backend is Backend.MICROMAMBA:
        return (prefix / "conda-meta").is_dir()
    raise ValueError(f"Unhandled backend: {backend}")


class EnvironmentRegistry:
    def __init__(self, ctx: ProjectContext):
        self.ctx = ctx
        self.path = ctx.registry_path
        self.project_key = str(canonical(ctx.root))

    # -- storage -------------------------------------------------------------

    def _read(self) -> dict:
        if not self.path.exists():
            return {"version": REGISTRY_VERSION, "projects": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            validate_registry(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(
                f"Corrupt registry {self.path}: {getattr(e, 'message', e)}",
                hint=f"Remove {self.path} and run 'pyve init' again",
            ) from e
        return data

    def _write(self, data: dict) -> None:
        validate_registry(data)
        atomic_write_text(self.path, json.dumps(data, indent=2, sort_keys=True) + "\n")

    def lock_path(self, backend: Backend) -> Path:
        return self.ctx.locks_dir / f"{backend.value}.lock"

    # -- reads ---------------------------------------------------------------

    def entries(self) -> list[EnvironmentHandle]:
        project = self._read()["projects"].get(self.project_key, {})
        return [EnvironmentHandle.model_validate(v) for v in project.values()]

    def lookup(self, backend: Backend) -> EnvironmentHandle | None:
        raw = self._read()["projects"].get(self.project_key, {}).get(backend.value)
        return EnvironmentHandle.model_validate(raw) if raw else None

    # -- writes --------------------------------------------------------------

    def _register(self, handle: EnvironmentHandle) -> EnvironmentHandle:
        data = self._read()
        data["projects"].setdefault(self.project_key, {})[handle.backend.value] = handle.model_dump(
            mode="json"
        )
        self._write(data)
        return handle

    def _reuse(self, backend: Backend, prefix: Path) -> EnvironmentHandle | None:
        existing = self.lookup(backend)
        if existing is not None and existing.prefix_path == prefix and is_healthy(backend, prefix):
            log.info(f"registry hit: {existing.name} ({backend.value}) at {prefix}")
            return existing
        return None

    def get_or_create(
        self,
        name: str,
        backend: Backend,
        tool: ToolLocation,
        python_version: str | None,
        *,
        prefix: Path,
        materializer: Materializer,
    ) -> EnvironmentHandle:
        """Return the environment for this project and backend, creating it if needed.

        Raises :class:`EnvironmentCreationFailed` when the materializer fails;
        the partially created prefix is removed and nothing is registered.
        """
        if tool.backend is not backend:
            raise FamilyIsolationViolation(
                f"Cannot create a {backend.value} environment with {tool.executable_path}"
            )
        prefix = canonical(prefix)

        hit = self._reuse(backend, prefix)
        if hit is not None:
            return hit

        self.ctx.locks_dir.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self.lock_path(backend))):
            # Another invocation may have finished while we waited.
            hit = self._reuse(backend, prefix)
            if hit is not None:
                return hit

            handle = EnvironmentHandle(
                name=name,
                backend=backend,
                prefix_path=prefix,
                python_version=python_version,
                created_at=datetime.now(UTC).isoformat(),
                project_dir=canonical(self.ctx.root),
            )

            if is_healthy(backend, prefix):
                log.info(f"adopting existing environment at {prefix}")
                return self._register(handle)
            if prefix.exists():
                raise EnvironmentCreationFailed(
                    f"{prefix} exists but is not a {backend.value} environment",
                    hint=f"Remove {prefix} or choose another location, then run 'pyve init'",
                )

            self._materialize(backend, tool, prefix, materializer)
            log.info(
                f"created environment {name} ({backend.value}) at {prefix}",
                extra={
                    "backend": backend.value,
                    "prefix": prefix,
                    "tool": tool.executable_path,
                },
            )
            return self._register(handle)

    def _materialize(
        self, backend: Backend, tool: ToolLocation, prefix: Path, materializer: Materializer
    ) -> None:
        try:
            materializer(tool, prefix)
            if not is_healthy(backend, prefix):
                raise EnvironmentCreationFailed(
                    f"{tool.executable_path} did not produce a usable environment at {prefix}"
                )
        except BaseException as e:
            # Cleanup on error (including KeyboardInterrupt)
            if prefix.exists():
                shutil.rmtree(prefix, ignore_errors=True)
            if isinstance(e, (EnvironmentCreationFailed, KeyboardInterrupt)):
                raise
            if isinstance(e, Exception):
                raise EnvironmentCreationFailed(
                    f"Failed to create {backend.value} environment at {prefix}: {e}",
                    hint="Check the output above, fix the cause and run 'pyve init' again",
                ) from e
            raise

    def purge(self, backend: Backend, prefix: Path) -> list[Path]:
        """Remove this project's *backend* environment and its registry entry.

        Only the registered prefix and a healthy environment at *prefix* are
        deleted; any other directory at *prefix* is left for ``get_or_create``
        to refuse.
        """
        prefix = canonical(prefix)
        self.ctx.locks_dir.mkdir(parents=True, exist_ok=True)
        with FileLock(str(self.lock_path(backend))):
            existing = self.lookup(backend)
            targets = {prefix} if is_healthy(backend, prefix) else set()
            if existing is not None:
                targets.add(existing.prefix_path)

            removed = []
            for path in sorted(targets):
                if path.exists():
                    log.info(
                        f"purging {backend.value} environment at {path}",
                        extra={"backend": backend.value, "prefix": path},
                    )
                    shutil.rmtree(path)
                    removed.append(path)

            if existing is not None:
                data = self._read()
                project = data["projects"].get(self.project_key, {})
                project.pop(backend.value, None)
                if not project:
                    data["projects"].pop(self.project_key, None)
                self._write(data)
        return removed
