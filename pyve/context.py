"""Project context: every path and ambient value a component is allowed to see.

Components never read ``os.environ`` or the current working directory on
their own. The CLI snapshots them once with :meth:`ProjectContext.discover`
and passes the resulting value down.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

PYVE_DIR = ".pyve"
CONFIG_NAME = "config"
REGISTRY_NAME = "registry.json"
LOCKS_DIR = "locks"
SANDBOX_BIN = "bin"
ENVS_DIR = "envs"


@dataclass(frozen=True)
class ProjectContext:
    root: Path
    home: Path
    search_path: str = ""
    asdf_data_dir: Path | None = None
    pyenv_root: Path | None = None
    environ: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def discover(cls, project_dir: str | Path | None = None) -> ProjectContext:
        root = Path(project_dir) if project_dir is not None else Path.cwd()
        env = dict(os.environ)
        home = Path(env.get("HOME") or Path.home())
        asdf = env.get("ASDF_DATA_DIR")
        pyenv = env.get("PYENV_ROOT")
        return cls(
            root=root.resolve(),
            home=home,
            search_path=env.get("PATH", ""),
            asdf_data_dir=Path(asdf) if asdf else home / ".asdf",
            pyenv_root=Path(pyenv) if pyenv else home / ".pyenv",
            environ=env,
        )

    # --- project-local state ------------------------------------------------

    @property
    def pyve_dir(self) -> Path:
        return self.root / PYVE_DIR

    @property
    def config_path(self) -> Path:
        return self.pyve_dir / CONFIG_NAME

    @property
    def registry_path(self) -> Path:
        return self.pyve_dir / REGISTRY_NAME

    @property
    def locks_dir(self) -> Path:
        return self.pyve_dir / LOCKS_DIR

    @property
    def envs_dir(self) -> Path:
        return self.pyve_dir / ENVS_DIR

    @property
    def project_sandbox(self) -> Path:
        return self.pyve_dir / SANDBOX_BIN

    # --- user-level state ---------------------------------------------------

    @property
    def user_sandbox(self) -> Path:
        return self.home / PYVE_DIR / SANDBOX_BIN
