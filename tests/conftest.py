from __future__ import annotations

import io
import os
import stat
import tarfile
from pathlib import Path

import pytest

from pyve.context import ProjectContext

SYSTEM_PATH = "/usr/bin:/bin"

FAKE_PYTHON = """#!/bin/sh
# Minimal stand-in for a CPython interpreter: --version and -m venv only.
if [ "$1" = "--version" ]; then
    echo "Python 3.12.4"
    exit 0
fi
if [ "$1" = "-m" ] && [ "$2" = "venv" ]; then
    mkdir -p "$3/bin"
    printf '#!/bin/sh\\necho "Python 3.12.4"\\n' > "$3/bin/python"
    chmod +x "$3/bin/python"
    echo "$3" >> "${PYVE_FAKE_LOG:-/dev/null}"
    exit 0
fi
exit 2
"""

FAKE_MICROMAMBA = """#!/bin/sh
# Minimal stand-in for micromamba: --version, create -p, run -p.
case "$1" in
    --version)
        echo "1.5.8"
        ;;
    create)
        mkdir -p "$3/conda-meta"
        echo "$3" >> "${PYVE_FAKE_LOG:-/dev/null}"
        ;;
    run)
        shift 3
        exec "$@"
        ;;
    *)
        exit 2
        ;;
esac
"""


def write_exe(path: Path, body: str) -> Path:
    """Write an executable script to *path* (parents created)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def micromamba_tarball(member: str = "bin/micromamba", body: str = FAKE_MICROMAMBA) -> bytes:
    """Build an in-memory tar.bz2 shaped like the micro.mamba.pm download."""
    buf = io.BytesIO()
    data = body.encode("utf-8")
    with tarfile.open(fileobj=buf, mode="w:bz2") as tf:
        info = tarfile.TarInfo(member)
        info.size = len(data)
        info.mode = 0o755
        tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def make_context(tmp_path: Path, *, search_dirs: list[Path] | None = None) -> ProjectContext:
    root = tmp_path / "proj"
    home = tmp_path / "home"
    root.mkdir(parents=True, exist_ok=True)
    home.mkdir(parents=True, exist_ok=True)
    dirs = [str(d) for d in (search_dirs or [])]
    search = os.pathsep.join(dirs)
    env = {
        "HOME": str(home),
        "PATH": os.pathsep.join([*dirs, SYSTEM_PATH]),
        "PYVE_FAKE_LOG": str(tmp_path / "fake.log"),
    }
    return ProjectContext(
        root=root.resolve(),
        home=home,
        search_path=search,
        asdf_data_dir=home / ".asdf",
        pyenv_root=home / ".pyenv",
        environ=env,
    )


@pytest.fixture
def fake_bin(tmp_path: Path) -> Path:
    d = tmp_path / "fakebin"
    d.mkdir()
    return d


@pytest.fixture
def ctx(tmp_path: Path, fake_bin: Path) -> ProjectContext:
    return make_context(tmp_path, search_dirs=[fake_bin])


def fake_log(tmp_path: Path) -> list[str]:
    p = tmp_path / "fake.log"
    if not p.exists():
        return []
    return [line for line in p.read_text(encoding="utf-8").splitlines() if line]
