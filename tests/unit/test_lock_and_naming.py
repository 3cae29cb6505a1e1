from __future__ import annotations

import os
from pathlib import Path

import pytest

from pyve.config import parse_config
from pyve.errors import LockOutOfSync
from pyve.lock import check, check_project, enforce
from pyve.naming import name_for, resolve_environment_name, sanitize
from pyve.types import Backend, LockReason


def _files(tmp_path: Path, spec_mtime: float | None, lock_mtime: float | None):
    spec = tmp_path / "environment.yml"
    lock = tmp_path / "conda-lock.yml"
    for p, t in ((spec, spec_mtime), (lock, lock_mtime)):
        if t is not None:
            p.write_text("x", encoding="utf-8")
            os.utime(p, (t, t))
    return spec, lock


def test_no_lock_required_is_in_sync(tmp_path: Path) -> None:
    state = check(tmp_path / "environment.yml", None)
    assert state.in_sync is True
    assert state.reason is LockReason.NO_LOCK_REQUIRED


@pytest.mark.parametrize(
    "spec_t, lock_t, in_sync, reason",
    [
        (1000, 2000, True, LockReason.UP_TO_DATE),
        (2000, 2000, True, LockReason.UP_TO_DATE),
        (2000, 1000, False, LockReason.STALE_LOCK),
        (1000, None, True, LockReason.LOCK_MISSING),
        (None, 1000, True, LockReason.LOCK_ONLY),
    ],
)
def test_lock_staleness_by_mtime(tmp_path, spec_t, lock_t, in_sync, reason) -> None:
    spec, lock = _files(tmp_path, spec_t, lock_t)
    state = check(spec, lock)
    assert state.in_sync is in_sync
    assert state.reason is reason


def test_check_project_uses_backend_files(ctx) -> None:
    assert check_project(ctx, Backend.VENV).reason is LockReason.NO_LOCK_REQUIRED

    _files(ctx.root, 2000, 1000)
    state = check_project(ctx, Backend.MICROMAMBA)
    assert state.reason is LockReason.STALE_LOCK
    assert state.spec_file == ctx.root / "environment.yml"


def test_enforce_only_raises_in_strict_mode(tmp_path: Path) -> None:
    state = check(*_files(tmp_path, 2000, 1000))

    enforce(state, strict=False)
    with pytest.raises(LockOutOfSync) as ei:
        enforce(state, strict=True)
    assert "conda-lock" in ei.value.hint


def test_name_for_is_deterministic_and_path_specific(tmp_path: Path) -> None:
    a = tmp_path / "a" / "My Project"
    b = tmp_path / "b" / "My Project"
    a.mkdir(parents=True)
    b.mkdir(parents=True)

    name = name_for(a)
    assert name == name_for(a)
    assert name != name_for(b)
    assert name.startswith("my-project-")
    assert len(name.rsplit("-", 1)[1]) == 8


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("My Project", "my-project"),
        ("--weird!!name--", "weird-name"),
        ("123app", "env-123app"),
        ("under_score", "under_score"),
        ("a" * 300, "a" * 255),
    ],
)
def test_sanitize(raw: str, expected: str) -> None:
    assert sanitize(raw) == expected


def test_configured_env_name_wins(ctx) -> None:
    config = parse_config({"micromamba": {"env_name": "custom"}})
    assert resolve_environment_name(ctx, config) == "custom"
    assert resolve_environment_name(ctx, parse_config({})) == name_for(ctx.root)
