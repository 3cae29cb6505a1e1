from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest
from filelock import FileLock

from pyve.errors import ConfigError, EnvironmentCreationFailed, FamilyIsolationViolation
from pyve.registry import EnvironmentRegistry
from pyve.types import Backend, ToolLocation, ToolOrigin

PYTHON = ToolLocation(Backend.VENV, Path("/usr/bin/python3"), ToolOrigin.SYSTEM_PATH, "3.12.4")
MAMBA = ToolLocation(Backend.MICROMAMBA, Path("/opt/micromamba"), ToolOrigin.SYSTEM_PATH)


class CountingMaterializer:
    """Fakes `python -m venv` by creating bin/python; counts invocations."""

    def __init__(self, fail: bool = False):
        self.calls = 0
        self.fail = fail

    def __call__(self, tool: ToolLocation, prefix: Path) -> None:
        self.calls += 1
        (prefix / "bin").mkdir(parents=True)
        (prefix / "bin" / "python").write_text("", encoding="utf-8")
        if self.fail:
            raise RuntimeError("boom")


def test_get_or_create_creates_exactly_once(ctx) -> None:
    reg = EnvironmentRegistry(ctx)
    mat = CountingMaterializer()
    prefix = ctx.root / ".venv"

    first = reg.get_or_create("proj-1", Backend.VENV, PYTHON, "3.12.4", prefix=prefix, materializer=mat)
    second = reg.get_or_create("proj-1", Backend.VENV, PYTHON, "3.12.4", prefix=prefix, materializer=mat)

    assert mat.calls == 1
    assert first == second
    assert reg.lookup(Backend.VENV) == first
    assert [h.name for h in reg.entries()] == ["proj-1"]

    data = json.loads(ctx.registry_path.read_text(encoding="utf-8"))
    assert data["projects"][str(ctx.root)]["venv"]["prefix_path"] == str(prefix)


def test_healthy_unregistered_prefix_is_adopted(ctx) -> None:
    prefix = ctx.envs_dir / "proj"
    (prefix / "conda-meta").mkdir(parents=True)
    mat = CountingMaterializer()

    handle = EnvironmentRegistry(ctx).get_or_create(
        "proj", Backend.MICROMAMBA, MAMBA, None, prefix=prefix, materializer=mat
    )

    assert mat.calls == 0
    assert handle.prefix_path == prefix


def test_failed_creation_cleans_up_and_persists_nothing(ctx) -> None:
    reg = EnvironmentRegistry(ctx)
    prefix = ctx.root / ".venv"

    with pytest.raises(EnvironmentCreationFailed):
        reg.get_or_create(
            "proj", Backend.VENV, PYTHON, None, prefix=prefix, materializer=CountingMaterializer(True)
        )

    assert not prefix.exists()
    assert reg.lookup(Backend.VENV) is None
    # lock was released
    lock = FileLock(str(reg.lock_path(Backend.VENV)))
    lock.acquire(timeout=0)
    lock.release()


def test_materializer_that_produces_nothing_fails(ctx) -> None:
    with pytest.raises(EnvironmentCreationFailed):
        EnvironmentRegistry(ctx).get_or_create(
            "proj",
            Backend.MICROMAMBA,
            MAMBA,
            None,
            prefix=ctx.envs_dir / "proj",
            materializer=lambda tool, prefix: prefix.mkdir(parents=True),
        )
    assert not (ctx.envs_dir / "proj").exists()


def test_existing_non_environment_directory_is_left_alone(ctx) -> None:
    prefix = ctx.root / ".venv"
    prefix.mkdir()
    (prefix / "notes.txt").write_text("keep me", encoding="utf-8")

    with pytest.raises(EnvironmentCreationFailed):
        EnvironmentRegistry(ctx).get_or_create(
            "proj", Backend.VENV, PYTHON, None, prefix=prefix, materializer=CountingMaterializer()
        )
    assert (prefix / "notes.txt").exists()


def test_tool_from_other_family_is_refused(ctx) -> None:
    with pytest.raises(FamilyIsolationViolation):
        EnvironmentRegistry(ctx).get_or_create(
            "proj",
            Backend.VENV,
            MAMBA,
            None,
            prefix=ctx.root / ".venv",
            materializer=CountingMaterializer(),
        )


def test_reads_do_not_take_locks(ctx) -> None:
    reg = EnvironmentRegistry(ctx)
    assert reg.lookup(Backend.VENV) is None
    assert reg.entries() == []
    assert not ctx.locks_dir.exists()


def test_corrupt_registry_is_a_config_error(ctx) -> None:
    ctx.pyve_dir.mkdir()
    ctx.registry_path.write_text('{"version": 2}', encoding="utf-8")
    with pytest.raises(ConfigError):
        EnvironmentRegistry(ctx).lookup(Backend.VENV)


@pytest.mark.timeout(30)
def test_concurrent_get_or_create_materializes_once(ctx) -> None:
    """Two invocations racing on the same project serialize on the creation lock."""
    prefix = ctx.root / ".venv"
    calls: list[str] = []
    start = threading.Barrier(2)
    results: dict[str, object] = {}

    def slow_venv(tool: ToolLocation, target: Path) -> None:
        calls.append(threading.current_thread().name)
        time.sleep(0.5)
        (target / "bin").mkdir(parents=True)
        (target / "bin" / "python").write_text("", encoding="utf-8")

    def worker() -> None:
        start.wait()
        # separate registry (and FileLock) per invocation, as in separate processes
        results[threading.current_thread().name] = EnvironmentRegistry(ctx).get_or_create(
            "proj", Backend.VENV, PYTHON, "3.12.4", prefix=prefix, materializer=slow_venv
        )

    threads = [threading.Thread(target=worker, name=f"init-{i}") for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert sorted(results) == ["init-0", "init-1"]
    assert results["init-0"] == results["init-1"]


def test_interrupted_creation_cleans_up_and_registers_nothing(ctx) -> None:
    prefix = ctx.root / ".venv"

    def interrupted(tool: ToolLocation, target: Path) -> None:
        (target / "bin").mkdir(parents=True)
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        EnvironmentRegistry(ctx).get_or_create(
            "proj", Backend.VENV, PYTHON, None, prefix=prefix, materializer=interrupted
        )

    assert not prefix.exists()
    assert not ctx.registry_path.exists()
    assert EnvironmentRegistry(ctx).lookup(Backend.VENV) is None


def test_purge_removes_prefix_and_entry(ctx) -> None:
    reg = EnvironmentRegistry(ctx)
    prefix = ctx.root / ".venv"
    reg.get_or_create("proj", Backend.VENV, PYTHON, None, prefix=prefix, materializer=CountingMaterializer())

    assert reg.purge(Backend.VENV, prefix) == [prefix]

    assert not prefix.exists()
    assert reg.lookup(Backend.VENV) is None
    assert json.loads(ctx.registry_path.read_text(encoding="utf-8"))["projects"] == {}


def test_purge_leaves_unregistered_non_environment_alone(ctx) -> None:
    prefix = ctx.root / ".venv"
    prefix.mkdir()
    (prefix / "notes.txt").write_text("keep me", encoding="utf-8")

    assert EnvironmentRegistry(ctx).purge(Backend.VENV, prefix) == []
    assert (prefix / "notes.txt").exists()
