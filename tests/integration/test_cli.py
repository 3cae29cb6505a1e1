from __future__ import annotations

import os
from pathlib import Path

import pytest
from conftest import FAKE_MICROMAMBA, FAKE_PYTHON, SYSTEM_PATH, write_exe
from typer.testing import CliRunner

from pyve.cli import app
from pyve.errors import ExitCode


@pytest.fixture
def proj(tmp_path: Path, fake_bin: Path, monkeypatch) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    p = tmp_path / "proj"
    p.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("PATH", os.pathsep.join([str(fake_bin), SYSTEM_PATH]))
    monkeypatch.setenv("ASDF_DATA_DIR", str(home / ".asdf"))
    monkeypatch.setenv("PYENV_ROOT", str(home / ".pyenv"))
    monkeypatch.delenv("VIRTUAL_ENV", raising=False)
    write_exe(fake_bin / "python3", FAKE_PYTHON)
    return p


@pytest.mark.timeout(20)
def test_run_before_init_is_not_initialized(proj: Path) -> None:
    result = CliRunner().invoke(app, ["-C", str(proj), "run", "--", "sh", "-c", "exit 0"])
    assert result.exit_code == ExitCode.NOT_INITIALIZED, result.output
    assert "pyve init" in result.output


@pytest.mark.timeout(30)
def test_run_passes_exit_code_and_venv(proj: Path, tmp_path: Path) -> None:
    runner = CliRunner()
    assert runner.invoke(app, ["-C", str(proj), "init"]).exit_code == 0

    out = tmp_path / "venv.txt"
    result = runner.invoke(
        app, ["-C", str(proj), "run", "--", "sh", "-c", f'echo "$VIRTUAL_ENV" > {out}; exit 4']
    )
    assert result.exit_code == 4, result.output
    assert out.read_text(encoding="utf-8").strip() == str(proj / ".venv")


@pytest.mark.timeout(30)
def test_run_with_other_family_is_refused(proj: Path, fake_bin: Path) -> None:
    write_exe(fake_bin / "micromamba", FAKE_MICROMAMBA)
    runner = CliRunner()
    assert runner.invoke(app, ["-C", str(proj), "init"]).exit_code == 0

    result = runner.invoke(
        app, ["-C", str(proj), "run", "--backend", "micromamba", "--", "python", "-V"]
    )
    assert result.exit_code == ExitCode.FAMILY_ISOLATION, result.output
    assert "--backend venv" in result.output


@pytest.mark.timeout(30)
def test_conda_tool_refused_inside_venv(proj: Path) -> None:
    runner = CliRunner()
    assert runner.invoke(app, ["-C", str(proj), "init"]).exit_code == 0

    result = runner.invoke(app, ["-C", str(proj), "run", "--", "conda", "install", "numpy"])
    assert result.exit_code == ExitCode.FAMILY_ISOLATION, result.output


@pytest.mark.timeout(20)
def test_missing_micromamba_without_bootstrap(proj: Path) -> None:
    (proj / "environment.yml").write_text("name: demo\n", encoding="utf-8")
    result = CliRunner().invoke(app, ["-C", str(proj), "init"])
    assert result.exit_code == ExitCode.TOOL_NOT_FOUND, result.output
    assert "--auto-bootstrap" in result.output


@pytest.mark.timeout(20)
def test_strict_ambiguity_fails(proj: Path, fake_bin: Path) -> None:
    write_exe(fake_bin / "micromamba", FAKE_MICROMAMBA)
    (proj / "environment.yml").write_text("name: demo\n", encoding="utf-8")
    (proj / "requirements.txt").write_text("", encoding="utf-8")

    result = CliRunner().invoke(app, ["-C", str(proj), "init", "--strict"])
    assert result.exit_code == ExitCode.AMBIGUOUS_SIGNAL, result.output


@pytest.mark.timeout(20)
def test_invalid_options_are_config_errors(proj: Path) -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["-C", str(proj), "init", "--venv-dir", ".git"])
    assert result.exit_code == ExitCode.ERROR, result.output
    assert not (proj / ".git").exists()

    result = runner.invoke(app, ["-C", str(proj), "python-version", "3.12"])
    assert result.exit_code == ExitCode.ERROR, result.output


@pytest.mark.timeout(20)
def test_doctor_always_exits_zero(proj: Path) -> None:
    (proj / ".pyve").mkdir()
    (proj / ".pyve" / "config").write_text("backend: [broken\n", encoding="utf-8")

    result = CliRunner().invoke(app, ["-C", str(proj), "doctor", "--verbose"])
    assert result.exit_code == 0, result.output
    assert "Config" in result.output


@pytest.mark.timeout(30)
@pytest.mark.parametrize("alias", ["conda", "condaFamily"])
def test_backend_conda_alias_is_accepted(proj: Path, fake_bin: Path, alias: str) -> None:
    write_exe(fake_bin / "micromamba", FAKE_MICROMAMBA)
    (proj / "environment.yml").write_text("name: demo\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(app, ["-C", str(proj), "doctor", "--backend", alias])
    assert result.exit_code == 0, result.output
    assert "micromamba" in result.output

    result = runner.invoke(app, ["-C", str(proj), "init", "--backend", alias])
    assert result.exit_code == 0, result.output
    assert (proj / ".pyve" / "envs").is_dir()


@pytest.mark.timeout(20)
def test_unknown_backend_is_a_config_error(proj: Path) -> None:
    result = CliRunner().invoke(app, ["-C", str(proj), "run", "--backend", "poetry", "--", "true"])
    assert result.exit_code == ExitCode.ERROR, result.output
    assert "Unknown backend" in result.output
