from __future__ import annotations

from pathlib import Path

import pytest

from pyve.config import ProjectConfig
from pyve.detect.base import scan
from pyve.resolver import resolve
from pyve.types import Backend, BackendChoice, SignalKind


def _touch(root: Path, *names: str) -> None:
    for n in names:
        (root / n).write_text("", encoding="utf-8")


def test_scan_empty_project_yields_no_signals(tmp_path: Path) -> None:
    assert scan(tmp_path) == []


def test_scan_orders_conda_before_pip_and_ranks_matches(tmp_path: Path) -> None:
    _touch(tmp_path, "requirements.txt", "pyproject.toml", "conda-lock.yml", "environment.yml")

    signals = scan(tmp_path)

    assert [s.kind for s in signals] == [
        SignalKind.CONDA_INDICATOR_FILE,
        SignalKind.PIP_INDICATOR_FILE,
    ]
    conda, pip = signals
    assert conda.source_path == tmp_path / "environment.yml"
    assert [p.name for p in conda.matches] == ["environment.yml", "conda-lock.yml"]
    assert pip.source_path == tmp_path / "pyproject.toml"
    assert pip.implied_backend is Backend.VENV


def test_scan_ignores_directories_named_like_indicators(tmp_path: Path) -> None:
    (tmp_path / "environment.yml").mkdir()
    assert scan(tmp_path) == []


@pytest.mark.parametrize(
    "flag, config_backend, files, expected, winner",
    [
        (None, "auto", [], Backend.VENV, SignalKind.DEFAULT_FALLBACK),
        (None, "auto", ["requirements.txt"], Backend.VENV, SignalKind.PIP_INDICATOR_FILE),
        (None, "auto", ["environment.yml"], Backend.MICROMAMBA, SignalKind.CONDA_INDICATOR_FILE),
        (None, "venv", ["environment.yml"], Backend.VENV, SignalKind.CONFIG),
        (None, "conda", ["pyproject.toml"], Backend.MICROMAMBA, SignalKind.CONFIG),
        ("venv", "micromamba", ["environment.yml"], Backend.VENV, SignalKind.EXPLICIT_FLAG),
        ("micromamba", "auto", [], Backend.MICROMAMBA, SignalKind.EXPLICIT_FLAG),
        ("auto", "venv", ["environment.yml"], Backend.VENV, SignalKind.CONFIG),
    ],
)
def test_precedence_chain(tmp_path, flag, config_backend, files, expected, winner) -> None:
    _touch(tmp_path, *files)
    config = ProjectConfig.model_validate({"backend": config_backend})

    resolved = resolve(flag, config, scan(tmp_path))

    assert resolved.backend is expected
    assert resolved.winning_signal.kind is winner


def test_both_indicator_kinds_prefer_conda_and_flag_ambiguity(tmp_path: Path) -> None:
    _touch(tmp_path, "environment.yml", "requirements.txt")

    resolved = resolve(None, ProjectConfig(), scan(tmp_path))

    assert resolved.backend is Backend.MICROMAMBA
    assert resolved.ambiguous is True
    assert any("--backend" in n for n in resolved.notes)


def test_explicit_flag_is_not_ambiguous(tmp_path: Path) -> None:
    _touch(tmp_path, "environment.yml", "requirements.txt")

    resolved = resolve(BackendChoice.VENV, None, scan(tmp_path))

    assert resolved.backend is Backend.VENV
    assert resolved.ambiguous is False


def test_multiple_conda_specs_use_highest_ranked_and_note_it(tmp_path: Path) -> None:
    _touch(tmp_path, "environment.yaml", "environment.yml")

    resolved = resolve(None, ProjectConfig(), scan(tmp_path))

    assert resolved.winning_signal.source_path.name == "environment.yml"
    assert any("environment.yaml" in n for n in resolved.notes)
    assert resolved.ambiguous is False


def test_resolution_is_deterministic(tmp_path: Path) -> None:
    _touch(tmp_path, "environment.yml", "pyproject.toml")
    config = ProjectConfig()

    first = resolve(None, config, scan(tmp_path))
    second = resolve(None, config, scan(tmp_path))

    assert first == second


def test_conda_alias_accepted_as_flag() -> None:
    assert resolve("conda", None, []).backend is Backend.MICROMAMBA
