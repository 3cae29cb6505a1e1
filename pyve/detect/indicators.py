"""Indicator-file table.

Each row maps a signal kind to the files whose mere presence implies a
backend. File order within a row is its rank: the first file found becomes the
signal's ``source_path``. Row order is the order signals are emitted in.

Contents are never parsed here; parsing specs is the backend tool's job.
"""

from __future__ import annotations

from dataclasses import dataclass

from pyve.types import Backend, SignalKind


@dataclass(frozen=True)
class Indicator:
    kind: SignalKind
    patterns: tuple[str, ...]
    implied_backend: Backend


CONDA_SPEC_FILES = ("environment.yml", "environment.yaml")
CONDA_LOCK_FILE = "conda-lock.yml"

INDICATORS: tuple[Indicator, ...] = (
    Indicator(
        kind=SignalKind.CONDA_INDICATOR_FILE,
        patterns=(*CONDA_SPEC_FILES, CONDA_LOCK_FILE),
        implied_backend=Backend.MICROMAMBA,
    ),
    Indicator(
        kind=SignalKind.PIP_INDICATOR_FILE,
        patterns=("pyproject.toml", "requirements.txt", "setup.py"),
        implied_backend=Backend.VENV,
    ),
)
