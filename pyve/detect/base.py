"""Signal scanner.

Inspects a project directory for backend indicator files and emits at most one
:class:`~pyve.types.BackendSignal` per indicator kind, in table order. The scan
is a pure function of the filesystem: it never writes and never raises.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from pyve.detect.indicators import INDICATORS, Indicator
from pyve.types import BackendSignal, SignalKind


def _present(root: Path, name: str) -> bool:
    try:
        return (root / name).is_file()
    except OSError:
        return False


def scan(project_dir: Path, table: Iterable[Indicator] = INDICATORS) -> list[BackendSignal]:
    """Return the ordered indicator signals found under *project_dir*.

    Several files of the same kind collapse into one signal whose
    ``source_path`` is the highest-ranked match; every match is kept in
    ``matches`` so callers can explain the choice.
    """
    signals: list[BackendSignal] = []
    for row in table:
        found = tuple(project_dir / p for p in row.patterns if _present(project_dir, p))
        if not found:
            continue
        signals.append(
            BackendSignal(
                kind=row.kind,
                implied_backend=row.implied_backend,
                source_path=found[0],
                matches=found,
            )
        )
    return signals


def first_of_kind(signals: Iterable[BackendSignal], kind: SignalKind) -> BackendSignal | None:
    for s in signals:
        if s.kind is kind:
            return s
    return None
