"""Backend resolution.

Combines the explicit CLI flag, the persisted config and the scanned
indicator signals through a fixed precedence chain:

1. explicit CLI flag (unless ``auto``)
2. ``backend`` in ``.pyve/config`` (unless ``auto``)
3. conda indicator file
4. pip indicator file
5. default: venv

When both indicator kinds are present and nothing above them decides, the
conda family wins and the result is marked ambiguous so ``doctor`` can
explain it. Resolution never raises once the flag has been parsed.
"""

from __future__ import annotations

from collections.abc import Sequence

from pyve.config import BACKEND_ALIASES, ProjectConfig
from pyve.detect.base import first_of_kind
from pyve.detect.indicators import CONDA_SPEC_FILES
from pyve.errors import ConfigError
from pyve.logging import get_logger
from pyve.types import Backend, BackendChoice, BackendSignal, ResolvedBackend, SignalKind

DEFAULT_BACKEND = Backend.VENV

log = get_logger(__name__)


def _conda_notes(signal: BackendSignal) -> list[str]:
    specs = [p for p in signal.matches if p.name in CONDA_SPEC_FILES]
    if len(specs) <= 1:
        return []
    others = ", ".join(p.name for p in specs[1:])
    return [f"multiple conda environment specs found; using {specs[0].name} (ignored: {others})"]


def parse_backend_choice(value: BackendChoice | str) -> BackendChoice:
    """Accept enum members, canonical values and the ``conda`` alias."""
    if isinstance(value, BackendChoice):
        return value
    key = value.strip().lower()
    try:
        return BackendChoice(BACKEND_ALIASES.get(key, key))
    except ValueError:
        raise ConfigError(
            f"Unknown backend: {value!r}",
            hint="--backend auto|venv|micromamba (alias: conda)",
        ) from None


def resolve(
    explicit_flag: BackendChoice | str | None,
    config: ProjectConfig | None,
    signals: Sequence[BackendSignal],
) -> ResolvedBackend:
    """Pick one backend from already-gathered evidence."""
    flag = parse_backend_choice(explicit_flag) if explicit_flag else None
    if flag is not None and flag.as_backend() is not None:
        flag_sig = BackendSignal(SignalKind.EXPLICIT_FLAG, flag.as_backend())
        return ResolvedBackend(
            backend=flag_sig.implied_backend,
            winning_signal=flag_sig,
            considered=(flag_sig, *signals),
        )

    if config is not None and config.backend.as_backend() is not None:
        cfg_sig = BackendSignal(SignalKind.CONFIG, config.backend.as_backend())
        return ResolvedBackend(
            backend=cfg_sig.implied_backend,
            winning_signal=cfg_sig,
            considered=(cfg_sig, *signals),
        )

    considered = list(signals)
    conda = first_of_kind(signals, SignalKind.CONDA_INDICATOR_FILE)
    pip = first_of_kind(signals, SignalKind.PIP_INDICATOR_FILE)

    if conda is not None:
        notes = _conda_notes(conda)
        ambiguous = pip is not None
        if ambiguous:
            msg = (
                f"both conda ({conda.source_path.name}) and pip ({pip.source_path.name}) "
                "indicator files found; using micromamba. Pass --backend or set "
                "'backend' in .pyve/config to choose explicitly"
            )
            log.warning(msg)
            notes.append(msg)
        return ResolvedBackend(
            backend=conda.implied_backend,
            winning_signal=conda,
            considered=tuple(considered),
            ambiguous=ambiguous,
            notes=tuple(notes),
        )

    if pip is not None:
        return ResolvedBackend(
            backend=pip.implied_backend,
            winning_signal=pip,
            considered=tuple(considered),
        )

    fallback = BackendSignal(SignalKind.DEFAULT_FALLBACK, DEFAULT_BACKEND)
    return ResolvedBackend(
        backend=DEFAULT_BACKEND,
        winning_signal=fallback,
        considered=(*considered, fallback),
    )
