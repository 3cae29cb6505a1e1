"""Choice providers.

Anything that would block on a human goes through a :class:`ChoiceProvider`
so core flows stay testable: the CLI passes :class:`InteractiveChoices`,
``--auto-bootstrap`` and tests pass :class:`PresetChoices`.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

from rich import print as rprint
from rich.prompt import Confirm, Prompt

from pyve.types import Backend


class BootstrapChoice(str, Enum):
    PROJECT = "project"
    USER = "user"
    SYSTEM = "system"
    ABORT = "abort"


_MENU = {
    "1": BootstrapChoice.PROJECT,
    "2": BootstrapChoice.USER,
    "3": BootstrapChoice.SYSTEM,
    "4": BootstrapChoice.ABORT,
}


class ChoiceProvider(Protocol):
    def bootstrap_target(self, backend: Backend) -> BootstrapChoice: ...

    def confirm(self, question: str) -> bool: ...


class InteractiveChoices:
    """Ask on the terminal with rich prompts."""

    def bootstrap_target(self, backend: Backend) -> BootstrapChoice:
        tool = backend.tool_name
        rprint(f"[yellow]{tool} not found.[/yellow] How should it be installed?")
        rprint(f"  1. Install to project sandbox: .pyve/bin/{tool}")
        rprint(f"  2. Install to user sandbox: ~/.pyve/bin/{tool}")
        rprint("  3. Install via system package manager (prints instructions)")
        rprint("  4. Abort")
        answer = Prompt.ask("Choice", choices=list(_MENU), default="1")
        return _MENU[answer]

    def confirm(self, question: str) -> bool:
        return Confirm.ask(question, default=True)


class PresetChoices:
    """Fixed answers; never reads from the terminal."""

    def __init__(
        self,
        target: BootstrapChoice | str | None = None,
        *,
        assume_yes: bool = False,
    ):
        self.target = BootstrapChoice(target) if target is not None else None
        self.assume_yes = assume_yes

    def bootstrap_target(self, backend: Backend) -> BootstrapChoice:
        if self.target is None:
            return BootstrapChoice.ABORT
        return self.target

    def confirm(self, question: str) -> bool:
        return self.assume_yes
