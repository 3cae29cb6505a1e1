"""pyve CLI: init / run / doctor / python-version.

Global options:
- --project/-C DIR (default: current directory)
- --log-level LEVEL (JSON log lines on stderr)

Failures print ``ERROR: <message>`` plus the remediation command and exit
with the error's code; ``run`` exits with the child's code.
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from pathlib import Path

import typer
from rich import print as rprint
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pyve.config import PYVE_VERSION
from pyve.context import ProjectContext
from pyve.core import init_project, pin_python_version, run_project
from pyve.doctor import diagnose
from pyve.errors import PyveError, ReinitCancelled
from pyve.logging import set_level
from pyve.prompts import InteractiveChoices, PresetChoices
from pyve.types import SandboxTarget

app = typer.Typer(add_completion=False, help="Project-local Python environments (venv or micromamba)")
console = Console()
err_console = Console(stderr=True)

_STATUS_STYLE = {"ok": "green", "warn": "yellow", "fail": "red", "info": "cyan"}
EXIT_INTERRUPTED = 130
BACKEND_HELP = "auto|venv|micromamba (alias: conda)"


@contextmanager
def _errors():
    try:
        yield
    except PyveError as e:
        err_console.print(f"[red]ERROR:[/red] {escape(e.message)}")
        if e.hint:
            err_console.print(f"  Try: {escape(e.hint)}")
        raise typer.Exit(code=int(e.exit_code)) from None
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED) from None


def _context(ctx: typer.Context) -> ProjectContext:
    return ctx.obj["project"]


def _version_callback(value: bool) -> None:
    if value:
        rprint(f"pyve {PYVE_VERSION}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    project: str = typer.Option(".", "--project", "-C", help="Project directory"),
    log_level: str = typer.Option("WARNING", "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    set_level(log_level)
    ctx.obj = {"project": ProjectContext.discover(Path(project))}


@app.command()
def init(
    ctx: typer.Context,
    path: str | None = typer.Argument(None, help="Project root (overrides --project)"),
    backend: str = typer.Option("auto", "--backend", help=BACKEND_HELP),
    auto_bootstrap: bool = typer.Option(
        False, "--auto-bootstrap", help="Install a missing micromamba without asking"
    ),
    bootstrap_to: SandboxTarget | None = typer.Option(
        None, "--bootstrap-to", help="Sandbox for --auto-bootstrap (default: project)"
    ),
    python_version: str | None = typer.Option(None, "--python-version", help="Pin X.Y.Z"),
    venv_dir: str | None = typer.Option(None, "--venv-dir", help="venv directory (default .venv)"),
    env_name: str | None = typer.Option(None, "--env-name", help="micromamba environment name"),
    strict: bool = typer.Option(
        False, "--strict", help="Fail on ambiguous signals or an out-of-sync lock file"
    ),
    force: bool = typer.Option(False, "--force", help="Remove the environment and create it again"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before --force removes anything"),
) -> None:
    project = ProjectContext.discover(Path(path)) if path else _context(ctx)
    choices = None
    if sys.stdin.isatty() and not (auto_bootstrap and yes):
        choices = InteractiveChoices()

    with _errors():
        try:
            result = init_project(
                project,
                backend=backend,
                auto_bootstrap=auto_bootstrap,
                bootstrap_to=bootstrap_to,
                python_version=python_version,
                venv_dir=venv_dir,
                env_name=env_name,
                strict=strict,
                force=force,
                assume_yes=yes,
                choices=choices,
            )
        except ReinitCancelled as e:
            rprint(f"[yellow]{escape(e.message)}[/yellow]")
            raise typer.Exit(code=int(e.exit_code)) from None

    for note in result.resolved.notes:
        rprint(f"[yellow]WARNING:[/yellow] {escape(note)}")

    table = Table(title="pyve init")
    table.add_column("Item", style="cyan")
    table.add_column("Value")
    table.add_row("Backend", result.resolved.backend.value)
    table.add_row("Decided by", result.resolved.winning_signal.kind.value)
    table.add_row("Tool", f"{result.tool.executable_path} ({result.tool.origin.value})")
    table.add_row("Lock", result.lock.reason.value)
    table.add_row("Environment", result.handle.name)
    table.add_row("Prefix", str(result.handle.prefix_path))
    console.print(table)
    rprint(f"[green]Initialized:[/green] {result.handle.prefix_path}")


@app.command(context_settings={"allow_extra_args": True, "ignore_unknown_options": True})
def run(
    ctx: typer.Context,
    command: list[str] = typer.Argument(..., help="Command to run, after --"),
    backend: str = typer.Option("auto", "--backend", help=BACKEND_HELP),
    allow_cross_family: bool = typer.Option(
        False, "--allow-cross-family", help="Allow the other family's package installers"
    ),
) -> None:
    with _errors():
        code = run_project(
            _context(ctx),
            command,
            backend=backend,
            allow_cross_family=allow_cross_family,
        )
    raise typer.Exit(code=code)


@app.command()
def doctor(
    ctx: typer.Context,
    backend: str = typer.Option("auto", "--backend", help=BACKEND_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show hints and probe versions"),
) -> None:
    stages = diagnose(_context(ctx), explicit_flag=backend, probe_versions=verbose)

    table = Table(title="pyve doctor")
    table.add_column("Stage", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    if verbose:
        table.add_column("Hints")
    for s in stages:
        style = _STATUS_STYLE.get(s.status, "white")
        row = [s.stage, f"[{style}]{s.status}[/{style}]", escape(s.detail)]
        if verbose:
            row.append(escape("\n".join(s.hints)))
        table.add_row(*row)
    console.print(table)


@app.command("python-version")
def python_version(
    ctx: typer.Context,
    version: str = typer.Argument(..., help="Python version X.Y.Z"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Install the version if missing"),
) -> None:
    if yes:
        choices = PresetChoices(assume_yes=True)
    elif sys.stdin.isatty():
        choices = InteractiveChoices()
    else:
        choices = PresetChoices()
    with _errors():
        manager = pin_python_version(_context(ctx), version, choices)
    rprint(f"[green]Python {version} pinned[/green] via {manager.name} ({manager.pin_file})")


if __name__ == "__main__":
    app()
