"""Main CLI entry point for skillcore."""

from __future__ import annotations

import sys
from typing import Annotated

import typer
from rich.console import Console

from skillcore.skill_runtime.config import get_settings
from skillcore.skill_runtime.logging import configure_logging
from skillcore_cli import __version__
from skillcore_cli.commands import skills

app = typer.Typer(
    name="skillcore",
    help="skillcore CLI - Inspect and manage agent skills",
    no_args_is_help=True,
    add_completion=False,
)

# Register command groups
app.add_typer(skills.app, name="skills")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"skillcore CLI version: {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    skillcore CLI - Command-line interface for the skill runtime.

    Boots a local runtime against the configured agent config and settings
    documents, then runs one lifecycle command.

    Use 'skillcore COMMAND --help' for help with specific commands.
    """
    configure_logging(get_settings().log_level)


@app.command()
def version() -> None:
    """Show the CLI and runtime versions."""
    console.print(f"skillcore CLI version: {__version__}")
    console.print(f"Runtime version: {get_settings().runtime_version}")


def cli_main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
