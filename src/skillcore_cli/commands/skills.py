"""Skill lifecycle commands.

This module provides CLI commands for skill management:
- list: Show allow-listed and loaded skills
- enable: Enable a skill and persist the enabled set
- disable: Disable a skill and persist the enabled set
- reload: Re-read the agent config and converge on its enabled set
- settings: Show or update a skill's settings

Every command boots a local runtime, so enabled skills are loaded before the
command runs.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from skillcore.skill_runtime.config import Settings, get_settings
from skillcore.skill_runtime.models.errors import SkillError
from skillcore.skill_runtime.runtime import SkillRuntime
from skillcore.skill_runtime.services.settings_service import SETTINGS_MODULE_NAME
from skillcore.skill_runtime.services.settings_utils import set_by_path
from skillcore.skill_runtime.services.skill_manager import SKILL_MANAGER_MODULE_NAME

app = typer.Typer(
    name="skills",
    help="Manage skill lifecycle and settings",
    no_args_is_help=True,
)

console = Console()

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to agent.config.json"),
]
WorkDirOption = Annotated[
    Path | None,
    typer.Option("--work-dir", "-w", help="Runtime work directory (settings storage)"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Output in JSON format"),
]

STATUS_STYLES = {"loaded": "green", "disabled": "dim", "error": "red"}


def build_settings(config: Path | None, work_dir: Path | None) -> Settings:
    """Apply command-line overrides on top of the environment settings."""
    overrides: dict[str, Any] = {}
    if config is not None:
        overrides["skills_config_path"] = config
    if work_dir is not None:
        overrides["settings_work_dir"] = work_dir
    return get_settings().model_copy(update=overrides)


SystemCall = tuple[str, str, dict[str, Any] | None]


async def _run(settings: Settings, calls: list[SystemCall]) -> list[Any]:
    runtime = SkillRuntime(settings)
    await runtime.start()
    return [
        await runtime.execute_system(module, op, params, source="cli")
        for module, op, params in calls
    ]


def run_system_calls(settings: Settings, calls: list[SystemCall]) -> list[Any]:
    """Boot a runtime and execute ``calls`` in order; exit on failure."""
    try:
        return asyncio.run(_run(settings, calls))
    except SkillError as e:
        console.print(f"[red]{e.code.value}:[/red] {e.message}")
        if e.details:
            console.print(f"[dim]Details: {e.details}[/dim]")
        raise typer.Exit(1)


def run_skills_op(settings: Settings, op: str, params: dict[str, Any] | None = None) -> Any:
    """Boot a runtime and execute one ``skills`` operation."""
    return run_system_calls(settings, [(SKILL_MANAGER_MODULE_NAME, op, params)])[0]


def render_skills_table(loaded: list[dict[str, Any]]) -> Table:
    table = Table(title="Skills")
    table.add_column("ID", style="cyan")
    table.add_column("Enabled")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Source")
    table.add_column("Modules")
    table.add_column("Error", style="red")

    for record in loaded:
        status = record.get("status", "disabled")
        style = STATUS_STYLES.get(status, "white")
        table.add_row(
            record["id"],
            "yes" if record.get("enabled") else "no",
            f"[{style}]{status}[/{style}]",
            record.get("version") or "-",
            record.get("source") or "-",
            ", ".join(record.get("modules_registered") or []) or "-",
            record.get("error") or "",
        )
    return table


def parse_assignment(raw: str) -> tuple[str, Any]:
    """Parse ``key=value``; the value is decoded as JSON when possible."""
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"Expected key=value, got: {raw}")
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


@app.command("list")
def list_skills(
    config: ConfigOption = None,
    work_dir: WorkDirOption = None,
    json_output: JsonOption = False,
) -> None:
    """List allow-listed and loaded skills.

    Examples:
        skillcore skills list
        skillcore skills list --config ./agent.config.json --json
    """
    result = run_skills_op(build_settings(config, work_dir), "list")
    if json_output:
        print(json.dumps(result, indent=2))
        return
    console.print(render_skills_table(result["loaded"]))
    console.print(f"[bold]Enabled:[/bold] {', '.join(result['enabled']) or '-'}")


@app.command()
def enable(
    skill_id: Annotated[str, typer.Argument(help="Skill id")],
    config: ConfigOption = None,
    work_dir: WorkDirOption = None,
    json_output: JsonOption = False,
) -> None:
    """Enable an allow-listed skill and save the enabled set."""
    result = run_skills_op(build_settings(config, work_dir), "enable", {"id": skill_id})
    if json_output:
        print(json.dumps(result, indent=2))
        return
    console.print(f"[green]✓[/green] Skill enabled: {skill_id}")
    if "skill" in result:
        console.print(render_skills_table([result["skill"]]))


@app.command()
def disable(
    skill_id: Annotated[str, typer.Argument(help="Skill id")],
    config: ConfigOption = None,
    work_dir: WorkDirOption = None,
    json_output: JsonOption = False,
) -> None:
    """Disable a skill and save the enabled set."""
    result = run_skills_op(build_settings(config, work_dir), "disable", {"id": skill_id})
    if json_output:
        print(json.dumps(result, indent=2))
        return
    console.print(f"[green]✓[/green] Skill disabled: {skill_id}")
    if "skill" in result:
        console.print(render_skills_table([result["skill"]]))


@app.command()
def reload(
    config: ConfigOption = None,
    work_dir: WorkDirOption = None,
    json_output: JsonOption = False,
) -> None:
    """Re-read the agent config and load every enabled skill."""
    result = run_skills_op(build_settings(config, work_dir), "reload_enabled")
    if json_output:
        print(json.dumps(result, indent=2))
        return
    console.print(render_skills_table(result["loaded"]))


@app.command()
def settings(
    skill_id: Annotated[str, typer.Argument(help="Skill id")],
    assignments: Annotated[
        list[str] | None,
        typer.Option(
            "--set",
            "-s",
            help="Setting to update as dotted.key=value (repeatable)",
        ),
    ] = None,
    show_secrets: Annotated[
        bool,
        typer.Option("--show-secrets", help="Print sensitive values instead of masking them"),
    ] = False,
    config: ConfigOption = None,
    work_dir: WorkDirOption = None,
) -> None:
    """Show a skill's settings, or update them with --set.

    Sensitive values declared by an enabled skill are masked unless
    --show-secrets is given.

    Examples:
        skillcore skills settings echo
        skillcore skills settings echo --set prefix='"> "' --set limits.max=3
    """
    calls: list[SystemCall] = []
    if not assignments:
        calls.append((SKILL_MANAGER_MODULE_NAME, "get_settings", {"id": skill_id}))
    else:
        patch: dict[str, Any] = {}
        for raw in assignments:
            key, value = parse_assignment(raw)
            set_by_path(patch, key, value)
        calls.append((SKILL_MANAGER_MODULE_NAME, "update_settings", {"id": skill_id, "settings": patch}))
    if not show_secrets:
        calls.append((SETTINGS_MODULE_NAME, "get_skill", {"skill_id": skill_id}))

    results = run_system_calls(build_settings(config, work_dir), calls)
    shown = results[0]["settings"] if show_secrets else results[-1]["result"]["settings"]
    print(json.dumps(shown, indent=2))
