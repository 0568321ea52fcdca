"""
CLI interface using Click.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.table import Table

from cursor_automation import __version__
from cursor_automation.actuator.platform import normalize_platform
from cursor_automation.actuator.window import create_window_manager, get_dependency_status
from cursor_automation.actuator.input import HAS_PYAUTOGUI, InputAutomationService
from cursor_automation.commands import CURSOR_COMMANDS
from cursor_automation.config import (
    AutomationConfig,
    ConfigurationError,
    get_default_config_path,
    load_config,
    save_config,
)
from cursor_automation.errors import AutomationError
from cursor_automation.instances import InstanceManager
from cursor_automation.logging import get_logger, setup_logging
from cursor_automation.paths import get_executable_path

console = Console()
logger = get_logger(__name__)


def _load(ctx: click.Context) -> AutomationConfig:
    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigurationError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(2)
    if ctx.obj.get("verbose"):
        config.log_level = "DEBUG"
    setup_logging(level=config.log_level, log_file=ctx.obj.get("log_file"))
    return config


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version and exit")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config file")
@click.option("--log-file", type=click.Path(path_type=Path), help="Also write JSON logs to this file")
@click.pass_context
def main(
    ctx: click.Context,
    version: bool,
    verbose: bool,
    config_path: Optional[str],
    log_file: Optional[Path],
) -> None:
    """Cursor Automation - drive Cursor IDE windows from scripts."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    ctx.obj["log_file"] = log_file

    setup_logging(level="DEBUG" if verbose else "INFO")

    if version:
        console.print(f"cursor-automation v{__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Check platform support and native dependencies."""
    config = _load(ctx)
    platform = normalize_platform()

    table = Table(title="Environment", show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Platform", platform)
    table.add_row("Cursor executable", config.instances.executable_path or get_executable_path(platform))
    table.add_row("Config file", str(get_default_config_path()))

    ok = True
    status = get_dependency_status(platform)
    status["pyautogui"] = HAS_PYAUTOGUI
    for dependency, present in status.items():
        ok = ok and present
        table.add_row(dependency, "[green]✓ found[/green]" if present else "[red]✗ missing[/red]")
    console.print(table)

    if not ok:
        console.print("\n[red]Some dependencies are missing; window automation will not work.[/red]")
        sys.exit(1)
    console.print("\n[green]✓ Ready[/green]")


@main.command()
@click.pass_context
def windows(ctx: click.Context) -> None:
    """List visible top-level windows."""
    _load(ctx)
    try:
        manager = create_window_manager()
        found = asyncio.run(manager.get_all_windows())
    except AutomationError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        sys.exit(1)

    table = Table()
    table.add_column("ID", justify="right")
    table.add_column("PID", justify="right")
    table.add_column("Title")
    for window in found:
        table.add_row(str(window.id), str(window.process_id), window.title[:80])
    console.print(table)


@main.command()
def commands() -> None:
    """List palette commands that can be run by name."""
    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Palette text")
    table.add_column("Description")
    for command in CURSOR_COMMANDS.values():
        table.add_row(command.name, command.palette_command, command.description)
    console.print(table)


async def _run_session(
    manager: InstanceManager,
    workspace: Optional[str],
    command_names: tuple[str, ...],
    keep_open: bool,
) -> None:
    try:
        instance = await manager.create(workspace)
        console.print(f"[green]✓ Cursor ready[/green] (instance {instance.id}, pid {instance.pid})")

        for name in command_names:
            await manager.run_palette_command(instance.id, name)
            console.print(f"  [green]✓[/green] {name}")

        if keep_open:
            console.print("[dim]Press Ctrl+C to close Cursor and exit.[/dim]")
            await instance.exited.wait()
    finally:
        await manager.cleanup()


@main.command()
@click.option("--workspace", "-w", type=click.Path(), help="Folder to open in Cursor")
@click.option(
    "--command",
    "command_names",
    multiple=True,
    type=click.Choice(sorted(CURSOR_COMMANDS)),
    help="Palette command to run after the window appears (repeatable)",
)
@click.option("--keep-open/--close", default=True, help="Keep Cursor running until Ctrl+C (default: keep open)")
@click.pass_context
def run(
    ctx: click.Context,
    workspace: Optional[str],
    command_names: tuple[str, ...],
    keep_open: bool,
) -> None:
    """Launch Cursor and optionally run palette commands in it."""
    config = _load(ctx)
    logger.info("Starting session", workspace=workspace, commands=list(command_names))

    try:
        manager = InstanceManager(
            window_manager=create_window_manager(
                input_service=InputAutomationService.get_instance(config.input)
            ),
            config=config,
        )
        asyncio.run(_run_session(manager, workspace, command_names, keep_open))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except AutomationError as e:
        logger.error("Session failed", **e.to_dict())
        console.print(f"[red]✗ {e.message}[/red]")
        sys.exit(1)


@main.command("config")
@click.option("--show", "-s", is_flag=True, help="Print the effective configuration")
@click.option("--init", "init_file", is_flag=True, help="Write the defaults to the config file")
@click.pass_context
def config_command(ctx: click.Context, show: bool, init_file: bool) -> None:
    """Show or initialize configuration."""
    config_path = ctx.obj.get("config_path")

    if init_file:
        target = config_path or str(get_default_config_path())
        save_config(AutomationConfig(), target)
        console.print(f"[green]✓ Wrote default configuration to {target}[/green]")
        return

    config = _load(ctx)
    if show:
        click.echo(yaml.safe_dump(config.model_dump(), default_flow_style=False, sort_keys=False))
        return

    console.print(f"Config file: {config_path or get_default_config_path()}")
    console.print("Use --show to print the effective configuration, --init to write defaults.")


if __name__ == "__main__":
    main()
