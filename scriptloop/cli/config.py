"""ScriptLoop config command - Configuration management."""

import os
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from scriptloop.cli.error_handler import handle_errors
from scriptloop.cli.exit_codes import ExitCode
from scriptloop.errors import ConfigurationError

app = typer.Typer(help="Manage ScriptLoop configuration.")
console = Console()


@app.command("show")
@handle_errors
def show_config(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, json).",
    ),
) -> None:
    """Show current configuration.

    Example:
        scriptloop config show
        scriptloop config show --format json
    """
    from scriptloop.config import config_to_dict, export_config_json, get_config

    config = get_config()

    if format == "json":
        console.print(Syntax(export_config_json(config), "json", theme="monokai"))
        return
    if format != "table":
        raise ConfigurationError(
            f"Unknown output format: {format}",
            exit_code=ExitCode.INVALID_ARGUMENT,
            details={"choices": "table, json"},
        )

    console.print("[bold]ScriptLoop Configuration[/bold]")
    console.print()

    data = config_to_dict(config)
    console.print(f"[bold]config_dir:[/bold] {data.pop('config_dir')}")
    console.print()

    for section, values in data.items():
        table = Table(title=section.capitalize())
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        for key, value in values.items():
            table.add_row(key, str(value))
        console.print(table)
        console.print()


@app.command("init")
@handle_errors
def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
) -> None:
    """Write a default configuration file.

    Example:
        scriptloop config init
        scriptloop config init --force
    """
    from scriptloop.config import (
        DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILE, ScriptLoopConfig, clear_config_cache, save_config
    )

    # Check for environment variable override
    config_dir = Path(os.environ.get("SCRIPTLOOP_CONFIG_DIR", DEFAULT_CONFIG_DIR))
    config_path = config_dir / DEFAULT_CONFIG_FILE

    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration already exists at {config_path}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    config = ScriptLoopConfig(config_dir=config_dir)
    save_config(config, config_path)
    clear_config_cache()

    console.print(f"[green]✓[/green] Configuration initialized at {config_path}")


@app.command("validate")
@handle_errors
def validate_config() -> None:
    """Validate current configuration.

    Example:
        scriptloop config validate
    """
    from scriptloop.config import get_config, validate_config as do_validate

    issues = do_validate(get_config())
    if not issues:
        console.print("[green]✓[/green] Configuration is valid")
        return

    for issue in issues:
        color = "red" if issue.severity == "error" else "yellow"
        console.print(f"[{color}]{issue}[/{color}]", highlight=False)

    if any(issue.severity == "error" for issue in issues):
        raise ConfigurationError("Configuration has errors", details={"count": len(issues)})
