"""
``codethreat config`` - show, change and initialize configuration.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Tuple

import click
from rich.table import Table

from ..core.config import config_template
from ..core.exceptions import ConfigurationError
from ..core.models import ExportFormat, ScanType
from .common import CliState, console, handle_errors, parse_choices, pass_state, print_json


def _bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise click.BadParameter(f"Expected an integer, got {value!r}")


def _scan_types(value: str):
    return [t.value for t in parse_choices(value, ScanType, "scan types")]


def _export_format(value: str) -> str:
    return parse_choices(value, ExportFormat, "formats")[0].value


# CLI key -> (config field, parser)
SETTABLE_KEYS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "server-url": ("server_url", str),
    "org-id": ("organization_id", str),
    "org-slug": ("organization_slug", str),
    "default-scan-types": ("default_scan_types", _scan_types),
    "default-branch": ("default_branch", str),
    "default-timeout": ("default_timeout", _int),
    "default-poll-interval": ("default_poll_interval", _int),
    "default-format": ("default_format", _export_format),
    "output-dir": ("output_dir", str),
    "fail-on-critical": ("fail_on_critical", _bool),
    "fail-on-high": ("fail_on_high", _bool),
    "max-violations": ("max_violations", _int),
    "verbose": ("verbose", _bool),
    "colors": ("colors", _bool),
}


@click.group("config")
def config_group():
    """Configuration management"""
    pass


@config_group.command("show")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Showing configuration")
def show(state: CliState, output_format: str):
    """Show current configuration"""
    config = state.config()

    if output_format == "json":
        print_json(config.redacted())
        return

    def yes_no(flag: bool) -> str:
        return "Yes" if flag else "No"

    table = Table(title="CodeThreat CLI Configuration")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value")

    table.add_row("Server URL", config.server_url)
    table.add_row("API Key", "[green]Set[/green]" if config.api_key else "[red]Not set[/red]")
    table.add_row("Organization Slug", config.organization_slug or "[dim]Not set[/dim]")
    table.add_row("Organization ID", config.organization_id or "[dim]Not set[/dim]")
    table.add_row("Default Scan Types", ", ".join(t.value for t in config.default_scan_types))
    table.add_row("Default Branch", config.default_branch)
    table.add_row("Default Timeout", f"{config.default_timeout}s")
    table.add_row("Default Poll Interval", f"{config.default_poll_interval}s")
    table.add_row("Default Format", config.default_format.value)
    table.add_row("Output Directory", config.output_dir)
    table.add_row("Fail on Critical", yes_no(config.fail_on_critical))
    table.add_row("Fail on High", yes_no(config.fail_on_high))
    table.add_row("Max Violations", str(config.max_violations) if config.max_violations is not None else "No limit")
    table.add_row("Verbose", yes_no(config.verbose))
    table.add_row("Colors", yes_no(config.colors))

    console.print()
    console.print(table)

    if state.resolver.loaded_from:
        console.print(f"[dim]Loaded from: {state.resolver.loaded_from}[/dim]")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@pass_state
@handle_errors("Updating configuration")
def set_value(state: CliState, key: str, value: str):
    """
    Set a configuration value in the user config file.

    The API key is stored with the saved credentials, never in the
    config file.
    """
    state.config()

    if key == "api-key":
        state.resolver.credentials.save(value, state.resolver.config.server_url)
        state.resolver.update({"api_key": value})
        console.print("[green]✅ API key saved with credentials[/green]")
        return

    if key not in SETTABLE_KEYS:
        raise ConfigurationError(
            f"Unknown configuration key: {key}. Valid keys: api-key, {', '.join(SETTABLE_KEYS)}",
            field=key,
        )

    field_name, parse = SETTABLE_KEYS[key]
    path = state.resolver.save({field_name: parse(value)})

    console.print(f"[green]✅ Configuration updated: {key} = {value}[/green]")
    console.print(f"[dim]Saved to: {path}[/dim]")


@config_group.command("init")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing config file")
@handle_errors("Initializing configuration")
def init(force: bool):
    """Create a .codethreat.yml template in the current directory"""
    config_path = Path(".codethreat.yml")

    if config_path.exists() and not force:
        if not click.confirm("Configuration file already exists. Overwrite?", default=False):
            console.print("[yellow]Configuration initialization cancelled[/yellow]")
            return

    config_path.write_text(config_template(), encoding="utf-8")

    console.print("[green]✅ Configuration file created: .codethreat.yml[/green]")
    console.print("[blue]📝 Please edit the file to set your preferences[/blue]")
    console.print("[dim]Remember to set CT_API_KEY environment variable for your API key[/dim]")
