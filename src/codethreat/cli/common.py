"""
Shared helpers for the CLI commands: run state, error handling and
rich formatting.
"""

import asyncio
import functools
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import click
from rich.console import Console
from rich.markup import escape

from ..core.config import ConfigResolver, EffectiveConfig
from ..core.exceptions import CodeThreatError
from ..logging_config import setup_logging


console = Console()
err_console = Console(stderr=True)

EnumT = TypeVar("EnumT")

STATUS_STYLES = {
    "COMPLETED": "green",
    "SCANNING": "blue",
    "PENDING": "yellow",
    "FAILED": "red",
}


@dataclass
class CliState:
    """Per-invocation state shared through the click context"""
    config_path: Optional[Path] = None
    overrides: Dict[str, Any] = field(default_factory=dict)
    _resolver: Optional[ConfigResolver] = None

    @property
    def resolver(self) -> ConfigResolver:
        if self._resolver is None:
            self._resolver = ConfigResolver(config_path=self.config_path)
        return self._resolver

    def config(self) -> EffectiveConfig:
        """Resolve the effective configuration once and set up output"""
        resolver = self.resolver
        if not resolver.is_resolved:
            config = resolver.resolve(self.overrides)
            setup_logging(verbose=config.verbose, colors=config.colors)
            console.no_color = not config.colors
            err_console.no_color = not config.colors
        return resolver.config


pass_state = click.make_pass_decorator(CliState, ensure=True)


def handle_errors(action: str):
    """
    Report CLI errors and exit with the code that matches the error kind.

    Args:
        action: Short description used in the failure message
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except CodeThreatError as e:
                err_console.print(f"[bold red]❌ {action} failed:[/bold red] {escape(str(e))}")
                sys.exit(e.exit_code)
            except KeyboardInterrupt:
                err_console.print("\n[yellow]Interrupted by user[/yellow]")
                sys.exit(130)
        return wrapper
    return decorator


def run_async(coro):
    return asyncio.run(coro)


def parse_choices(value: Optional[str], enum_cls: Type[EnumT], label: str) -> List[EnumT]:
    """Split a comma-separated option and validate each item against ``enum_cls``"""
    if not value:
        return []

    items = [item.strip() for item in value.split(",") if item.strip()]
    valid = [member.value for member in enum_cls]
    invalid = [item for item in items if item not in valid]
    if invalid:
        raise click.BadParameter(
            f"Invalid {label}: {', '.join(invalid)}. Valid {label}: {', '.join(valid)}"
        )
    return [enum_cls(item) for item in items]


def format_status(status: Any) -> str:
    value = getattr(status, "value", status)
    style = STATUS_STYLES.get(str(value), "dim")
    return f"[{style}]{value}[/{style}]"


def format_datetime(value: Any) -> str:
    if value is None:
        return "N/A"
    if hasattr(value, "strftime"):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return str(value)


def print_json(data: Any, output: Optional[str] = None):
    """Print JSON to stdout, or save it to ``output``"""
    text = json.dumps(data, indent=2, default=str)
    if output:
        output_path = Path(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8")
        console.print(f"[green]Results saved to:[/green] {output_path}")
    else:
        click.echo(text)


def print_severity_counts(counts, title: str = "Scan Results:"):
    console.print()
    console.print(f"[bold]{title}[/bold]")
    console.print(f"  Total Violations: {counts.total}")
    console.print(f"  Critical: [red]{counts.critical}[/red]")
    console.print(f"  High: [yellow]{counts.high}[/yellow]")
    console.print(f"  Medium: [blue]{counts.medium}[/blue]")
    console.print(f"  Low: [dim]{counts.low}[/dim]")


def short_id(value: Optional[str]) -> str:
    if not value:
        return "N/A"
    return value[:8] + "..." if len(value) > 8 else value
