"""
CodeThreat CLI - Security scanning for CI/CD pipelines

Usage:
    codethreat scan run REPO_ID --organization acme --wait
    codethreat scan run REPO_ID --wait --max-critical 1 --max-high 10
    codethreat scan results SCAN_ID --format sarif

Exit codes:
    0  success / all thresholds passed
    1  a threshold was exceeded
    2  invalid configuration
    3  no organization slug
    4  server or network error
    5  scan failed on the server
    6  scan did not finish before the timeout
"""

from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from .. import __version__
from ..logging_config import setup_logging
from .auth import auth
from .common import CliState, console
from .org import org
from .repo import repo
from .scan import scan
from .settings import config_group


@click.group()
@click.version_option(version=__version__, prog_name="codethreat")
@click.option("--verbose", "-v", is_flag=True, default=None, help="Enable verbose output")
@click.option("--api-key", help="CodeThreat API key")
@click.option("--server-url", help="CodeThreat server URL")
@click.option("--org-id", help="Organization ID")
@click.option("--org-slug", help="Organization slug")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Configuration file path")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: Optional[bool],
    api_key: Optional[str],
    server_url: Optional[str],
    org_id: Optional[str],
    org_slug: Optional[str],
    config_path: Optional[str],
):
    """
    CodeThreat CLI - Security scanning for CI/CD pipelines

    Settings come from defaults, .codethreat.yml, saved credentials,
    CT_* environment variables and these flags, later ones winning.
    """
    setup_logging(verbose=bool(verbose))

    ctx.obj = CliState(
        config_path=Path(config_path) if config_path else None,
        overrides={
            "verbose": verbose or None,
            "api_key": api_key,
            "server_url": server_url,
            "organization_id": org_id,
            "organization_slug": org_slug,
        },
    )


cli.add_command(auth)
cli.add_command(scan)
cli.add_command(repo)
cli.add_command(org)
cli.add_command(config_group)


@cli.command()
def version():
    """Show version information"""
    console.print(f"\n[bold cyan]CodeThreat CLI v{__version__}[/bold cyan]")
    console.print("[cyan]Security scanning for CI/CD pipelines[/cyan]\n")

    table = Table(title="Commands")
    table.add_column("Command", style="cyan", no_wrap=True)
    table.add_column("Description", style="green")

    table.add_row("auth", "Login, logout, validate credentials")
    table.add_row("scan", "Run scans, check status, export results")
    table.add_row("repo", "Import and inspect repositories")
    table.add_row("org", "List and select organizations")
    table.add_row("config", "Show and change configuration")

    console.print(table)
    console.print()


__all__ = ["cli"]
