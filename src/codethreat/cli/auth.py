"""
``codethreat auth`` - login, logout and credential checks.
"""

from typing import Optional

import click
from rich.markup import escape

from ..client import CodeThreatClient
from ..core.exceptions import ConfigurationError, RemoteServiceError
from .common import CliState, console, handle_errors, pass_state, run_async


@click.group()
def auth():
    """Authentication management"""
    pass


@auth.command("login")
@click.option("--api-key", "-k", help="CodeThreat API key")
@click.option("--server-url", "-s", help="CodeThreat server URL")
@click.option("--save/--no-save", default=True, help="Save credentials for later sessions")
@pass_state
@handle_errors("Login")
def login(state: CliState, api_key: Optional[str], server_url: Optional[str], save: bool):
    """Login with an API key"""
    config = state.config()

    if not api_key:
        api_key = click.prompt("Enter your CodeThreat API key", hide_input=True)
    if not server_url:
        server_url = click.prompt("Enter CodeThreat server URL", default=config.server_url)

    config = state.resolver.update({"api_key": api_key, "server_url": server_url})

    async def validate():
        async with CodeThreatClient(config) as client:
            return await client.validate_auth(include_organizations=True, include_permissions=True)

    console.print("[blue]🔐 Validating authentication...[/blue]")
    result = run_async(validate())
    if not result.valid:
        raise RemoteServiceError("Invalid API key", code="INVALID_API_KEY")

    console.print("[green]✅ Authentication successful![/green]")
    console.print()
    console.print("[bold]User Information:[/bold]")
    console.print(f"  Name: {escape(result.user.name or 'Not set')}")
    console.print(f"  Email: {escape(result.user.email or 'Not set')}")

    if result.organizations:
        console.print()
        console.print("[bold]Organizations:[/bold]")
        for index, org in enumerate(result.organizations):
            marker = "👤" if org.is_personal else "🏢"
            console.print(f"  {marker} {escape(org.name)} ({org.plan_type or 'unknown'})")
            if index == 0:
                console.print("[dim]    ^ Default organization[/dim]")

    if save:
        state.resolver.credentials.save(api_key, config.server_url)

        default_org = result.organizations[0] if result.organizations else None
        state.resolver.save({
            "server_url": config.server_url,
            "organization_id": default_org.id if default_org else None,
            "organization_slug": default_org.slug if default_org else None,
        })

        console.print()
        console.print("[green]💾 Credentials saved securely[/green]")

    console.print("[green]🚀 Ready to use CodeThreat CLI![/green]")


@auth.command("validate")
@click.option("--verbose", "detailed", is_flag=True, help="Show permissions and usage")
@pass_state
@handle_errors("Authentication check")
def validate(state: CliState, detailed: bool):
    """Validate current authentication"""
    config = state.config()
    if not config.api_key:
        raise ConfigurationError("No API key configured. Run: codethreat auth login", field="api_key")

    async def check():
        async with CodeThreatClient(config) as client:
            return await client.validate_auth(
                include_organizations=True,
                include_permissions=detailed,
                include_usage=detailed,
            )

    console.print("[blue]🔐 Validating authentication...[/blue]")
    result = run_async(check())

    console.print("[green]✅ Authentication valid[/green]")
    console.print()
    console.print("[bold]User:[/bold]")
    console.print(f"  {escape(result.user.name or 'Not set')} ({escape(result.user.email or 'unknown')})")

    if result.organizations:
        console.print()
        console.print("[bold]Organizations:[/bold]")
        for org in result.organizations:
            marker = "👤" if org.is_personal else "🏢"
            console.print(f"  {marker} {escape(org.name)} ({org.plan_type or 'unknown'})")
            if org.usage_balance is not None:
                console.print(f"[dim]    Balance: ${org.usage_balance:.2f}[/dim]")

    if detailed and result.permissions:
        console.print()
        console.print("[bold]Permissions:[/bold]")
        for permission in result.permissions:
            console.print(f"  • {permission}")

    if result.authenticated_at:
        console.print()
        console.print(f"[dim]Authenticated at: {result.authenticated_at}[/dim]")


@auth.command("logout")
@pass_state
@handle_errors("Logout")
def logout(state: CliState):
    """Clear stored credentials"""
    state.config()

    state.resolver.credentials.clear()
    state.resolver.save({"organization_id": None, "organization_slug": None})

    console.print("[green]✅ Logged out successfully[/green]")
    console.print("[yellow]💡 You will need to login again to use the CLI[/yellow]")


@auth.command("status")
@pass_state
@handle_errors("Status check")
def status(state: CliState):
    """Show current authentication status"""
    config = state.config()

    console.print("[bold]Authentication Status:[/bold]")
    console.print(f"  Server URL: {config.server_url}")
    console.print(f"  API Key: {'[green]Set[/green]' if config.api_key else '[red]Not set[/red]'}")
    console.print(f"  Organization: {config.organization_slug or config.organization_id or '[dim]Not set[/dim]'}")

    if config.api_key:
        async def check():
            async with CodeThreatClient(config) as client:
                return await client.test_connection()

        console.print()
        console.print("[blue]Testing connection...[/blue]")
        connected = run_async(check())
        console.print(f"  Connection: {'[green]OK[/green]' if connected else '[red]Failed[/red]'}")
