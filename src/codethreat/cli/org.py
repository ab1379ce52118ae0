"""
``codethreat org`` - list and select organizations.
"""

import click
from rich.markup import escape
from rich.table import Table

from ..client import CodeThreatClient
from ..core.exceptions import RemoteServiceError
from .common import CliState, console, handle_errors, pass_state, print_json, run_async, short_id


@click.group()
def org():
    """Organization management"""
    pass


@org.command("list")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Fetching organizations")
def list_orgs(state: CliState, output_format: str):
    """List available organizations"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.validate_auth(include_organizations=True, include_usage=True)

    with console.status("Fetching organizations..."):
        result = run_async(fetch())

    if output_format == "json":
        print_json([o.model_dump(mode="json", by_alias=True) for o in result.organizations])
        return

    if not result.organizations:
        console.print("[yellow]No organizations found[/yellow]")
        return

    table = Table(title="Organizations")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Slug")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Plan")
    table.add_column("Balance")

    for item in result.organizations:
        table.add_row(
            short_id(item.id),
            item.slug or "",
            escape(item.name),
            "👤 Personal" if item.is_personal else "🏢 Team",
            item.plan_type or "",
            f"${item.usage_balance:.2f}" if item.usage_balance is not None else "N/A",
        )

    console.print()
    console.print(table)


@org.command("select")
@click.argument("organization_id")
@pass_state
@handle_errors("Selecting organization")
def select(state: CliState, organization_id: str):
    """Select the default organization for later commands"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.validate_auth(include_organizations=True)

    with console.status("Validating organization access..."):
        result = run_async(fetch())

    selected = next(
        (o for o in result.organizations if organization_id in (o.id, o.slug)),
        None,
    )
    if selected is None:
        raise RemoteServiceError(
            "You do not have access to this organization", status=403, code="ORGANIZATION_ACCESS_DENIED"
        )

    state.resolver.save({"organization_id": selected.id, "organization_slug": selected.slug})

    console.print("[green]✅ Default organization updated[/green]")
    console.print(f"  Organization: {escape(selected.name)}")
    console.print(f"  ID: {selected.id}")
    if selected.slug:
        console.print(f"  Slug: {selected.slug}")
    console.print(f"  Plan: {selected.plan_type or 'N/A'}")


@org.command("config")
@click.argument("organization_id")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Fetching organization configuration")
def org_config(state: CliState, organization_id: str, output_format: str):
    """Get organization configuration and capabilities"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.get_organization_config(organization_id)

    with console.status("Fetching organization configuration..."):
        data = run_async(fetch())

    if output_format == "json":
        print_json(data)
        return

    organization = data.get("organization") or {}
    capabilities = data.get("capabilities") or {}

    console.print()
    console.print("[bold]Organization Information:[/bold]")
    console.print(f"  Name: {escape(str(organization.get('name', 'N/A')))}")
    console.print(f"  ID: {organization.get('id', organization_id)}")
    console.print(f"  Plan: {organization.get('planType', 'N/A')}")
    if organization.get("usageBalance") is not None:
        console.print(f"  Balance: ${organization['usageBalance']:.2f}")

    for title, flags in (
        ("Scan Capabilities:", capabilities.get("scanTypes") or {}),
        ("Features:", capabilities.get("features") or {}),
    ):
        console.print()
        console.print(f"[bold]{title}[/bold]")
        for name, enabled in flags.items():
            console.print(f"  {name}: {'[green]✅[/green]' if enabled else '[red]❌[/red]'}")

    limits = data.get("limits") or {}
    if limits:
        console.print()
        console.print("[bold]Limits:[/bold]")
        for name, limit in limits.items():
            ceiling = "Unlimited" if limit.get("limit") == -1 else limit.get("limit")
            console.print(f"  {name}: {limit.get('currentCount', 0)}/{ceiling}")

    console.print()
    console.print("[bold]Supported:[/bold]")
    console.print(f"  Formats: {', '.join(data.get('supportedFormats') or [])}")
    console.print(f"  Providers: {', '.join(data.get('supportedProviders') or [])}")
