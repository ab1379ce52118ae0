"""
``codethreat repo`` - import and inspect repositories.
"""

from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from ..client import CodeThreatClient
from ..core.models import Provider, ScanType
from .common import (
    CliState,
    console,
    format_status,
    handle_errors,
    parse_choices,
    pass_state,
    print_json,
    run_async,
    short_id,
)


@click.group()
def repo():
    """Repository management"""
    pass


@repo.command("import")
@click.argument("url")
@click.option("--organization", "--org", "organization", help="Organization slug (defaults to config)")
@click.option("--name", "-n", help="Repository name (detected from URL if omitted)")
@click.option("--provider", "-p", type=click.Choice([p.value for p in Provider]), help="Git provider")
@click.option("--branch", "-b", default="main", help="Default branch")
@click.option("--auto-scan/--no-auto-scan", default=True, help="Trigger a scan after import")
@click.option("--types", "-t", "types", default="sast,sca,secrets", help="Scan types (comma-separated)")
@click.option("--private", "is_private", is_flag=True, help="Mark repository as private")
@click.option("--description", "-d", help="Repository description")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Import")
def import_repo(
    state: CliState,
    url: str,
    organization: Optional[str],
    name: Optional[str],
    provider: Optional[str],
    branch: str,
    auto_scan: bool,
    types: str,
    is_private: bool,
    description: Optional[str],
    output_format: str,
):
    """Import a repository from a Git URL"""
    config = state.config()
    scan_types = parse_choices(types, ScanType, "scan types")

    async def do_import():
        async with CodeThreatClient(config) as client:
            return await client.import_repository(
                url=url,
                organization_slug=organization,
                name=name,
                provider=Provider(provider) if provider else None,
                branch=branch,
                auto_scan=auto_scan,
                scan_types=scan_types,
                is_private=is_private or None,
                description=description,
            )

    with console.status("Importing repository..."):
        result = run_async(do_import())

    if output_format == "json":
        print_json(result.model_dump(mode="json", by_alias=True))
        return

    if result.already_exists:
        console.print("[blue]ℹ Repository already imported[/blue]")
    else:
        console.print("[green]✔ Repository imported successfully[/green]")

    repository = result.repository
    console.print()
    console.print("[bold]Repository Details:[/bold]")
    console.print(f"  ID: {repository.id}")
    console.print(f"  Name: {escape(repository.name)}")
    console.print(f"  Full Name: {escape(repository.full_name or 'N/A')}")
    console.print(f"  URL: {repository.url or url}")
    console.print(f"  Provider: {repository.provider or 'N/A'}")
    console.print(f"  Default Branch: {repository.default_branch or 'N/A'}")
    console.print(f"  Private: {'Yes' if repository.is_private else 'No'}")

    if result.scan:
        console.print()
        console.print("[bold]Auto-Scan Triggered:[/bold]")
        console.print(f"  Scan ID: {result.scan.get('id')}")
        console.print(f"  Status: {format_status(result.scan.get('status'))}")
        console.print(f"  Types: {', '.join(result.scan.get('types') or [])}")
        console.print(f"  Branch: {result.scan.get('branch')}")
        console.print()
        console.print(f'[yellow]💡 Use "codethreat scan status {result.scan.get("id")}" to check progress[/yellow]')


@repo.command("list")
@click.option("--provider", "-p", help="Filter by provider")
@click.option("--search", "-s", help="Search repositories by name")
@click.option("--status", "repo_status", help="Filter by status")
@click.option("--page", default=1, type=int, help="Page number")
@click.option("--limit", default=20, type=int, help="Results per page")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Fetching repositories")
def list_repos(
    state: CliState,
    provider: Optional[str],
    search: Optional[str],
    repo_status: Optional[str],
    page: int,
    limit: int,
    output_format: str,
):
    """List imported repositories"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.list_repositories(
                provider=provider, search=search, status=repo_status, page=page, limit=limit
            )

    with console.status("Fetching repositories..."):
        data = run_async(fetch())

    if output_format == "json":
        print_json(data)
        return

    repositories = data.get("repositories") or []
    if not repositories:
        console.print("[yellow]No repositories found[/yellow]")
        console.print('[dim]Use "codethreat repo import <url>" to import a repository[/dim]')
        return

    table = Table(title="Repositories")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Branch")
    table.add_column("Private")
    table.add_column("Last Scan")

    for item in repositories:
        connection = item.get("connection") or {}
        provider_name = (connection.get("provider") or {}).get("name") or item.get("provider") or "Unknown"
        table.add_row(
            short_id(item.get("id")),
            escape(item.get("name") or ""),
            provider_name,
            item.get("defaultBranch") or "",
            "🔒" if item.get("isPrivate") else "🌐",
            str(item.get("lastScanAt") or "Never")[:10],
        )

    console.print()
    console.print(table)

    pagination = data.get("pagination") or {}
    if pagination.get("hasMore"):
        console.print()
        console.print(f"[dim]Showing {len(repositories)} of {pagination.get('total')} repositories[/dim]")
        console.print(f"[dim]Use --page {page + 1} to see more[/dim]")


@repo.command("status")
@click.argument("repository_id")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Fetching repository status")
def repo_status(state: CliState, repository_id: str, output_format: str):
    """Get repository status"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.get_repository_status(repository_id)

    with console.status("Fetching repository status..."):
        data = run_async(fetch())

    if output_format == "json":
        print_json(data)
        return

    repository = data.get("repository") or {}
    console.print()
    console.print("[bold]Repository Information:[/bold]")
    console.print(f"  ID: {repository.get('id', repository_id)}")
    console.print(f"  Name: {escape(str(repository.get('name', 'N/A')))}")
    console.print(f"  URL: {repository.get('url', 'N/A')}")
    console.print(f"  Default Branch: {repository.get('defaultBranch', 'N/A')}")
    console.print(f"  Private: {'Yes' if repository.get('isPrivate') else 'No'}")

    scanning = data.get("scanning") or {}
    console.print()
    console.print("[bold]Scanning Information:[/bold]")
    console.print(f"  Has Scans: {'Yes' if scanning.get('hasScans') else 'No'}")

    latest = scanning.get("latestScan")
    if latest:
        console.print("  Latest Scan:")
        console.print(f"    ID: {latest.get('id')}")
        console.print(f"    Status: {format_status(latest.get('status'))}")
        console.print(f"    Branch: {latest.get('branch')}")
        console.print(f"    Violations: {latest.get('violationCount', 0)}")
        if latest.get("securityScore"):
            console.print(f"    Security Score: {latest['securityScore']}/100")

    pending = scanning.get("pendingJobs") or []
    if pending:
        console.print()
        console.print("[bold]Pending Jobs:[/bold]")
        for job in pending:
            console.print(f"  • {job.get('type')} ({job.get('status')})")
