"""
``codethreat scan`` - run, watch and export security scans.
"""

import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ..client import CodeThreatClient
from ..core.config import EffectiveConfig
from ..core.models import ExportFilters, ExportFormat, ExportResult, ScanTrigger, ScanType, Severity
from ..core.orchestrator import ScanOrchestrator, ScanRunResult, SubmitRequest
from ..core.thresholds import ThresholdSet
from .common import (
    CliState,
    console,
    err_console,
    format_datetime,
    format_status,
    handle_errors,
    parse_choices,
    pass_state,
    print_json,
    print_severity_counts,
    run_async,
    short_id,
)


THRESHOLD_FAILURE_EXIT_CODE = 1


@click.group()
def scan():
    """Security scanning operations"""
    pass


@scan.command("run")
@click.argument("repository_id")
@click.option("--organization", "--org", "organization", help="Organization slug (defaults to config)")
@click.option("--branch", "-b", help="Branch to scan (defaults to config)")
@click.option("--types", "-t", "types", help="Scan types, comma-separated (defaults to config)")
@click.option("--wait", "-w", is_flag=True, default=False, help="Wait for scan completion")
@click.option("--timeout", type=int, help="Timeout in seconds (defaults to config)")
@click.option("--poll-interval", type=int, help="Polling interval in seconds (defaults to config)")
@click.option(
    "--trigger",
    type=click.Choice([t.value for t in ScanTrigger]),
    default=ScanTrigger.API.value,
    help="Scan trigger type",
)
@click.option("--pr", "pull_request_id", help="Pull request ID (if scanning a PR)")
@click.option("--commit", "commit_sha", help="Commit SHA")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@click.option("--output", "-o", type=click.Path(), help="Save JSON result to file")
@click.option("--max-critical", type=int, help="Fail if critical >= threshold (-1 = disabled)")
@click.option("--max-high", type=int, help="Fail if high >= threshold (-1 = disabled)")
@click.option("--max-medium", type=int, help="Fail if medium >= threshold (-1 = disabled)")
@click.option("--max-low", type=int, help="Fail if low >= threshold (-1 = disabled)")
@click.option("--export", "export_path", type=click.Path(), help="Export results to file after completion")
@click.option(
    "--export-format",
    type=click.Choice([f.value for f in ExportFormat]),
    help="Export format (defaults to config)",
)
@pass_state
@handle_errors("Scan")
def run(
    state: CliState,
    repository_id: str,
    organization: Optional[str],
    branch: Optional[str],
    types: Optional[str],
    wait: bool,
    timeout: Optional[int],
    poll_interval: Optional[int],
    trigger: str,
    pull_request_id: Optional[str],
    commit_sha: Optional[str],
    output_format: str,
    output: Optional[str],
    max_critical: Optional[int],
    max_high: Optional[int],
    max_medium: Optional[int],
    max_low: Optional[int],
    export_path: Optional[str],
    export_format: Optional[str],
):
    """
    Run a security scan on a repository.

    With --wait the scan is polled until it finishes and the thresholds
    decide the exit code:

        codethreat scan run REPO_ID --organization acme --wait --max-critical 1
    """
    if export_path and not wait:
        raise click.UsageError("--export requires --wait; results exist only once the scan completes")

    state.config()
    config = state.resolver.update({"default_timeout": timeout, "default_poll_interval": poll_interval})

    scan_types = parse_choices(types, ScanType, "scan types") if types else list(config.default_scan_types)

    request = SubmitRequest(
        repository_id=repository_id,
        organization_slug=organization,
        branch=branch or config.default_branch,
        scan_types=scan_types,
        scan_trigger=ScanTrigger(trigger),
        pull_request_id=pull_request_id,
        commit_sha=commit_sha,
        wait=wait,
        timeout_seconds=timeout,
        poll_interval_seconds=poll_interval,
    )

    thresholds = ThresholdSet.from_options(
        config,
        critical=max_critical,
        high=max_high,
        medium=max_medium,
        low=max_low,
    )

    export = None
    if export_path:
        export = (Path(export_path), ExportFormat(export_format or config.default_format))

    result, export_result = run_async(_run_scan(config, request, export))

    if output_format == "json":
        print_json(result.to_dict(), output)
    else:
        _print_run_result(result)

    if export_result is not None:
        console.print(f"[green]✅ Results exported:[/green] {export[0]} ({export_result.format})")

    if not result.synchronous or result.counts is None:
        if output_format != "json":
            console.print()
            console.print(f'[yellow]💡 Use "codethreat scan status {result.handle.id}" to check progress[/yellow]')
        return

    evaluation = ScanOrchestrator.evaluate_thresholds(result.counts, thresholds)
    if evaluation.failed:
        err_console.print()
        err_console.print(f"[bold red]❌ Build failed: {escape(evaluation.reason)}[/bold red]")
        sys.exit(THRESHOLD_FAILURE_EXIT_CODE)

    if thresholds.any_enabled or thresholds.max_violations is not None:
        console.print()
        console.print("[green]✅ All threshold checks passed[/green]")


async def _run_scan(
    config: EffectiveConfig,
    request: SubmitRequest,
    export: Optional[Tuple[Path, ExportFormat]],
) -> Tuple[ScanRunResult, Optional[ExportResult]]:
    async with CodeThreatClient(config) as client:
        orchestrator = ScanOrchestrator(client, config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=err_console,
            transient=True,
        ) as progress:
            task = progress.add_task("[cyan]Starting security scan...", total=None)

            def on_event(event, data):
                if event == "scan_submitted":
                    progress.update(task, description=f"[cyan]Scan {data['scan_id']} submitted...")
                elif event == "scan_progress":
                    progress.update(
                        task,
                        description=f"[cyan]Scan status: {data['status']} ({data['elapsed']}s elapsed)",
                    )

            orchestrator.subscribe(on_event)
            result = await orchestrator.submit(request)

        if result.synchronous:
            err_console.print(f"[green]✔ Scan completed in {result.elapsed_seconds}s[/green]")
        else:
            err_console.print("[green]✔ Scan started[/green]")

        export_result = None
        if export is not None and result.synchronous:
            destination, export_format = export
            export_result = await orchestrator.export_results(
                result.handle.id, export_format, ExportFilters(), destination
            )

        return result, export_result


def _print_run_result(result: ScanRunResult):
    handle = result.handle

    console.print()
    console.print("[bold]Scan Information:[/bold]")
    console.print(f"  Scan ID: {handle.id}")
    console.print(f"  Repository: {handle.repository_id or 'N/A'}")
    console.print(f"  Branch: {handle.branch or 'N/A'}")
    console.print(f"  Status: {format_status(handle.status)}")
    console.print(f"  Types: {', '.join(handle.types) or 'N/A'}")
    console.print(f"  Started: {format_datetime(handle.started_at)}")
    if result.already_exists:
        console.print("  [yellow]A matching scan already exists; no new scan was created[/yellow]")

    if result.counts is not None:
        print_severity_counts(result.counts)
        if handle.security_score is not None:
            console.print(f"  Security Score: {handle.security_score:g}/100")


@scan.command("status")
@click.argument("scan_id")
@click.option("--logs", is_flag=True, help="Include detailed logs")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Fetching scan status")
def status(state: CliState, scan_id: str, logs: bool, output_format: str):
    """Get scan status"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.get_scan_status(scan_id, include_logs=logs)

    with console.status("Fetching scan status..."):
        report = run_async(fetch())

    if output_format == "json":
        print_json(report.model_dump(mode="json"))
        return

    handle = report.scan
    console.print()
    console.print("[bold]Scan Information:[/bold]")
    console.print(f"  ID: {handle.id}")
    console.print(f"  Repository: {report.repository_name or handle.repository_id or 'N/A'}")
    console.print(f"  Branch: {handle.branch or 'N/A'}")
    console.print(f"  Status: {format_status(handle.status)}")
    console.print(f"  Types: {', '.join(handle.types) or 'N/A'}")
    console.print(f"  Started: {format_datetime(handle.started_at)}")
    if handle.completed_at:
        console.print(f"  Completed: {format_datetime(handle.completed_at)}")
        console.print(f"  Duration: {handle.scan_duration}s")

    console.print()
    console.print("[bold]Progress:[/bold]")
    console.print(f"  Percentage: {report.progress.percentage:g}%")
    console.print(f"  Phase: {report.progress.current_phase or 'N/A'}")
    if report.progress.estimated_completion:
        console.print(f"  ETA: {report.progress.estimated_completion}")

    if report.counts.total:
        print_severity_counts(report.counts, title="Results:")
        if report.by_type:
            console.print()
            console.print("[bold]By Type:[/bold]")
            for scan_type, count in report.by_type.items():
                console.print(f"  {scan_type}: {count}")

    if logs and report.logs:
        console.print()
        console.print("[bold]Execution Logs:[/bold]")
        for entry in report.logs:
            console.print(f"  {entry.step} ({format_status(entry.status)})")
            if entry.error:
                console.print(f"    [red]Error: {escape(entry.error)}[/red]")

    console.print()
    if handle.status.value == "COMPLETED":
        console.print("[green]✅ Scan completed successfully[/green]")
        console.print(f'[yellow]💡 Use "codethreat scan results {scan_id}" to export results[/yellow]')
    elif handle.status.value == "FAILED":
        console.print("[red]❌ Scan failed[/red]")
    else:
        console.print("[blue]🔄 Scan in progress...[/blue]")


@scan.command("results")
@click.argument("scan_id")
@click.option(
    "--format", "-f", "export_format",
    type=click.Choice([f.value for f in ExportFormat]),
    help="Export format (defaults to config)",
)
@click.option("--output", "-o", type=click.Path(), help="Output file")
@click.option("--severity", default="critical,high,medium,low", help="Filter by severity (comma-separated)")
@click.option("--types", "types", help="Filter by scan types (comma-separated)")
@click.option("--include-fixed", is_flag=True, help="Include fixed violations")
@click.option("--include-suppressed", is_flag=True, help="Include suppressed violations")
@click.option("--metadata/--no-metadata", default=True, help="Include metadata in results")
@pass_state
@handle_errors("Export")
def results(
    state: CliState,
    scan_id: str,
    export_format: Optional[str],
    output: Optional[str],
    severity: str,
    types: Optional[str],
    include_fixed: bool,
    include_suppressed: bool,
    metadata: bool,
):
    """Export scan results (json, sarif, csv, xml, junit)"""
    config = state.config()
    fmt = ExportFormat(export_format or config.default_format)

    filters = ExportFilters(
        severity=parse_choices(severity, Severity, "severity levels"),
        scan_types=parse_choices(types, ScanType, "scan types") or None,
        include_fixed=include_fixed,
        include_suppressed=include_suppressed,
        include_metadata=metadata,
    )

    async def export():
        async with CodeThreatClient(config) as client:
            orchestrator = ScanOrchestrator(client, config)
            destination = Path(output) if output else orchestrator.default_export_path(fmt)
            return destination, await orchestrator.export_results(scan_id, fmt, filters, destination)

    with console.status("Exporting scan results..."):
        destination, result = run_async(export())

    console.print()
    console.print("[green]✅ Results exported:[/green]")
    console.print(f"  File: {destination}")
    console.print(f"  Format: {result.format}")
    print_severity_counts(result.summary, title="Summary:")

    if fmt is ExportFormat.SARIF:
        console.print()
        console.print("[blue]💡 GitHub Actions integration:[/blue]")
        console.print("[dim]   - uses: github/codeql-action/upload-sarif@v3[/dim]")
        console.print("[dim]     with:[/dim]")
        console.print(f"[dim]       sarif_file: {destination}[/dim]")
    elif fmt is ExportFormat.JUNIT:
        console.print()
        console.print("[blue]💡 GitLab CI/CD integration:[/blue]")
        console.print("[dim]   artifacts:[/dim]")
        console.print("[dim]     reports:[/dim]")
        console.print(f"[dim]       junit: {destination}[/dim]")


@scan.command("list")
@click.option("--repository", "-r", help="Filter by repository ID")
@click.option("--status", "-s", "scan_status", help="Filter by status")
@click.option("--page", default=1, type=int, help="Page number")
@click.option("--limit", default=20, type=int, help="Results per page")
@click.option("--format", "-f", "output_format", type=click.Choice(["json", "table"]), default="table")
@pass_state
@handle_errors("Fetching scans")
def list_scans(
    state: CliState,
    repository: Optional[str],
    scan_status: Optional[str],
    page: int,
    limit: int,
    output_format: str,
):
    """List scans"""
    config = state.config()

    async def fetch():
        async with CodeThreatClient(config) as client:
            return await client.list_scans(
                repository_id=repository, status=scan_status, page=page, limit=limit
            )

    with console.status("Fetching scans..."):
        data = run_async(fetch())

    if output_format == "json":
        print_json(data)
        return

    scans = data.get("scans") or []
    if not scans:
        console.print("[yellow]No scans found[/yellow]")
        console.print('[dim]Use "codethreat scan run <repository-id>" to start a scan[/dim]')
        return

    table = Table(title="Scans")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Repository")
    table.add_column("Branch")
    table.add_column("Status")
    table.add_column("Types")
    table.add_column("Started")
    table.add_column("Score")

    for item in scans:
        repository_name = (item.get("repository") or {}).get("name") or short_id(item.get("repositoryId"))
        score = item.get("securityScore")
        table.add_row(
            short_id(item.get("id")),
            repository_name,
            item.get("branch") or "",
            format_status(item.get("status")),
            ",".join(item.get("types") or []),
            str(item.get("startedAt") or "")[:10],
            f"{score}/100" if score else "N/A",
        )

    console.print()
    console.print(table)

    pagination = data.get("pagination") or {}
    if pagination.get("hasMore"):
        console.print()
        console.print(f"[dim]Showing {len(scans)} of {pagination.get('total')} scans[/dim]")
        console.print(f"[dim]Use --page {page + 1} to see more[/dim]")
