"""
Prospector CLI

Examples:
    # Find 10 CTOs, with email and LinkedIn
    prospector search "CTOs at Berlin fintech startups" -c job_title:CTO -c location:Berlin -e email -e linkedin -n 10

    # JSON output, piped to jq
    prospector search "Founders of climate startups" -n 5 -f json -q | jq '.[].fullName'

    # Show the webset payload without creating anything
    prospector search "Heads of growth at SaaS companies" -c job_title:"Head of Growth" --dry-run

    # Check on a webset / stop it
    prospector status ws_abc123 --target 25
    prospector cancel ws_abc123

    # Let the provider suggest criteria
    prospector plan "VPs of sales at European logistics companies"

    # Start the HTTP API
    prospector serve --port 8000
"""

import asyncio
import csv
import io
import json
import logging
import signal
import sys
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table
from rich.panel import Panel

from .config import CRITERION_TYPES, Settings, load_config
from .models import Criterion, EnrichmentField, PollEvent, Prospect, SearchRequest
from .validation import SearchValidationError, validate_request
from .websets import (
    CancellationToken,
    ConfigurationError,
    SearchSubmitter,
    WebsetCache,
    WebsetPoller,
    WebsetsClient,
    WebsetsError,
    build_webset_params,
)

# Progress to stderr, data to stdout
console = Console(stderr=True)
logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "full_name", "job_title", "company", "email", "linkedin_url", "phone",
    "location", "industry", "company_size", "website", "fit_score", "summary", "id",
]


def setup_logging(verbose: bool, quiet: bool, debug: bool) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.ERROR
    elif debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_criterion(text: str) -> Criterion:
    """
    Parse "type:value" (e.g. "job_title:CTO") into a Criterion.

    Text without a known type prefix becomes an "other" criterion.
    """
    prefix, sep, value = text.partition(":")
    if sep and prefix.strip().lower() in CRITERION_TYPES and value.strip():
        value = value.strip()
        return Criterion(label=value, value=value, type=prefix.strip().lower())
    return Criterion(label=text.strip(), value=text.strip())


def format_output(
    prospects: list[Prospect],
    output_format: str,
    no_headers: bool = False,
) -> str:
    """Format prospects for output."""
    if output_format == "json":
        return json.dumps([p.to_dict() for p in prospects], indent=2, default=str)

    elif output_format == "jsonl":
        return "\n".join(json.dumps(p.to_dict(), default=str) for p in prospects)

    elif output_format in ("csv", "tsv"):
        delimiter = "\t" if output_format == "tsv" else ","
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, delimiter=delimiter)

        if not no_headers:
            writer.writeheader()

        for p in prospects:
            writer.writerow({name: getattr(p, name) or "" for name in CSV_FIELDS})

        return output.getvalue()

    else:
        raise ValueError(f"Unknown format: {output_format}")


def prospect_table(prospects: list[Prospect], title: str = "Prospects") -> Table:
    """Build a summary table of prospects."""
    table = Table(title=title, show_header=True, header_style="bold magenta")

    table.add_column("Name", style="cyan", max_width=30)
    table.add_column("Title", max_width=30)
    table.add_column("Company", max_width=25)
    table.add_column("Email", max_width=30)
    table.add_column("LinkedIn", justify="center")
    table.add_column("Fit", justify="right")

    for p in prospects:
        fit_color = "green" if p.fit_score >= 70 else "yellow" if p.fit_score >= 40 else "red"
        table.add_row(
            p.full_name[:30],
            (p.job_title or "-")[:30],
            (p.company or "-")[:25],
            p.email or "-",
            "✓" if p.linkedin_url else "-",
            f"[{fit_color}]{p.fit_score}[/{fit_color}]",
        )

    return table


def make_client(settings: Settings) -> WebsetsClient:
    """Create the provider client, exiting with setup help when no key is configured."""
    try:
        return WebsetsClient(
            api_key=settings.exa_api_key,
            base_url=settings.exa_base_url,
            timeout=settings.request_timeout,
        )
    except ConfigurationError as e:
        console.print(f"\n[red]Configuration Error:[/red] {e}")
        console.print("\n[yellow]To set up Exa:[/yellow]")
        console.print("  1. Sign up at [link=https://exa.ai/]https://exa.ai/[/link]")
        console.print("  2. Copy your API key from the dashboard")
        console.print("  3. Set it: [cyan]export EXA_API_KEY=your_key_here[/cyan]")
        sys.exit(1)


def install_cancel_handler(token: CancellationToken) -> None:
    """Turn Ctrl+C into a graceful cancel of the running discovery."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "Interrupted")
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers not supported on this platform")


# ============================================================================
# CLI Group
# ============================================================================

@click.group(invoke_without_command=True)
@click.pass_context
@click.version_option(version="1.0.0")
def cli(ctx):
    """Prospect discovery on top of Exa Websets."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ============================================================================
# Search Command
# ============================================================================

async def run_discovery(
    request: SearchRequest,
    settings: Settings,
    quiet: bool,
) -> tuple[list[Prospect], Optional[PollEvent], Optional[str]]:
    """Submit or reuse a webset, then poll it to a terminal event with a progress bar."""
    client = make_client(settings)
    token = CancellationToken()
    install_cancel_handler(token)

    async with client:
        submitter = SearchSubmitter(client, WebsetCache(settings.cache_ttl, settings.cache_max_size), settings)
        submission = await submitter.create_or_reuse(request)

        if not quiet:
            verb = "Reusing" if submission.reused else "Created"
            console.print(f"[green]{verb} webset:[/green] {submission.webset_id}")

        poller = WebsetPoller(
            client,
            submission.webset_id,
            target_count=request.target_count,
            interval=settings.cli_poll_interval,
            max_polls=settings.max_polls,
            max_consecutive_errors=settings.max_consecutive_errors,
            page_size=settings.items_page_size,
        )

        terminal = None
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            disable=quiet,
        ) as progress:
            task = progress.add_task("[cyan]Searching...", total=100)

            async for event in poller.run(token):
                if event.is_terminal:
                    terminal = event
                    break
                progress.update(
                    task,
                    completed=event.completion,
                    description=f"[cyan]Found {event.total_prospects} (analyzed {event.analyzed})",
                )

        return poller.accumulator.prospects, terminal, submission.webset_id


@cli.command()
@click.argument("query")
@click.option("-c", "--criterion", "criteria", multiple=True,
              help='Filter as "type:value" (repeatable), e.g. job_title:CTO')
@click.option("-e", "--enrich", "enrichments", multiple=True,
              help="Field to extract (repeatable): email, linkedin, phone, location, ...")
@click.option("--entity", type=click.Choice(["person", "company"]), default="person")
@click.option("-n", "--target", default=25, help="Stop once this many prospects are found")
@click.option("-o", "--output", type=click.Path(), help="Output file (default: stdout)")
@click.option("-f", "--format", "output_format",
              type=click.Choice(["table", "csv", "json", "jsonl", "tsv"]),
              default="table", help="Output format")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress, only emit data")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--no-headers", is_flag=True, help="Omit headers in CSV/TSV")
@click.option("--min-fit", type=int, default=0, help="Minimum fit score")
@click.option("--require-email", is_flag=True, help="Must have email")
@click.option("--config", type=click.Path(exists=True), help="YAML config file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--dry-run", is_flag=True, help="Print the webset payload without creating it")
def search(
    query: str,
    criteria: tuple,
    enrichments: tuple,
    entity: str,
    target: int,
    output: Optional[str],
    output_format: str,
    quiet: bool,
    verbose: bool,
    no_headers: bool,
    min_fit: int,
    require_email: bool,
    config: Optional[str],
    debug: bool,
    dry_run: bool,
):
    """
    Search for prospects matching a description.

    Output goes to stdout by default (use -o for file).
    Progress goes to stderr (use -q to suppress).

    Examples:

        prospector search "CTOs at Berlin fintech startups" -c job_title:CTO -e email

        prospector search "Founders of climate startups" -f json -q | jq '.'
    """
    setup_logging(verbose, quiet, debug)

    settings = load_config(config) if config else Settings()

    request = SearchRequest(
        query=query,
        criteria=tuple(parse_criterion(c) for c in criteria),
        entity_type=entity,
        enrichments=tuple(EnrichmentField(label=e, value=e.lower()) for e in enrichments),
        target_count=target,
    )

    try:
        validate_request(request)
    except SearchValidationError as e:
        console.print(f"[red]Invalid search:[/red] {e}")
        sys.exit(2)

    if dry_run:
        click.echo(json.dumps(build_webset_params(request, settings), indent=2))
        sys.exit(0)

    try:
        prospects, terminal, webset_id = asyncio.run(run_discovery(request, settings, quiet))
    except WebsetsError as e:
        console.print(f"\n[red]Search failed:[/red] {e}")
        sys.exit(1)

    if not quiet and terminal is not None:
        color = "green" if terminal.type == "complete" else "yellow"
        console.print(f"[{color}]{terminal.message}[/{color}]")
        if terminal.type not in ("complete", "canceled"):
            console.print(f"[dim]Resume later with: prospector status {webset_id} --target {target}[/dim]")

    prospects.sort(key=lambda p: p.fit_score, reverse=True)

    if min_fit:
        prospects = [p for p in prospects if p.fit_score >= min_fit]
    if require_email:
        prospects = [p for p in prospects if p.email]

    if output_format == "table":
        if output:
            console.print("[yellow]Table format cannot be written to a file, using csv[/yellow]")
            output_format = "csv"
        else:
            Console().print(prospect_table(prospects))

    if output_format != "table":
        output_data = format_output(prospects, output_format, no_headers)
        if output:
            with open(output, "w", newline="") as f:
                f.write(output_data)
            if not quiet:
                console.print(f"\n[green]Saved:[/green] {output}")
        else:
            click.echo(output_data)

    # Exit code: 0 if complete with results, 1 otherwise
    completed = terminal is not None and terminal.type == "complete"
    sys.exit(0 if completed and prospects else 1)


# ============================================================================
# Status Command
# ============================================================================

@cli.command()
@click.argument("webset_id")
@click.option("-n", "--target", type=int, default=None, help="Target count for completion")
@click.option("-f", "--format", "output_format",
              type=click.Choice(["table", "json"]), default="table")
@click.option("--config", type=click.Path(exists=True), help="YAML config file")
def status(webset_id: str, target: Optional[int], output_format: str, config: Optional[str]):
    """Show what a webset has found so far."""
    setup_logging(False, False, False)
    settings = load_config(config) if config else Settings()

    async def check_once():
        async with make_client(settings) as client:
            poller = WebsetPoller(client, webset_id, target_count=target, page_size=settings.items_page_size)
            result = await poller.tick()
            return poller, result

    try:
        poller, result = asyncio.run(check_once())
    except WebsetsError as e:
        console.print(f"[red]Status check failed:[/red] {e}")
        sys.exit(1)

    progress = result.progress
    current = result.terminal.status if result.terminal else progress.remote_status

    if output_format == "json":
        click.echo(json.dumps({
            "websetId": webset_id,
            "status": current,
            "found": progress.found,
            "analyzed": progress.analyzed,
            "completion": progress.completion_percent,
            "prospects": [p.to_dict() for p in poller.accumulator],
        }, indent=2, default=str))
        return

    console.print(
        f"[bold]{webset_id}[/bold]: {current} "
        f"(found {progress.found}, analyzed {progress.analyzed}, {progress.completion_percent}%)"
    )
    Console().print(prospect_table(poller.accumulator.prospects))


# ============================================================================
# Cancel Command
# ============================================================================

@cli.command()
@click.argument("webset_id")
@click.option("--config", type=click.Path(exists=True), help="YAML config file")
def cancel(webset_id: str, config: Optional[str]):
    """Cancel a running webset."""
    setup_logging(False, False, False)
    settings = load_config(config) if config else Settings()

    async def cancel_once():
        async with make_client(settings) as client:
            return await client.cancel_webset(webset_id)

    try:
        webset = asyncio.run(cancel_once())
    except WebsetsError as e:
        console.print(f"[red]Cancel failed:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Canceled:[/green] {webset_id} (status: {webset.get('status', 'unknown')})")


# ============================================================================
# Plan Command
# ============================================================================

@cli.command()
@click.argument("query")
@click.option("--entity", type=click.Choice(["person", "company"]), default=None)
@click.option("-f", "--format", "output_format",
              type=click.Choice(["table", "json"]), default="table")
@click.option("--config", type=click.Path(exists=True), help="YAML config file")
def plan(query: str, entity: Optional[str], output_format: str, config: Optional[str]):
    """Ask the provider how it would interpret a query."""
    setup_logging(False, False, False)
    settings = load_config(config) if config else Settings()

    async def preview_once():
        async with make_client(settings) as client:
            return await client.preview_webset(query, entity)

    try:
        preview = asyncio.run(preview_once())
    except WebsetsError as e:
        console.print(f"[red]Preview failed:[/red] {e}")
        sys.exit(1)

    if output_format == "json":
        click.echo(json.dumps(preview, indent=2))
        return

    search_plan = preview.get("search") or {}
    entity_type = (search_plan.get("entity") or {}).get("type") or entity or "person"

    table = Table(title=f"Plan ({entity_type})", show_header=True, header_style="bold magenta")
    table.add_column("Kind", style="cyan")
    table.add_column("Description")
    for criterion in search_plan.get("criteria") or []:
        table.add_row("criterion", criterion.get("description", ""))
    for enrichment in preview.get("enrichments") or []:
        table.add_row("enrichment", enrichment.get("description", ""))

    Console().print(table)


# ============================================================================
# Check Command
# ============================================================================

@cli.command()
@click.option("--config", type=click.Path(exists=True), help="YAML config file")
def check(config: Optional[str]):
    """Check configuration."""
    settings = load_config(config) if config else Settings()

    if settings.exa_api_key:
        click.echo(f"✓ EXA_API_KEY: {settings.exa_api_key[:8]}...")
    else:
        click.echo("✗ EXA_API_KEY: not set")

    click.echo(f"✓ Websets API: {settings.exa_base_url}")

    if settings.skip_quota_check:
        click.echo("! Quota: bypassed (SKIP_QUOTA_CHECK)")
    else:
        click.echo(f"✓ Quota: enforced ({settings.database_url})")

    click.echo(
        f"✓ Polling: every {settings.poll_interval}s, "
        f"up to {settings.max_polls} polls, {settings.max_consecutive_errors} errors tolerated"
    )

    if not settings.exa_api_key:
        sys.exit(1)


# ============================================================================
# Version Command
# ============================================================================

@cli.command()
def version():
    """Show version info."""
    from prospector import __version__
    click.echo(f"prospector {__version__}")


# ============================================================================
# Serve Command
# ============================================================================

@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--port", default=8000, help="Port to bind to.")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development.")
def serve(host: str, port: int, reload: bool) -> None:
    """Start the HTTP API."""
    import uvicorn

    console.print(
        Panel.fit(
            f"[bold]Prospector API[/bold]\n"
            f"Running at: [cyan]http://{host}:{port}[/cyan]\n"
            f"Docs: [cyan]http://{host}:{port}/docs[/cyan]",
            border_style="blue",
        )
    )
    console.print("Press Ctrl+C to stop\n")

    uvicorn.run(
        "prospector.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


def main():
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    cli()
