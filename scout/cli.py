"""Scout CLI -- the main entry point for MCP server discovery."""

import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from scout import __version__

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="YAML config file")
@click.option("--db", "db_path", default=None, help="Registry database path")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, db_path: str | None, verbose: bool):
    """Scout -- MCP server discovery.

    Search GitHub for Model Context Protocol servers, validate them, and
    ingest them into the registry.
    """
    from scout.config import load_config
    from scout.errors import ConfigurationError
    from scout.logging_setup import configure_logging

    configure_logging(verbose)
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.UsageError(str(e))
    if db_path:
        config.db_path = db_path
    ctx.obj = config


def _store(config):
    from scout.registry.store import RegistryStore

    return RegistryStore(config.db_path, timeout=config.store_timeout)


def _client(config):
    from scout.github.client import GitHubClient

    return GitHubClient(
        token=config.github_token,
        api_base=config.api_base,
        timeout=config.request_timeout,
        user_agent=config.user_agent,
    )


# ── Discover ─────────────────────────────────────────────────────────


@main.command()
@click.option("--workers", "-w", type=int, default=None, help="Worker pool size")
@click.option("--budget", "-b", type=float, default=None, help="Time budget in seconds")
@click.pass_obj
def discover(config, workers: int | None, budget: float | None):
    """Run a full discovery pass and print the report."""
    from scout.discovery.orchestrator import DiscoveryOrchestrator

    if workers is not None:
        config.workers = max(1, workers)

    console.print(f"\n[bold blue]Scout[/] -- Discovering MCP servers ({len(config.queries)} queries)\n")

    with _client(config) as client:
        orchestrator = DiscoveryOrchestrator(client, _store(config), config)
        report = orchestrator.run(time_budget=budget)

    table = Table(title="Discovery Report")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Discovered", str(report.discovered))
    table.add_row("Processed", str(report.processed))
    table.add_row("Added", f"[green]{report.added}[/]")
    table.add_row("Duplicate-skipped", str(report.duplicate_skipped))
    table.add_row("Rejected", f"[yellow]{report.rejected}[/]")
    table.add_row("Failed", f"[red]{report.failed}[/]")
    table.add_row("Duration", f"{report.duration_ms}ms")
    console.print(table)

    if report.partial:
        console.print("[yellow]Partial run: time budget exhausted or cancelled.[/]")

    if report.rejections:
        console.print("\n[yellow]Rejected:[/]")
        for r in report.rejections:
            console.print(f"  [yellow]-[/] {escape(r)}")

    if report.errors:
        console.print("\n[red]Errors:[/]")
        for e in report.errors:
            console.print(f"  [red]x[/] {escape(e)}")

    if report.dropped_messages:
        console.print(f"  ... and {report.dropped_messages} more")

    if report.aborted:
        console.print(f"\n[red]Discovery aborted:[/] {escape(report.fatal_error)}")
        sys.exit(1)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def status(config):
    """Show registry counts and the last discovery run."""
    from scout.errors import FatalStoreFailure, StoreTimeout

    store = _store(config)
    try:
        counts = store.counts()
        last = store.last_run()
    except (FatalStoreFailure, StoreTimeout) as e:
        console.print(f"[red]{escape(str(e))}[/]")
        sys.exit(1)

    lines = [
        f"Total servers:     {counts.total}",
        f"Verified:          {counts.verified}",
        f"Added last 24h:    {counts.added_last_day}",
        f"Added last 7 days: {counts.added_last_week}",
    ]
    if last is not None:
        flags = []
        if last.partial:
            flags.append("partial")
        if last.aborted:
            flags.append("aborted")
        suffix = f" ({', '.join(flags)})" if flags else ""
        lines.append("")
        lines.append(f"Last run: {last.finished_at}{suffix}")
        lines.append(
            f"  added {last.added}, skipped {last.duplicate_skipped}, "
            f"rejected {last.rejected}, failed {last.failed} "
            f"of {last.discovered} discovered"
        )
    else:
        lines.append("")
        lines.append("No discovery runs recorded yet.")

    console.print(Panel("\n".join(lines), title="Registry Status"))


# ── Submit ───────────────────────────────────────────────────────────


@main.command()
@click.argument("repo_url")
@click.option("--force", is_flag=True, help="Reprocess an already registered repository")
@click.pass_obj
def submit(config, repo_url: str, force: bool):
    """Validate a single repository and add it to the registry.

    REPO_URL is a GitHub URL or an owner/name pair.
    """
    from scout.discovery.orchestrator import DiscoveryOrchestrator
    from scout.discovery.report import OutcomeStatus
    from scout.errors import FatalStoreFailure, StoreTimeout

    with _client(config) as client:
        orchestrator = DiscoveryOrchestrator(client, _store(config), config)
        try:
            outcome = orchestrator.process_one(repo_url, force=force)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="REPO_URL")
        except (FatalStoreFailure, StoreTimeout) as e:
            console.print(f"[red]{escape(str(e))}[/]")
            sys.exit(1)

    style = {
        OutcomeStatus.ADDED: "green",
        OutcomeStatus.DUPLICATE: "blue",
        OutcomeStatus.REJECTED: "yellow",
        OutcomeStatus.FAILED: "red",
    }.get(outcome.status, "white")
    console.print(f"  [{style}]{outcome.status.value}[/] {escape(outcome.describe())}")
    if outcome.status == OutcomeStatus.FAILED:
        sys.exit(1)


# ── Registry ─────────────────────────────────────────────────────────


@main.group()
def registry():
    """Browse the MCP server registry."""


@registry.command(name="list")
@click.option("--category", "-c", default=None, help="Filter by category")
@click.pass_obj
def list_entries(config, category: str | None):
    """List servers in the registry."""
    entries = _store(config).list_entries(category=category)

    if not entries:
        console.print("[yellow]Registry is empty.[/]")
        return

    table = Table(title=f"Registry ({len(entries)} servers)")
    table.add_column("Slug", style="cyan")
    table.add_column("Category")
    table.add_column("Verified", justify="center")
    table.add_column("Repository")

    for entry in entries:
        verified = "[green]Y[/]" if entry.verified else "[red]N[/]"
        table.add_row(entry.slug, entry.category, verified, entry.repository_url)

    console.print(table)


@registry.command()
@click.argument("slug")
@click.pass_obj
def show(config, slug: str):
    """Show one server with its stats and discovery sources."""
    with _store(config).session() as reg:
        entry = reg.find_by_slug(slug)
        if entry is None:
            console.print(f"[red]No server with slug '{slug}'.[/]")
            sys.exit(1)
        stats = reg.get_stats(entry.id)
        sources = reg.sources_for(entry.id)

    lines = [
        f"[bold]{entry.name}[/] ({entry.slug})",
        entry.tagline,
        "",
        f"Repository: {entry.repository_url}",
        f"Package:    {entry.package_name or '-'}",
        f"Category:   {entry.category}",
        f"Tags:       {', '.join(entry.tags) or '-'}",
        f"Added:      {entry.created_at}",
    ]
    if stats is not None:
        lines.append(
            f"Stars: {stats.stars}  Forks: {stats.forks}  Installs: {stats.installs}"
        )
    if sources:
        lines.append(f"Found by:   {'; '.join(sources)}")

    console.print(Panel("\n".join(lines), title="Registry Entry"))


if __name__ == "__main__":
    main()
