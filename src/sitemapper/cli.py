"""CLI interface for sitemapper."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from sitemapper.config import load_config, merge_cli_overrides
from sitemapper.engine import SitemapEngine, build_engine
from sitemapper.errors import BatchResult, OperationResult
from sitemapper.generation.models import StartResult

app = typer.Typer(
    name="sitemapper",
    help="Incremental, date-partitioned sitemap generation.",
    no_args_is_help=True,
)
cron_app = typer.Typer(help="Manage automatic background updates.", no_args_is_help=True)
app.add_typer(cron_app, name="cron")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from sitemapper import __version__

        console.print(f"sitemapper {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .sitemapper.toml file."),
    ] = None,
    data_dir: Annotated[
        Optional[str],
        typer.Option("--data-dir", help="Directory holding sitemaps and run state."),
    ] = None,
    content_file: Annotated[
        Optional[str],
        typer.Option("--content-file", help="JSON file with the content repository."),
    ] = None,
    base_url: Annotated[
        Optional[str],
        typer.Option("--base-url", help="Public site URL used in the sitemap index."),
    ] = None,
    batch_size: Annotated[
        Optional[int],
        typer.Option("--batch-size", help="Partitions generated per background tick."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Sitemapper - keep date-partitioned sitemaps in sync with content."""
    cfg = merge_cli_overrides(
        load_config(config),
        data_dir=data_dir,
        content_file=content_file,
        base_url=base_url,
        batch_size=batch_size,
        log_level="DEBUG" if verbose else None,
    )
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level.upper(), logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = cfg


def _engine(ctx: typer.Context) -> SitemapEngine:
    return build_engine(ctx.obj)


def _report(result: OperationResult | BatchResult | StartResult) -> None:
    """Print a result and exit non-zero on real failures."""
    if result.success:
        console.print(f"[green]{result.message}[/green]")
        return
    is_fatal = result.is_fatal if isinstance(result, OperationResult) else True
    colour = "red" if is_fatal else "yellow"
    code = f" ({result.error_code})" if result.error_code else ""
    console.print(f"[{colour}]{escape(result.message)}{code}[/{colour}]")
    errors = getattr(result, "errors", [])
    for error in errors:
        console.print(f"  - {error.partition}: {escape(error.error)}")
    if is_fatal:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Detection and generation
# ---------------------------------------------------------------------------


@app.command()
def detect(ctx: typer.Context) -> None:
    """List partitions whose sitemaps are missing or stale."""
    result = _engine(ctx).detect_missing()
    console.print(result.summary_message)
    if result.is_empty:
        return
    table = Table("Date", "Reason")
    for partition in result.missing:
        table.add_row(partition.isoformat(), "missing")
    for partition in result.stale:
        table.add_row(partition.isoformat(), "stale")
    console.print(table)


@app.command()
def generate(
    ctx: typer.Context,
    dates: Annotated[
        list[str],
        typer.Argument(help="Dates to generate: YYYY, YYYY-MM or YYYY-MM-DD."),
    ],
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Regenerate even if a sitemap exists."),
    ] = False,
) -> None:
    """Generate sitemaps for specific dates."""
    engine = _engine(ctx)
    if len(dates) == 1 and dates[0].count("-") == 2:
        result = engine.generate(dates[0], force=force)
        if result.success:
            result.message = f"{result.message} ({result.entry_count} entries)"
        _report(result)
        return
    _report(engine.generate_range(dates, force=force))


@app.command()
def incremental(
    ctx: typer.Context,
    background: Annotated[
        bool,
        typer.Option("--background", "-b", help="Schedule the work for background ticks."),
    ] = False,
) -> None:
    """Generate missing and stale sitemaps."""
    _report(_engine(ctx).start_incremental(background=background))


@app.command()
def full(
    ctx: typer.Context,
    now: Annotated[
        bool,
        typer.Option("--now", help="Generate synchronously instead of in the background."),
    ] = False,
) -> None:
    """Regenerate every sitemap."""
    _report(_engine(ctx).start_full(background=not now))


@app.command()
def tick(
    ctx: typer.Context,
    drain: Annotated[
        bool,
        typer.Option("--drain", help="Keep ticking until the active run is done."),
    ] = False,
) -> None:
    """Advance the active background run by one batch."""
    engine = _engine(ctx)
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Generating sitemaps...", total=None)
        while True:
            result = engine.tick()
            progress.update(task, total=result.total or None, completed=result.completed)
            for error in result.errors:
                console.print(f"[red]Failed {error.partition}:[/red] {error.error}")
            if result.done or not drain:
                break
    if result.stopped:
        console.print("[yellow]Run stopped.[/yellow]")
    elif result.done:
        console.print(f"[green]Done.[/green] {result.completed}/{result.total} partitions")
    else:
        console.print(f"{result.completed}/{result.total} partitions")


@app.command(name="progress")
def progress_cmd(ctx: typer.Context) -> None:
    """Show progress of the active run."""
    snapshot = _engine(ctx).progress()
    if not snapshot.in_progress:
        console.print("No generation run in progress.")
        return
    console.print(
        f"{snapshot.kind} run {snapshot.state}: {snapshot.completed}/{snapshot.total} "
        f"({snapshot.percent_complete:.1%}), {snapshot.remaining} remaining"
    )


@app.command()
def cancel(ctx: typer.Context) -> None:
    """Stop the active run after the current partition."""
    if _engine(ctx).cancel_current_run():
        console.print("[yellow]Cancellation requested; the run stops on the next tick.[/yellow]")
    else:
        console.print("No background run in progress; any direct run will stop.")


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@app.command()
def delete(
    ctx: typer.Context,
    dates: Annotated[
        Optional[list[str]],
        typer.Argument(help="Dates to delete: YYYY, YYYY-MM or YYYY-MM-DD."),
    ] = None,
    all_: Annotated[
        bool,
        typer.Option("--all", help="Delete every sitemap."),
    ] = False,
) -> None:
    """Delete sitemaps."""
    engine = _engine(ctx)
    if all_:
        _report(engine.delete(all_=True))
        return
    _report(engine.delete(queries=dates or []))


@app.command()
def recount(
    ctx: typer.Context,
    full_: Annotated[
        bool,
        typer.Option("--full", help="Re-parse every document instead of trusting stored counts."),
    ] = False,
) -> None:
    """Recompute the total URL count."""
    result = _engine(ctx).recount(full=full_)
    colour = "green" if result.success else "red"
    console.print(f"[{colour}]{result.message}[/{colour}]")
    if result.mismatches:
        console.print(f"Corrected {result.updated_count} document count(s):")
        for partition in result.mismatches:
            console.print(f"  - {partition}")
    if not result.success:
        raise typer.Exit(1)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show sitemap statistics."""
    result = _engine(ctx).stats()
    table = Table("Metric", "Value")
    table.add_row("Sitemaps", str(result.sitemap_count))
    table.add_row("Indexed URLs", str(result.total_entries))
    table.add_row("Earliest", str(result.earliest or "-"))
    table.add_row("Latest", str(result.latest or "-"))
    table.add_row("Last updated", result.last_updated.isoformat() if result.last_updated else "-")
    console.print(table)
    if result.by_year:
        years = Table("Year", "Sitemaps")
        for year, count in sorted(result.by_year.items()):
            years.add_row(str(year), str(count))
        console.print(years)


@app.command()
def validate(
    ctx: typer.Context,
    dates: Annotated[
        Optional[list[str]],
        typer.Argument(help="Limit to these dates: YYYY, YYYY-MM or YYYY-MM-DD."),
    ] = None,
) -> None:
    """Check stored sitemaps for structural problems."""
    result = _engine(ctx).validate(dates)
    for report in result.reports:
        for error in report.errors:
            console.print(f"[red]{report.partition}:[/red] {error}")
        for warning in report.warnings:
            console.print(f"[yellow]{report.partition}:[/yellow] {warning}")
    colour = "green" if result.success else "red"
    console.print(f"[{colour}]{result.message}[/{colour}]")
    if not result.success:
        raise typer.Exit(1)


@app.command()
def export(
    ctx: typer.Context,
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Directory to write XML files into."),
    ] = Path("./sitemaps"),
) -> None:
    """Write every sitemap and a sitemap index as XML files."""
    _report(_engine(ctx).export(output))


@app.command()
def cleanup(ctx: typer.Context) -> None:
    """Delete sitemaps for days that no longer have content."""
    _report(_engine(ctx).cleanup_orphans())


@app.command()
def run(
    ctx: typer.Context,
    max_polls: Annotated[
        Optional[int],
        typer.Option("--max-polls", help="Stop after this many polls."),
    ] = None,
) -> None:
    """Run the periodic update loop in the foreground."""
    engine = _engine(ctx)
    if not engine.cron.is_enabled():
        console.print("[yellow]Automatic updates are disabled; run `sitemapper cron enable` first.[/yellow]")
        raise typer.Exit(1)
    try:
        fired = engine.ticker().run(max_polls=max_polls)
    except KeyboardInterrupt:
        console.print("Stopped.")
        return
    console.print(f"Fired {fired} tick(s).")


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------


@cron_app.command("enable")
def cron_enable(ctx: typer.Context) -> None:
    """Enable automatic updates."""
    _report(_engine(ctx).cron.enable())


@cron_app.command("disable")
def cron_disable(ctx: typer.Context) -> None:
    """Disable automatic updates and clear run state."""
    _report(_engine(ctx).cron.disable())


@cron_app.command("reset")
def cron_reset(ctx: typer.Context) -> None:
    """Disable automatic updates and clear all generation state."""
    _report(_engine(ctx).cron.reset())


@cron_app.command("frequency")
def cron_frequency(
    ctx: typer.Context,
    frequency: Annotated[str, typer.Argument(help="5min, 10min, 15min, 30min, hourly, 2hourly or 3hourly.")],
) -> None:
    """Change how often automatic updates run."""
    _report(_engine(ctx).cron.update_frequency(frequency))


@cron_app.command("status")
def cron_status(ctx: typer.Context) -> None:
    """Show automatic update status."""
    status = _engine(ctx).cron.status()
    table = Table("Setting", "Value")
    table.add_row("Enabled", "yes" if status.enabled else "no")
    table.add_row("Frequency", status.current_frequency)
    table.add_row("Next run", status.next_scheduled.isoformat() if status.next_scheduled else "-")
    table.add_row("Site public", "yes" if status.blog_public else "no")
    table.add_row("Generating", "yes" if status.generating else "no")
    table.add_row("Halted", "yes" if status.halted else "no")
    table.add_row("Last run", status.last_run_at.isoformat() if status.last_run_at else "-")
    console.print(table)
