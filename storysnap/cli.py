"""CLI entry point for storysnap."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from storysnap.errors import SetupError
from storysnap.models.config import RunConfig
from storysnap.models.result import Report
from storysnap.models.story import load_cases
from storysnap.progress import ProgressFeed
from storysnap.runner import SnapshotRunner

console = Console()

_STATUS_STYLES = {
    "pass": "green",
    "fail": "red",
    "no-baseline": "yellow",
    "error": "red",
}


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual snapshot testing for UI stories."""
    setup_logging(verbose)


@cli.command()
@click.option("--config", "-c", default="storysnap.config.json", help="Config file path")
@click.option("--cases", "cases_file", required=True, help="Path to the JSON case list")
@click.option("--input", "input_dir", default=None, help="Story tree root (artifacts go under its parent)")
@click.option("--base-url", default=None, help="URL of the running story server")
@click.option("--concurrency", type=int, default=None, help="Concurrent capture tasks")
@click.option("--instances", type=int, default=None, help="Browser instances to launch")
@click.option("--timeout", "timeout_seconds", type=float, default=None, help="Per-case timeout in seconds")
@click.option("--limit", type=int, default=None, help="Only process the first N cases")
@click.option("--chrome-arg", "chrome_args", multiple=True, help="Extra Chromium flag (repeatable)")
@click.option("--update-baselines", is_flag=True, help="Write captures as missing baselines")
def run(
    config: str,
    cases_file: str,
    input_dir: Optional[str],
    base_url: Optional[str],
    concurrency: Optional[int],
    instances: Optional[int],
    timeout_seconds: Optional[float],
    limit: Optional[int],
    chrome_args: tuple[str, ...],
    update_baselines: bool,
) -> None:
    """Capture every story and compare it against its baseline."""
    try:
        cfg = RunConfig.load(config) if Path(config).exists() else RunConfig()
        overrides = {
            "input_dir": input_dir,
            "base_url": base_url,
            "concurrency": concurrency,
            "instances": instances,
            "timeout_seconds": timeout_seconds,
            "limit": limit,
            "chrome_args": list(chrome_args) or None,
            "update_baselines": update_baselines or None,
        }
        cfg = RunConfig(**{
            **cfg.model_dump(),
            **{k: v for k, v in overrides.items() if v is not None},
        })
        cases = load_cases(cases_file, cfg.default_sizes)
    except (SetupError, ValueError) as e:
        console.print(f"[red]Setup failed:[/red] {e}")
        sys.exit(1)

    try:
        report = asyncio.run(_run_with_progress(cfg, cases))
    except SetupError as e:
        console.print(f"[red]Setup failed:[/red] {e}")
        sys.exit(1)

    _print_summary(report)
    console.print(f"  JSON report: [blue]{cfg.resolved_report_path()}[/blue]")


async def _run_with_progress(cfg: RunConfig, cases) -> Report:
    feed = ProgressFeed(cfg.progress_queue_size)
    runner = SnapshotRunner(cfg, cases, progress=feed)
    printer = asyncio.create_task(_print_progress(feed, len(runner.cases)))
    try:
        return await runner.run_async()
    finally:
        feed.close()
        await printer


async def _print_progress(feed: ProgressFeed, total: int) -> None:
    done = 0
    async for event in feed:
        if event.kind != "done":
            continue
        done += 1
        style = _STATUS_STYLES.get(event.status or "", "white")
        console.print(
            f"[{done}/{total}] {escape(event.name)} - [{style}]{event.status}[/{style}]"
        )


def _print_summary(report: Report) -> None:
    console.print("\n[bold green]Snapshot run complete[/bold green]")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Generated", report.generated_at)
    table.add_row("Total", str(report.total))
    table.add_row("Passed", f"[green]{report.passed}[/green]")
    table.add_row("Failed", f"[red]{report.failed}[/red]")
    table.add_row("No baseline", f"[yellow]{report.no_baseline}[/yellow]")
    table.add_row("Errored", f"[red]{report.errored}[/red]")
    console.print(table)

    failures = [c for c in report.cases if c.status in ("fail", "error")]
    for case in failures[:20]:
        detail = case.error or (case.pixel_diff.diff_image_path if case.pixel_diff else "")
        console.print(f"  [red]{case.status.upper()}[/red] {case.name}: {detail}")


@cli.command()
@click.option("--config", "-c", default="storysnap.config.json", help="Config file path")
@click.option("--base-url", prompt="Story server URL", default="http://127.0.0.1:3000")
def init(config: str, base_url: str) -> None:
    """Create a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    cfg = RunConfig(base_url=base_url)
    cfg.save(config_path)
    console.print(f"[green]Created {config_path}[/green]")
    console.print("\nYou can now customize this file and run:")
    console.print("  [blue]storysnap run --cases stories.json[/blue]")


if __name__ == "__main__":
    cli()
