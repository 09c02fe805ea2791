"""Click CLI with scan and cache subcommands."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from code_reach.cache import CacheStore
from code_reach.config import ConfigError
from code_reach.models import ScanConfig, ScanResult, Verdict
from code_reach.pipeline import run_scan

_VERDICT_COLORS = {
    Verdict.UNREACHABLE: "red",
    Verdict.PARTIALLY_UNREACHABLE: "yellow",
    Verdict.POSSIBLY_LIVE: "cyan",
}
_LABEL_COLORS = {"high": "red", "medium": "yellow", "low": "white"}

_root_argument = click.argument(
    "root", type=click.Path(exists=True, file_okay=False, path_type=Path), default="."
)


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """code-reach: Find files no entry point can reach."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@_root_argument
@click.option("--entry", "-e", "entries", multiple=True, help="Extra entry point (repeatable)")
@click.option("--workers", "-w", type=click.IntRange(min=0), default=None,
              help="Worker processes (0 = parse in-process)")
@click.option("--no-cache", is_flag=True, help="Ignore and do not write the scan cache")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.option("--min-confidence", type=click.FloatRange(0.0, 1.0), default=0.0,
              help="Only report dead files at or above this score")
def scan(
    root: Path,
    entries: tuple[str, ...],
    workers: int | None,
    no_cache: bool,
    as_json: bool,
    min_confidence: float,
):
    """Scan a project and report unreachable files."""
    config = ScanConfig(
        project_root=root,
        entry_points=list(entries),
        workers=workers,
        use_cache=not no_cache,
    )

    def progress(stage: str, current: int, total: int):
        if not as_json:
            click.echo(f"  {stage}: {current}/{total}", err=True)

    try:
        result = run_scan(config, progress=progress)
    except ConfigError as e:
        raise click.ClickException(str(e))

    result.dead_files = [
        f for f in result.dead_files if f.evidence.confidence.score >= min_confidence
    ]

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    _print_report(result)


def _print_report(result: ScanResult) -> None:
    click.echo()
    if not result.dead_files:
        click.echo(click.style("No dead files found.", fg="green"))
    else:
        click.echo(f"Found {len(result.dead_files)} dead file(s):\n")
        for dead in result.dead_files:
            confidence = dead.evidence.confidence
            verdict = click.style(f"{dead.verdict.value:<22}", fg=_VERDICT_COLORS.get(dead.verdict, "white"))
            score = click.style(
                f"{confidence.score:.2f} {confidence.label}",
                fg=_LABEL_COLORS.get(confidence.label, "white"),
            )
            click.echo(f"  {verdict} {score:>12}  {dead.path}  {click.style(f'{dead.lines} lines', dim=True)}")
            click.echo(click.style(f"      {dead.evidence.summary}", dim=True))
            if dead.evidence.dynamic_check:
                check = dead.evidence.dynamic_check
                click.echo(click.style(
                    f"      dynamic: {check['matched_pattern']} ({check['source']})", dim=True
                ))
            if dead.evidence.importers:
                click.echo(click.style(
                    f"      imported only by: {', '.join(dead.evidence.importers)}", dim=True
                ))
        click.echo()

    click.echo("Summary:")
    click.echo(f"  files: {result.total_files}")
    click.echo(f"  entry points: {len(result.entry_points)}")
    click.echo(f"  reachable: {len(result.reachable_files)}")
    click.echo(f"  dead: {len(result.dead_files)}")
    for lang, count in result.languages.items():
        click.echo(f"  {lang}: {count}")
    if result.cache_stats:
        stats = result.cache_stats
        click.echo(f"  cache: {stats.hits} hits, {stats.misses} misses")
    click.echo(f"  elapsed: {result.elapsed:.2f}s")


@cli.group()
def cache():
    """Inspect or clear the scan cache."""


@cache.command("stats")
@_root_argument
def cache_stats(root: Path):
    """Show how many files the cache holds."""
    store = CacheStore(root.resolve()).load()
    stats = store.stats()
    click.echo(f"Cache: {store.cache_path}")
    click.echo(f"  entries: {stats.entry_count}")


@cache.command("clear")
@_root_argument
def cache_clear(root: Path):
    """Delete the scan cache."""
    store = CacheStore(root.resolve())
    store.clear()
    click.echo(f"Cleared {store.cache_path}")


if __name__ == "__main__":
    cli()
