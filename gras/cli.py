"""gras CLI: scrape GRAS subject rankings.

Usage:
    gras scrape                              # Every subject, every edition, JSON
    gras scrape --year=2022 --format=csv     # One edition as CSV
    gras scrape --output=out.json --subject RS0101 --subject RS0102
    gras scrape --strategy dom               # Parse rendered tables instead
    gras subjects                            # Print the subject catalog

Every option can also be set through the environment, e.g.
``GRAS_SCRAPE_YEAR=2021``.

Exit codes:
    0    success
    1    invalid arguments
    3    finished, but some tables could not be retrieved
    4    the run could not start (catalog or browser failure)
    130  interrupted; tables collected so far were written
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging

import click

from gras import __version__
from gras.common.exceptions import (
    ArgumentError,
    ScraperAssumptionException,
    TransientException,
)
from gras.config import (
    ScrapeConfig,
    default_output_path,
    validate_format,
    validate_year,
)
from gras.data_types import (
    Indicator,
    ScrapeResult,
    ScrapeStrategy,
    SubjectInfo,
)
from gras.output import render, write_output

EXIT_PARTIAL = 3
EXIT_INTERRUPTED = 130


class RunFailed(click.ClickException):
    """The run stopped before producing any output."""

    exit_code = 4


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _scrape(config: ScrapeConfig) -> ScrapeResult:
    from gras.driver.playwright_driver import BrowserSession
    from gras.driver.ranking_driver import RankingDriver

    async with BrowserSession.open(config) as session:
        driver = RankingDriver(session, config)
        return await driver.run(setup_signal_handlers=True)


async def _bootstrap(
    config: ScrapeConfig,
) -> tuple[list[SubjectInfo], list[Indicator]]:
    from gras.driver.playwright_driver import BrowserSession
    from gras.driver.ranking_driver import RankingDriver

    async with BrowserSession.open(config) as session:
        return await RankingDriver(session, config).bootstrap()


def _browser_options(func):
    func = click.option(
        "--browser-type",
        type=click.Choice(["chromium", "firefox", "webkit"]),
        default="chromium",
        show_default=True,
        help="Browser engine to drive.",
    )(func)
    func = click.option(
        "--headless/--no-headless",
        default=True,
        show_default=True,
        help="Run the browser without a window.",
    )(func)
    func = click.option(
        "--state-timeout",
        type=float,
        default=30.0,
        show_default=True,
        help="Seconds to wait for a page's ranking data to appear.",
    )(func)
    func = click.option(
        "--navigation-attempts",
        type=click.IntRange(min=1),
        default=3,
        show_default=True,
        help="Tries per page load before giving up.",
    )(func)
    func = click.option(
        "--rate-per-minute",
        type=click.IntRange(min=0),
        default=30,
        show_default=True,
        help="Maximum page loads per minute (0 disables pacing).",
    )(func)
    return func


@click.group(context_settings={"auto_envvar_prefix": "GRAS"})
@click.version_option(version=__version__, prog_name="gras")
def cli() -> None:
    """GRAS subject ranking scraper."""


@cli.command()
@click.option("--year", default=None, help="Edition to scrape (2017-2023).")
@click.option(
    "--output",
    "output",
    default=None,
    help="Output file [default: ./output/rankings[-YEAR].FORMAT].",
)
@click.option(
    "--format",
    "fmt",
    default="json",
    show_default=True,
    help="Output format: json or csv.",
)
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in ScrapeStrategy]),
    default=ScrapeStrategy.STATE.value,
    show_default=True,
    help="Read the embedded page state, or parse the rendered table.",
)
@click.option(
    "--subject",
    "subjects",
    multiple=True,
    help="Only scrape this subject code (repeatable).",
)
@click.option(
    "--fail-fast",
    is_flag=True,
    help="Stop at the first table that cannot be retrieved.",
)
@_browser_options
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
@click.pass_context
def scrape(
    ctx: click.Context,
    year: str | None,
    output: str | None,
    fmt: str,
    strategy: str,
    subjects: tuple[str, ...],
    fail_fast: bool,
    browser_type: str,
    headless: bool,
    state_timeout: float,
    navigation_attempts: int,
    rate_per_minute: int,
    verbose: bool,
) -> None:
    """Scrape subject rankings and write them as JSON or CSV.

    \b
    Examples:
        gras scrape --year=2022 --format=csv
        gras scrape --output=./rankings.json
    """
    try:
        fmt = validate_format(fmt)
        year = validate_year(year)
    except ArgumentError as e:
        raise click.ClickException(str(e)) from e

    _configure_logging(verbose)

    config = ScrapeConfig(
        strategy=ScrapeStrategy(strategy),
        year=year,
        subject_codes=frozenset(subjects),
        fail_fast=fail_fast,
        navigation_attempts=navigation_attempts,
        state_timeout=state_timeout,
        rate_per_minute=rate_per_minute,
        browser_type=browser_type,
        headless=headless,
    )
    destination = output or default_output_path(year, fmt)

    click.echo("Starting up...")
    try:
        result = asyncio.run(_scrape(config))
    except (TransientException, ScraperAssumptionException) as e:
        raise RunFailed(str(e)) from e

    text = render(result.tables, result.indicators, fmt)
    path = write_output(text, destination)
    click.echo(
        f"Data written to {path} in {fmt} format "
        f"({len(result.tables)} tables, {result.row_count} rows)."
    )

    if result.failures:
        click.echo(
            f"{len(result.failures)} table(s) could not be retrieved:",
            err=True,
        )
        for failure in result.failures:
            click.echo(f"  {failure.summary()}", err=True)

    if result.cancelled:
        click.echo("Interrupted before all tables were retrieved.", err=True)
        ctx.exit(EXIT_INTERRUPTED)
    if result.failures:
        ctx.exit(EXIT_PARTIAL)


@cli.command()
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Output format.",
)
@_browser_options
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def subjects(
    fmt: str,
    browser_type: str,
    headless: bool,
    state_timeout: float,
    navigation_attempts: int,
    rate_per_minute: int,
    verbose: bool,
) -> None:
    """Print the subject catalog and the indicator list."""
    _configure_logging(verbose)

    config = ScrapeConfig(
        navigation_attempts=navigation_attempts,
        state_timeout=state_timeout,
        rate_per_minute=rate_per_minute,
        browser_type=browser_type,
        headless=headless,
    )
    try:
        catalog, indicators = asyncio.run(_bootstrap(config))
    except (TransientException, ScraperAssumptionException) as e:
        raise RunFailed(str(e)) from e

    if fmt == "json":
        click.echo(
            json.dumps(
                {
                    "subjects": [dataclasses.asdict(s) for s in catalog],
                    "indicators": [dataclasses.asdict(i) for i in indicators],
                },
                indent=2,
                ensure_ascii=False,
            )
        )
        return

    category = None
    for subject in catalog:
        if subject.category != category:
            category = subject.category
            click.echo(category)
        click.echo(
            f"  {subject.code}  {subject.name}  "
            f"[{', '.join(subject.versions)}]"
        )
    click.echo(
        f"\nIndicators: {', '.join(ind.name for ind in indicators)}"
    )


def main() -> None:
    """Entry point for the ``gras`` console script."""
    cli()
