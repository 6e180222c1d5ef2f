"""Run configuration and command-line validation rules.

ScrapeConfig collects every knob a run needs so nothing downstream reads
module-level state. The validators here run before any browser is started.
"""

from __future__ import annotations

from dataclasses import dataclass

from gras.common.exceptions import ArgumentError
from gras.data_types import ScrapeStrategy

BASE_URL = "https://www.shanghairanking.com/rankings/gras/"

# The catalog and indicator list are read from this page.
BOOTSTRAP_VERSION = "2023"
BOOTSTRAP_SUBJECT_CODE = "RS0101"

MIN_YEAR = 2017
MAX_YEAR = 2023

OUTPUT_FORMATS = ("json", "csv")
DEFAULT_OUTPUT_DIR = "./output"


@dataclass(frozen=True)
class ScrapeConfig:
    """Settings for one scrape run.

    Attributes:
        base_url: Ranking route prefix; subject pages live at
            ``<base_url><version>/<code>``.
        bootstrap_version: Edition of the page the catalog is read from.
        bootstrap_code: Subject code of the page the catalog is read from.
        strategy: How tables are read from each page.
        year: Only scrape this edition; None scrapes every declared edition.
        subject_codes: Only scrape these subjects; empty means all.
        fail_fast: Re-raise the first per-subject failure instead of
            recording it and moving on.
        navigation_attempts: Tries per page load before giving up.
        state_attempts: Page reloads allowed when the embedded state never
            appears.
        backoff_base: Seconds to wait after the first failed attempt;
            doubles on each further attempt.
        state_timeout: Seconds to poll for the embedded state.
        poll_interval: Seconds between state polls.
        max_pages: Upper bound on pagination clicks for the DOM strategy.
        rate_per_minute: Navigation budget; 0 disables the limiter.
        browser_type: "chromium", "firefox" or "webkit".
        headless: Run the browser without a window.
    """

    base_url: str = BASE_URL
    bootstrap_version: str = BOOTSTRAP_VERSION
    bootstrap_code: str = BOOTSTRAP_SUBJECT_CODE
    strategy: ScrapeStrategy = ScrapeStrategy.STATE
    year: str | None = None
    subject_codes: frozenset[str] = frozenset()
    fail_fast: bool = False
    navigation_attempts: int = 3
    state_attempts: int = 2
    backoff_base: float = 1.0
    state_timeout: float = 30.0
    poll_interval: float = 0.25
    max_pages: int = 500
    rate_per_minute: int = 30
    browser_type: str = "chromium"
    headless: bool = True

    @property
    def bootstrap_url(self) -> str:
        return subject_url(
            self.base_url, self.bootstrap_version, self.bootstrap_code
        )

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to sleep after the given zero-based failed attempt."""
        return self.backoff_base * (2**attempt)


def subject_url(base_url: str, version: str, code: str) -> str:
    """Compose a subject page URL from the route prefix, edition and code."""
    return f"{base_url.rstrip('/')}/{version}/{code}"


def validate_format(value: str) -> str:
    """Check the output format.

    Raises:
        ArgumentError: If the format is not one of OUTPUT_FORMATS.
    """
    if value not in OUTPUT_FORMATS:
        raise ArgumentError('Invalid format. Must be either "json" or "csv".')
    return value


def validate_year(value: str | None) -> str | None:
    """Check an optional edition year.

    Returns:
        The normalized year string, or None when no year was given.

    Raises:
        ArgumentError: If the value is not an integer in [MIN_YEAR, MAX_YEAR].
    """
    if value is None:
        return None

    stripped = value.strip()
    year = None
    if stripped.isascii() and stripped.isdigit():
        year = int(stripped)

    if year is None or not MIN_YEAR <= year <= MAX_YEAR:
        raise ArgumentError(
            f"Invalid year. Must be an integer between {MIN_YEAR} and "
            f"{MAX_YEAR}."
        )
    return str(year)


def default_output_path(year: str | None, fmt: str) -> str:
    """Build ``./output/rankings[-<year>].<format>``."""
    suffix = f"-{year}" if year else ""
    return f"{DEFAULT_OUTPUT_DIR}/rankings{suffix}.{fmt}"
