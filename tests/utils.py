"""Test utilities for the scraper tests.

This module provides sample GRAS state data and a scripted PageSession so
the extraction, retrieval and driver layers can be exercised without a
browser.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import Error as PlaywrightError

from gras.common.exceptions import NavigationError

logger = logging.getLogger(__name__)

TEST_BASE_URL = "https://gras.test/rankings/gras/"


# =============================================================================
# Sample state data
# =============================================================================

SUBJECT_LIST: list[dict[str, Any]] = [
    {
        "nameEn": "Natural Sciences",
        "detail": [
            {
                "nameEn": "Mathematics",
                "code": "RS0101",
                "versions": "2021,2022,2023",
            },
            {"nameEn": "Physics", "code": "RS0102", "versions": "2022,2023"},
        ],
    },
    {
        "nameEn": "Engineering",
        "detail": [
            {
                "nameEn": "Mechanical Engineering",
                "code": "RS0201",
                "versions": "2023",
            },
        ],
    },
]

IND_LIST: list[dict[str, Any]] = [
    {"nameEn": "Q1", "code": "q1"},
    {"nameEn": "CNCI", "code": "cnci"},
    {"nameEn": "IC", "code": "ic"},
    {"nameEn": "TOP", "code": "top"},
    {"nameEn": "AWARD", "code": "award"},
]


def university(
    ranking: Any,
    name: str,
    region: str = "China",
    score: Any = None,
    **ind_data: Any,
) -> dict[str, Any]:
    """Build one ``deepUnivData`` entry as the site embeds it."""
    return {
        "ranking": ranking,
        "univNameEn": name,
        "region": region,
        "score": score,
        "indData": ind_data,
    }


def make_state(
    chunks: list[Any] | None = None,
    subject_list: list[dict[str, Any]] | None = None,
    ind_list: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a hydrated ``window.__NUXT__`` value."""
    return {
        "data": [
            {
                "subjectList": (
                    SUBJECT_LIST if subject_list is None else subject_list
                ),
                "indList": IND_LIST if ind_list is None else ind_list,
                "deepUnivData": [] if chunks is None else chunks,
            }
        ]
    }


def make_chunks(*sizes: int, prefix: str = "University") -> list[list[dict]]:
    """Build ranking chunks with consecutive ranks.

    Example:
        make_chunks(30, 30, 12) gives 72 rows split over three chunks.
    """
    chunks = []
    rank = 1
    for size in sizes:
        chunk = []
        for _ in range(size):
            chunk.append(
                university(rank, f"{prefix} {rank}", score=100 - rank)
            )
            rank += 1
        chunks.append(chunk)
    return chunks


# =============================================================================
# Scripted page session
# =============================================================================


class PerLoad:
    """Values to serve on successive loads of the same URL.

    The n-th navigation to the URL serves the n-th value; the last value
    repeats once the list runs out.
    """

    def __init__(self, *values: Any) -> None:
        self.values = list(values)

    def for_load(self, load: int) -> Any:
        return self.values[min(load, len(self.values) - 1)]


class ScriptedSession:
    """PageSession that serves canned state and HTML per URL.

    Args:
        states: URL -> value returned by evaluate(), or a PerLoad.
        pages: URL -> list of HTML snapshots. goto() shows the first one,
            each click() advances to the next.
        goto_errors: URL -> exception raised by every goto() to that URL.
    """

    def __init__(
        self,
        states: dict[str, Any] | None = None,
        pages: dict[str, list[str]] | None = None,
        goto_errors: dict[str, Exception] | None = None,
    ) -> None:
        self.states = states or {}
        self.pages = pages or {}
        self.goto_errors = goto_errors or {}
        self.goto_calls: list[str] = []
        self.click_calls: list[str] = []
        self.wait_calls: list[tuple[str, int]] = []
        self.evaluate_calls = 0
        self._url = "about:blank"
        self._page_index = 0

    @property
    def url(self) -> str:
        return self._url

    def loads_of(self, url: str) -> int:
        return self.goto_calls.count(url)

    async def goto(self, url: str) -> None:
        self.goto_calls.append(url)
        if url in self.goto_errors:
            raise self.goto_errors[url]
        self._url = url
        self._page_index = 0

    async def evaluate(self, expression: str) -> Any:
        self.evaluate_calls += 1
        value = self.states.get(self._url)
        if isinstance(value, PerLoad):
            value = value.for_load(self.loads_of(self._url) - 1)
        if isinstance(value, Exception):
            raise value
        return value

    async def content(self) -> str:
        snapshots = self.pages.get(self._url)
        if not snapshots:
            return "<html><body></body></html>"
        return snapshots[min(self._page_index, len(snapshots) - 1)]

    async def click(self, selector: str) -> None:
        self.click_calls.append(selector)
        snapshots = self.pages.get(self._url, [])
        if self._page_index + 1 >= len(snapshots):
            raise NavigationError(self._url, f"nothing to click: {selector}")
        self._page_index += 1

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        self.wait_calls.append((selector, timeout_ms))


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def collect_tables_async() -> tuple[
    Callable[[Any], Awaitable[None]], list[Any]
]:
    """Create an async on_table callback that collects tables in a list.

    Returns:
        A tuple of (callback_function, tables_list).
    """
    tables: list[Any] = []

    async def callback(table: Any) -> None:
        tables.append(table)

    return callback, tables


# =============================================================================
# Rendered table snapshots
# =============================================================================


def render_table(
    rows: list[tuple[Any, str, str, Any, list[Any]]],
    indicator_headers: list[str],
    has_next: bool = False,
    selector_header: bool = False,
) -> str:
    """Render a ranking table snapshot the way the site's markup looks.

    Args:
        rows: (rank, name, region code, score, indicator values) tuples.
        indicator_headers: Labels of the indicator columns on display.
        has_next: Whether the "next page" control is enabled.
        selector_header: Render the first indicator header as a dropdown
            whose value is the label, with no header text.
    """
    headers = ["<th>Rank</th>", "<th>Institution</th>"]
    headers += ["<th>Country/Region</th>", "<th>Total Score</th>"]
    for index, label in enumerate(indicator_headers):
        if selector_header and index == 0:
            headers.append(
                "<th><div class='ant-select'>"
                f"<input readonly value='{label}'></div></th>"
            )
        else:
            headers.append(f"<th>{label}</th>")

    body = []
    for rank, name, region, score, values in rows:
        cells = [
            f"<td><div class='ranking'>{rank}</div></td>",
            "<td><div class='link-container'>"
            f"<span class='univ-name'>{name}</span>"
            "<span class='univ-tag'>Tag</span></div></td>",
            "<td><div class='region-img' style='background-image: "
            f"url(\"/_nuxt/img/{region.lower()}.png\");'></div></td>",
            f"<td>{'' if score is None else score}</td>",
        ]
        cells += [f"<td>{'' if v is None else v}</td>" for v in values]
        body.append(f"<tr>{''.join(cells)}</tr>")

    next_class = "ant-pagination-next"
    if not has_next:
        next_class += " ant-pagination-disabled"

    return (
        "<html><body><div class='rk-table-box'>"
        "<table class='rk-table'>"
        f"<thead><tr>{''.join(headers)}</tr></thead>"
        f"<tbody>{''.join(body)}</tbody>"
        "</table></div>"
        "<ul class='ant-pagination'>"
        "<li class='ant-pagination-item'><a>1</a></li>"
        f"<li class='{next_class}'><a class='ant-pagination-item-link'>"
        "&gt;</a></li></ul>"
        "</body></html>"
    )


# =============================================================================
# Fake Playwright stack
# =============================================================================


class FakeBrowserStack:
    """Stand-in for ``async_playwright`` that records the startup steps.

    Pass it where ``async_playwright`` is looked up. ``fail_at`` names the
    step ("launch", "new_context" or "new_page") that raises a Playwright
    error; ``events`` records every start, open and close in order.
    """

    def __init__(self, fail_at: str | None = None, reason: str = "") -> None:
        self.fail_at = fail_at
        self.reason = reason
        self.events: list[str] = []
        self.chromium = self

    def __call__(self) -> "FakeBrowserStack":
        return self

    def _step(self, name: str) -> None:
        if name == self.fail_at:
            raise PlaywrightError(self.reason)
        self.events.append(name)

    async def start(self) -> "FakeBrowserStack":
        self.events.append("start")
        return self

    async def stop(self) -> None:
        self.events.append("stop")

    async def launch(self, headless: bool = True) -> "FakeBrowserStack":
        self._step("launch")
        return self

    async def new_context(self, **kwargs: Any) -> "FakeBrowserStack":
        self._step("new_context")
        return self

    async def new_page(self) -> "FakeBrowserStack":
        self._step("new_page")
        return self

    async def close(self) -> None:
        self.events.append("close")
