"""Ranking retrievers: load one subject page and read its table.

Two strategies share the same interface:

- StateRetriever reads the embedded Nuxt state (the default).
- DomRetriever parses the rendered table and clicks through its pagination.

Both reload the page when the expected content never shows up, a bounded
number of times, before letting the failure reach the driver.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from gras.common.exceptions import (
    HTMLStructuralAssumptionException,
    StateNotFoundError,
)
from gras.common.page_session import PageSession
from gras.config import ScrapeConfig, subject_url
from gras.data_types import (
    Indicator,
    ScrapeStrategy,
    SubjectInfo,
    SubjectTable,
)
from gras.extraction.dom import (
    NEXT_PAGE_SELECTOR,
    TABLE_SELECTOR,
    TablePage,
    parse_table_page,
)
from gras.extraction.state import StateExtractor, parse_ranking_state

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Marks the first table page, which has no predecessor to differ from.
_FIRST_PAGE = object()


class BaseRetriever(ABC):
    """Shared reload policy for the retrieval strategies.

    Args:
        config: Run settings.
        indicators: The run's indicator list; every row is aligned to it.
        sleep: Coroutine used for backoff waits.
    """

    def __init__(
        self,
        config: ScrapeConfig,
        indicators: list[Indicator],
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.indicators = indicators
        self._sleep = sleep

    async def retrieve(
        self, session: PageSession, subject: SubjectInfo, version: str
    ) -> SubjectTable:
        """Load the subject page for one edition and return its full table.

        Raises:
            NavigationError: If the page could not be loaded.
            StateNotFoundError: If the content never appeared on any reload.
            ScraperAssumptionException: If the content was there but did not
                have the expected structure.
        """
        url = subject_url(self.config.base_url, version, subject.code)
        return await self._with_reloads(
            url, lambda: self._retrieve_once(session, subject, version, url)
        )

    @abstractmethod
    async def _retrieve_once(
        self,
        session: PageSession,
        subject: SubjectInfo,
        version: str,
        url: str,
    ) -> SubjectTable:
        """Load the page once and read its table, without reloading."""

    async def _with_reloads(
        self, url: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        attempts = max(1, self.config.state_attempts)
        for attempt in range(attempts - 1):
            try:
                return await operation()
            except StateNotFoundError as e:
                delay = self.config.backoff_delay(attempt)
                logger.warning(
                    f"{e.message}; reloading {url} in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                await self._sleep(delay)
        return await operation()


class StateRetriever(BaseRetriever):
    """Read ranking tables from the page's embedded state."""

    def __init__(
        self,
        config: ScrapeConfig,
        indicators: list[Indicator],
        extractor: StateExtractor | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(config, indicators, sleep=sleep)
        self.extractor = extractor or StateExtractor(
            timeout=config.state_timeout,
            poll_interval=config.poll_interval,
        )

    async def load_state(
        self, session: PageSession, url: str
    ) -> Mapping[str, Any]:
        """Navigate to a page and return its ready state entry."""
        return await self._with_reloads(
            url, lambda: self._load_state_once(session, url)
        )

    async def _load_state_once(
        self, session: PageSession, url: str
    ) -> Mapping[str, Any]:
        await session.goto(url)
        return await self.extractor.extract(session)

    async def _retrieve_once(
        self,
        session: PageSession,
        subject: SubjectInfo,
        version: str,
        url: str,
    ) -> SubjectTable:
        state = await self._load_state_once(session, url)
        return parse_ranking_state(
            state, subject, version, self.indicators, request_url=url
        )


class DomRetriever(BaseRetriever):
    """Read ranking tables from the rendered HTML, page by page."""

    async def _retrieve_once(
        self,
        session: PageSession,
        subject: SubjectInfo,
        version: str,
        url: str,
    ) -> SubjectTable:
        await session.goto(url)
        await session.wait_for_selector(
            TABLE_SELECTOR, timeout_ms=int(self.config.state_timeout * 1000)
        )

        page = await self._wait_for_page(session, url)
        rows = list(page.rows)
        pages = 1

        while page.has_next:
            if pages >= self.config.max_pages:
                logger.warning(
                    f"{subject.code} {version}: stopping after "
                    f"{pages} pages (max_pages)"
                )
                break
            previous = page.signature
            await session.click(NEXT_PAGE_SELECTOR)
            page = await self._wait_for_page(session, url, previous=previous)
            rows.extend(page.rows)
            pages += 1

        logger.debug(f"{subject.code} {version}: scraped {pages} page(s)")
        return SubjectTable(
            category=subject.category,
            subject=subject.name,
            version=version,
            rows=rows,
        )

    async def _wait_for_page(
        self,
        session: PageSession,
        url: str,
        previous: Any = _FIRST_PAGE,
    ) -> TablePage:
        """Snapshot until a non-empty table differs from the previous page.

        A table with no rows is still rendering and is never returned.

        Raises:
            StateNotFoundError: If no new, non-empty table page appeared in
                time.
            HTMLStructuralAssumptionException: If the snapshot still did
                not parse as a ranking table at the deadline.
        """
        deadline = time.monotonic() + self.config.state_timeout
        last_shape = "no table"

        while True:
            expired = time.monotonic() >= deadline
            try:
                page = parse_table_page(
                    await session.content(), self.indicators, request_url=url
                )
            except HTMLStructuralAssumptionException as e:
                if expired:
                    raise
                last_shape = e.description
            else:
                if not page.rows:
                    last_shape = "an empty table"
                elif previous is _FIRST_PAGE or page.signature != previous:
                    return page
                else:
                    last_shape = "an unchanged table"

            if expired:
                raise StateNotFoundError(
                    url, self.config.state_timeout, last_shape
                )
            await asyncio.sleep(self.config.poll_interval)


def build_retriever(
    config: ScrapeConfig, indicators: list[Indicator]
) -> BaseRetriever:
    """Return the retriever for the configured strategy."""
    if config.strategy is ScrapeStrategy.DOM:
        return DomRetriever(config, indicators)
    return StateRetriever(config, indicators)
