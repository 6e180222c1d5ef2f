"""Browser session implementation on top of the Playwright async API.

Key features:
- One browser, one context, one page per run; navigations never overlap
- DOMContentLoaded navigation with no timeout ceiling
- Bounded navigation retry with exponential backoff
- Navigation pacing via pyrate_limiter
- Guaranteed teardown of page, context, browser and Playwright
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    async_playwright,
)
from playwright.async_api import (
    Error as PlaywrightError,
)
from pyrate_limiter import Duration, InMemoryBucket, Limiter, Rate

from gras.common.exceptions import BrowserLaunchError, NavigationError
from gras.config import ScrapeConfig

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_rate_limiter(rate_per_minute: int) -> Limiter | None:
    """Create an in-memory navigation limiter, or None when disabled.

    Args:
        rate_per_minute: Navigations allowed per minute; 0 or less disables
            the limiter.
    """
    if rate_per_minute <= 0:
        return None
    bucket = InMemoryBucket([Rate(rate_per_minute, Duration.MINUTE)])
    return Limiter(bucket)


async def _starting(browser_type: str, step: Awaitable[T]) -> T:
    """Await one browser startup step, reporting Playwright failures."""
    try:
        return await step
    except PlaywrightError as e:
        raise BrowserLaunchError(browser_type, e.message) from e


class BrowserSession:
    """A single Playwright tab plus the retry and pacing policy around it.

    Args:
        page: The Playwright page every navigation happens on.
        config: Run settings (retry counts, backoff).
        rate_limiter: Optional limiter consulted before each navigation.
        sleep: Coroutine used for backoff waits.

    Example:
        async with BrowserSession.open(config) as session:
            await session.goto(config.bootstrap_url)
            state = await session.evaluate("() => window.__NUXT__")
    """

    def __init__(
        self,
        page: Page,
        config: ScrapeConfig,
        rate_limiter: Limiter | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._page: Page | None = page
        self.config = config
        self.rate_limiter = rate_limiter
        self._sleep = sleep

    @classmethod
    @asynccontextmanager
    async def open(cls, config: ScrapeConfig) -> AsyncIterator[BrowserSession]:
        """Open a browser session as an async context manager.

        Launches the configured browser and guarantees that the page,
        context, browser and Playwright driver process are all closed when
        the block exits, whether normally or through an exception.

        Args:
            config: Run settings; ``browser_type``, ``headless`` and
                ``rate_per_minute`` are used here.

        Yields:
            Initialized BrowserSession.

        Raises:
            BrowserLaunchError: If Playwright could not start the browser,
                its context or its page.
        """
        browser_type = config.browser_type
        playwright = await _starting(browser_type, async_playwright().start())
        try:
            browser_launcher = getattr(playwright, browser_type)
            browser: Browser = await _starting(
                browser_type, browser_launcher.launch(headless=config.headless)
            )
            try:
                browser_context: BrowserContext = await _starting(
                    browser_type, browser.new_context(locale="en-US")
                )
                try:
                    page = await _starting(
                        browser_type, browser_context.new_page()
                    )
                    session = cls(
                        page,
                        config,
                        rate_limiter=build_rate_limiter(
                            config.rate_per_minute
                        ),
                    )
                    logger.debug(
                        f"Launched {browser_type} "
                        f"(headless={config.headless})"
                    )
                    try:
                        yield session
                    finally:
                        await session.close()
                finally:
                    await browser_context.close()
            finally:
                await browser.close()
        finally:
            await playwright.stop()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is closed")
        return self._page

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url: str) -> None:
        """Navigate to a URL, retrying failed loads with backoff.

        Waits for DOMContentLoaded only; subresources are not awaited and
        there is no timeout ceiling on a single load.

        Raises:
            NavigationError: If every attempt failed.
        """
        attempts = max(1, self.config.navigation_attempts)

        for attempt in range(attempts):
            if self.rate_limiter:
                await self.rate_limiter.try_acquire_async(
                    name="navigation", weight=1
                )
            try:
                await self.page.goto(
                    url, wait_until="domcontentloaded", timeout=0
                )
                return
            except PlaywrightError as e:
                if attempt + 1 >= attempts:
                    raise NavigationError(
                        url, e.message, attempts=attempts
                    ) from e
                delay = self.config.backoff_delay(attempt)
                logger.warning(
                    f"Navigation to {url} failed (attempt {attempt + 1}/"
                    f"{attempts}), retrying in {delay:.1f}s: {e.message}"
                )
                await self._sleep(delay)

    async def evaluate(self, expression: str) -> Any:
        try:
            return await self.page.evaluate(expression)
        except PlaywrightError as e:
            raise NavigationError(self.page.url, e.message) from e

    async def content(self) -> str:
        try:
            return await self.page.content()
        except PlaywrightError as e:
            raise NavigationError(self.page.url, e.message) from e

    async def click(self, selector: str) -> None:
        try:
            await self.page.click(selector)
        except PlaywrightError as e:
            raise NavigationError(self.page.url, e.message) from e

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_selector(
                selector, state="attached", timeout=timeout_ms
            )
        except PlaywrightError as e:
            raise NavigationError(self.page.url, e.message) from e

    async def close(self) -> None:
        """Close the page if it is still open."""
        if self._page is not None:
            page, self._page = self._page, None
            await page.close()
