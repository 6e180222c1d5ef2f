"""Playwright-backed browser session for the GRAS ranking pages.

The ranking pages hydrate their tables client-side, so every page is loaded
in a real browser. BrowserSession owns the Playwright process, browser,
context and the single tab the run navigates.
"""

from gras.driver.playwright_driver.browser_session import (
    BrowserSession,
    build_rate_limiter,
)

__all__ = ["BrowserSession", "build_rate_limiter"]
