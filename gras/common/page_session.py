"""PageSession protocol for the browser operations the scraper relies on.

The state extractor and the retrievers only talk to a page through this
interface. BrowserSession implements it on top of a live Playwright page;
tests drive the same code with scripted sessions.
"""

from __future__ import annotations

from typing import Any, Protocol


class PageSession(Protocol):
    """One browser tab, navigated strictly in sequence.

    Every method may raise NavigationError when the browser reports a
    failure. Implementations never expose browser-library exception types.
    """

    @property
    def url(self) -> str:
        """The page's current URL."""
        ...

    async def goto(self, url: str) -> None:
        """Navigate and wait until the main document has been parsed."""
        ...

    async def evaluate(self, expression: str) -> Any:
        """Evaluate a JavaScript expression and return its JSON value."""
        ...

    async def content(self) -> str:
        """Serialize the current DOM to HTML."""
        ...

    async def click(self, selector: str) -> None:
        """Click the first element matching a CSS selector."""
        ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        """Wait until a CSS selector matches an attached element."""
        ...
