"""Shared fixtures for the scraper tests."""

import asyncio
import socket
import threading
from collections.abc import AsyncGenerator, Generator
from contextlib import closing
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web

from gras.config import ScrapeConfig
from gras.data_types import Indicator, SubjectInfo
from gras.extraction.state import build_catalog, parse_indicators
from tests.mock_server import create_app
from tests.utils import TEST_BASE_URL, SleepRecorder, make_state


@pytest.fixture
def config() -> ScrapeConfig:
    """A run configuration that never waits long.

    Backoff is zero, polling is immediate and a missing state gives up
    after a few milliseconds.
    """
    return ScrapeConfig(
        base_url=TEST_BASE_URL,
        backoff_base=0.0,
        state_timeout=0.05,
        poll_interval=0.0,
        rate_per_minute=0,
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def nuxt_state() -> dict[str, Any]:
    """A hydrated state value with the sample catalog and no rankings."""
    return make_state()


@pytest.fixture
def catalog(nuxt_state: dict[str, Any]) -> list[SubjectInfo]:
    return build_catalog(nuxt_state["data"][0])


@pytest.fixture
def indicators(nuxt_state: dict[str, Any]) -> list[Indicator]:
    return parse_indicators(nuxt_state["data"][0])


# =============================================================================
# aiohttp test server fixtures
# =============================================================================


def find_free_port() -> int:
    """Find a free port on localhost.

    Returns:
        An available port number.
    """
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


class AioHttpTestServer:
    """Wrapper to run aiohttp server in a background thread."""

    def __init__(self, app: web.Application, port: int) -> None:
        self.app = app
        self.port = port
        self.host = "127.0.0.1"
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runner: web.AppRunner | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()

    @property
    def url(self) -> str:
        """Get the base URL of the server."""
        return f"http://{self.host}:{self.port}"

    def start(self) -> None:
        """Start the server and wait until it accepts connections."""
        self._thread = threading.Thread(target=self._run_server, daemon=True)
        self._thread.start()
        self._started.wait(timeout=5.0)

    def _run_server(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        async def start() -> None:
            self._runner = web.AppRunner(self.app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.host, self.port)
            await site.start()

        self._loop.run_until_complete(start())
        self._started.set()
        self._loop.run_forever()

    def stop(self) -> None:
        """Stop the server and clean up resources."""
        if self._loop and self._runner:
            future = asyncio.run_coroutine_threadsafe(
                self._runner.cleanup(), self._loop
            )
            future.result(timeout=2.0)

        if self._loop:
            self._loop.call_soon_threadsafe(self._loop.stop)

        if self._thread:
            self._thread.join(timeout=2.0)


@pytest.fixture
def ranking_server() -> Generator[AioHttpTestServer, None, None]:
    """Start the mock ranking site on a random port.

    Yields:
        AioHttpTestServer instance serving the mock site.
    """
    server = AioHttpTestServer(create_app(), find_free_port())
    server.start()
    yield server
    server.stop()


@pytest.fixture
def server_base_url(ranking_server: AioHttpTestServer) -> str:
    """The mock site's ranking route prefix."""
    return f"{ranking_server.url}/rankings/gras/"


@pytest.fixture
def browser_config(server_base_url: str) -> ScrapeConfig:
    return ScrapeConfig(
        base_url=server_base_url,
        backoff_base=0.0,
        state_timeout=10.0,
        poll_interval=0.05,
        rate_per_minute=0,
    )


@pytest_asyncio.fixture
async def browser_session(
    browser_config: ScrapeConfig,
) -> AsyncGenerator[Any, None]:
    """Open a real headless browser session, or skip if none is installed."""
    from gras.common.exceptions import BrowserLaunchError
    from gras.driver.playwright_driver import BrowserSession

    opener = BrowserSession.open(browser_config)
    try:
        session = await opener.__aenter__()
    except BrowserLaunchError as e:
        pytest.skip(f"Playwright browser not available: {e.reason}")

    try:
        yield session
    finally:
        await opener.__aexit__(None, None, None)
