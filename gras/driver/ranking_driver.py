"""Run driver: bootstrap the catalog, then retrieve every requested table.

The RankingDriver closely follows the shape of a scraper driver loop:

1. One bootstrap page load yields the subject catalog and indicator list
2. The (subject, version) work list is planned without touching the network
3. Pairs are retrieved strictly one after another on the same page
4. Per-pair failures are recorded and the loop moves on, unless fail_fast
5. A stop event ends the loop between pairs; collected tables are kept
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from gras.common.exceptions import (
    ScraperAssumptionException,
    TransientException,
)
from gras.common.page_session import PageSession
from gras.config import ScrapeConfig
from gras.data_types import (
    Indicator,
    RetrievalFailure,
    ScrapeResult,
    SubjectInfo,
    SubjectTable,
)
from gras.driver.retrievers import (
    BaseRetriever,
    StateRetriever,
    build_retriever,
)
from gras.extraction.state import build_catalog, parse_indicators

logger = logging.getLogger(__name__)


class RankingDriver:
    """Drive one scrape run over an open page session.

    Args:
        session: The page every navigation happens on.
        config: Run settings.
        stop_event: Optional asyncio.Event for graceful shutdown. When set,
            the run stops before starting the next (subject, version) pair.
        on_table: Optional async callback invoked with each retrieved table.
        retriever_factory: Builds the retriever once the indicator list is
            known. Defaults to the configured strategy.

    Example:
        async with BrowserSession.open(config) as session:
            driver = RankingDriver(session, config)
            result = await driver.run()
    """

    def __init__(
        self,
        session: PageSession,
        config: ScrapeConfig,
        stop_event: asyncio.Event | None = None,
        on_table: Callable[[SubjectTable], Awaitable[None]] | None = None,
        retriever_factory: Callable[
            [ScrapeConfig, list[Indicator]], BaseRetriever
        ] = build_retriever,
    ) -> None:
        self.session = session
        self.config = config
        self.stop_event = stop_event or asyncio.Event()
        self.on_table = on_table
        self.retriever_factory = retriever_factory

    def stop(self) -> None:
        """Request a graceful stop after the current pair."""
        self.stop_event.set()

    async def bootstrap(self) -> tuple[list[SubjectInfo], list[Indicator]]:
        """Load the bootstrap page and read the catalog and indicator list.

        Raises:
            NavigationError, StateNotFoundError, MalformedDataError: The run
                cannot continue without a catalog.
        """
        url = self.config.bootstrap_url
        logger.info(f"Loading subject catalog from {url}")
        loader = StateRetriever(self.config, [])
        state = await loader.load_state(self.session, url)

        catalog = build_catalog(state, request_url=url)
        indicators = parse_indicators(state, request_url=url)
        logger.info(
            f"Catalog has {len(catalog)} subjects and "
            f"{len(indicators)} indicators"
        )
        return catalog, indicators

    def plan(
        self, catalog: list[SubjectInfo]
    ) -> list[tuple[SubjectInfo, str]]:
        """List the (subject, version) pairs this run will retrieve.

        With a year configured, subjects that do not declare that edition
        are skipped. Without one, every declared edition is included.
        """
        codes = self.config.subject_codes
        if codes:
            known = {subject.code for subject in catalog}
            for missing in sorted(codes - known):
                logger.warning(f"Subject code {missing} is not in the catalog")

        pairs: list[tuple[SubjectInfo, str]] = []
        for subject in catalog:
            if codes and subject.code not in codes:
                continue
            if self.config.year is None:
                pairs.extend(
                    (subject, version) for version in subject.versions
                )
            elif subject.has_version(self.config.year):
                pairs.append((subject, self.config.year))
            else:
                logger.info(
                    f"Skipping {subject.name} ({subject.code}): no "
                    f"{self.config.year} edition"
                )
        return pairs

    async def run(self, setup_signal_handlers: bool = False) -> ScrapeResult:
        """Run the scrape and return everything it produced.

        Args:
            setup_signal_handlers: If True, register SIGINT/SIGTERM handlers
                that set the stop event for the duration of the run.

        Raises:
            TransientException, ScraperAssumptionException: From the
                bootstrap, or from any pair when fail_fast is set.
        """
        result = ScrapeResult()

        if self.stop_event.is_set():
            result.cancelled = True
            return result

        if setup_signal_handlers:
            self._setup_signal_handlers()

        try:
            catalog, result.indicators = await self.bootstrap()
            retriever = self.retriever_factory(self.config, result.indicators)
            pairs = self.plan(catalog)
            logger.info(f"Retrieving {len(pairs)} ranking table(s)")

            for index, (subject, version) in enumerate(pairs, start=1):
                if self.stop_event.is_set():
                    logger.info(
                        f"Stop requested, {len(pairs) - index + 1} "
                        f"table(s) not retrieved"
                    )
                    result.cancelled = True
                    break

                logger.info(
                    f"[{index}/{len(pairs)}] {subject.category}\t"
                    f"{subject.name}\t{version}\t{subject.code}"
                )
                try:
                    table = await retriever.retrieve(
                        self.session, subject, version
                    )
                except (TransientException, ScraperAssumptionException) as e:
                    if self.config.fail_fast:
                        raise
                    logger.error(
                        f"Failed to retrieve {subject.code} {version}: {e}"
                    )
                    result.failures.append(
                        RetrievalFailure(subject, version, e)
                    )
                    continue

                result.tables.append(table)
                if self.on_table:
                    await self.on_table(table)
        finally:
            if setup_signal_handlers:
                self._restore_signal_handlers()

        return result

    def _setup_signal_handlers(self) -> None:
        """Register signal handlers for graceful shutdown.

        The first SIGINT/SIGTERM sets the stop event; a second SIGINT
        interrupts immediately.
        """
        import signal

        def handle_signal(signum: int, frame: Any) -> None:
            sig_name = signal.Signals(signum).name
            if self.stop_event.is_set() and signum == signal.SIGINT:
                raise KeyboardInterrupt
            logger.info(
                f"Received {sig_name}, stopping after the current table..."
            )
            self.stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

    def _restore_signal_handlers(self) -> None:
        import signal

        signal.signal(signal.SIGINT, signal.default_int_handler)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)
