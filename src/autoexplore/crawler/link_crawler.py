"""
Breadth link crawl.

Every discovered same-domain link becomes an independent task. A
semaphore bounds how many tasks hold a browser session at once, the
run's CrawlContext deduplicates URLs, and a wall-clock budget abandons
whatever is still outstanding when it runs out.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Callable

import structlog

from autoexplore.concurrency.session_pool import PoolExhaustedError, SessionCreationError
from autoexplore.crawler.context import StopReason
from autoexplore.crawler.errors import AuthenticationFailure
from autoexplore.crawler.models import Page, Transition, TransitionKind
from autoexplore.healing.resolver import xpath_literal
from autoexplore.webdriver.errors import NavigationTimeout, WebDriverError

if TYPE_CHECKING:
    from autoexplore.concurrency.session_pool import BrowserSessionPool
    from autoexplore.config import ExplorerConfig
    from autoexplore.crawler.auth import Authenticator
    from autoexplore.crawler.context import CrawlContext
    from autoexplore.crawler.page_analyzer import PageAnalyzer
    from autoexplore.webdriver.client import WebDriverClient

logger = structlog.get_logger(__name__)


class LinkCrawler:
    """
    Concurrent crawler following links from a base URL.

    Usage:
        crawler = LinkCrawler(pool, analyzer, config)
        pages = await crawler.run(context)
    """

    def __init__(
        self,
        pool: BrowserSessionPool,
        analyzer: PageAnalyzer,
        config: ExplorerConfig,
        authenticator: Authenticator | None = None,
        on_page: Callable[[Page], None] | None = None,
        on_transition: Callable[[CrawlContext, Transition], None] | None = None,
    ) -> None:
        self._pool = pool
        self._analyzer = analyzer
        self._config = config
        self._authenticator = authenticator
        self._on_page = on_page
        self._on_transition = on_transition
        self._log = logger.bind(component="link_crawler")

    async def run(self, ctx: CrawlContext) -> list[Page]:
        """
        Crawl from ``ctx.base_url`` until the frontier, budget or time runs out.

        Returns:
            Every page analyzed before the run ended

        Raises:
            SessionCreationError: If no page could be crawled because no
                browser session could be obtained
            PoolExhaustedError: Same, when the pool stayed full
        """
        workers = asyncio.Semaphore(self._config.max_concurrent_crawlers)
        tasks: set[asyncio.Task[None]] = set()
        fatal: list[Exception] = []

        self._log.info(
            "Starting link crawl",
            crawl_id=ctx.crawl_id,
            base_url=ctx.base_url,
            max_pages=ctx.max_pages,
            workers=self._config.max_concurrent_crawlers,
        )

        if self._authenticator is not None and self._authenticator.enabled:
            await self._authenticate(ctx)

        def submit(url: str) -> None:
            if ctx.stop_requested or ctx.is_visited(url):
                return
            task = asyncio.create_task(self._crawl_page(ctx, url, workers, submit, fatal))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        submit(ctx.base_url)

        while tasks:
            if ctx.expired:
                ctx.request_stop(StopReason.TIMEOUT)
            if ctx.stop_reason in (StopReason.TIMEOUT, StopReason.STOP_REQUESTED):
                break
            wait_for = min(ctx.remaining_seconds, self._config.poll_interval_seconds)
            await asyncio.wait(
                set(tasks),
                timeout=max(wait_for, 0.001),
                return_when=asyncio.FIRST_COMPLETED,
            )

        if tasks:
            self._log.info(
                "Abandoning outstanding page tasks",
                crawl_id=ctx.crawl_id,
                outstanding=len(tasks),
                reason=ctx.stop_reason,
            )
            for task in list(tasks):
                task.cancel()

        self._record_link_transitions(ctx)

        pages = ctx.pages
        if not pages and fatal:
            raise fatal[0]

        self._log.info(
            "Link crawl finished",
            crawl_id=ctx.crawl_id,
            pages=len(pages),
            visited=ctx.visited_count,
            reason=ctx.stop_reason or StopReason.COMPLETED,
            elapsed_seconds=round(ctx.elapsed_seconds, 2),
        )
        return pages

    async def _crawl_page(
        self,
        ctx: CrawlContext,
        url: str,
        workers: asyncio.Semaphore,
        submit: Callable[[str], None],
        fatal: list[Exception],
    ) -> None:
        async with workers:
            if ctx.stop_requested or not ctx.claim_url(url):
                return

            try:
                async with self._pool.session() as handle:
                    await self._seed_cookies(ctx, handle)
                    await self._navigate(handle, url)
                    page = await self._analyzer.analyze(handle, ctx.base_url)
                    if self._config.delay_between_requests_ms:
                        await asyncio.sleep(self._config.delay_between_requests_ms / 1000)
            except (SessionCreationError, PoolExhaustedError) as e:
                fatal.append(e)
                ctx.record_error(f"{url}: {e}")
                self._log.warning("No session for page", url=url, error=str(e))
                return
            except WebDriverError as e:
                ctx.record_error(f"{url}: {e}")
                self._log.warning("Page crawl failed", url=url, error=str(e))
                return
            except Exception as e:
                ctx.record_error(f"{url}: {e}")
                self._log.error("Page crawl failed", url=url, error=str(e), exc_info=True)
                return

        stored = ctx.register_page(page)
        if stored is page and self._on_page is not None:
            self._on_page(page)
        self._log.debug("Page crawled", url=page.url, links=len(page.linked_urls))

        for link in sorted(page.linked_urls):
            submit(link)

    async def _navigate(self, handle: WebDriverClient, url: str) -> None:
        try:
            await handle.navigate(url)
        except NavigationTimeout:
            self._log.warning("Page load timed out, analyzing anyway", url=url)

    async def _authenticate(self, ctx: CrawlContext) -> None:
        """Log in once; failure leaves the crawl unauthenticated."""
        assert self._authenticator is not None
        try:
            async with self._pool.session() as handle:
                ctx.auth_cookies = await self._authenticator.authenticate(handle)
                ctx.mark_seeded(handle.session_id)
        except (AuthenticationFailure, SessionCreationError, PoolExhaustedError) as e:
            ctx.record_error(f"authentication: {e}")
            self._log.warning("Authentication failed, crawling unauthenticated", error=str(e))

    async def _seed_cookies(self, ctx: CrawlContext, handle: WebDriverClient) -> None:
        if not ctx.auth_cookies or self._authenticator is None:
            return
        if ctx.mark_seeded(handle.session_id):
            await self._authenticator.apply_cookies(handle, ctx.auth_cookies, ctx.base_url)

    def _record_link_transitions(self, ctx: CrawlContext) -> None:
        """Emit one navigation transition per link between crawled pages."""
        if self._on_transition is None:
            return
        by_url = {page.url: page for page in ctx.pages}
        for page in by_url.values():
            for link in sorted(page.linked_urls):
                target = by_url.get(link)
                if target is None or target.id == page.id:
                    continue
                label = target.title or target.url
                self._on_transition(
                    ctx,
                    Transition(
                        source_page_id=page.id,
                        target_page_id=target.id,
                        kind=TransitionKind.NAVIGATION,
                        description=f"Follow link to '{label}'",
                        element_locator=f"//a[@href={xpath_literal(link)}]",
                    ),
                )
