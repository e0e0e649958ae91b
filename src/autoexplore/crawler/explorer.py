"""
Exploration entry points.

InteractiveExplorer wires the session pool, page analyzer, state engine,
identity resolver and flow analyzer together and exposes the two
exploration algorithms: a concurrent breadth link crawl and a sequential
depth-bounded interactive exploration.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from autoexplore.config import ExplorerConfig
from autoexplore.crawler.auth import Authenticator
from autoexplore.crawler.context import CrawlContext, CrawlSummary, StopReason
from autoexplore.crawler.interactive import DepthExplorer
from autoexplore.crawler.link_crawler import LinkCrawler
from autoexplore.crawler.page_analyzer import PageAnalyzer
from autoexplore.crawler.state import StateFingerprintEngine
from autoexplore.crawler.submissions import FormSubmissionTracker
from autoexplore.discovery.flow_analyzer import FlowGraphAnalyzer
from autoexplore.healing.resolver import ElementIdentityResolver
from autoexplore.storage.screenshots import ScreenshotStore

if TYPE_CHECKING:
    from autoexplore.concurrency.session_pool import BrowserSessionPool
    from autoexplore.crawler.models import InteractionRecord, Page, Transition
    from autoexplore.crawler.submissions import FormSubmission
    from autoexplore.discovery.dependencies import StateVariableChange
    from autoexplore.storage.repository import ExplorationRepository

logger = structlog.get_logger(__name__)


class InteractiveExplorer:
    """
    Discovers application pages, states and transitions.

    Usage:
        async with BrowserSessionPool(config) as pool:
            explorer = InteractiveExplorer(pool, config)
            pages = await explorer.crawl("https://app.example.com", max_pages=50)
            states = await explorer.explore("https://app.example.com/form", max_depth=3)
            journeys = explorer.flow_analyzer.discover_journeys()
    """

    def __init__(
        self,
        pool: BrowserSessionPool,
        config: ExplorerConfig | None = None,
        resolver: ElementIdentityResolver | None = None,
        signature_engine: StateFingerprintEngine | None = None,
        flow_analyzer: FlowGraphAnalyzer | None = None,
        repository: ExplorationRepository | None = None,
        screenshot_store: ScreenshotStore | None = None,
    ) -> None:
        self._pool = pool
        self._config = config or ExplorerConfig()
        self._resolver = resolver or ElementIdentityResolver(
            thresholds=self._config.matching,
            capture_visual=self._config.capture_visual_signatures,
        )
        self._signatures = signature_engine or StateFingerprintEngine(
            self._config.signature_policy
        )
        self._flow_analyzer = flow_analyzer or FlowGraphAnalyzer()
        self._repository = repository

        if screenshot_store is None and self._config.take_screenshots:
            screenshot_store = ScreenshotStore(self._config.screenshot_dir)
        self._analyzer = PageAnalyzer(self._resolver, self._config, screenshot_store)

        self._authenticator: Authenticator | None = None
        if self._config.auth.enabled:
            self._authenticator = Authenticator(
                self._config.auth,
                timeout_seconds=self._config.page_load_timeout_seconds,
                poll_interval=self._config.poll_interval_seconds,
            )

        self._active: dict[str, CrawlContext] = {}
        self._results: dict[str, CrawlContext] = {}
        self._last_summary: CrawlSummary | None = None
        self._log = logger.bind(component="explorer")

    @property
    def config(self) -> ExplorerConfig:
        return self._config

    @property
    def resolver(self) -> ElementIdentityResolver:
        return self._resolver

    @property
    def flow_analyzer(self) -> FlowGraphAnalyzer:
        return self._flow_analyzer

    @property
    def is_active(self) -> bool:
        return bool(self._active)

    @property
    def last_summary(self) -> CrawlSummary | None:
        return self._last_summary

    async def crawl(
        self,
        base_url: str,
        max_pages: int | None = None,
        crawl_id: str | None = None,
    ) -> list[Page]:
        """
        Breadth link crawl from ``base_url``.

        Args:
            base_url: Crawl root; only same-host links are followed
            max_pages: Distinct URL budget, defaults to the configured value
            crawl_id: Optional run id for stop/inspection

        Returns:
            Pages discovered before the crawl ended, partial on timeout or stop
        """
        ctx = CrawlContext(
            base_url,
            max_pages=max_pages or self._config.max_pages,
            timeout_seconds=self._config.crawl_timeout_seconds,
            crawl_id=crawl_id,
        )
        crawler = LinkCrawler(
            self._pool,
            self._analyzer,
            self._config,
            authenticator=self._authenticator,
            on_page=self._save_page,
            on_transition=self._emit_transition,
        )

        self._active[ctx.crawl_id] = ctx
        self._results[ctx.crawl_id] = ctx
        try:
            return await crawler.run(ctx)
        finally:
            self._finish(ctx)

    async def explore(
        self,
        start_url: str,
        max_depth: int | None = None,
        include_forms: bool | None = None,
        max_interactions_per_page: int | None = None,
        crawl_id: str | None = None,
    ) -> list[Page]:
        """
        Depth-bounded interactive exploration on a single session.

        Returns:
            Pages and states discovered, partial when the run timed out
        """
        ctx = CrawlContext(
            start_url,
            max_pages=self._config.max_pages,
            timeout_seconds=self._config.crawl_timeout_seconds,
            crawl_id=crawl_id,
        )
        explorer = DepthExplorer(
            self._analyzer,
            self._signatures,
            self._resolver,
            self._config,
            on_page=self._save_page,
            on_transition=self._emit_transition,
        )

        self._active[ctx.crawl_id] = ctx
        self._results[ctx.crawl_id] = ctx
        try:
            async with self._pool.session() as handle:
                await asyncio.wait_for(
                    explorer.run(
                        ctx,
                        handle,
                        start_url,
                        max_depth=max_depth if max_depth is not None else self._config.max_depth,
                        include_forms=(
                            include_forms if include_forms is not None
                            else self._config.include_forms
                        ),
                        max_interactions_per_page=(
                            max_interactions_per_page or self._config.max_interactions_per_page
                        ),
                    ),
                    timeout=self._config.crawl_timeout_seconds,
                )
        except TimeoutError:
            ctx.request_stop(StopReason.TIMEOUT)
            self._log.warning("Exploration timed out", crawl_id=ctx.crawl_id)
        finally:
            self._finish(ctx)
        return ctx.pages

    async def track_form_submission(self, url: str) -> FormSubmission:
        """
        Fill and submit the form at ``url`` on one session.

        Returns:
            The values entered and how they reappeared after submission
        """
        tracker = FormSubmissionTracker(self._signatures, self._config)
        async with self._pool.session() as handle:
            return await tracker.run(handle, url)

    def stop(self, crawl_id: str | None = None) -> bool:
        """
        Ask one run, or every active run, to stop.

        Returns False if no matching run is active.
        """
        if crawl_id is not None:
            ctx = self._active.get(crawl_id)
            if ctx is None:
                return False
            ctx.request_stop()
            return True

        for ctx in self._active.values():
            ctx.request_stop()
        return bool(self._active)

    def current_results(self, crawl_id: str | None = None) -> list[Page]:
        """Pages of a running or finished run; the latest run by default."""
        ctx = self._context(crawl_id)
        return ctx.pages if ctx else []

    def transitions(self, crawl_id: str | None = None) -> list[Transition]:
        ctx = self._context(crawl_id)
        return ctx.transitions if ctx else []

    def interaction_log(self, crawl_id: str | None = None) -> list[InteractionRecord]:
        ctx = self._context(crawl_id)
        return ctx.interactions if ctx else []

    def state_variable_changes(self, crawl_id: str | None = None) -> list[StateVariableChange]:
        """Web storage, cookie and hidden input changes seen during exploration."""
        ctx = self._context(crawl_id)
        return ctx.variable_changes if ctx else []

    @property
    def statistics(self) -> dict[str, Any]:
        return {
            "active_runs": len(self._active),
            "finished_runs": len(self._results) - len(self._active),
            "resolver": self._resolver.statistics,
            "pool": self._pool.statistics,
        }

    def _context(self, crawl_id: str | None) -> CrawlContext | None:
        if crawl_id is not None:
            return self._results.get(crawl_id)
        if not self._results:
            return None
        return next(reversed(self._results.values()))

    def _finish(self, ctx: CrawlContext) -> None:
        self._active.pop(ctx.crawl_id, None)
        self._last_summary = ctx.summary()
        self._log.info("Run finished", **self._last_summary.to_dict())

    def _save_page(self, page: Page) -> None:
        self._flow_analyzer.record_page(page)
        if self._repository is None:
            return
        self._repository.save_page(page)
        for component in page.components:
            if component.fingerprint is not None:
                self._repository.save_fingerprint(page.id, component.fingerprint)

    def _emit_transition(self, ctx: CrawlContext, transition: Transition) -> None:
        ctx.record_transition(transition)
        self._flow_analyzer.record(transition)
        if self._repository is not None:
            self._repository.save_transition(transition)
