"""
Tests for the breadth link crawl.

Tests cover:
- Frontier exhaustion and exact page counts
- Page budget and wall-clock budget
- Cycles and duplicate links under concurrency
- Authentication and cookie seeding
- Session failures
"""

from __future__ import annotations

import pytest
from fakes import (
    FakeBrowser,
    FakeDocument,
    FakeNode,
    FakeSessionFactory,
    FakeSite,
    link_page,
)

from autoexplore.concurrency.session_pool import BrowserSessionPool, SessionCreationError
from autoexplore.config import AuthConfig, ExplorerConfig
from autoexplore.crawler.context import StopReason
from autoexplore.crawler.explorer import InteractiveExplorer
from autoexplore.crawler.models import TransitionKind
from autoexplore.storage.repository import InMemoryExplorationRepository

BASE = "http://app.test/"


class TestLinkCrawl:
    """Tests for InteractiveExplorer.crawl."""

    @pytest.mark.asyncio
    async def test_chain_visits_each_page_once(
        self, make_pool, chain_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        """Test A -> B -> C with a large budget yields exactly three pages."""
        pool, _ = make_pool(chain_site)
        explorer = InteractiveExplorer(pool, fast_config.with_overrides(max_pages=10))

        pages = await explorer.crawl(BASE)

        assert sorted(p.title for p in pages) == ["Checkout", "Home", "Products"]
        assert explorer.last_summary is not None
        assert explorer.last_summary.stop_reason == StopReason.COMPLETED
        assert not explorer.is_active

    @pytest.mark.asyncio
    async def test_link_transitions_recorded(
        self, make_pool, chain_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        pool, _ = make_pool(chain_site)
        repository = InMemoryExplorationRepository()
        explorer = InteractiveExplorer(pool, fast_config, repository=repository)

        pages = await explorer.crawl(BASE)
        by_title = {p.title: p for p in pages}
        transitions = explorer.transitions()

        edges = {(t.source_page_id, t.target_page_id) for t in transitions}
        assert edges == {
            (by_title["Home"].id, by_title["Products"].id),
            (by_title["Products"].id, by_title["Checkout"].id),
        }
        assert all(t.kind == TransitionKind.NAVIGATION for t in transitions)
        assert len(repository.pages) == 3
        assert len(repository.transitions) == 2
        assert repository.find_page_by_url("http://app.test/b") == by_title["Products"]
        assert explorer.flow_analyzer.title_of(by_title["Home"].id, "") == "Home"

    @pytest.mark.asyncio
    async def test_page_budget(self, make_pool, fast_config: ExplorerConfig) -> None:
        """Test the crawl stops at max_pages distinct URLs."""
        site = FakeSite({
            f"http://app.test/p{i}": link_page(f"Page {i}", f"/p{i + 1}") for i in range(10)
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.crawl("http://app.test/p0", max_pages=3)

        assert len(pages) == 3
        assert explorer.last_summary is not None
        assert explorer.last_summary.stop_reason == StopReason.BUDGET_EXHAUSTED

    @pytest.mark.asyncio
    async def test_cyclic_site_terminates(self, make_pool, fast_config: ExplorerConfig) -> None:
        """Test pages linking to each other are crawled once each."""
        site = FakeSite({
            BASE: link_page("Home", "/a", "/b"),
            "http://app.test/a": link_page("A", "/", "/b"),
            "http://app.test/b": link_page("B", "/", "/a"),
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.crawl(BASE)

        assert len(pages) == 3
        assert len(site.loads) == 3

    @pytest.mark.asyncio
    async def test_duplicate_links_under_concurrency(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test many workers racing on shared links load every URL once."""
        shared = [f"/item/{i}" for i in range(8)]
        site = FakeSite({BASE: link_page("Hub", *[f"/list/{n}" for n in range(6)])})
        for n in range(6):
            site.add(f"http://app.test/list/{n}", link_page(f"List {n}", *shared))
        for href in shared:
            site.add(f"http://app.test{href}", link_page(href, "/", *shared))
        pool, _ = make_pool(site)
        config = fast_config.with_overrides(max_concurrent_crawlers=6)
        explorer = InteractiveExplorer(pool, config)

        pages = await explorer.crawl(BASE)

        assert len(pages) == 1 + 6 + 8
        assert len(site.loads) == len(set(site.loads)) == 15

    @pytest.mark.asyncio
    async def test_wall_clock_budget_returns_partial_results(self, make_pool) -> None:
        """Test an endless site is abandoned when the run times out."""
        site = FakeSite({
            f"http://app.test/p{i}": link_page(f"Page {i}", f"/p{i + 1}") for i in range(500)
        })
        config = ExplorerConfig(
            crawl_timeout_seconds=0.3,
            delay_between_requests_ms=100,
            poll_interval_seconds=0.01,
            capture_visual_signatures=False,
            max_concurrent_crawlers=2,
        )
        pool, _ = make_pool(site, config)
        explorer = InteractiveExplorer(pool, config)

        pages = await explorer.crawl("http://app.test/p0")

        assert 1 <= len(pages) < 10
        assert explorer.last_summary is not None
        assert explorer.last_summary.stop_reason == StopReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_external_and_excluded_links_skipped(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        site = FakeSite({
            BASE: link_page(
                "Home", "/about", "http://other.test/x", "/logout", "mailto:team@app.test"
            ),
            "http://app.test/about": link_page("About"),
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.crawl(BASE)

        assert sorted(p.title for p in pages) == ["About", "Home"]

    @pytest.mark.asyncio
    async def test_session_failure_surfaces_when_nothing_crawled(self) -> None:
        factory = FakeSessionFactory(FakeSite(), fail_full=True, fail_minimal=True)
        config = ExplorerConfig(delay_between_requests_ms=0, capture_visual_signatures=False)
        async with BrowserSessionPool(config, session_factory=factory) as pool:
            explorer = InteractiveExplorer(pool, config)

            with pytest.raises(SessionCreationError):
                await explorer.crawl(BASE)

        assert explorer.last_summary is not None
        assert explorer.last_summary.errors

    @pytest.mark.asyncio
    async def test_unexpected_page_error_is_recorded(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test a page that fails for a non-browser reason does not abort its siblings."""

        def crashing(url: str) -> FakeDocument:
            raise RuntimeError("render crashed")

        site = FakeSite({
            BASE: link_page("Home", "/broken", "/ok"),
            "http://app.test/broken": crashing,
            "http://app.test/ok": link_page("OK"),
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.crawl(BASE)

        assert sorted(p.title for p in pages) == ["Home", "OK"]
        assert explorer.last_summary is not None
        assert explorer.last_summary.errors == ["http://app.test/broken: render crashed"]
        assert explorer.last_summary.stop_reason == StopReason.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_unknown_run(
        self, make_pool, chain_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        pool, _ = make_pool(chain_site)
        explorer = InteractiveExplorer(pool, fast_config)

        assert not explorer.stop("missing")
        assert not explorer.stop()


class TestAuthenticatedCrawl:
    """Tests for login before crawling."""

    @staticmethod
    def _site() -> FakeSite:
        def sign_in(browser: FakeBrowser, node: FakeNode) -> None:
            browser.cookies.append({"name": "session", "value": "s3cr3t"})
            browser.go("/dashboard")

        def login(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Sign in")
            doc.add(FakeNode("input", {"name": "username", "type": "text"}))
            doc.add(FakeNode("input", {"name": "password", "type": "password"}))
            doc.add(FakeNode("button", {"type": "submit"}, text="Sign in", on_click=sign_in))
            return doc

        return FakeSite({
            "http://app.test/login": login,
            "http://app.test/dashboard": link_page("Dashboard", "/reports", "/billing"),
            "http://app.test/reports": link_page("Reports"),
            "http://app.test/billing": link_page("Billing"),
        })

    @pytest.mark.asyncio
    async def test_login_cookies_seed_crawl_sessions(self, make_pool) -> None:
        """Test the crawl logs in once and seeds every new session."""
        config = ExplorerConfig(
            delay_between_requests_ms=20,
            poll_interval_seconds=0.01,
            capture_visual_signatures=False,
            max_concurrent_crawlers=2,
            auth=AuthConfig(
                username="alice",
                password="wonderland",
                login_url="http://app.test/login",
            ),
        )
        pool, factory = make_pool(self._site(), config)
        explorer = InteractiveExplorer(pool, config)

        pages = await explorer.crawl("http://app.test/dashboard")

        assert sorted(p.title for p in pages) == ["Billing", "Dashboard", "Reports"]
        assert [text for _, text in factory.created[0].typed] == ["alice", "wonderland"]
        assert len(factory.created) == 2
        assert factory.created[1].typed == []
        for browser in factory.created:
            assert {"name": "session", "value": "s3cr3t"} in browser.cookies

    @pytest.mark.asyncio
    async def test_failed_login_still_crawls(self, make_pool) -> None:
        """Test a login page without a form is not fatal."""
        site = FakeSite({
            "http://app.test/login": link_page("Sign in"),
            "http://app.test/home": link_page("Home"),
        })
        config = ExplorerConfig(
            delay_between_requests_ms=0,
            capture_visual_signatures=False,
            auth=AuthConfig(username="a", password="b", login_url="http://app.test/login"),
        )
        pool, _ = make_pool(site, config)
        explorer = InteractiveExplorer(pool, config)

        pages = await explorer.crawl("http://app.test/home")

        assert [p.title for p in pages] == ["Home"]
        assert explorer.last_summary is not None
        assert any("authentication" in e for e in explorer.last_summary.errors)

    @pytest.mark.asyncio
    async def test_login_without_session_is_recorded(self) -> None:
        """Test a session failure during login is reported like other login failures."""
        factory = FakeSessionFactory(self._site(), fail_full=True, fail_minimal=True)
        config = ExplorerConfig(
            delay_between_requests_ms=0,
            capture_visual_signatures=False,
            auth=AuthConfig(username="a", password="b", login_url="http://app.test/login"),
        )
        async with BrowserSessionPool(config, session_factory=factory) as pool:
            explorer = InteractiveExplorer(pool, config)

            with pytest.raises(SessionCreationError):
                await explorer.crawl("http://app.test/dashboard")

        assert explorer.last_summary is not None
        errors = explorer.last_summary.errors
        assert errors[0].startswith("authentication: ")
        assert errors[1].startswith("http://app.test/dashboard: ")
