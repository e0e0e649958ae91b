"""
Tests for depth-bounded interactive exploration.

Tests cover:
- Same-state deduplication
- Backtracking between sibling interactions
- Same-URL states reached through DOM changes
- Field dependency inference from form interactions
- New windows, depth limits and form exclusion
- Rebuilding drifted states and abandoning lost ones
- Client-side state variable tracking and form submissions
"""

from __future__ import annotations

import pytest
from fakes import FakeBrowser, FakeDocument, FakeNode, FakeSite, link_page

from autoexplore.config import ExplorerConfig
from autoexplore.crawler.context import StopReason
from autoexplore.crawler.explorer import InteractiveExplorer
from autoexplore.crawler.models import TransitionKind
from autoexplore.discovery.dependencies import (
    DependencyEffect,
    StorageKind,
    VariableDependency,
    VariableRelationship,
)
from autoexplore.discovery.transformations import TransformationKind
from autoexplore.webdriver.errors import WebDriverError

FORM_URL = "http://app.test/feedback"


def _reveal_reason(browser: FakeBrowser, node: FakeNode) -> None:
    for other in browser.document.nodes:
        if other.attrs.get("name") == "reason":
            other.displayed = node.selected


def feedback_page(url: str) -> FakeDocument:
    """A link, a checkbox and a textarea the checkbox reveals."""
    doc = FakeDocument(url=url, title="Feedback", body_text="Tell us what you think")
    doc.add(FakeNode("a", {"href": "/thanks"}, text="Skip"))
    doc.add(FakeNode(
        "input",
        {"name": "has_reason", "type": "checkbox"},
        on_click=_reveal_reason,
    ))
    doc.add(FakeNode("textarea", {"name": "reason"}, displayed=False))
    return doc


@pytest.fixture
def feedback_site() -> FakeSite:
    return FakeSite({
        FORM_URL: feedback_page,
        "http://app.test/thanks": link_page("Thanks"),
    })


class TestDepthExploration:
    """Tests for InteractiveExplorer.explore."""

    @pytest.mark.asyncio
    async def test_checkbox_reveals_dependent_field(
        self, make_pool, feedback_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        """Test toggling a checkbox yields exactly one field dependency."""
        pool, _ = make_pool(feedback_site)
        explorer = InteractiveExplorer(pool, fast_config)

        await explorer.explore(FORM_URL, max_depth=2)
        dependencies = explorer.flow_analyzer.infer_field_dependencies(
            explorer.interaction_log()
        )

        assert [d.as_pair() for d in dependencies] == [("reason", "has_reason")]
        assert dependencies[0].effect == DependencyEffect.VISIBILITY
        assert dependencies[0].page_url == FORM_URL

    @pytest.mark.asyncio
    async def test_dom_change_creates_same_url_state(
        self, make_pool, feedback_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        """Test a revealed field is a new state under the same URL."""
        pool, _ = make_pool(feedback_site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore(FORM_URL, max_depth=2)

        keys = sorted(p.key for p in pages)
        assert keys[0] == FORM_URL
        assert keys[1].startswith(f"{FORM_URL}#state-")
        assert keys[2] == "http://app.test/thanks"

        kinds = {t.kind for t in explorer.transitions()}
        assert TransitionKind.STATE_CHANGE in kinds
        assert TransitionKind.NAVIGATION in kinds
        assert explorer.last_summary is not None
        assert explorer.last_summary.stop_reason == StopReason.COMPLETED

    @pytest.mark.asyncio
    async def test_backtracking_restores_origin_for_siblings(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test every sibling link is clicked from the original page."""
        site = FakeSite({
            "http://app.test/menu": link_page("Menu", "/one", "/two", "/three"),
            "http://app.test/one": link_page("One"),
            "http://app.test/two": link_page("Two"),
            "http://app.test/three": link_page("Three"),
        })
        pool, factory = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/menu", max_depth=1)

        assert sorted(p.title for p in pages) == ["Menu", "One", "Three", "Two"]
        assert len(explorer.transitions()) == 3
        browser = factory.created[0]
        assert browser.clicks == [
            "/html/body/a[1]",
            "/html/body/a[2]",
            "/html/body/a[3]",
        ]
        assert browser.document.url == "http://app.test/menu"

    @pytest.mark.asyncio
    async def test_duplicate_state_is_not_materialized_twice(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test two links to the same page give one page and two transitions."""
        site = FakeSite({
            "http://app.test/": link_page("Home", "/pricing", "/pricing#plans"),
            "http://app.test/pricing": link_page("Pricing"),
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/", max_depth=2)
        pricing = next(p for p in pages if p.title == "Pricing")

        assert len(pages) == 2
        transitions = explorer.transitions()
        assert len(transitions) == 2
        assert all(t.target_page_id == pricing.id for t in transitions)

    @pytest.mark.asyncio
    async def test_include_forms_false_skips_fields(
        self, make_pool, feedback_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        pool, factory = make_pool(feedback_site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore(FORM_URL, include_forms=False)

        assert sorted(p.title for p in pages) == ["Feedback", "Thanks"]
        assert explorer.interaction_log() == []
        assert factory.created[0].clicks == ["/html/body/a[1]"]

    @pytest.mark.asyncio
    async def test_new_window_is_closed_after_exploring(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test a link opening a new window is explored and its window closed."""

        def open_help(browser: FakeBrowser, node: FakeNode) -> None:
            browser.open_window("http://app.test/help")

        def home(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Home")
            doc.add(FakeNode("button", {"id": "help", "type": "button"}, text="Help",
                             on_click=open_help))
            return doc

        site = FakeSite({"http://app.test/": home, "http://app.test/help": link_page("Help")})
        pool, factory = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/", max_depth=2)

        assert sorted(p.title for p in pages) == ["Help", "Home"]
        assert explorer.transitions()[0].kind == TransitionKind.NAVIGATION
        browser = factory.created[0]
        assert await browser.window_handles() == ["main"]
        assert await browser.current_window_handle() == "main"

    @pytest.mark.asyncio
    async def test_max_depth_bounds_descent(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        site = FakeSite({
            f"http://app.test/d{i}": link_page(f"Depth {i}", f"/d{i + 1}") for i in range(6)
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/d0", max_depth=2)

        assert sorted(p.title for p in pages) == ["Depth 0", "Depth 1", "Depth 2"]

    @pytest.mark.asyncio
    async def test_page_budget_stops_exploration(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        site = FakeSite({
            "http://app.test/": link_page("Home", "/a", "/b", "/c"),
            "http://app.test/a": link_page("A"),
            "http://app.test/b": link_page("B"),
            "http://app.test/c": link_page("C"),
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config.with_overrides(max_pages=2))

        pages = await explorer.explore("http://app.test/", max_depth=2)

        assert len(pages) == 2
        assert explorer.last_summary is not None
        assert explorer.last_summary.stop_reason == StopReason.BUDGET_EXHAUSTED

    @pytest.mark.asyncio
    async def test_failed_interaction_is_recorded_and_skipped(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test one broken element does not end the run."""

        def broken(browser: FakeBrowser, node: FakeNode) -> None:
            raise RuntimeError("handler crashed")

        def home(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Home")
            doc.add(FakeNode("button", {"id": "broken"}, text="Broken", on_click=broken))
            doc.add(FakeNode("a", {"href": "/next"}, text="Next"))
            return doc

        site = FakeSite({"http://app.test/": home, "http://app.test/next": link_page("Next")})
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/", max_depth=2)

        assert sorted(p.title for p in pages) == ["Home", "Next"]
        assert explorer.last_summary is not None
        assert any("handler crashed" in e for e in explorer.last_summary.errors)

    @pytest.mark.asyncio
    async def test_results_available_after_run(
        self, make_pool, feedback_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        pool, _ = make_pool(feedback_site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore(FORM_URL, crawl_id="run-1")

        assert explorer.current_results("run-1") == pages
        assert explorer.transitions("run-1") == explorer.transitions()
        assert explorer.statistics["finished_runs"] == 1
        assert not explorer.stop("run-1")

    @pytest.mark.asyncio
    async def test_state_reached_in_place_is_rebuilt_after_navigation(
        self, make_pool, feedback_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        """Test fields revealed by a toggle are still explored after a link left the page."""
        pool, factory = make_pool(feedback_site)
        explorer = InteractiveExplorer(pool, fast_config)

        await explorer.explore(FORM_URL, max_depth=3)

        browser = factory.created[0]
        assert [locator for locator, _ in browser.typed] == ["/html/body/textarea[1]"]
        assert explorer.last_summary is not None
        assert explorer.last_summary.errors == []

    @pytest.mark.asyncio
    async def test_unrestorable_state_abandons_branch(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        """Test a state that cannot be rebuilt is skipped instead of explored from elsewhere."""
        expanded: list[bool] = []

        def expand_once(browser: FakeBrowser, node: FakeNode) -> None:
            if expanded:
                return
            expanded.append(True)
            for other in browser.document.nodes:
                if other.tag == "a":
                    other.displayed = True

        def menu(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Menu")
            doc.add(FakeNode("button", {"id": "expand"}, text="Expand", on_click=expand_once))
            doc.add(FakeNode("a", {"href": "/one"}, text="One", displayed=False))
            doc.add(FakeNode("a", {"href": "/two"}, text="Two", displayed=False))
            return doc

        site = FakeSite({
            "http://app.test/menu": menu,
            "http://app.test/one": link_page("One"),
            "http://app.test/two": link_page("Two"),
        })
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/menu", max_depth=3)

        assert sorted(p.title for p in pages) == ["Menu", "Menu", "One"]
        assert explorer.last_summary is not None
        assert any("could not restore state" in e for e in explorer.last_summary.errors)

    @pytest.mark.asyncio
    async def test_unreachable_start_page_is_recorded(
        self, make_pool, chain_site: FakeSite, fast_config: ExplorerConfig, monkeypatch
    ) -> None:
        async def refuse(self: FakeBrowser, url: str) -> None:
            raise WebDriverError("net::ERR_CONNECTION_REFUSED")

        monkeypatch.setattr(FakeBrowser, "navigate", refuse)
        pool, _ = make_pool(chain_site)
        explorer = InteractiveExplorer(pool, fast_config)

        pages = await explorer.explore("http://app.test/")

        assert pages == []
        assert explorer.last_summary is not None
        assert explorer.last_summary.errors == [
            "http://app.test/: net::ERR_CONNECTION_REFUSED"
        ]


class TestStateVariableTracking:
    """Tests for web storage, cookie and hidden input tracking."""

    @staticmethod
    def _shop_site() -> FakeSite:
        def add_to_cart(browser: FakeBrowser, node: FakeNode) -> None:
            browser.local_storage["cart"] = "sku-1"
            browser.local_storage["cart_count"] = "1"

        def shop(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Shop", body_text="Coffee beans")
            doc.add(FakeNode("button", {"id": "add"}, text="Add to cart", on_click=add_to_cart))
            return doc

        return FakeSite({"http://app.test/shop": shop})

    @pytest.mark.asyncio
    async def test_storage_changes_are_recorded(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        pool, _ = make_pool(self._shop_site())
        explorer = InteractiveExplorer(pool, fast_config)

        await explorer.explore("http://app.test/shop", max_depth=2)
        changes = explorer.state_variable_changes()

        assert [(c.storage, c.name, c.previous, c.current) for c in changes] == [
            (StorageKind.LOCAL_STORAGE, "cart", None, "sku-1"),
            (StorageKind.LOCAL_STORAGE, "cart_count", None, "1"),
        ]
        assert {c.trigger for c in changes} == {"Click button 'Add to cart'"}
        assert changes[0].interaction == changes[1].interaction
        assert changes[0].page_url == "http://app.test/shop"

    @pytest.mark.asyncio
    async def test_variable_dependencies_from_exploration(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        pool, _ = make_pool(self._shop_site())
        explorer = InteractiveExplorer(pool, fast_config)

        await explorer.explore("http://app.test/shop", max_depth=2)
        dependencies = explorer.flow_analyzer.infer_variable_dependencies(
            explorer.state_variable_changes()
        )

        assert dependencies == [
            VariableDependency(
                "localStorage:cart", "localStorage:cart_count", VariableRelationship.CHANGES_WITH
            ),
            VariableDependency(
                "localStorage:cart", "localStorage:cart_count", VariableRelationship.CONTROLS
            ),
        ]

    @pytest.mark.asyncio
    async def test_tracking_can_be_disabled(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        config = fast_config.with_overrides(track_state_variables=False)
        pool, _ = make_pool(self._shop_site(), config)
        explorer = InteractiveExplorer(pool, config)

        await explorer.explore("http://app.test/shop", max_depth=2)

        assert explorer.state_variable_changes() == []


class TestFormSubmission:
    """Tests for InteractiveExplorer.track_form_submission."""

    @pytest.mark.asyncio
    async def test_submitted_values_reappear_transformed(
        self, make_pool, fast_config: ExplorerConfig
    ) -> None:
        received: dict[str, str] = {}

        def place_order(browser: FakeBrowser, node: FakeNode) -> None:
            for field_node in browser.document.nodes:
                if field_node.tag == "input":
                    received[field_node.attrs["name"]] = field_node.value
            browser.go("/done")

        def order(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Order")
            doc.add(FakeNode("input", {"name": "email", "type": "email"}))
            doc.add(FakeNode("input", {"name": "delivery", "type": "date"}))
            doc.add(FakeNode("input", {"name": "city", "type": "text"}))
            doc.add(FakeNode("button", {"type": "submit"}, text="Place order",
                             on_click=place_order))
            return doc

        def done(url: str) -> FakeDocument:
            return FakeDocument(
                url=url,
                title="Done",
                body_text=(
                    "Order confirmed for test@example.com\n"
                    "Delivery on 06/15/2023\n"
                    "Shipping to TEST CITY"
                ),
            )

        site = FakeSite({"http://app.test/order": order, "http://app.test/done": done})
        pool, _ = make_pool(site)
        explorer = InteractiveExplorer(pool, fast_config)

        submission = await explorer.track_form_submission("http://app.test/order")

        assert received == {
            "email": "test@example.com",
            "delivery": "2023-06-15",
            "city": "Test city",
        }
        assert submission.changed
        assert submission.target_url == "http://app.test/done"
        assert [(t.field_name, t.kind, t.target_value) for t in submission.transformations] == [
            ("email", TransformationKind.EXPANSION, "Order confirmed for test@example.com"),
            ("delivery", TransformationKind.DATE_FORMATTING, "06/15/2023"),
            ("city", TransformationKind.CASE_FORMATTING, "TEST CITY"),
        ]

    @pytest.mark.asyncio
    async def test_page_without_submit_button(
        self, make_pool, feedback_site: FakeSite, fast_config: ExplorerConfig
    ) -> None:
        pool, _ = make_pool(feedback_site)
        explorer = InteractiveExplorer(pool, fast_config)

        submission = await explorer.track_form_submission(FORM_URL)

        assert not submission.changed
        assert submission.transformations == []
        assert submission.to_dict()["source_url"] == FORM_URL
