"""Tests for URL normalization and state signatures."""

from __future__ import annotations

import pytest
from fakes import FakeBrowser, FakeDocument, FakeNode, FakeSite

from autoexplore.config import SignaturePolicy
from autoexplore.crawler.state import StateFingerprintEngine, normalize_url


class TestNormalizeUrl:
    """Tests for normalize_url."""

    def test_drops_fragment_and_trailing_slash(self) -> None:
        assert normalize_url("http://App.test/products/#top") == "http://app.test/products"

    def test_sorts_query_parameters(self) -> None:
        assert normalize_url("http://app.test/s?b=2&a=1") == "http://app.test/s?a=1&b=2"

    def test_can_drop_query(self) -> None:
        assert normalize_url("http://app.test/s?b=2", include_query=False) == "http://app.test/s"

    def test_root_variants_are_equal(self) -> None:
        assert normalize_url("http://app.test/") == normalize_url("http://app.test")


class TestStateFingerprintEngine:
    """Tests for signature composition."""

    def test_same_observations_give_same_signature(self) -> None:
        engine = StateFingerprintEngine()

        first = engine.compose("http://app.test/a/", "Hello   world", 3)
        second = engine.compose("http://app.test/a", "Hello world", 3)

        assert first == second
        assert first.digest == second.digest
        assert len(first.short_id) == 12

    def test_interactive_count_changes_signature(self) -> None:
        engine = StateFingerprintEngine()
        signature = engine.compose("http://app.test", "x", 3)
        assert signature != engine.compose("http://app.test", "x", 4)

    def test_text_changes_signature(self) -> None:
        engine = StateFingerprintEngine()
        first = engine.compose("http://app.test", "Cart: 1 item", 3)
        second = engine.compose("http://app.test", "Cart: 2 items", 3)
        assert first.digest != second.digest

    def test_mask_digits_policy(self) -> None:
        """Test clock-like text does not create new states when masked."""
        engine = StateFingerprintEngine(SignaturePolicy(mask_digits=True))

        first = engine.compose("http://app.test", "Updated 10:41", 2)
        second = engine.compose("http://app.test", "Updated 10:42", 2)

        assert first == second

    def test_text_limit_policy(self) -> None:
        engine = StateFingerprintEngine(SignaturePolicy(text_limit=5))
        assert engine.text_digest("Hello world") == engine.text_digest("Hello there")

    @pytest.mark.asyncio
    async def test_signature_from_live_session(self) -> None:
        """Test revealing a field produces a different signature."""
        hidden = FakeNode("textarea", {"name": "reason"}, displayed=False)

        def build(url: str) -> FakeDocument:
            doc = FakeDocument(url=url, title="Form", body_text="Tell us more")
            doc.add(FakeNode("input", {"name": "email", "type": "email"}))
            doc.add(hidden)
            return doc

        browser = FakeBrowser(FakeSite({"http://app.test/form": build}))
        await browser.navigate("http://app.test/form")
        engine = StateFingerprintEngine()

        before = await engine.signature(browser)
        hidden.displayed = True
        after = await engine.signature(browser)

        assert before.interactive_count == 1
        assert after.interactive_count == 2
        assert before.url == after.url == "http://app.test/form"
        assert before != after
