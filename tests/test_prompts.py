"""
Tests for prompt construction and journey test planning.

Tests cover:
- Identifier sanitization
- Page prompts by page type
- Journey prompts, including pages missing from the lookup
- Draft planning and synthesis through a collaborator
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from autoexplore.crawler.models import Page, PageType, Transition, TransitionKind, UIComponent
from autoexplore.discovery.flow_analyzer import UserJourney
from autoexplore.generative.prompts import JourneyTestPlanner, PromptBuilder, sanitize_name
from autoexplore.generative.prompts import TestCaseDraft as CaseDraft
from autoexplore.generative.prompts import TestSynthesizer as Synthesizer


def _input(name: str, subtype: str = "text") -> UIComponent:
    return UIComponent(
        type="input", subtype=subtype, name=name, locator=f"//*[@name='{name}']"
    )


@pytest.fixture
def login_page() -> Page:
    return Page(
        url="http://app.test/login",
        title="Sign in",
        id="login",
        page_type=PageType.LOGIN,
        components=(
            _input("username"),
            _input("password", "password"),
            _input("remember", "checkbox"),
            UIComponent(type="button", subtype="submit", text="Sign in", locator="//button[1]"),
        ),
    )


@pytest.fixture
def journey() -> UserJourney:
    return UserJourney(
        transitions=[
            Transition(
                "login", "dash", TransitionKind.FORM_SUBMISSION, "Click button 'Login'",
                element_locator="//button[1]", is_form_submission=True, id="t1",
            ),
            Transition("dash", "reports", TransitionKind.NAVIGATION, "Click link 'Reports'",
                       id="t2"),
        ],
        name="Login to Reports!",
        description="Click button 'Login'; then Click link 'Reports'",
        id="journey-1",
    )


class TestSanitizeName:
    """Tests for sanitize_name."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Login to Dashboard", "login_to_dashboard"),
            ("  --Checkout!!  ", "checkout"),
            ("404 page", "page_404_page"),
            ("", "unknown"),
            ("???", "unknown"),
        ],
    )
    def test_sanitize(self, text: str, expected: str) -> None:
        assert sanitize_name(text) == expected

    def test_length_is_capped(self) -> None:
        name = sanitize_name("word " * 20)

        assert len(name) <= 30
        assert not name.endswith("_")


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_login_prompt(self, login_page: Page) -> None:
        prompt = PromptBuilder().page_prompt(login_page)

        assert prompt.startswith(
            "Generate a pytest and Selenium WebDriver test for a login page"
        )
        assert "Page URL: http://app.test/login" in prompt
        assert "input (text): username" in prompt
        assert "Test value: Password123!" in prompt
        assert "remember" not in prompt
        assert "Login button locator: //button[1]" in prompt

    def test_framework_is_configurable(self, login_page: Page) -> None:
        prompt = PromptBuilder(framework="Playwright").page_prompt(login_page)

        assert prompt.startswith("Generate a Playwright test")

    def test_form_prompt(self) -> None:
        page = Page(
            url="http://app.test/signup",
            title="Sign up",
            page_type=PageType.FORM,
            components=(_input("first_name"), _input("email", "email")),
        )

        prompt = PromptBuilder().page_prompt(page)

        assert "form submission" in prompt
        assert "Test value: Test first_name" in prompt
        assert "Test value: test@example.com" in prompt
        assert "Submit button" not in prompt

    def test_listing_prompt(self) -> None:
        page = Page(
            url="http://app.test/orders",
            title="Orders",
            page_type=PageType.LISTING,
            components=(
                UIComponent(type="table", locator="//table[1]", child_count=20),
                UIComponent(type="link", name="order-1", locator="//a[1]"),
            ),
        )

        prompt = PromptBuilder().page_prompt(page)

        assert "listing page" in prompt
        assert "Table locator: //table[1]" in prompt
        assert "Open the first entry" in prompt

    def test_dashboard_prompt(self) -> None:
        page = Page(
            url="http://app.test/dash",
            title="Dashboard",
            page_type=PageType.DASHBOARD,
            components=(UIComponent(type="chart", locator="//canvas[1]"),),
        )

        prompt = PromptBuilder().page_prompt(page)

        assert "test for a dashboard page" in prompt
        assert "Take a screenshot" in prompt

    def test_other_pages_list_interactions(self) -> None:
        page = Page(
            url="http://app.test/misc",
            components=(
                UIComponent(type="button", subtype="button", text="Go", locator="//button[1]"),
            ),
        )

        prompt = PromptBuilder().page_prompt(page)

        assert "component interactions" in prompt
        assert "Page Title: (untitled)" in prompt
        assert "Type: button (button)" in prompt

    def test_journey_prompt(self, login_page: Page, journey: UserJourney) -> None:
        pages = {"login": login_page, "dash": Page(url="http://app.test/dash", title="Home")}

        prompt = PromptBuilder().journey_prompt(journey, pages)

        assert "Journey name: Login to Reports!" in prompt
        assert "Priority: high" in prompt
        assert "Step 1: Click button 'Login'" in prompt
        assert "Source page: Sign in (http://app.test/login)" in prompt
        assert "Element locator: //button[1]" in prompt
        assert "This step submits a form." in prompt
        assert "Step 2: Click link 'Reports'" in prompt
        assert "Expected result: Unknown page (reports)" in prompt


class TestJourneyTestPlanner:
    """Tests for JourneyTestPlanner."""

    def test_draft(self, journey: UserJourney) -> None:
        draft = JourneyTestPlanner().draft(journey, {})

        assert isinstance(draft, CaseDraft)
        assert draft.method_name == "test_login_to_reports"
        assert draft.priority == "high"
        assert draft.steps == ["Click button 'Login'", "Click link 'Reports'"]
        assert draft.journey_id == "journey-1"
        assert draft.prompt.startswith("Generate a pytest and Selenium WebDriver end-to-end test")
        assert draft.to_dict()["has_source"] is False

    @pytest.mark.asyncio
    async def test_generate_without_synthesizer(self, journey: UserJourney) -> None:
        draft = await JourneyTestPlanner().generate(journey, {})

        assert draft.source is None

    @pytest.mark.asyncio
    async def test_generate_with_synthesizer(self, journey: UserJourney) -> None:
        """Test the synthesized source is stored untouched."""
        synthesizer = AsyncMock()
        synthesizer.generate.return_value = "def test_login(): ..."
        planner = JourneyTestPlanner(synthesizer, max_tokens=512)

        [draft] = await planner.generate_all([journey], {})

        assert draft.source == "def test_login(): ..."
        synthesizer.generate.assert_awaited_once_with(draft.prompt, 512)
        assert draft.to_dict()["has_source"] is True

    def test_synthesizer_protocol(self) -> None:
        class EchoSynthesizer:
            async def generate(self, prompt: str, max_tokens: int) -> str:
                return prompt

        assert isinstance(EchoSynthesizer(), Synthesizer)
