"""
Prompts for external test synthesis.

Builds structured prompts from pages and journeys and hands them to a
text-synthesis collaborator. The synthesized source is stored as-is and
never inspected.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog
from jinja2 import Environment, PackageLoader, select_autoescape

from autoexplore.crawler.models import PageType
from autoexplore.discovery.flow_analyzer import priority_label

if TYPE_CHECKING:
    from collections.abc import Mapping

    from autoexplore.crawler.models import Page, UIComponent
    from autoexplore.discovery.flow_analyzer import UserJourney

logger = structlog.get_logger(__name__)

DEFAULT_FRAMEWORK = "pytest and Selenium WebDriver"
DEFAULT_MAX_TOKENS = 2000
MAX_NAME_LENGTH = 30

_NON_WORD = re.compile(r"[^A-Za-z0-9]+")
_BLANK_LINES = re.compile(r"\n{3,}")


@runtime_checkable
class TestSynthesizer(Protocol):
    """Text-synthesis service: prompt in, test source out."""

    async def generate(self, prompt: str, max_tokens: int) -> str: ...


def sanitize_name(text: str) -> str:
    """
    Turn free text into an identifier fragment.

    Non-alphanumeric runs become underscores, names not starting with a
    letter get a ``page_`` prefix, and the result is capped in length.
    """
    sanitized = _NON_WORD.sub("_", text or "").strip("_").lower()
    if not sanitized:
        return "unknown"
    if not sanitized[0].isalpha():
        sanitized = f"page_{sanitized}"
    return sanitized[:MAX_NAME_LENGTH].rstrip("_")


@dataclass
class TestCaseDraft:
    """A test case planned from a journey, optionally with synthesized source."""

    name: str
    method_name: str
    description: str
    priority: str
    steps: list[str] = field(default_factory=list)
    journey_id: str = ""
    prompt: str = ""
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "method_name": self.method_name,
            "description": self.description,
            "priority": self.priority,
            "steps": list(self.steps),
            "journey_id": self.journey_id,
            "has_source": self.source is not None,
        }


class PromptBuilder:
    """Renders page and journey prompts from package templates."""

    def __init__(self, framework: str = DEFAULT_FRAMEWORK) -> None:
        self._framework = framework
        self._env = Environment(
            loader=PackageLoader("autoexplore.generative", "templates"),
            autoescape=select_autoescape(),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def page_prompt(self, page: Page) -> str:
        """Prompt for a single page, shaped by its page type."""
        fields = [c for c in page.components if c.is_form_field and c.subtype != "checkbox"]
        submit = _submit_button(page.components)

        match page.page_type:
            case PageType.LOGIN:
                return self._render("page_login.j2", page=page, fields=fields, submit=submit)
            case PageType.FORM:
                return self._render("page_form.j2", page=page, fields=fields, submit=submit)
            case PageType.LISTING:
                return self._render(
                    "page_listing.j2",
                    page=page,
                    tables=[c for c in page.components if c.type == "table"],
                    links=[c for c in page.components if c.type == "link"][:5],
                )
            case PageType.DETAIL | PageType.DASHBOARD:
                return self._render(
                    "page_detail.j2",
                    page=page,
                    components=[c for c in page.components if c.type != "form"][:15],
                )
            case _:
                return self._render(
                    "page_interactions.j2",
                    page=page,
                    components=page.interactive_components[:15],
                )

    def journey_prompt(self, journey: UserJourney, pages: Mapping[str, Page]) -> str:
        """Prompt for an end-to-end journey; unknown pages are shown by id."""
        steps = []
        for transition in journey.transitions:
            source = pages.get(transition.source_page_id)
            target = pages.get(transition.target_page_id)
            steps.append({
                "transition": transition,
                "source_title": source.title if source else "Unknown page",
                "source_url": source.url if source else transition.source_page_id,
                "target_title": target.title if target else "Unknown page",
                "target_url": target.url if target else transition.target_page_id,
            })
        return self._render("journey.j2", journey=journey, steps=steps)

    def _render(self, template_name: str, **context: Any) -> str:
        template = self._env.get_template(template_name)
        text = template.render(framework=self._framework, **context)
        return _BLANK_LINES.sub("\n\n", text).strip() + "\n"


class JourneyTestPlanner:
    """
    Converts journeys into test case drafts.

    Usage:
        planner = JourneyTestPlanner(synthesizer)
        drafts = await planner.generate_all(journeys, pages_by_id)
    """

    def __init__(
        self,
        synthesizer: TestSynthesizer | None = None,
        prompt_builder: PromptBuilder | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> None:
        self._synthesizer = synthesizer
        self._prompts = prompt_builder or PromptBuilder()
        self._max_tokens = max_tokens
        self._log = logger.bind(component="journey_test_planner")

    def draft(self, journey: UserJourney, pages: Mapping[str, Page]) -> TestCaseDraft:
        """Plan a test case for a journey without synthesizing source."""
        name = sanitize_name(journey.name)
        return TestCaseDraft(
            name=f"test_{name}",
            method_name=f"test_{name}",
            description=journey.description,
            priority=priority_label(journey.priority_score),
            steps=[t.description for t in journey.transitions],
            journey_id=journey.id,
            prompt=self._prompts.journey_prompt(journey, pages),
        )

    async def generate(self, journey: UserJourney, pages: Mapping[str, Page]) -> TestCaseDraft:
        """Plan a test case and ask the synthesizer for its source."""
        draft = self.draft(journey, pages)
        if self._synthesizer is None:
            return draft

        self._log.info("Synthesizing journey test", journey=journey.name)
        draft.source = await self._synthesizer.generate(draft.prompt, self._max_tokens)
        return draft

    async def generate_all(
        self,
        journeys: list[UserJourney],
        pages: Mapping[str, Page],
    ) -> list[TestCaseDraft]:
        drafts = [await self.generate(journey, pages) for journey in journeys]
        self._log.info("Journey tests planned", count=len(drafts))
        return drafts


def _submit_button(components: tuple[UIComponent, ...]) -> UIComponent | None:
    for component in components:
        if component.type == "button" and component.subtype in ("submit", "image"):
            return component
    return None
