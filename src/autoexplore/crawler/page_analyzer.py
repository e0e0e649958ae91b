"""
Page analysis: turns the DOM of the current page into a Page.

Extracts form fields, buttons, links and other interactive elements,
fingerprints every interactive component, collects same-domain links and
classifies the page.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlparse

import structlog

from autoexplore.crawler.models import Page, UIComponent, classify_page
from autoexplore.crawler.state import normalize_url
from autoexplore.webdriver import probes
from autoexplore.webdriver.errors import WebDriverError

if TYPE_CHECKING:
    from autoexplore.config import ExplorerConfig
    from autoexplore.healing.resolver import ElementIdentityResolver
    from autoexplore.storage.screenshots import ScreenshotStore
    from autoexplore.webdriver.client import WebDriverClient

logger = structlog.get_logger(__name__)

_BUTTON_INPUT_TYPES = frozenset({"submit", "button", "reset", "image"})


def component_type(descriptor: dict[str, Any]) -> tuple[str, str] | None:
    """
    Map a probe descriptor onto (type, subtype).

    Returns None for elements that are not recorded, such as hidden inputs.
    """
    tag = descriptor.get("tag", "")
    input_type = descriptor.get("type", "")
    class_name = descriptor.get("class_name", "").lower()

    if tag == "input":
        if input_type == "hidden":
            return None
        if input_type in _BUTTON_INPUT_TYPES:
            return "button", input_type
        return "input", input_type or "text"
    if tag in ("select", "textarea", "form", "table"):
        return tag, ""
    if tag == "button":
        return "button", input_type or "submit"
    if tag == "a":
        return "link", ""
    if tag == "canvas" or "chart" in class_name:
        return "chart", ""
    return "interactive", tag


class PageAnalyzer:
    """Builds Page objects from a live session."""

    def __init__(
        self,
        resolver: ElementIdentityResolver,
        config: ExplorerConfig,
        screenshot_store: ScreenshotStore | None = None,
    ) -> None:
        self._resolver = resolver
        self._config = config
        self._screenshots = screenshot_store
        self._log = logger.bind(component="page_analyzer")

    async def analyze(
        self,
        handle: WebDriverClient,
        base_url: str,
        *,
        state_key: str = "",
    ) -> Page:
        """
        Analyze the page currently loaded in ``handle``.

        Args:
            handle: Browser session positioned on the page
            base_url: Crawl root; links on other hosts are dropped
            state_key: Registry key for same-URL states

        Returns:
            The analyzed, immutable Page
        """
        url = await handle.current_url()
        title = await handle.title()
        description = await probes.meta_description(handle)

        screenshot: bytes | None = None
        if self._config.capture_visual_signatures or self._config.take_screenshots:
            try:
                screenshot = await handle.screenshot()
            except WebDriverError as e:
                self._log.debug("Screenshot failed", url=url, error=str(e))

        components = await self.extract_components(handle, screenshot)
        linked_urls = await self.discover_links(handle, base_url)

        page = Page(
            url=normalize_url(url),
            title=title,
            description=description,
            components=tuple(components),
            linked_urls=frozenset(linked_urls),
            page_type=classify_page(url, title, components, linked_urls),
            state_key=state_key,
        )

        if self._config.take_screenshots and self._screenshots and screenshot:
            path = await self._screenshots.save(page.id, screenshot)
            page = replace(page, screenshot_path=str(path))

        self._log.debug(
            "Page analyzed",
            url=page.url,
            page_type=page.page_type,
            components=len(page.components),
            links=len(page.linked_urls),
        )
        return page

    async def extract_components(
        self,
        handle: WebDriverClient,
        screenshot: bytes | None = None,
    ) -> list[UIComponent]:
        components: list[UIComponent] = []
        for descriptor in await probes.components(handle):
            mapped = component_type(descriptor)
            if mapped is None:
                continue
            kind, subtype = mapped
            locator = descriptor.get("locator", "")

            component = UIComponent(
                type=kind,
                subtype=subtype,
                locator=locator,
                name=descriptor.get("name", ""),
                element_id=descriptor.get("id", ""),
                class_name=descriptor.get("class_name", ""),
                text=descriptor.get("text", ""),
                options=tuple(descriptor.get("options", [])),
                child_count=int(descriptor.get("child_count", 0)),
                form_id=descriptor.get("form_id", ""),
                required=bool(descriptor.get("required", False)),
                validation_pattern=descriptor.get("pattern", ""),
                displayed=bool(descriptor.get("displayed", True)),
            )
            if component.is_interactive and locator:
                fingerprint = await self._resolver.capture(handle, locator, screenshot=screenshot)
                if fingerprint is not None:
                    component = replace(component, fingerprint=fingerprint)
            components.append(component)
        return components

    async def discover_links(self, handle: WebDriverClient, base_url: str) -> set[str]:
        """Collect normalized same-host links that are not excluded."""
        current = await handle.current_url()
        base_host = urlparse(base_url).netloc.lower()
        found: set[str] = set()

        for href in await probes.links(handle):
            absolute = urljoin(current, href)
            parsed = urlparse(absolute)
            if parsed.scheme not in ("http", "https"):
                continue
            if parsed.netloc.lower() != base_host:
                continue
            if self._config.should_exclude_url(absolute):
                continue
            found.add(normalize_url(absolute))

        return found

