"""
Element identity resolution with staged, verified fallbacks.

Relocates a previously fingerprinted element after its locator stopped
working. Stages are tried in order and every candidate is re-captured and
compared against the recorded fingerprint; nothing is returned unverified.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import structlog

from autoexplore.config import MatchThresholds
from autoexplore.healing.fingerprint import (
    ATTRIBUTE_ALLOW_LIST,
    CSS_PROPERTIES,
    ElementFingerprint,
    normalize_text,
)
from autoexplore.healing.visual import region_hash
from autoexplore.webdriver import probes
from autoexplore.webdriver.errors import NoSuchElementError, WebDriverError

if TYPE_CHECKING:
    from autoexplore.webdriver.client import RemoteElement, WebDriverClient

logger = structlog.get_logger(__name__)

_CSS_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")

Candidate = tuple["RemoteElement", str]
StageFinder = Callable[["WebDriverClient", ElementFingerprint], Awaitable[list[Candidate]]]


class ResolutionStage(StrEnum):
    """Fallback stages, in the order they are tried."""

    ORIGINAL_LOCATOR = "original_locator"
    ID_LOOKUP = "id_lookup"
    TEXT_MATCH = "text_match"
    ATTRIBUTE_CONJUNCTION = "attribute_conjunction"


class ElementNotFound(Exception):
    """Raised when every resolution stage failed to verify a candidate."""

    def __init__(self, fingerprint: ElementFingerprint, candidates_evaluated: int = 0) -> None:
        super().__init__(f"Element not found: {fingerprint.locator}")
        self.fingerprint = fingerprint
        self.candidates_evaluated = candidates_evaluated


@dataclass
class Found:
    """A verified element."""

    element: RemoteElement
    locator: str
    stage: ResolutionStage
    fingerprint: ElementFingerprint
    """Fingerprint re-captured from the live element."""

    candidates_evaluated: int = 0
    resolution_time_ms: int = 0

    @property
    def healed(self) -> bool:
        return self.stage != ResolutionStage.ORIGINAL_LOCATOR

    def __bool__(self) -> bool:
        return True


@dataclass
class NotFound:
    """No candidate survived verification."""

    locator: str
    candidates_evaluated: int = 0
    resolution_time_ms: int = 0
    reason: str = "No candidate matched the recorded fingerprint"

    def __bool__(self) -> bool:
        return False


Resolution = Found | NotFound


class ElementIdentityResolver:
    """
    Captures element fingerprints and relocates elements from them.

    Resolution stages:
    1. The original locator
    2. Id lookup, if an id was recorded
    3. Same-tag elements whose visible text equals the recorded text
    4. A locator conjoining every recorded attribute

    Usage:
        resolver = ElementIdentityResolver()
        fingerprint = await resolver.capture(handle, "#submit")
        outcome = await resolver.resolve(handle, fingerprint)
        if outcome:
            await outcome.element.click()
    """

    MAX_CANDIDATES_PER_STAGE = 25

    def __init__(
        self,
        thresholds: MatchThresholds | None = None,
        capture_visual: bool = True,
    ) -> None:
        self._thresholds = thresholds or MatchThresholds()
        self._thresholds.validate()
        self._capture_visual = capture_visual
        self._log = logger.bind(component="identity_resolver")

        self._stages: list[tuple[ResolutionStage, StageFinder]] = [
            (ResolutionStage.ORIGINAL_LOCATOR, self._by_original_locator),
            (ResolutionStage.ID_LOOKUP, self._by_id),
            (ResolutionStage.TEXT_MATCH, self._by_text),
            (ResolutionStage.ATTRIBUTE_CONJUNCTION, self._by_attributes),
        ]

        self._stats: dict[str, int] = {
            "captures": 0,
            "resolutions": 0,
            "not_found": 0,
            **{f"found_{stage.value}": 0 for stage in ResolutionStage},
        }

    @property
    def thresholds(self) -> MatchThresholds:
        return self._thresholds

    @property
    def statistics(self) -> dict[str, Any]:
        """Get capture and resolution counters."""
        healed = sum(
            self._stats[f"found_{stage.value}"]
            for stage in ResolutionStage
            if stage != ResolutionStage.ORIGINAL_LOCATOR
        )
        return {**self._stats, "healed": healed}

    async def capture(
        self,
        handle: WebDriverClient,
        locator: str,
        *,
        screenshot: bytes | None = None,
    ) -> ElementFingerprint | None:
        """
        Fingerprint the element a locator currently points at.

        Args:
            handle: Browser session
            locator: CSS selector or XPath
            screenshot: Page screenshot to reuse for the visual hash

        Returns:
            The fingerprint, or None when the locator matches nothing
        """
        try:
            element = await handle.find_element(locator)
        except NoSuchElementError:
            return None
        except WebDriverError as e:
            self._log.debug("Capture lookup failed", locator=locator, error=str(e))
            return None

        try:
            return await self.capture_element(handle, element, locator, screenshot=screenshot)
        except WebDriverError as e:
            self._log.debug("Capture failed", locator=locator, error=str(e))
            return None

    async def capture_element(
        self,
        handle: WebDriverClient,
        element: RemoteElement,
        locator: str,
        *,
        screenshot: bytes | None = None,
        include_visual: bool | None = None,
    ) -> ElementFingerprint:
        """Fingerprint an element reference that is already in hand."""
        self._stats["captures"] += 1
        tag_name = await element.tag_name()
        text = (await element.text()).strip()

        attributes: dict[str, str] = {}
        for name in ATTRIBUTE_ALLOW_LIST:
            value = await element.attribute(name)
            if value:
                attributes[name] = value

        rect = await element.rect()
        properties: dict[str, float] = dict(rect)
        for name in CSS_PROPERTIES:
            number = _css_number(await element.css_value(name))
            if number is not None:
                properties[name] = number

        parent = await probes.parent_descriptor(handle, element)

        visual: str | None = None
        want_visual = self._capture_visual if include_visual is None else include_visual
        if want_visual and await element.is_displayed():
            png = screenshot if screenshot is not None else await handle.screenshot()
            try:
                visual = region_hash(png, rect)
            except OSError as e:
                self._log.debug("Screenshot could not be decoded", error=str(e))

        return ElementFingerprint(
            locator=locator,
            tag_name=tag_name,
            element_id=attributes.get("id", ""),
            name=attributes.get("name", ""),
            text=text,
            attributes=attributes,
            properties=properties,
            parent_signature=parent,
            visual_signature=visual,
        )

    async def resolve(
        self,
        handle: WebDriverClient,
        fingerprint: ElementFingerprint,
    ) -> Resolution:
        """
        Relocate the element a fingerprint was captured from.

        A NotFound outcome means the element is currently absent; it is not
        an error.
        """
        start_time = time.monotonic()
        self._stats["resolutions"] += 1
        evaluated = 0

        for stage, finder in self._stages:
            try:
                candidates = await finder(handle, fingerprint)
            except WebDriverError as e:
                self._log.debug("Resolution stage failed", stage=stage, error=str(e))
                continue

            for element, locator in candidates[: self.MAX_CANDIDATES_PER_STAGE]:
                evaluated += 1
                try:
                    current = await self.capture_element(
                        handle,
                        element,
                        locator,
                        include_visual=fingerprint.visual_signature is not None
                        and self._capture_visual,
                    )
                except WebDriverError as e:
                    self._log.debug("Candidate vanished", stage=stage, error=str(e))
                    continue

                if not fingerprint.matches(current, self._thresholds):
                    continue

                elapsed = int((time.monotonic() - start_time) * 1000)
                self._stats[f"found_{stage.value}"] += 1
                if stage != ResolutionStage.ORIGINAL_LOCATOR:
                    self._log.info(
                        "Element healed",
                        original=fingerprint.locator,
                        healed=locator,
                        stage=stage,
                        candidates=evaluated,
                    )
                return Found(
                    element=element,
                    locator=locator,
                    stage=stage,
                    fingerprint=current,
                    candidates_evaluated=evaluated,
                    resolution_time_ms=elapsed,
                )

        self._stats["not_found"] += 1
        elapsed = int((time.monotonic() - start_time) * 1000)
        self._log.debug(
            "Element not resolved",
            locator=fingerprint.locator,
            candidates=evaluated,
            time_ms=elapsed,
        )
        return NotFound(
            locator=fingerprint.locator,
            candidates_evaluated=evaluated,
            resolution_time_ms=elapsed,
        )

    async def resolve_or_raise(
        self,
        handle: WebDriverClient,
        fingerprint: ElementFingerprint,
    ) -> Found:
        """Like :meth:`resolve`, raising ElementNotFound on failure."""
        outcome = await self.resolve(handle, fingerprint)
        if isinstance(outcome, NotFound):
            raise ElementNotFound(fingerprint, outcome.candidates_evaluated)
        return outcome

    def matches(self, recorded: ElementFingerprint, candidate: ElementFingerprint) -> bool:
        """Compare two fingerprints with this resolver's thresholds."""
        return recorded.matches(candidate, self._thresholds)

    async def _by_original_locator(
        self, handle: WebDriverClient, fingerprint: ElementFingerprint
    ) -> list[Candidate]:
        found = await handle.find_elements(fingerprint.locator)
        return [(element, fingerprint.locator) for element in found[:1]]

    async def _by_id(
        self, handle: WebDriverClient, fingerprint: ElementFingerprint
    ) -> list[Candidate]:
        if not fingerprint.element_id:
            return []
        locator = f"//*[@id={xpath_literal(fingerprint.element_id)}]"
        return [(element, locator) for element in await handle.find_elements(locator)]

    async def _by_text(
        self, handle: WebDriverClient, fingerprint: ElementFingerprint
    ) -> list[Candidate]:
        wanted = normalize_text(fingerprint.text)
        if not wanted:
            return []

        candidates: list[Candidate] = []
        for element in await handle.find_elements_by_tag(fingerprint.tag_name):
            if normalize_text(await element.text()) != wanted:
                continue
            locator = await probes.element_xpath(handle, element) or fingerprint.locator
            candidates.append((element, locator))
            if len(candidates) >= self.MAX_CANDIDATES_PER_STAGE:
                break
        return candidates

    async def _by_attributes(
        self, handle: WebDriverClient, fingerprint: ElementFingerprint
    ) -> list[Candidate]:
        if not fingerprint.attributes:
            return []
        conditions = " and ".join(
            f"@{name}={xpath_literal(value)}"
            for name, value in sorted(fingerprint.attributes.items())
        )
        locator = f"//{fingerprint.tag_name}[{conditions}]"
        return [(element, locator) for element in await handle.find_elements(locator)]


def xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath expression."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"


def _css_number(value: str) -> float | None:
    match = _CSS_NUMBER.match(value or "")
    return float(match.group(1)) if match else None
