"""
Form submission tracking.

Fills the visible text fields and selects of a page with synthetic values,
submits the form and reports how the submitted values reappear on the page
the submission leads to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from autoexplore.crawler.errors import InteractionFailure
from autoexplore.crawler.interactions import ElementDescriptor, InteractionKind, perform
from autoexplore.crawler.state import normalize_url
from autoexplore.discovery.transformations import DataTransformation, detect_transformations
from autoexplore.webdriver import probes
from autoexplore.webdriver.client import wait_until
from autoexplore.webdriver.errors import NavigationTimeout, WebDriverError

if TYPE_CHECKING:
    from autoexplore.config import ExplorerConfig
    from autoexplore.crawler.state import StateFingerprintEngine
    from autoexplore.webdriver.client import WebDriverClient

logger = structlog.get_logger(__name__)

_FILLABLE = (InteractionKind.TEXT_INPUT, InteractionKind.SELECT)


@dataclass
class FormSubmission:
    """Outcome of one fill-and-submit run."""

    source_url: str
    target_url: str = ""
    """URL after submission; empty when nothing changed."""

    submitted: dict[str, str] = field(default_factory=dict)
    """Field key to the value entered."""

    transformations: list[DataTransformation] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.target_url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_url": self.source_url,
            "target_url": self.target_url,
            "submitted": dict(self.submitted),
            "transformations": [t.to_dict() for t in self.transformations],
        }


class FormSubmissionTracker:
    """
    Submits the form on a page and looks for data transformations.

    Usage:
        tracker = FormSubmissionTracker(signatures, config)
        submission = await tracker.run(handle, "https://app.example.com/signup")
    """

    def __init__(self, signatures: StateFingerprintEngine, config: ExplorerConfig) -> None:
        self._signatures = signatures
        self._config = config
        self._log = logger.bind(component="form_submission")

    async def run(self, handle: WebDriverClient, url: str) -> FormSubmission:
        """
        Fill, submit and inspect the form at ``url``.

        Fields that reject input are skipped. Without a visible submit
        button, or when submitting changes nothing, no transformations are
        reported.

        Raises:
            WebDriverError: If the page could not be loaded or inspected
        """
        try:
            await handle.navigate(url)
        except NavigationTimeout:
            self._log.warning("Page load timed out, continuing", url=url)

        result = FormSubmission(source_url=url)
        descriptors = [
            ElementDescriptor.from_probe(data) for data in await probes.interactive_elements(handle)
        ]

        for descriptor in descriptors:
            if not descriptor.displayed or descriptor.kind not in _FILLABLE:
                continue
            try:
                element = await handle.find_element(descriptor.locator)
                action = await perform(element, descriptor)
            except (WebDriverError, InteractionFailure) as e:
                self._log.warning("Could not fill field", field=descriptor.field_key, error=str(e))
                continue
            if action.value is not None:
                result.submitted[descriptor.field_key] = action.value

        submit = next((d for d in descriptors if d.displayed and d.is_submit), None)
        if submit is None:
            self._log.warning("No submit button found", url=url)
            return result

        origin = normalize_url(await handle.current_url())
        before = await self._signatures.signature(handle)
        await perform(await handle.find_element(submit.locator), submit)

        async def submitted() -> bool:
            if normalize_url(await handle.current_url()) != origin:
                return True
            return (await self._signatures.signature(handle)).digest != before.digest

        if not await wait_until(
            submitted,
            timeout=self._config.page_load_timeout_seconds,
            poll_interval=self._config.poll_interval_seconds,
        ):
            self._log.warning("Submission changed nothing", url=url, submit=submit.locator)
            return result

        result.target_url = await handle.current_url()
        text = await probes.visible_text(handle)
        result.transformations = detect_transformations(
            result.submitted, text, page_url=result.target_url
        )
        self._log.info(
            "Form submission tracked",
            url=url,
            target_url=result.target_url,
            fields=len(result.submitted),
            transformations=len(result.transformations),
        )
        return result
