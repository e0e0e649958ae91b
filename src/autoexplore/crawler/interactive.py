"""
Depth-bounded interactive exploration on a single browser session.

Performs clicks, form fills, selections and toggles, detects whether the
application moved to a new state, records the transition and walks into
new states depth-first. The walk uses an explicit stack of frames; every
frame remembers how to get back to its parent state so that sibling
interactions always start from the state they were enumerated in. A state
that drifted anyway is rebuilt by reloading the nearest URL on the path and
replaying the in-place interactions recorded since.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Callable

import structlog

from autoexplore.crawler.context import StopReason
from autoexplore.crawler.interactions import (
    ActionResult,
    ElementDescriptor,
    InteractionKind,
    perform,
    prioritize,
    undo,
)
from autoexplore.crawler.models import (
    FieldSnapshot,
    InteractionRecord,
    Page,
    Transition,
    TransitionKind,
)
from autoexplore.crawler.state import normalize_url
from autoexplore.discovery.dependencies import (
    StateVariableChange,
    StorageKind,
    diff_state_variables,
)
from autoexplore.healing.resolver import Found
from autoexplore.webdriver import probes
from autoexplore.webdriver.client import wait_until
from autoexplore.webdriver.errors import NavigationTimeout, NoSuchElementError, WebDriverError

if TYPE_CHECKING:
    from autoexplore.config import ExplorerConfig
    from autoexplore.crawler.context import CrawlContext
    from autoexplore.crawler.page_analyzer import PageAnalyzer
    from autoexplore.crawler.state import StateFingerprintEngine, StateSignature
    from autoexplore.discovery.dependencies import StateSnapshot
    from autoexplore.healing.fingerprint import ElementFingerprint
    from autoexplore.healing.resolver import ElementIdentityResolver
    from autoexplore.webdriver.client import RemoteElement, WebDriverClient

logger = structlog.get_logger(__name__)

_PAGE_STORAGE = (StorageKind.LOCAL_STORAGE, StorageKind.SESSION_STORAGE, StorageKind.HIDDEN_FIELD)


class ChangeKind(StrEnum):
    """Signal that revealed a state change, in detection priority."""

    NEW_WINDOW = "new_window"
    URL_CHANGE = "url_change"
    DOM_CHANGE = "dom_change"


@dataclass
class RestorePlan:
    """Everything needed to return from a child state to its parent."""

    change: ChangeKind
    origin_url: str
    origin_signature: StateSignature
    origin_window: str
    origin_windows: frozenset[str]
    descriptor: ElementDescriptor
    action: ActionResult


@dataclass
class _Frame:
    page: Page
    signature: StateSignature
    url: str
    depth: int
    candidates: list[ElementDescriptor]
    fingerprints: dict[str, ElementFingerprint] = field(default_factory=dict)
    cursor: int = 0
    restore: RestorePlan | None = None
    """How to get back to the parent frame; None for the root."""

    @property
    def reached_in_place(self) -> bool:
        """Whether this state was reached without leaving the parent's URL."""
        return self.restore is not None and self.restore.change == ChangeKind.DOM_CHANGE


@dataclass(frozen=True)
class _Change:
    kind: ChangeKind
    new_windows: frozenset[str] = frozenset()


class DepthExplorer:
    """
    Sequential interactive explorer.

    One instance drives one session; runs on separate sessions are
    independent because all shared state lives in their CrawlContext.
    """

    def __init__(
        self,
        analyzer: PageAnalyzer,
        signatures: StateFingerprintEngine,
        resolver: ElementIdentityResolver,
        config: ExplorerConfig,
        on_page: Callable[[Page], None] | None = None,
        on_transition: Callable[[CrawlContext, Transition], None] | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._signatures = signatures
        self._resolver = resolver
        self._config = config
        self._on_page = on_page
        self._on_transition = on_transition
        self._sequence = itertools.count(1)
        self._log = logger.bind(component="depth_explorer")

    async def run(
        self,
        ctx: CrawlContext,
        handle: WebDriverClient,
        start_url: str,
        *,
        max_depth: int,
        include_forms: bool,
        max_interactions_per_page: int,
    ) -> list[Page]:
        """
        Explore from ``start_url`` until the frontier, depth, budget or time runs out.

        Returns:
            Pages materialized during this run; empty with an error recorded
            when the start page could not be loaded
        """
        self._log.info(
            "Starting interactive exploration",
            crawl_id=ctx.crawl_id,
            start_url=start_url,
            max_depth=max_depth,
            include_forms=include_forms,
        )

        try:
            await self._navigate(handle, start_url)
            ctx.claim_url(start_url)
            signature = await self._signatures.signature(handle)
            ctx.claim_state(signature)
            root_page = await self._materialize(ctx, handle, signature)
            if root_page is None:
                return ctx.pages
            stack = [
                await self._frame(handle, root_page, signature, 0, max_interactions_per_page)
            ]
        except WebDriverError as e:
            ctx.record_error(f"{start_url}: {e}")
            self._log.error("Could not load start page", url=start_url, error=str(e))
            return ctx.pages

        while stack:
            if self._should_stop(ctx):
                break

            frame = stack[-1]
            if frame.cursor >= len(frame.candidates):
                stack.pop()
                if frame.restore is not None:
                    await self._backtrack(handle, frame.restore)
                self._log.debug("Branch exhausted", url=frame.url, depth=frame.depth)
                continue

            descriptor = frame.candidates[frame.cursor]
            frame.cursor += 1

            if descriptor.is_form_element and not include_forms:
                continue

            try:
                before = await self._ensure_state(handle, stack)
                if before is None:
                    stack.pop()
                    ctx.record_error(
                        f"{frame.url}: could not restore state {frame.signature.short_id}"
                    )
                    self._log.warning(
                        "State lost, abandoning branch", url=frame.url, depth=frame.depth
                    )
                    continue
                child = await self._interact(
                    ctx, handle, frame, descriptor, before, max_depth, max_interactions_per_page
                )
            except Exception as e:
                ctx.record_error(f"{descriptor.describe()}: {e}")
                self._log.warning(
                    "Interaction failed",
                    url=frame.url,
                    element=descriptor.locator,
                    error=str(e),
                )
                continue

            if child is not None:
                stack.append(child)

        self._log.info(
            "Interactive exploration finished",
            crawl_id=ctx.crawl_id,
            pages=ctx.page_count,
            transitions=len(ctx.transitions),
            reason=ctx.stop_reason or StopReason.COMPLETED,
        )
        return ctx.pages

    async def _interact(
        self,
        ctx: CrawlContext,
        handle: WebDriverClient,
        frame: _Frame,
        descriptor: ElementDescriptor,
        before: StateSignature,
        max_depth: int,
        max_interactions_per_page: int,
    ) -> _Frame | None:
        """
        Perform one interaction from ``frame``'s state and handle its outcome.

        Returns a child frame to descend into, or None when the interaction
        led nowhere new or the branch was already restored.
        """
        element = await self._locate(handle, frame, descriptor)
        if element is None or not await element.is_displayed():
            return None

        windows = frozenset(await handle.window_handles())
        origin_window = await handle.current_window_handle()
        url_before = await handle.current_url()

        fields_before: list[FieldSnapshot] = []
        if descriptor.is_form_element:
            fields_before = await self._field_snapshot(handle)
        track_variables = self._config.track_state_variables
        variables_before = await self._state_variables(handle) if track_variables else {}

        action = await perform(element, descriptor)
        change = await self._detect_change(handle, windows, url_before, before)

        if descriptor.is_form_element:
            ctx.record_interaction(
                InteractionRecord(
                    page_url=frame.url,
                    controller=descriptor.field_key,
                    before=tuple(fields_before),
                    after=tuple(await self._field_snapshot(handle)),
                )
            )
        if track_variables:
            self._record_variable_changes(
                ctx, frame, descriptor, variables_before, await self._state_variables(handle)
            )

        if change is None:
            return None

        plan = RestorePlan(
            change=change.kind,
            origin_url=url_before,
            origin_signature=before,
            origin_window=origin_window,
            origin_windows=windows,
            descriptor=descriptor,
            action=action,
        )
        if change.kind == ChangeKind.NEW_WINDOW:
            await handle.switch_to_window(sorted(change.new_windows)[0])

        after = await self._signatures.signature(handle)
        kind = self._transition_kind(change.kind, descriptor)

        if not ctx.claim_state(after):
            target_id = ctx.page_id_for_state(after)
            if target_id and target_id != frame.page.id:
                self._emit(ctx, frame.page, target_id, kind, descriptor)
            self._log.debug("State already visited", url=after.url, state=after.short_id)
            await self._backtrack(handle, plan)
            return None

        if not ctx.has_page_budget():
            ctx.request_stop(StopReason.BUDGET_EXHAUSTED)
            await self._backtrack(handle, plan)
            return None

        page = await self._materialize(ctx, handle, after)
        if page is None:
            await self._backtrack(handle, plan)
            return None
        self._emit(ctx, frame.page, page.id, kind, descriptor)

        depth = frame.depth + 1
        if depth >= max_depth or self._should_stop(ctx):
            await self._backtrack(handle, plan)
            return None

        child = await self._frame(handle, page, after, depth, max_interactions_per_page)
        child.restore = plan
        return child

    async def _frame(
        self,
        handle: WebDriverClient,
        page: Page,
        signature: StateSignature,
        depth: int,
        limit: int,
    ) -> _Frame:
        descriptors = [
            ElementDescriptor.from_probe(data) for data in await probes.interactive_elements(handle)
        ]
        fingerprints = {
            c.locator: c.fingerprint for c in page.components if c.fingerprint is not None
        }
        return _Frame(
            page=page,
            signature=signature,
            url=await handle.current_url(),
            depth=depth,
            candidates=prioritize(descriptors, limit),
            fingerprints=fingerprints,
        )

    async def _materialize(
        self,
        ctx: CrawlContext,
        handle: WebDriverClient,
        signature: StateSignature,
    ) -> Page | None:
        """Analyze the current state and register it as a page."""
        key = signature.url
        if ctx.page_by_key(key) is not None:
            key = f"{signature.url}#state-{signature.short_id}"

        page = await self._analyzer.analyze(handle, ctx.base_url, state_key=key)
        stored = ctx.register_page(page)
        ctx.bind_state(signature, stored.id)
        if stored is not page:
            return None

        if self._on_page is not None:
            self._on_page(page)
        self._log.debug("State materialized", url=page.url, state=signature.short_id)
        return page

    async def _locate(
        self,
        handle: WebDriverClient,
        frame: _Frame,
        descriptor: ElementDescriptor,
    ) -> RemoteElement | None:
        """Find the element by its locator, healing through its fingerprint if needed."""
        try:
            element = await handle.find_element(descriptor.locator)
            if (await element.tag_name()).lower() == descriptor.tag:
                return element
        except NoSuchElementError:
            pass

        fingerprint = frame.fingerprints.get(descriptor.locator)
        if fingerprint is None:
            return None

        outcome = await self._resolver.resolve(handle, fingerprint)
        if isinstance(outcome, Found):
            return outcome.element
        self._log.debug("Element currently absent", locator=descriptor.locator)
        return None

    async def _ensure_state(
        self, handle: WebDriverClient, stack: list[_Frame]
    ) -> StateSignature | None:
        """
        Return the current signature once the top frame's state is current.

        A drifted state is rebuilt by loading the URL of the nearest frame
        reached by navigation and replaying the in-place interactions that
        led from it to the top frame. Returns None if the rebuilt state
        still differs.
        """
        frame = stack[-1]
        current = await self._signatures.signature(handle)
        if current.digest == frame.signature.digest:
            return current

        self._log.debug("State drifted, replaying", url=frame.url, depth=frame.depth)
        if not await self._replay(handle, stack):
            return None
        return await self._signatures.signature(handle)

    async def _replay(self, handle: WebDriverClient, stack: list[_Frame]) -> bool:
        start = len(stack) - 1
        while start > 0 and stack[start].reached_in_place:
            start -= 1

        await self._navigate(handle, stack[start].url)
        if not await self._reached(handle, stack[start].signature):
            return False

        for parent, child in zip(stack[start:], stack[start + 1 :]):
            plan = child.restore
            if plan is None:
                return False
            element = await self._locate(handle, parent, plan.descriptor)
            if element is None:
                self._log.debug("Replay step missing", locator=plan.descriptor.locator)
                return False
            await perform(element, plan.descriptor)
            if not await self._reached(handle, child.signature):
                return False
        return True

    async def _reached(self, handle: WebDriverClient, signature: StateSignature) -> bool:
        """Wait for the current state to match ``signature``."""

        async def matches() -> bool:
            current = await self._signatures.signature(handle)
            return current.digest == signature.digest

        return await wait_until(
            matches,
            timeout=self._config.change_detection_timeout_seconds,
            poll_interval=self._config.poll_interval_seconds,
        )

    async def _detect_change(
        self,
        handle: WebDriverClient,
        windows: frozenset[str],
        url_before: str,
        before: StateSignature,
    ) -> _Change | None:
        """
        Wait for a state change after an interaction.

        Signals are checked in priority order on every poll: a new window,
        a URL change, then a signature change.
        """
        detected: list[_Change] = []
        origin = normalize_url(url_before)

        async def changed() -> bool:
            current = frozenset(await handle.window_handles())
            if current - windows:
                detected.append(_Change(ChangeKind.NEW_WINDOW, current - windows))
                return True
            if normalize_url(await handle.current_url()) != origin:
                detected.append(_Change(ChangeKind.URL_CHANGE))
                return True
            if (await self._signatures.signature(handle)).digest != before.digest:
                detected.append(_Change(ChangeKind.DOM_CHANGE))
                return True
            return False

        found = await wait_until(
            changed,
            timeout=self._config.change_detection_timeout_seconds,
            poll_interval=self._config.poll_interval_seconds,
        )
        return detected[-1] if found else None

    async def _backtrack(self, handle: WebDriverClient, plan: RestorePlan) -> None:
        """Restore the state the interaction started from; best effort."""
        try:
            match plan.change:
                case ChangeKind.NEW_WINDOW:
                    await self._close_new_windows(handle, plan)
                case ChangeKind.URL_CHANGE:
                    await self._go_back(handle, plan)
                case ChangeKind.DOM_CHANGE:
                    await self._revert_in_place(handle, plan)
        except WebDriverError as e:
            self._log.warning(
                "Backtrack failed, reloading origin", url=plan.origin_url, error=str(e)
            )
            try:
                await self._navigate(handle, plan.origin_url)
            except WebDriverError as e2:
                self._log.error(
                    "Could not restore origin state", url=plan.origin_url, error=str(e2)
                )

    async def _close_new_windows(self, handle: WebDriverClient, plan: RestorePlan) -> None:
        for window in await handle.window_handles():
            if window in plan.origin_windows:
                continue
            await handle.switch_to_window(window)
            await handle.close_window()
        await handle.switch_to_window(plan.origin_window)

    async def _go_back(self, handle: WebDriverClient, plan: RestorePlan) -> None:
        origin = normalize_url(plan.origin_url)

        async def returned() -> bool:
            return normalize_url(await handle.current_url()) == origin

        await handle.back()
        if not await wait_until(
            returned,
            timeout=self._config.page_load_timeout_seconds,
            poll_interval=self._config.poll_interval_seconds,
        ):
            self._log.debug("Back did not reach origin, navigating", url=plan.origin_url)
            await self._navigate(handle, plan.origin_url)

    async def _revert_in_place(self, handle: WebDriverClient, plan: RestorePlan) -> None:
        reverted = False
        if plan.action.kind in (InteractionKind.TOGGLE, InteractionKind.SELECT):
            try:
                element = await handle.find_element(plan.descriptor.locator)
                reverted = await undo(element, plan.action)
            except WebDriverError as e:
                self._log.debug("Undo failed", locator=plan.descriptor.locator, error=str(e))

        if reverted and await self._reached(handle, plan.origin_signature):
            return

        self._log.debug("Refreshing to restore state", url=plan.origin_url)
        await handle.refresh()

    async def _field_snapshot(self, handle: WebDriverClient) -> list[FieldSnapshot]:
        return [FieldSnapshot.from_probe(data) for data in await probes.field_state(handle)]

    async def _state_variables(self, handle: WebDriverClient) -> StateSnapshot:
        """Web storage, hidden inputs and cookies of the current page."""
        snapshot: dict[tuple[StorageKind, str], str] = {}
        storage = await probes.storage_state(handle)
        for kind in _PAGE_STORAGE:
            for name, value in storage.get(kind.value, {}).items():
                snapshot[(kind, name)] = value
        for cookie in await handle.get_cookies():
            snapshot[(StorageKind.COOKIE, str(cookie.get("name", "")))] = str(
                cookie.get("value", "")
            )
        return snapshot

    def _record_variable_changes(
        self,
        ctx: CrawlContext,
        frame: _Frame,
        descriptor: ElementDescriptor,
        before: StateSnapshot,
        after: StateSnapshot,
    ) -> None:
        diff = diff_state_variables(before, after)
        if not diff:
            return
        sequence = next(self._sequence)
        ctx.record_variable_changes([
            StateVariableChange(
                storage=storage,
                name=name,
                page_url=frame.url,
                trigger=descriptor.describe(),
                previous=previous,
                current=current,
                interaction=sequence,
            )
            for storage, name, previous, current in diff
        ])
        self._log.debug(
            "State variables changed",
            url=frame.url,
            element=descriptor.locator,
            variables=[f"{storage.value}:{name}" for storage, name, _, _ in diff],
        )

    async def _navigate(self, handle: WebDriverClient, url: str) -> None:
        try:
            await handle.navigate(url)
        except NavigationTimeout:
            self._log.warning("Page load timed out, continuing", url=url)

    def _emit(
        self,
        ctx: CrawlContext,
        source: Page,
        target_id: str,
        kind: TransitionKind,
        descriptor: ElementDescriptor,
    ) -> None:
        transition = Transition(
            source_page_id=source.id,
            target_page_id=target_id,
            kind=kind,
            description=descriptor.describe(),
            element_locator=descriptor.locator,
            is_form_submission=kind == TransitionKind.FORM_SUBMISSION,
        )
        if self._on_transition is not None:
            self._on_transition(ctx, transition)
        else:
            ctx.record_transition(transition)

    @staticmethod
    def _transition_kind(change: ChangeKind, descriptor: ElementDescriptor) -> TransitionKind:
        if change == ChangeKind.DOM_CHANGE:
            return TransitionKind.STATE_CHANGE
        if change == ChangeKind.URL_CHANGE and descriptor.is_submit:
            return TransitionKind.FORM_SUBMISSION
        return TransitionKind.NAVIGATION

    def _should_stop(self, ctx: CrawlContext) -> bool:
        if ctx.expired:
            ctx.request_stop(StopReason.TIMEOUT)
        return ctx.stop_requested
