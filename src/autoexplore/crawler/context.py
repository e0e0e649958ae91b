"""
Run-scoped crawl bookkeeping.

Each crawl or exploration run owns one CrawlContext. It is the only state
shared between that run's workers, so concurrent runs never interfere.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from autoexplore.crawler.models import InteractionRecord, Page, Transition
from autoexplore.crawler.state import StateSignature, normalize_url

if TYPE_CHECKING:
    from autoexplore.discovery.dependencies import StateVariableChange


class StopReason(StrEnum):
    """Why a run ended."""

    COMPLETED = "completed"
    """The frontier was exhausted."""

    BUDGET_EXHAUSTED = "budget_exhausted"
    """The page budget was used up."""

    TIMEOUT = "timeout"
    """The whole-run wall-clock budget elapsed."""

    STOP_REQUESTED = "stop_requested"
    """A caller asked the run to stop."""


@dataclass
class CrawlSummary:
    """Outcome of a finished run."""

    crawl_id: str
    stop_reason: StopReason
    pages: int
    transitions: int
    started_at: datetime
    finished_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "crawl_id": self.crawl_id,
            "stop_reason": self.stop_reason.value,
            "pages": self.pages,
            "transitions": self.transitions,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "errors": list(self.errors),
        }


class CrawlContext:
    """
    Visited set, page registry and stop flag of one run.

    Every check-and-mark happens under a single lock, so a URL or state is
    claimed by exactly one worker even when workers run on several threads.
    """

    def __init__(
        self,
        base_url: str,
        max_pages: int,
        timeout_seconds: float,
        crawl_id: str | None = None,
    ) -> None:
        self.crawl_id = crawl_id or str(uuid.uuid4())[:8]
        self.base_url = base_url
        self.max_pages = max_pages
        self.started_at = datetime.now(UTC)
        self._start = time.monotonic()
        self._deadline = self._start + timeout_seconds

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._stop_reason: StopReason | None = None

        self._visited: set[str] = set()
        self._pages: dict[str, Page] = {}
        self._states: dict[str, str] = {}
        self._transitions: list[Transition] = []
        self._interactions: list[InteractionRecord] = []
        self._variable_changes: list[StateVariableChange] = []
        self._errors: list[str] = []

        self.auth_cookies: list[dict[str, Any]] = []
        """Cookies captured after a successful login."""
        self._seeded_sessions: set[str] = set()

    # URLs

    def claim_url(self, url: str) -> bool:
        """
        Atomically mark a URL visited.

        Returns False if the URL was already claimed, the page budget is
        used up, or a stop was requested.
        """
        key = normalize_url(url)
        with self._lock:
            if self._stop.is_set() or key in self._visited:
                return False
            if len(self._visited) >= self.max_pages:
                self._set_stop(StopReason.BUDGET_EXHAUSTED)
                return False
            self._visited.add(key)
            return True

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return normalize_url(url) in self._visited

    @property
    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    @property
    def visited_urls(self) -> set[str]:
        with self._lock:
            return set(self._visited)

    # States

    def claim_state(self, signature: StateSignature) -> bool:
        """Atomically mark a state visited; False if it was seen before."""
        with self._lock:
            if signature.digest in self._states:
                return False
            self._states[signature.digest] = ""
            return True

    def bind_state(self, signature: StateSignature, page_id: str) -> None:
        with self._lock:
            self._states[signature.digest] = page_id

    def page_id_for_state(self, signature: StateSignature) -> str | None:
        with self._lock:
            return self._states.get(signature.digest) or None

    # Pages

    def register_page(self, page: Page) -> Page:
        """Add a page unless one with the same key exists; return the stored page."""
        with self._lock:
            return self._pages.setdefault(page.key, page)

    def page_by_key(self, key: str) -> Page | None:
        with self._lock:
            return self._pages.get(key)

    @property
    def pages(self) -> list[Page]:
        with self._lock:
            return list(self._pages.values())

    @property
    def page_count(self) -> int:
        with self._lock:
            return len(self._pages)

    def has_page_budget(self) -> bool:
        return self.page_count < self.max_pages

    # Transitions and interactions

    def record_transition(self, transition: Transition) -> None:
        with self._lock:
            self._transitions.append(transition)

    @property
    def transitions(self) -> list[Transition]:
        with self._lock:
            return list(self._transitions)

    def record_interaction(self, record: InteractionRecord) -> None:
        with self._lock:
            self._interactions.append(record)

    @property
    def interactions(self) -> list[InteractionRecord]:
        with self._lock:
            return list(self._interactions)

    def record_variable_changes(self, changes: list[StateVariableChange]) -> None:
        with self._lock:
            self._variable_changes.extend(changes)

    @property
    def variable_changes(self) -> list[StateVariableChange]:
        with self._lock:
            return list(self._variable_changes)

    def record_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)

    @property
    def errors(self) -> list[str]:
        with self._lock:
            return list(self._errors)

    def mark_seeded(self, session_id: str) -> bool:
        """Record that a session received the auth cookies; False if it already had."""
        with self._lock:
            if session_id in self._seeded_sessions:
                return False
            self._seeded_sessions.add(session_id)
            return True

    # Stop and time budget

    def request_stop(self, reason: StopReason = StopReason.STOP_REQUESTED) -> None:
        with self._lock:
            self._set_stop(reason)

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def stop_reason(self) -> StopReason | None:
        return self._stop_reason

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, self._deadline - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._deadline

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    def summary(self, default_reason: StopReason = StopReason.COMPLETED) -> CrawlSummary:
        return CrawlSummary(
            crawl_id=self.crawl_id,
            stop_reason=self._stop_reason or default_reason,
            pages=self.page_count,
            transitions=len(self.transitions),
            started_at=self.started_at,
            errors=self.errors,
        )

    def _set_stop(self, reason: StopReason) -> None:
        if not self._stop.is_set():
            self._stop_reason = reason
            self._stop.set()
