"""
Persistence interface for exploration results.

Explorers only save and look up; storage backends live outside this
package. The in-memory repository backs the CLI and the tests.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from autoexplore.crawler.models import Page, Transition
    from autoexplore.healing.fingerprint import ElementFingerprint

logger = structlog.get_logger(__name__)


@runtime_checkable
class ExplorationRepository(Protocol):
    """Save/find contract used by the explorer."""

    def save_page(self, page: Page) -> None: ...

    def save_fingerprint(self, page_id: str, fingerprint: ElementFingerprint) -> None: ...

    def save_transition(self, transition: Transition) -> None: ...

    def find_page_by_url(self, url: str) -> Page | None: ...

    def find_transitions_from(self, page_id: str) -> list[Transition]: ...


class InMemoryExplorationRepository:
    """Thread-safe dictionary-backed repository."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pages: dict[str, Page] = {}
        self._pages_by_url: dict[str, str] = {}
        self._fingerprints: dict[str, list[ElementFingerprint]] = defaultdict(list)
        self._transitions: list[Transition] = []
        self._log = logger.bind(component="memory_repository")

    def save_page(self, page: Page) -> None:
        with self._lock:
            self._pages[page.id] = page
            self._pages_by_url.setdefault(page.url, page.id)
        self._log.debug("Page saved", page_id=page.id, url=page.url)

    def save_fingerprint(self, page_id: str, fingerprint: ElementFingerprint) -> None:
        with self._lock:
            self._fingerprints[page_id].append(fingerprint)

    def save_transition(self, transition: Transition) -> None:
        with self._lock:
            self._transitions.append(transition)

    def find_page_by_url(self, url: str) -> Page | None:
        """Return the first page saved for a URL."""
        with self._lock:
            page_id = self._pages_by_url.get(url)
            return self._pages.get(page_id) if page_id else None

    def find_page(self, page_id: str) -> Page | None:
        with self._lock:
            return self._pages.get(page_id)

    def find_transitions_from(self, page_id: str) -> list[Transition]:
        with self._lock:
            return [t for t in self._transitions if t.source_page_id == page_id]

    def find_fingerprints(self, page_id: str) -> list[ElementFingerprint]:
        with self._lock:
            return list(self._fingerprints.get(page_id, []))

    @property
    def pages(self) -> list[Page]:
        with self._lock:
            return list(self._pages.values())

    @property
    def transitions(self) -> list[Transition]:
        with self._lock:
            return list(self._transitions)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of everything stored, JSON-serializable."""
        with self._lock:
            return {
                "pages": [p.to_dict() for p in self._pages.values()],
                "transitions": [t.to_dict() for t in self._transitions],
            }
