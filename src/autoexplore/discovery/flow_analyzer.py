"""
User journey synthesis from recorded transitions.

Raw transition logs repeat the same UI paths many times. The analyzer
indexes transitions by source page, walks every path from the entry
points, and keeps a small set of long, mutually distinct journeys.
"""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from autoexplore.discovery.dependencies import (
    FieldDependency,
    VariableDependency,
    infer_field_dependencies,
    infer_variable_dependencies,
)

if TYPE_CHECKING:
    from autoexplore.crawler.models import InteractionRecord, Page, Transition
    from autoexplore.discovery.dependencies import StateVariableChange

logger = structlog.get_logger(__name__)

DEFAULT_MAX_OVERLAP = 0.7
DEFAULT_ENTRY_POINTS = 3


def priority_label(score: int) -> str:
    """Bucket a 0-100 priority score."""
    if score >= 80:
        return "critical"
    if score >= 60:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


@dataclass
class UserJourney:
    """An ordered sequence of transitions forming one user path."""

    transitions: list[Transition]
    name: str = ""
    description: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __len__(self) -> int:
        return len(self.transitions)

    @property
    def transition_ids(self) -> set[str]:
        return {t.id for t in self.transitions}

    @property
    def priority_score(self) -> int:
        """Highest transition importance along the journey."""
        return max((t.importance() for t in self.transitions), default=0)

    @property
    def priority_label(self) -> str:
        return priority_label(self.priority_score)

    @property
    def has_form_submission(self) -> bool:
        return any(t.is_form_submission for t in self.transitions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "priority_score": self.priority_score,
            "priority": self.priority_label,
            "transitions": [t.to_dict() for t in self.transitions],
        }


def path_overlap(a: Sequence[Transition], b: Sequence[Transition]) -> float:
    """Shared transitions divided by the shorter path length."""
    shorter = min(len(a), len(b))
    if shorter == 0:
        return 0.0
    shared = len({t.id for t in a} & {t.id for t in b})
    return shared / shorter


class FlowGraphAnalyzer:
    """
    Collects transitions and compresses them into user journeys.

    Usage:
        analyzer = FlowGraphAnalyzer()
        analyzer.record_many(transitions)
        journeys = analyzer.discover_journeys(min_length=2, max_count=5)
    """

    def __init__(self, max_overlap: float = DEFAULT_MAX_OVERLAP) -> None:
        if not 0.0 < max_overlap <= 1.0:
            raise ValueError("max_overlap must be in (0, 1]")
        self._max_overlap = max_overlap
        self._lock = threading.Lock()
        self._transitions: list[Transition] = []
        self._titles: dict[str, str] = {}
        self._log = logger.bind(component="flow_analyzer")

    # Ingest

    def record(self, transition: Transition) -> None:
        with self._lock:
            self._transitions.append(transition)

    def record_many(self, transitions: Iterable[Transition]) -> None:
        with self._lock:
            self._transitions.extend(transitions)

    def record_page(self, page: Page) -> None:
        """Remember a page title for journey naming."""
        with self._lock:
            self._titles[page.id] = page.title or page.url

    @property
    def transitions(self) -> list[Transition]:
        with self._lock:
            return list(self._transitions)

    def title_of(self, page_id: str, default: str) -> str:
        with self._lock:
            return self._titles.get(page_id, default)

    # Graph

    @staticmethod
    def build_transition_index(
        transitions: Iterable[Transition],
    ) -> dict[str, list[Transition]]:
        """Group transitions by source page, keeping recording order."""
        index: dict[str, list[Transition]] = defaultdict(list)
        for transition in transitions:
            index[transition.source_page_id].append(transition)
        return dict(index)

    @staticmethod
    def find_entry_points(
        index: dict[str, list[Transition]],
        top_n: int = DEFAULT_ENTRY_POINTS,
    ) -> list[str]:
        """
        Pages with outgoing but no incoming transitions.

        When every page has an incoming transition, falls back to the
        ``top_n`` pages with the most outgoing transitions.
        """
        targets = {t.target_page_id for outgoing in index.values() for t in outgoing}
        entry_points = [page_id for page_id in index if page_id not in targets]
        if entry_points:
            return entry_points

        ranked = sorted(index, key=lambda page_id: len(index[page_id]), reverse=True)
        return ranked[:top_n]

    @staticmethod
    def enumerate_paths(
        index: dict[str, list[Transition]],
        entry_points: Iterable[str],
        max_depth: int,
    ) -> list[list[Transition]]:
        """
        Depth-bounded walk of every path from the entry points.

        A transition never appears twice in one path. A path ends when its
        last page has no unused outgoing transition or ``max_depth``
        transitions were taken.
        """
        paths: list[list[Transition]] = []
        for entry in entry_points:
            stack: list[tuple[str, list[Transition]]] = [(entry, [])]
            while stack:
                page_id, path = stack.pop()
                if len(path) >= max_depth:
                    if path:
                        paths.append(path)
                    continue

                used = {t.id for t in path}
                extensions = [t for t in index.get(page_id, []) if t.id not in used]
                if not extensions:
                    if path:
                        paths.append(path)
                    continue

                for transition in reversed(extensions):
                    stack.append((transition.target_page_id, [*path, transition]))
        return paths

    def select_journeys(
        self,
        paths: Iterable[Sequence[Transition]],
        min_length: int,
        max_count: int,
    ) -> list[UserJourney]:
        """
        Greedily keep the longest mutually distinct paths.

        A path is rejected when it shares more than ``max_overlap`` of the
        shorter path's transitions with an already accepted journey.
        """
        candidates = sorted(
            (list(p) for p in paths if len(p) >= min_length),
            key=len,
            reverse=True,
        )

        journeys: list[UserJourney] = []
        for path in candidates:
            if len(journeys) >= max_count:
                break
            if any(path_overlap(path, j.transitions) > self._max_overlap for j in journeys):
                continue
            journey = UserJourney(transitions=path)
            journey.name = self.name_journey(path, len(journeys) + 1)
            journey.description = self.describe_journey(path)
            journeys.append(journey)
        return journeys

    def discover_journeys(
        self,
        min_length: int = 2,
        max_count: int = 10,
        max_depth: int = 5,
    ) -> list[UserJourney]:
        """Run index, entry-point, path and selection steps over everything recorded."""
        index = self.build_transition_index(self.transitions)
        if not index:
            return []

        entry_points = self.find_entry_points(index)
        paths = self.enumerate_paths(index, entry_points, max_depth)
        journeys = self.select_journeys(paths, min_length, max_count)

        self._log.info(
            "Journeys discovered",
            transitions=sum(len(v) for v in index.values()),
            entry_points=len(entry_points),
            paths=len(paths),
            journeys=len(journeys),
        )
        return journeys

    def infer_field_dependencies(
        self, log: Iterable[InteractionRecord]
    ) -> list[FieldDependency]:
        return infer_field_dependencies(log)

    def infer_variable_dependencies(
        self, changes: Iterable[StateVariableChange]
    ) -> list[VariableDependency]:
        return infer_variable_dependencies(changes)

    # Naming

    def name_journey(self, path: Sequence[Transition], index: int) -> str:
        if not path:
            return f"Journey {index}"
        start = self.title_of(path[0].source_page_id, "Start")
        end = self.title_of(path[-1].target_page_id, "End")

        if any("login" in t.description.lower() for t in path):
            return f"Login to {end}"
        if any(t.is_form_submission for t in path):
            return f"Form Submission: {start} -> {end}"
        return f"Journey {index}: {start} -> {end}"

    def describe_journey(self, path: Sequence[Transition]) -> str:
        return "; then ".join(t.description for t in path)
