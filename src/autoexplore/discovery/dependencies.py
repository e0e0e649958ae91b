"""
Field and state-variable dependency inference.

A field depends on another when changing the other alters its visibility,
enablement or option set. Detected by diffing the field snapshots taken
around each form interaction.

State variables (web storage entries, cookies and hidden inputs) are
related when one interaction changes them together, or when their names
suggest one feeds or controls the other.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from itertools import combinations
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from autoexplore.crawler.models import FieldSnapshot, InteractionRecord

_RELATED_NAMES = (
    ("id", "token"),
    ("user", "session"),
    ("form", "state"),
    ("page", "data"),
    ("current", "previous"),
    ("parent", "child"),
    ("master", "detail"),
)


class DependencyEffect(StrEnum):
    VISIBILITY = "visibility"
    ENABLEMENT = "enablement"
    OPTIONS = "options"


class VariableRelationship(StrEnum):
    CHANGES_WITH = "changes_with"
    """Both variables changed during the same interaction."""

    CONTROLS = "controls"
    """The target's name extends the source's name."""

    FEEDS = "feeds"
    """The names form a known pair such as user/session."""


class StorageKind(StrEnum):
    """Where a client-side state variable lives."""

    LOCAL_STORAGE = "localStorage"
    SESSION_STORAGE = "sessionStorage"
    COOKIE = "cookie"
    HIDDEN_FIELD = "hiddenField"


StateSnapshot = Mapping[tuple[StorageKind, str], str]
"""Value of every state variable at one moment, keyed by (storage, name)."""


@dataclass(frozen=True)
class StateVariableChange:
    """One client-side state variable changed by one interaction."""

    storage: StorageKind
    name: str
    page_url: str
    trigger: str
    """Description of the interaction that caused the change."""

    previous: str | None
    current: str | None
    """None when the variable did not exist."""

    interaction: int = 0
    """Sequence number of the interaction; changes sharing it happened together."""

    @property
    def variable(self) -> str:
        return f"{self.storage.value}:{self.name}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "variable": self.variable,
            "storage": self.storage.value,
            "name": self.name,
            "page_url": self.page_url,
            "trigger": self.trigger,
            "previous": self.previous,
            "current": self.current,
            "interaction": self.interaction,
        }


@dataclass(frozen=True)
class FieldDependency:
    """``controlled`` changes when ``controller`` is changed."""

    controlled: str
    controller: str
    effect: DependencyEffect
    page_url: str = ""

    def as_pair(self) -> tuple[str, str]:
        return self.controlled, self.controller


@dataclass(frozen=True)
class VariableDependency:
    source: str
    target: str
    relationship: VariableRelationship

    def to_dict(self) -> dict[str, str]:
        return {
            "source": self.source,
            "target": self.target,
            "relationship": self.relationship.value,
        }


def _effect(before: FieldSnapshot | None, after: FieldSnapshot | None) -> DependencyEffect | None:
    was_visible = before.visible if before else False
    is_visible = after.visible if after else False
    if was_visible != is_visible:
        return DependencyEffect.VISIBILITY
    if before is None or after is None:
        return None
    if before.enabled != after.enabled:
        return DependencyEffect.ENABLEMENT
    if before.options != after.options:
        return DependencyEffect.OPTIONS
    return None


def infer_field_dependencies(log: Iterable[InteractionRecord]) -> list[FieldDependency]:
    """
    Collect (controlled, controller) pairs from an interaction log.

    Each pair is reported once, with the first effect observed.
    """
    found: dict[tuple[str, str], FieldDependency] = {}
    for record in log:
        before = {s.key: s for s in record.before}
        after = {s.key: s for s in record.after}
        for key in [*before, *(k for k in after if k not in before)]:
            if key == record.controller or (key, record.controller) in found:
                continue
            effect = _effect(before.get(key), after.get(key))
            if effect is None:
                continue
            found[(key, record.controller)] = FieldDependency(
                controlled=key,
                controller=record.controller,
                effect=effect,
                page_url=record.page_url,
            )
    return list(found.values())


def diff_state_variables(
    before: StateSnapshot,
    after: StateSnapshot,
) -> list[tuple[StorageKind, str, str | None, str | None]]:
    """
    List (storage, name, previous, current) for every variable that changed.

    Hidden inputs belong to their page, so one that only exists on one side
    of a navigation is not a change.
    """
    changes = []
    for key in sorted({*before, *after}):
        storage, name = key
        previous, current = before.get(key), after.get(key)
        if previous == current:
            continue
        if storage == StorageKind.HIDDEN_FIELD and (previous is None or current is None):
            continue
        changes.append((storage, name, previous, current))
    return changes


def infer_variable_dependencies(
    changes: Iterable[StateVariableChange],
) -> list[VariableDependency]:
    """
    Relate state variables observed changing during exploration.

    Variables changed by the same interaction are reported as changing
    together, once per pair in name order. Among all changed variables,
    a name that starts or ends with another's is controlled by it, and
    names matching a known pair (user and session, id and token, ...) feed
    each other in pair order.
    """
    by_interaction: dict[int, set[str]] = {}
    names: dict[str, str] = {}
    for change in changes:
        by_interaction.setdefault(change.interaction, set()).add(change.variable)
        names[change.variable] = change.name.lower()

    found: dict[tuple[str, str, VariableRelationship], VariableDependency] = {}

    def add(source: str, target: str, relationship: VariableRelationship) -> None:
        found.setdefault(
            (source, target, relationship), VariableDependency(source, target, relationship)
        )

    for variables in by_interaction.values():
        for first, second in combinations(sorted(variables), 2):
            add(first, second, VariableRelationship.CHANGES_WITH)

    for first, second in combinations(sorted(names), 2):
        name1, name2 = names[first], names[second]
        if name1 == name2:
            continue
        if name1.startswith(name2) or name1.endswith(name2):
            add(second, first, VariableRelationship.CONTROLS)
        elif name2.startswith(name1) or name2.endswith(name1):
            add(first, second, VariableRelationship.CONTROLS)
        for a, b in _RELATED_NAMES:
            if a in name1 and b in name2:
                add(first, second, VariableRelationship.FEEDS)
            elif a in name2 and b in name1:
                add(second, first, VariableRelationship.FEEDS)

    return list(found.values())
