"""
Data models produced by exploration runs.

Pages, their components, transitions between states and the field
snapshots used to infer field dependencies.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from autoexplore.healing.fingerprint import ElementFingerprint

_LOGIN_FIELD_NAMES = frozenset({"username", "email", "user", "login"})


class PageType(StrEnum):
    """Coarse classification of an analyzed page."""

    LANDING = "landing"
    LOGIN = "login"
    FORM = "form"
    LISTING = "listing"
    DETAIL = "detail"
    DASHBOARD = "dashboard"
    ERROR = "error"
    OTHER = "other"


class TransitionKind(StrEnum):
    """How an interaction moved the application."""

    NAVIGATION = "navigation"
    """The URL changed or a new window opened."""

    FORM_SUBMISSION = "form_submission"
    """A form submit button changed the URL."""

    STATE_CHANGE = "state_change"
    """Same URL, different visible state."""


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class UIComponent:
    """An element found during page analysis."""

    type: str
    """input, select, textarea, button, link, interactive, form, table or chart."""

    locator: str
    """XPath that re-finds the element in the current DOM."""

    subtype: str = ""
    """Input type or other refinement."""

    name: str = ""
    element_id: str = ""
    class_name: str = ""
    text: str = ""

    fingerprint: ElementFingerprint | None = None
    """Identity snapshot taken at analysis time."""

    options: tuple[str, ...] = ()
    """Option labels for selects."""

    child_count: int = 0
    form_id: str = ""
    required: bool = False
    validation_pattern: str = ""
    displayed: bool = True

    @property
    def is_interactive(self) -> bool:
        return self.type in {"button", "input", "select", "textarea", "interactive", "link"}

    @property
    def is_form_field(self) -> bool:
        return self.type in {"input", "select", "textarea"}

    @property
    def description(self) -> str:
        """Human-readable summary, e.g. ``input (email): login``."""
        text = self.type
        if self.subtype:
            text += f" ({self.subtype})"
        if self.name:
            text += f": {self.name}"
        elif self.element_id:
            text += f" id={self.element_id}"
        return text

    def test_value(self) -> str:
        """A synthetic value suitable for this field."""
        return synthetic_value(self.type, self.subtype, self.name, self.options)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "subtype": self.subtype,
            "name": self.name,
            "id": self.element_id,
            "class": self.class_name,
            "text": self.text,
            "locator": self.locator,
            "required": self.required,
        }
        if self.options:
            data["options"] = list(self.options)
        if self.fingerprint is not None:
            data["fingerprint"] = self.fingerprint.to_dict()
        return data


@dataclass(frozen=True)
class Page:
    """
    One analyzed page or application state.

    Built once by the page analyzer and never mutated afterwards.
    """

    url: str
    title: str = ""
    description: str = ""
    id: str = field(default_factory=new_id)
    discovered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    components: tuple[UIComponent, ...] = ()
    linked_urls: frozenset[str] = frozenset()
    page_type: PageType = PageType.OTHER

    state_key: str = ""
    """Registry key: the URL, or URL plus state digest for same-URL states."""

    screenshot_path: str | None = None

    @property
    def key(self) -> str:
        return self.state_key or self.url

    @property
    def interactive_components(self) -> list[UIComponent]:
        return [c for c in self.components if c.is_interactive]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "page_type": self.page_type.value,
            "discovered_at": self.discovered_at.isoformat(),
            "components": [c.to_dict() for c in self.components],
            "linked_urls": sorted(self.linked_urls),
            "state_key": self.key,
            "screenshot_path": self.screenshot_path,
        }


@dataclass(frozen=True)
class Transition:
    """A recorded (source, target, interaction) edge."""

    source_page_id: str
    target_page_id: str
    kind: TransitionKind
    description: str
    element_locator: str = ""
    is_form_submission: bool = False
    id: str = field(default_factory=new_id)
    discovered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def importance(self) -> int:
        """Priority score in [0, 100]."""
        score = 50
        if self.is_form_submission:
            score += 15
        if self.kind == TransitionKind.NAVIGATION:
            score += 10
        if "login" in self.description.lower():
            score += 10
        return min(100, score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_page_id": self.source_page_id,
            "target_page_id": self.target_page_id,
            "kind": self.kind.value,
            "description": self.description,
            "element_locator": self.element_locator,
            "is_form_submission": self.is_form_submission,
            "discovered_at": self.discovered_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transition:
        discovered_at = data.get("discovered_at")
        return cls(
            source_page_id=data["source_page_id"],
            target_page_id=data["target_page_id"],
            kind=TransitionKind(data.get("kind", TransitionKind.NAVIGATION)),
            description=data.get("description", ""),
            element_locator=data.get("element_locator", ""),
            is_form_submission=bool(data.get("is_form_submission", False)),
            id=data.get("id") or new_id(),
            discovered_at=(
                datetime.fromisoformat(discovered_at) if discovered_at else datetime.now(UTC)
            ),
        )


@dataclass(frozen=True)
class FieldSnapshot:
    """Visibility, enablement and options of one form field."""

    key: str
    visible: bool
    enabled: bool = True
    options: tuple[str, ...] = ()

    @classmethod
    def from_probe(cls, data: dict[str, Any]) -> FieldSnapshot:
        return cls(
            key=str(data["key"]),
            visible=bool(data.get("visible", False)),
            enabled=bool(data.get("enabled", True)),
            options=tuple(str(o) for o in data.get("options", [])),
        )


@dataclass(frozen=True)
class InteractionRecord:
    """Field states around one form-field interaction."""

    page_url: str
    controller: str
    """Key of the field that was changed."""

    before: tuple[FieldSnapshot, ...]
    after: tuple[FieldSnapshot, ...]


def classify_page(
    url: str,
    title: str,
    components: tuple[UIComponent, ...] | list[UIComponent],
    linked_urls: frozenset[str] | set[str],
) -> PageType:
    """Classify a page from its components, URL and title."""
    lowered_url = url.lower()
    lowered_title = title.lower()
    if "error" in lowered_url or "error" in lowered_title or "not found" in lowered_title:
        return PageType.ERROR
    if not components:
        return PageType.LANDING if len(linked_urls) > 5 else PageType.OTHER

    form_count = 0
    input_count = 0
    has_login_input = False
    has_password = False
    has_large_table = False
    has_chart = False

    for component in components:
        if component.type == "form":
            form_count += 1
        elif component.type == "input":
            input_count += 1
            if component.name.lower() in _LOGIN_FIELD_NAMES or component.subtype == "email":
                has_login_input = True
            if component.subtype == "password" or component.name.lower() == "password":
                has_password = True
        elif component.type == "table" and component.child_count > 10:
            has_large_table = True
        elif component.type == "chart" or "chart" in component.class_name.lower():
            has_chart = True

    if has_login_input and has_password:
        return PageType.LOGIN
    if form_count > 0 and input_count > 3:
        return PageType.FORM
    if has_large_table:
        return PageType.LISTING
    if has_chart or len(components) > 15:
        return PageType.DASHBOARD
    if len(components) < 5 and len(linked_urls) > 5:
        return PageType.LANDING
    if len(components) > 5 and len(linked_urls) < 3:
        return PageType.DETAIL
    return PageType.OTHER


def synthetic_value(
    component_type: str,
    subtype: str = "",
    name: str = "",
    options: tuple[str, ...] = (),
) -> str:
    """Pick a type-appropriate value to type into a field."""
    if component_type == "select":
        return options[0] if options else "Test Value"
    if component_type == "textarea":
        return (
            "This is a test comment. It contains more than one sentence "
            "so that length checks see realistic content."
        )
    if component_type != "input":
        return "Test Value"

    values = {
        "email": "test@example.com",
        "password": "Password123!",
        "number": "42",
        "date": "2023-06-15",
        "tel": "555-123-4567",
        "url": "https://example.com",
        "search": "test",
        "checkbox": "true",
        "radio": "option1",
    }
    if subtype in ("", "text"):
        return f"Test {name or 'Input'}"
    return values.get(subtype, "Test Value")
