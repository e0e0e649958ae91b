"""
Interactive element handling for depth exploration.

Describes interactive elements, orders them by how likely they are to move
the application somewhere new, and performs the action matching each
element kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

from autoexplore.crawler.errors import InteractionFailure
from autoexplore.crawler.models import synthetic_value
from autoexplore.webdriver.errors import WebDriverError

if TYPE_CHECKING:
    from autoexplore.webdriver.client import RemoteElement

_BUTTON_INPUT_TYPES = frozenset({"submit", "button", "reset", "image"})
_TOGGLE_INPUT_TYPES = frozenset({"checkbox", "radio"})
_UNTYPEABLE_INPUT_TYPES = frozenset({"file", "range", "color"})
_BUTTON_CLASSES = frozenset({"btn", "button"})


class InteractionKind(StrEnum):
    """Action performed on an element."""

    LINK = "link"
    BUTTON = "button"
    TEXT_INPUT = "text_input"
    SELECT = "select"
    TOGGLE = "toggle"
    OTHER = "other"


class InteractionPriority(IntEnum):
    """Exploration order; lower values are tried first."""

    PRIMARY_ACTION = 0
    NAMED_LINK = 1
    ANONYMOUS_LINK = 2
    FORM_FIELD = 3
    OTHER = 4


@dataclass(frozen=True)
class ElementDescriptor:
    """Interactive element as reported by the page probe."""

    tag: str
    locator: str
    input_type: str = ""
    element_id: str = ""
    name: str = ""
    text: str = ""
    href: str = ""
    class_name: str = ""
    displayed: bool = True
    form_id: str = ""
    role: str = ""

    @classmethod
    def from_probe(cls, data: dict[str, Any]) -> ElementDescriptor:
        return cls(
            tag=str(data.get("tag", "")).lower(),
            locator=str(data.get("locator", "")),
            input_type=str(data.get("type", "")).lower(),
            element_id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            text=str(data.get("text", "")),
            href=str(data.get("href", "")),
            class_name=str(data.get("class_name", "")),
            displayed=bool(data.get("displayed", True)),
            form_id=str(data.get("form_id", "")),
            role=str(data.get("role", "")).lower(),
        )

    @property
    def kind(self) -> InteractionKind:
        if self.tag == "a":
            return InteractionKind.LINK
        if self.tag == "button":
            return InteractionKind.BUTTON
        if self.tag == "select":
            return InteractionKind.SELECT
        if self.tag == "textarea":
            return InteractionKind.TEXT_INPUT
        if self.tag == "input":
            if self.input_type in _BUTTON_INPUT_TYPES:
                return InteractionKind.BUTTON
            if self.input_type in _TOGGLE_INPUT_TYPES:
                return InteractionKind.TOGGLE
            if self.input_type in _UNTYPEABLE_INPUT_TYPES:
                return InteractionKind.OTHER
            return InteractionKind.TEXT_INPUT
        if self.looks_like_button:
            return InteractionKind.BUTTON
        return InteractionKind.OTHER

    @property
    def looks_like_button(self) -> bool:
        """ARIA button role, or a ``btn``/``button`` style class."""
        if self.role == "button":
            return True
        return any(
            c in _BUTTON_CLASSES or c.startswith("btn-") for c in self.class_name.lower().split()
        )

    @property
    def is_form_element(self) -> bool:
        if self.tag in ("select", "textarea"):
            return True
        return self.tag == "input" and self.input_type not in _BUTTON_INPUT_TYPES

    @property
    def is_submit(self) -> bool:
        if self.tag == "button":
            return self.input_type in ("", "submit")
        return self.tag == "input" and self.input_type in ("submit", "image")

    @property
    def field_key(self) -> str:
        """Key matching the field-state probe: name, then id, then locator."""
        return self.name or self.element_id or self.locator

    @property
    def label(self) -> str:
        return self.text or self.name or self.element_id or self.locator

    @property
    def priority(self) -> InteractionPriority:
        kind = self.kind
        if kind == InteractionKind.BUTTON or (self.looks_like_button and not self.is_form_element):
            return InteractionPriority.PRIMARY_ACTION
        if kind == InteractionKind.LINK:
            if self.text or self.name or self.element_id:
                return InteractionPriority.NAMED_LINK
            return InteractionPriority.ANONYMOUS_LINK
        if self.is_form_element:
            return InteractionPriority.FORM_FIELD
        return InteractionPriority.OTHER

    def describe(self) -> str:
        """Human-readable description of the interaction."""
        label = self.label[:60]
        match self.kind:
            case InteractionKind.LINK:
                return f"Click link '{label}'"
            case InteractionKind.BUTTON:
                return f"Click button '{label}'"
            case InteractionKind.TEXT_INPUT:
                return f"Enter text in '{label}'"
            case InteractionKind.SELECT:
                return f"Select option in '{label}'"
            case InteractionKind.TOGGLE:
                return f"Toggle '{label}'"
            case _:
                return f"Click {self.tag} '{label}'"


@dataclass(frozen=True)
class ActionResult:
    """What an interaction did, enough to undo it."""

    kind: InteractionKind
    value: str | None = None
    previous_option: int | None = None
    """Index of the option selected before a select interaction."""


def prioritize(descriptors: list[ElementDescriptor], limit: int) -> list[ElementDescriptor]:
    """Order descriptors by priority, keeping document order within a class."""
    ordered = sorted(descriptors, key=lambda d: d.priority)
    return ordered[:limit]


async def perform(element: RemoteElement, descriptor: ElementDescriptor) -> ActionResult:
    """
    Perform the action matching the element kind.

    Raises:
        InteractionFailure: If the browser rejected the action
    """
    kind = descriptor.kind
    try:
        if kind == InteractionKind.TEXT_INPUT:
            component_type = "textarea" if descriptor.tag == "textarea" else "input"
            value = synthetic_value(component_type, descriptor.input_type, descriptor.name)
            await element.clear()
            await element.send_keys(value)
            return ActionResult(kind, value=value)

        if kind == InteractionKind.SELECT:
            return await _select_alternate(element, descriptor)

        await element.click()
        return ActionResult(kind)
    except WebDriverError as e:
        raise InteractionFailure(
            f"{descriptor.describe()} failed: {e}",
            locator=descriptor.locator,
        ) from e


async def undo(element: RemoteElement, action: ActionResult) -> bool:
    """
    Revert a toggle or select action in place.

    Returns False for actions that cannot be undone this way.
    """
    if action.kind == InteractionKind.TOGGLE:
        await element.click()
        return True
    if action.kind == InteractionKind.SELECT and action.previous_option is not None:
        options = await element.find_elements("option")
        if action.previous_option < len(options):
            await options[action.previous_option].click()
            return True
    return False


async def _select_alternate(element: RemoteElement, descriptor: ElementDescriptor) -> ActionResult:
    options = await element.find_elements("option")
    if len(options) < 2:
        raise InteractionFailure("Select has no alternate option", locator=descriptor.locator)

    current = 0
    for index, option in enumerate(options):
        if await option.is_selected():
            current = index
            break

    for index, option in enumerate(options):
        if index == current or not await option.is_enabled():
            continue
        await option.click()
        return ActionResult(
            InteractionKind.SELECT,
            value=await option.text(),
            previous_option=current,
        )

    raise InteractionFailure("Select has no enabled alternate option", locator=descriptor.locator)
