"""
Durable element fingerprints.

A fingerprint is a snapshot of everything that identifies an element
besides its locator: tag, id, name, text, a fixed allow-list of
attributes, geometry, a few numeric CSS properties, a coarse parent
descriptor and an optional perceptual hash of its rendered pixels.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from autoexplore.config import MatchThresholds
from autoexplore.healing.visual import hamming_distance

ATTRIBUTE_ALLOW_LIST: tuple[str, ...] = (
    "id",
    "name",
    "class",
    "type",
    "value",
    "href",
    "src",
    "alt",
    "placeholder",
    "title",
    "role",
    "aria-label",
    "data-test-id",
)
"""Attributes recorded in every fingerprint."""

CSS_PROPERTIES: tuple[str, ...] = (
    "z-index",
    "font-size",
    "margin-left",
    "margin-top",
    "padding-left",
    "padding-top",
)
"""Computed style properties recorded as numbers."""

GEOMETRY_KEYS: tuple[str, ...] = ("x", "y", "width", "height")

DEFAULT_THRESHOLDS = MatchThresholds()

_WHITESPACE = re.compile(r"\s+")

# Weights of the confidence score; they sum to 1.15 and are normalized.
_SCORE_WEIGHTS = {
    "tag": 0.2,
    "id": 0.2,
    "name": 0.15,
    "text": 0.15,
    "attributes": 0.15,
    "properties": 0.1,
    "parent": 0.05,
    "visual": 0.15,
}


@dataclass(frozen=True)
class ElementFingerprint:
    """
    Identifying features of one UI element.

    Owned by the component that captured it and read-only afterwards.
    """

    locator: str
    """Locator the element was found with at capture time."""

    tag_name: str
    """Lowercase tag name."""

    element_id: str = ""
    """Value of the id attribute."""

    name: str = ""
    """Value of the name attribute."""

    text: str = ""
    """Visible text."""

    attributes: dict[str, str] = field(default_factory=dict)
    """Allow-listed attributes present on the element."""

    properties: dict[str, float] = field(default_factory=dict)
    """Geometry (x, y, width, height) and numeric CSS properties."""

    parent_signature: str = ""
    """Parent descriptor in ``tag#id.class`` form."""

    visual_signature: str | None = None
    """64-bit average hash of the rendered region, if it was visible."""

    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def matches(
        self,
        other: ElementFingerprint,
        thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
    ) -> bool:
        """Check whether ``other`` identifies the same element."""
        return fingerprints_match(self, other, thresholds)

    def signal_agreement(
        self,
        other: ElementFingerprint,
        thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
    ) -> dict[str, bool]:
        """
        Compare every identity signal that both sides can speak to.

        Signals absent on both fingerprints are left out; a signal present on
        only one side counts as a disagreement.
        """
        signals: dict[str, bool] = {}

        if self.element_id or other.element_id:
            signals["id"] = self.element_id == other.element_id
        if self.name or other.name:
            signals["name"] = self.name == other.name
        if self.text.strip() or other.text.strip():
            signals["text"] = text_similarity(self.text, other.text) >= thresholds.text_similarity
        if self.attributes or other.attributes:
            overlap = attribute_overlap(self.attributes, other.attributes)
            signals["attributes"] = overlap >= thresholds.attribute_overlap
        if self.has_geometry and other.has_geometry:
            signals["geometry"] = _geometry_agrees(self.properties, other.properties, thresholds)
        if self.visual_signature and other.visual_signature:
            distance = hamming_distance(self.visual_signature, other.visual_signature)
            signals["visual"] = distance <= thresholds.visual_max_hamming

        return signals

    def similarity(self, other: ElementFingerprint) -> float:
        """
        Graded confidence in [0, 1] that two fingerprints describe the same
        element.

        Used for ranking and reporting; the boolean decision is
        :meth:`matches`.
        """
        score = 0.0
        if self.tag_name == other.tag_name:
            score += _SCORE_WEIGHTS["tag"]
        if self.element_id and self.element_id == other.element_id:
            score += _SCORE_WEIGHTS["id"]
        if self.name and self.name == other.name:
            score += _SCORE_WEIGHTS["name"]
        if self.text and other.text:
            score += _SCORE_WEIGHTS["text"] * text_similarity(self.text, other.text)
        if self.attributes and other.attributes:
            score += _SCORE_WEIGHTS["attributes"] * attribute_overlap(
                self.attributes, other.attributes
            )
        if self.properties and other.properties:
            score += _SCORE_WEIGHTS["properties"] * property_similarity(
                self.properties, other.properties
            )
        if self.parent_signature and self.parent_signature == other.parent_signature:
            score += _SCORE_WEIGHTS["parent"]
        if self.visual_signature and other.visual_signature:
            distance = hamming_distance(self.visual_signature, other.visual_signature)
            score += _SCORE_WEIGHTS["visual"] * (1 - distance / len(self.visual_signature))

        return round(score / sum(_SCORE_WEIGHTS.values()), 4)

    @property
    def has_geometry(self) -> bool:
        return all(key in self.properties for key in GEOMETRY_KEYS)

    def simplified(self) -> dict[str, Any]:
        """Compact view used in prompts and reports."""
        view: dict[str, Any] = {"tag": self.tag_name, "locator": self.locator}
        if self.element_id:
            view["id"] = self.element_id
        if self.name:
            view["name"] = self.name
        if self.text:
            view["text"] = self.text[:80]
        for key in ("type", "role", "aria-label", "placeholder"):
            if key in self.attributes:
                view[key] = self.attributes[key]
        return view

    def to_dict(self) -> dict[str, Any]:
        return {
            "locator": self.locator,
            "tag_name": self.tag_name,
            "element_id": self.element_id,
            "name": self.name,
            "text": self.text,
            "attributes": dict(self.attributes),
            "properties": dict(self.properties),
            "parent_signature": self.parent_signature,
            "visual_signature": self.visual_signature,
            "captured_at": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementFingerprint:
        captured_at = data.get("captured_at")
        return cls(
            locator=data["locator"],
            tag_name=data["tag_name"],
            element_id=data.get("element_id", ""),
            name=data.get("name", ""),
            text=data.get("text", ""),
            attributes=dict(data.get("attributes", {})),
            properties={k: float(v) for k, v in data.get("properties", {}).items()},
            parent_signature=data.get("parent_signature", ""),
            visual_signature=data.get("visual_signature"),
            captured_at=(
                datetime.fromisoformat(captured_at) if captured_at else datetime.now(UTC)
            ),
        )


def fingerprints_match(
    recorded: ElementFingerprint,
    candidate: ElementFingerprint,
    thresholds: MatchThresholds = DEFAULT_THRESHOLDS,
) -> bool:
    """
    Decide whether two fingerprints identify the same element.

    Tags must be equal. Then the weighted share of agreeing signals among
    the comparable ones must exceed ``thresholds.agreement_ratio``. With no
    comparable signal at all there is no evidence and the answer is False.
    """
    if recorded.tag_name.lower() != candidate.tag_name.lower():
        return False

    weights = {
        "id": thresholds.id_weight,
        "name": thresholds.name_weight,
        "text": thresholds.text_weight,
        "attributes": thresholds.attribute_weight,
        "geometry": thresholds.geometry_weight,
        "visual": thresholds.visual_weight,
    }
    signals = recorded.signal_agreement(candidate, thresholds)

    total = sum(weights[name] for name in signals)
    if total == 0:
        return False
    agreeing = sum(weights[name] for name, agrees in signals.items() if agrees)
    return agreeing / total > thresholds.agreement_ratio


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().lower()


def text_similarity(first: str, second: str) -> float:
    """Similarity of two texts; containment scores 0.8."""
    a = normalize_text(first)
    b = normalize_text(second)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return 0.8
    return difflib.SequenceMatcher(None, a, b).ratio()


def attribute_overlap(first: dict[str, str], second: dict[str, str]) -> float:
    """Share of attribute keys carrying equal values on both sides."""
    keys = set(first) | set(second)
    if not keys:
        return 1.0
    same = sum(1 for key in keys if key in first and first.get(key) == second.get(key))
    return same / len(keys)


def property_similarity(first: dict[str, float], second: dict[str, float]) -> float:
    """Average relative closeness of shared numeric properties."""
    shared = set(first) & set(second)
    if not shared:
        return 0.0
    total = 0.0
    for key in shared:
        a, b = first[key], second[key]
        largest = max(abs(a), abs(b))
        total += 1.0 if largest == 0 else max(0.0, 1 - abs(a - b) / largest)
    return total / len(shared)


def _geometry_agrees(
    first: dict[str, float],
    second: dict[str, float],
    thresholds: MatchThresholds,
) -> bool:
    if abs(first["x"] - second["x"]) > thresholds.position_tolerance_px:
        return False
    if abs(first["y"] - second["y"]) > thresholds.position_tolerance_px:
        return False
    for key in ("width", "height"):
        largest = max(first[key], second[key], 1.0)
        if abs(first[key] - second[key]) / largest > thresholds.size_tolerance_ratio:
            return False
    return True
