"""Tests for element fingerprints and visual hashing."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from autoexplore.config import MatchThresholds
from autoexplore.healing.fingerprint import (
    ElementFingerprint,
    attribute_overlap,
    fingerprints_match,
    text_similarity,
)
from autoexplore.healing.visual import average_hash, hamming_distance, region_hash


def _fingerprint(**overrides: object) -> ElementFingerprint:
    values: dict[str, object] = {
        "locator": "//*[@id='submit']",
        "tag_name": "button",
        "element_id": "submit",
        "name": "",
        "text": "Place order",
        "attributes": {"id": "submit", "class": "btn primary", "type": "submit"},
        "properties": {"x": 100.0, "y": 400.0, "width": 120.0, "height": 40.0},
        "parent_signature": "form#checkout",
    }
    values.update(overrides)
    return ElementFingerprint(**values)  # type: ignore[arg-type]


class TestFingerprintMatching:
    """Tests for the boolean identity decision."""

    def test_fingerprint_matches_itself(self) -> None:
        fingerprint = _fingerprint()
        assert fingerprint.matches(fingerprint)

    def test_tag_mismatch_never_matches(self) -> None:
        """Test that equal features cannot outvote a different tag."""
        assert not _fingerprint().matches(_fingerprint(tag_name="a"))

    def test_no_comparable_signal_is_not_a_match(self) -> None:
        """Test two bare fingerprints give no evidence either way."""
        first = ElementFingerprint(locator="/html/body/div[1]", tag_name="div")
        second = ElementFingerprint(locator="/html/body/div[2]", tag_name="div")

        assert first.signal_agreement(second) == {}
        assert not fingerprints_match(first, second)

    def test_small_layout_shift_still_matches(self) -> None:
        """Test moved elements within tolerance keep their identity."""
        moved = _fingerprint(
            locator="/html/body/form/button[2]",
            properties={"x": 130.0, "y": 420.0, "width": 125.0, "height": 40.0},
        )
        assert _fingerprint().matches(moved)

    def test_class_change_with_stable_id_matches(self) -> None:
        changed = _fingerprint(
            attributes={"id": "submit", "class": "button-primary", "type": "submit"},
        )
        assert _fingerprint().matches(changed)

    def test_different_element_does_not_match(self) -> None:
        """Test a neighbouring button is rejected."""
        other = _fingerprint(
            element_id="cancel",
            text="Cancel",
            attributes={"id": "cancel", "class": "btn", "type": "button"},
        )
        assert not _fingerprint().matches(other)

    def test_one_sided_signal_counts_as_disagreement(self) -> None:
        signals = _fingerprint().signal_agreement(_fingerprint(element_id="", attributes={}))

        assert signals["id"] is False
        assert signals["attributes"] is False
        assert signals["text"] is True

    def test_stricter_thresholds_reject_drift(self) -> None:
        moved = _fingerprint(properties={"x": 400.0, "y": 900.0, "width": 120.0, "height": 40.0})
        strict = MatchThresholds(agreement_ratio=0.9)

        assert fingerprints_match(_fingerprint(), moved)
        assert not fingerprints_match(_fingerprint(), moved, strict)


class TestSimilarity:
    """Tests for the graded confidence score."""

    def test_similarity_ranks_closer_elements_higher(self) -> None:
        recorded = _fingerprint()
        close = _fingerprint(text="Place order now")
        far = _fingerprint(
            tag_name="a",
            element_id="home",
            text="Home",
            attributes={"href": "/"},
            parent_signature="nav",
        )

        assert 0.0 <= recorded.similarity(far) < recorded.similarity(close) <= 1.0

    def test_text_similarity(self) -> None:
        assert text_similarity("  Place   Order ", "place order") == 1.0
        assert text_similarity("Order", "Place order") == 0.8
        assert text_similarity("", "Order") == 0.0

    def test_attribute_overlap(self) -> None:
        assert attribute_overlap({}, {}) == 1.0
        assert attribute_overlap({"a": "1", "b": "2"}, {"a": "1", "b": "3"}) == 0.5


class TestSerialization:
    """Tests for fingerprint persistence format."""

    def test_round_trip(self) -> None:
        fingerprint = _fingerprint(visual_signature="01" * 32)
        restored = ElementFingerprint.from_dict(fingerprint.to_dict())

        assert restored == fingerprint

    def test_simplified_view(self) -> None:
        view = _fingerprint().simplified()

        assert view["tag"] == "button"
        assert view["id"] == "submit"
        assert view["type"] == "submit"


class TestVisualHash:
    """Tests for perceptual hashing."""

    def _png(self, color_split: int) -> bytes:
        image = Image.new("L", (64, 64), 0)
        for x in range(color_split, 64):
            for y in range(64):
                image.putpixel((x, y), 255)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def test_average_hash_length(self) -> None:
        assert len(average_hash(Image.new("RGB", (20, 20)))) == 64

    def test_region_hash_is_stable(self) -> None:
        png = self._png(32)
        rect = {"x": 0, "y": 0, "width": 64, "height": 64}

        assert region_hash(png, rect) == region_hash(png, rect)
        assert hamming_distance(region_hash(png, rect), region_hash(self._png(40), rect)) > 0

    def test_region_outside_screenshot(self) -> None:
        assert region_hash(self._png(32), {"x": 500, "y": 0, "width": 10, "height": 10}) is None

    def test_hamming_distance_requires_equal_length(self) -> None:
        with pytest.raises(ValueError):
            hamming_distance("0101", "01")
