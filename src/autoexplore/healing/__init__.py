"""
Self-healing element identity.

Fingerprints capture what identifies an element beyond its locator; the
resolver uses them to find the element again after the markup drifts.
"""

from autoexplore.healing.fingerprint import (
    ATTRIBUTE_ALLOW_LIST,
    CSS_PROPERTIES,
    ElementFingerprint,
    fingerprints_match,
)
from autoexplore.healing.resolver import (
    ElementIdentityResolver,
    ElementNotFound,
    Found,
    NotFound,
    Resolution,
    ResolutionStage,
    xpath_literal,
)
from autoexplore.healing.visual import average_hash, hamming_distance, region_hash

__all__ = [
    # Fingerprints
    "ATTRIBUTE_ALLOW_LIST",
    "CSS_PROPERTIES",
    "ElementFingerprint",
    "fingerprints_match",
    # Resolution
    "ElementIdentityResolver",
    "ElementNotFound",
    "Found",
    "NotFound",
    "Resolution",
    "ResolutionStage",
    "xpath_literal",
    # Visual hashing
    "average_hash",
    "hamming_distance",
    "region_hash",
]
