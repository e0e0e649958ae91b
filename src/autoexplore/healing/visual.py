"""
Perceptual hashing of rendered element regions.

An average hash: the region is reduced to an 8x8 grayscale thumbnail and
each bit records whether a cell is brighter than the thumbnail mean.
"""

from __future__ import annotations

import io
from typing import Mapping

import numpy as np
from PIL import Image

HASH_SIZE = 8
"""Thumbnail edge length; signatures are HASH_SIZE**2 bits long."""


def average_hash(image: Image.Image, hash_size: int = HASH_SIZE) -> str:
    """Compute the average hash of an image as a string of '0'/'1'."""
    thumbnail = image.convert("L").resize((hash_size, hash_size), Image.Resampling.BOX)
    pixels = np.asarray(thumbnail, dtype=np.float64)
    bits = (pixels > pixels.mean()).flatten()
    return "".join("1" if bit else "0" for bit in bits)


def region_hash(screenshot_png: bytes, rect: Mapping[str, float]) -> str | None:
    """
    Hash the part of a page screenshot covered by an element rectangle.

    Returns None when the rectangle falls outside the screenshot or has no
    area.
    """
    with Image.open(io.BytesIO(screenshot_png)) as image:
        left = max(0, int(rect.get("x", 0)))
        top = max(0, int(rect.get("y", 0)))
        right = min(image.width, int(rect.get("x", 0) + rect.get("width", 0)))
        bottom = min(image.height, int(rect.get("y", 0) + rect.get("height", 0)))
        if right <= left or bottom <= top:
            return None
        return average_hash(image.crop((left, top, right, bottom)))


def hamming_distance(first: str, second: str) -> int:
    """Count differing bits between two equal-length signatures."""
    if len(first) != len(second):
        raise ValueError("visual signatures must have equal length")
    return sum(a != b for a, b in zip(first, second))
