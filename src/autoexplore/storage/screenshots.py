"""
Screenshot storage for analyzed pages.

Writes PNG files under a configured directory.
"""

from __future__ import annotations

import re
from pathlib import Path

import aiofiles
import structlog

logger = structlog.get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class ScreenshotStore:
    """Saves page screenshots to the local filesystem."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._log = logger.bind(component="screenshot_store")

    @property
    def directory(self) -> Path:
        return self._directory

    async def save(self, name: str, png: bytes) -> Path:
        """Write a PNG and return its path."""
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / f"{_UNSAFE.sub('_', name)}.png"
        async with aiofiles.open(path, "wb") as f:
            await f.write(png)
        self._log.debug("Screenshot saved", path=str(path), size=len(png))
        return path
