"""Persistence interfaces and screenshot storage."""

from autoexplore.storage.repository import ExplorationRepository, InMemoryExplorationRepository
from autoexplore.storage.screenshots import ScreenshotStore

__all__ = [
    "ExplorationRepository",
    "InMemoryExplorationRepository",
    "ScreenshotStore",
]
