"""Exceptions raised while exploring an application."""

from __future__ import annotations


class ExplorationError(Exception):
    """Base exception for exploration errors."""


class InteractionFailure(ExplorationError):
    """Raised when a single element interaction could not be performed."""

    def __init__(self, message: str, locator: str | None = None) -> None:
        super().__init__(message)
        self.locator = locator


class AuthenticationFailure(ExplorationError):
    """Raised when the configured login did not succeed."""
