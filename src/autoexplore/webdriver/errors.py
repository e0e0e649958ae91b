"""
Exceptions raised by the WebDriver wire client.

W3C WebDriver error responses carry a string ``error`` code; each code we
care about maps to a dedicated exception class so callers can catch the
failures they know how to absorb.
"""

from __future__ import annotations

from typing import Any


class WebDriverError(Exception):
    """Base exception for WebDriver wire protocol errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_body = response_body


class NoSuchElementError(WebDriverError):
    """Raised when a locator matches no element."""


class StaleElementError(WebDriverError):
    """Raised when an element reference is no longer attached to the DOM."""


class ElementNotInteractableError(WebDriverError):
    """Raised when an element cannot be clicked or typed into."""


class NavigationTimeout(WebDriverError):
    """Raised when a page load exceeds the session's page-load timeout."""


class SessionNotCreatedError(WebDriverError):
    """Raised when the remote end refuses to start a session."""


class NoSuchWindowError(WebDriverError):
    """Raised when the targeted window or tab has been closed."""


class JavascriptError(WebDriverError):
    """Raised when an executed script throws."""


ERROR_CODES: dict[str, type[WebDriverError]] = {
    "no such element": NoSuchElementError,
    "stale element reference": StaleElementError,
    "element not interactable": ElementNotInteractableError,
    "element click intercepted": ElementNotInteractableError,
    "timeout": NavigationTimeout,
    "session not created": SessionNotCreatedError,
    "no such window": NoSuchWindowError,
    "javascript error": JavascriptError,
}


def error_from_response(status_code: int, body: dict[str, Any]) -> WebDriverError:
    """Build the exception matching a W3C error payload."""
    value = body.get("value") if isinstance(body, dict) else None
    if not isinstance(value, dict):
        value = {}
    code = value.get("error")
    message = value.get("message") or f"WebDriver error: {status_code}"
    error_cls = ERROR_CODES.get(code or "", WebDriverError)
    return error_cls(
        message,
        error_code=code,
        status_code=status_code,
        response_body=body,
    )
