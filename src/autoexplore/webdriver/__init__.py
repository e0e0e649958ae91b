"""
W3C WebDriver wire protocol client.

The only browser automation boundary the explorer depends on.
"""

from autoexplore.webdriver.capabilities import BrowserKind, build_capabilities
from autoexplore.webdriver.client import (
    ELEMENT_KEY,
    RemoteElement,
    WebDriverClient,
    create_session,
    locator_strategy,
    wait_until,
)
from autoexplore.webdriver.errors import (
    ElementNotInteractableError,
    JavascriptError,
    NavigationTimeout,
    NoSuchElementError,
    NoSuchWindowError,
    SessionNotCreatedError,
    StaleElementError,
    WebDriverError,
)

__all__ = [
    # Client
    "ELEMENT_KEY",
    "RemoteElement",
    "WebDriverClient",
    "create_session",
    "locator_strategy",
    "wait_until",
    # Capabilities
    "BrowserKind",
    "build_capabilities",
    # Errors
    "ElementNotInteractableError",
    "JavascriptError",
    "NavigationTimeout",
    "NoSuchElementError",
    "NoSuchWindowError",
    "SessionNotCreatedError",
    "StaleElementError",
    "WebDriverError",
]
