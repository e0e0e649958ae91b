"""
Form login before a crawl.

Fills the configured login form, waits for the browser to leave the login
page and hands back the session cookies so that other pooled sessions can
reuse the authenticated state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from autoexplore.crawler.errors import AuthenticationFailure
from autoexplore.crawler.state import normalize_url
from autoexplore.webdriver.client import wait_until
from autoexplore.webdriver.errors import NavigationTimeout, WebDriverError

if TYPE_CHECKING:
    from autoexplore.config import AuthConfig
    from autoexplore.webdriver.client import RemoteElement, WebDriverClient

logger = structlog.get_logger(__name__)

USERNAME_FALLBACKS = (
    "input[type='email']",
    "input[name*='user']",
    "input[name*='email']",
    "input[id*='user']",
    "input[id*='email']",
    "input[name*='login']",
    "input[type='text']",
)

PASSWORD_FALLBACKS = ("input[type='password']",)

SUBMIT_FALLBACKS = (
    "button[type='submit']",
    "input[type='submit']",
    "form button",
)

ENTER_KEY = "\ue007"


class Authenticator:
    """Logs a browser session in through a login form."""

    def __init__(
        self,
        auth: AuthConfig,
        timeout_seconds: float = 30.0,
        poll_interval: float = 0.25,
    ) -> None:
        self._auth = auth
        self._timeout = timeout_seconds
        self._poll_interval = poll_interval
        self._log = logger.bind(component="authenticator")

    @property
    def enabled(self) -> bool:
        return self._auth.enabled

    async def authenticate(self, handle: WebDriverClient) -> list[dict[str, Any]]:
        """
        Log in and return the resulting cookies.

        Raises:
            AuthenticationFailure: If the form could not be filled or the
                browser stayed on the login page
        """
        self._log.info("Authenticating", login_url=self._auth.login_url)
        try:
            await handle.navigate(self._auth.login_url)
        except NavigationTimeout:
            self._log.warning("Login page load timed out, continuing")

        try:
            username = await self._first(
                handle, (self._auth.username_selector, *USERNAME_FALLBACKS)
            )
            if username is None:
                raise AuthenticationFailure("Username field not found")
            password = await self._first(
                handle, (self._auth.password_selector, *PASSWORD_FALLBACKS)
            )
            if password is None:
                raise AuthenticationFailure("Password field not found")

            await username.clear()
            await username.send_keys(self._auth.username)
            await password.clear()
            await password.send_keys(self._auth.password)

            submit = await self._first(handle, (self._auth.submit_selector, *SUBMIT_FALLBACKS))
            if submit is not None:
                await submit.click()
            else:
                await password.send_keys(ENTER_KEY)

            left = await wait_until(
                lambda: self._left_login_page(handle),
                timeout=self._timeout,
                poll_interval=self._poll_interval,
            )
            if not left:
                raise AuthenticationFailure("Still on the login page after submitting")

            cookies = await handle.get_cookies()
        except WebDriverError as e:
            raise AuthenticationFailure(f"Login form interaction failed: {e}") from e

        self._log.info("Authentication succeeded", cookies=len(cookies))
        return cookies

    async def apply_cookies(
        self,
        handle: WebDriverClient,
        cookies: list[dict[str, Any]],
        base_url: str,
    ) -> None:
        """Install captured cookies into another session."""
        if not cookies:
            return
        try:
            await handle.navigate(base_url)
        except NavigationTimeout:
            self._log.debug("Base page load timed out while seeding cookies")
        for cookie in cookies:
            try:
                await handle.add_cookie(cookie)
            except WebDriverError as e:
                self._log.debug("Cookie rejected", name=cookie.get("name"), error=str(e))

    async def is_login_page(self, handle: WebDriverClient) -> bool:
        """A page showing a visible password field is treated as a login page."""
        for field in await handle.find_elements(PASSWORD_FALLBACKS[0]):
            if await field.is_displayed():
                return True
        return False

    async def _left_login_page(self, handle: WebDriverClient) -> bool:
        current = normalize_url(await handle.current_url())
        if current == normalize_url(self._auth.login_url):
            return False
        return not await self.is_login_page(handle)

    async def _first(
        self, handle: WebDriverClient, selectors: tuple[str, ...]
    ) -> RemoteElement | None:
        for selector in selectors:
            for element in await handle.find_elements(selector):
                if await element.is_displayed():
                    return element
        return None
