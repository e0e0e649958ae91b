"""
Async client for the W3C WebDriver wire protocol.

Provides:
- Session creation and teardown against a remote end (chromedriver,
  geckodriver, a Selenium grid)
- Navigation, element lookup and interaction commands
- Script execution with element reference marshalling
- A bounded polling helper for best-effort waits
"""

from __future__ import annotations

import asyncio
import base64
import time
from typing import Any, Awaitable, Callable

import httpx
import structlog

from autoexplore.webdriver.errors import (
    SessionNotCreatedError,
    WebDriverError,
    error_from_response,
)

logger = structlog.get_logger(__name__)

ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"
"""W3C web element identifier key."""


def locator_strategy(locator: str) -> tuple[str, str]:
    """Map a locator string onto a W3C location strategy."""
    stripped = locator.strip()
    if stripped.startswith(("/", "(")):
        return "xpath", stripped
    return "css selector", stripped


class RemoteElement:
    """Reference to an element inside a remote session."""

    def __init__(self, client: WebDriverClient, element_id: str) -> None:
        self._client = client
        self._id = element_id

    @property
    def element_id(self) -> str:
        return self._id

    def to_json(self) -> dict[str, str]:
        return {ELEMENT_KEY: self._id}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, RemoteElement) and other._id == self._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"RemoteElement({self._id!r})"

    async def _get(self, path: str) -> Any:
        return await self._client.command("GET", f"/element/{self._id}{path}")

    async def _post(self, path: str, payload: dict[str, Any] | None = None) -> Any:
        return await self._client.command("POST", f"/element/{self._id}{path}", payload or {})

    async def tag_name(self) -> str:
        return str(await self._get("/name") or "").lower()

    async def text(self) -> str:
        return str(await self._get("/text") or "")

    async def attribute(self, name: str) -> str | None:
        value = await self._get(f"/attribute/{name}")
        return None if value is None else str(value)

    async def property(self, name: str) -> Any:
        return await self._get(f"/property/{name}")

    async def css_value(self, name: str) -> str:
        return str(await self._get(f"/css/{name}") or "")

    async def rect(self) -> dict[str, float]:
        value = await self._get("/rect") or {}
        return {key: float(value.get(key, 0)) for key in ("x", "y", "width", "height")}

    async def is_displayed(self) -> bool:
        return bool(await self._get("/displayed"))

    async def is_enabled(self) -> bool:
        return bool(await self._get("/enabled"))

    async def is_selected(self) -> bool:
        return bool(await self._get("/selected"))

    async def click(self) -> None:
        await self._post("/click")

    async def clear(self) -> None:
        await self._post("/clear")

    async def send_keys(self, text: str) -> None:
        await self._post("/value", {"text": text})

    async def find_elements(self, locator: str) -> list[RemoteElement]:
        using, value = locator_strategy(locator)
        found = await self._post("/elements", {"using": using, "value": value})
        return [RemoteElement(self._client, item[ELEMENT_KEY]) for item in found or []]


class WebDriverClient:
    """
    One remote browser session.

    All commands are routed through :meth:`command`, which turns W3C error
    payloads into the exceptions in :mod:`autoexplore.webdriver.errors`.
    """

    def __init__(
        self,
        base_url: str,
        session_id: str,
        http_client: httpx.AsyncClient,
        owns_client: bool = True,
        capabilities: dict[str, Any] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session_id = session_id
        self._client = http_client
        self._owns_client = owns_client
        self._capabilities = capabilities or {}
        self._closed = False
        self._log = logger.bind(component="webdriver", session_id=session_id)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def capabilities(self) -> dict[str, Any]:
        return self._capabilities

    @property
    def closed(self) -> bool:
        return self._closed

    async def command(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send one session-scoped command and return its ``value``."""
        url = f"{self._base_url}/session/{self._session_id}{path}"
        try:
            response = await self._client.request(method, url, json=payload)
        except httpx.TimeoutException as e:
            raise WebDriverError(f"Command timed out: {method} {path}", error_code="timeout") from e
        except httpx.HTTPError as e:
            raise WebDriverError(f"Transport error: {e}") from e

        return _unwrap(response)

    # Navigation

    async def navigate(self, url: str) -> None:
        await self.command("POST", "/url", {"url": url})

    async def current_url(self) -> str:
        return str(await self.command("GET", "/url") or "")

    async def title(self) -> str:
        return str(await self.command("GET", "/title") or "")

    async def back(self) -> None:
        await self.command("POST", "/back", {})

    async def refresh(self) -> None:
        await self.command("POST", "/refresh", {})

    # Elements

    async def find_element(self, locator: str) -> RemoteElement:
        using, value = locator_strategy(locator)
        found = await self.command("POST", "/element", {"using": using, "value": value})
        return RemoteElement(self, found[ELEMENT_KEY])

    async def find_elements(self, locator: str) -> list[RemoteElement]:
        using, value = locator_strategy(locator)
        found = await self.command("POST", "/elements", {"using": using, "value": value})
        return [RemoteElement(self, item[ELEMENT_KEY]) for item in found or []]

    async def find_elements_by_tag(self, tag: str) -> list[RemoteElement]:
        found = await self.command("POST", "/elements", {"using": "tag name", "value": tag})
        return [RemoteElement(self, item[ELEMENT_KEY]) for item in found or []]

    # Scripts and screenshots

    async def execute_script(self, script: str, *args: Any) -> Any:
        payload = {"script": script, "args": [_marshal(arg) for arg in args]}
        result = await self.command("POST", "/execute/sync", payload)
        return _unmarshal(self, result)

    async def screenshot(self) -> bytes:
        encoded = await self.command("GET", "/screenshot")
        return base64.b64decode(encoded or "")

    # Windows

    async def window_handles(self) -> list[str]:
        return list(await self.command("GET", "/window/handles") or [])

    async def current_window_handle(self) -> str:
        return str(await self.command("GET", "/window"))

    async def switch_to_window(self, handle: str) -> None:
        await self.command("POST", "/window", {"handle": handle})

    async def close_window(self) -> list[str]:
        return list(await self.command("DELETE", "/window") or [])

    async def set_window_size(self, width: int, height: int) -> None:
        await self.command("POST", "/window/rect", {"width": width, "height": height})

    # Cookies and timeouts

    async def get_cookies(self) -> list[dict[str, Any]]:
        return list(await self.command("GET", "/cookie") or [])

    async def add_cookie(self, cookie: dict[str, Any]) -> None:
        await self.command("POST", "/cookie", {"cookie": cookie})

    async def set_timeouts(
        self,
        page_load_ms: int | None = None,
        script_ms: int | None = None,
        implicit_ms: int | None = None,
    ) -> None:
        timeouts: dict[str, int] = {}
        if page_load_ms is not None:
            timeouts["pageLoad"] = page_load_ms
        if script_ms is not None:
            timeouts["script"] = script_ms
        if implicit_ms is not None:
            timeouts["implicit"] = implicit_ms
        if timeouts:
            await self.command("POST", "/timeouts", timeouts)

    async def quit(self) -> None:
        """Delete the remote session and close the HTTP client if owned."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.command("DELETE", "")
        finally:
            if self._owns_client:
                await self._client.aclose()


async def create_session(
    base_url: str,
    capabilities: dict[str, Any],
    timeout_seconds: float = 60.0,
    http_client: httpx.AsyncClient | None = None,
) -> WebDriverClient:
    """
    Start a new remote session.

    Args:
        base_url: Remote end URL, e.g. ``http://localhost:4444``
        capabilities: ``alwaysMatch`` capabilities
        timeout_seconds: HTTP timeout applied to every command
        http_client: Optional shared client (not closed on quit)

    Returns:
        Connected WebDriverClient

    Raises:
        SessionNotCreatedError: If the remote end refuses or is unreachable
    """
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
    url = f"{base_url.rstrip('/')}/session"

    try:
        response = await client.post(url, json={"capabilities": {"alwaysMatch": capabilities}})
        value = _unwrap(response)
        session_id = value["sessionId"]
    except (httpx.HTTPError, WebDriverError, KeyError, TypeError) as e:
        if owns_client:
            await client.aclose()
        if isinstance(e, SessionNotCreatedError):
            raise
        raise SessionNotCreatedError(f"Could not create session: {e}") from e

    logger.debug("WebDriver session created", session_id=session_id, base_url=base_url)
    return WebDriverClient(
        base_url,
        session_id,
        client,
        owns_client=owns_client,
        capabilities=value.get("capabilities", {}),
    )


async def wait_until(
    condition: Callable[[], Awaitable[bool]],
    timeout: float,
    poll_interval: float = 0.25,
) -> bool:
    """
    Poll ``condition`` at a fixed cadence until it holds or ``timeout`` elapses.

    WebDriver errors raised by the condition count as "not yet". Returns
    whether the condition was met; expiry is not an error.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            if await condition():
                return True
        except WebDriverError as e:
            logger.debug("Wait condition raised", error=str(e))
        if time.monotonic() >= deadline:
            return False
        await asyncio.sleep(poll_interval)


def _unwrap(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        body = {"value": {"error": "unknown error", "message": response.text}}

    value = body.get("value") if isinstance(body, dict) else None
    if response.status_code >= 400 or (isinstance(value, dict) and "error" in value):
        raise error_from_response(response.status_code, body)
    return value


def _marshal(arg: Any) -> Any:
    if isinstance(arg, RemoteElement):
        return arg.to_json()
    if isinstance(arg, (list, tuple)):
        return [_marshal(item) for item in arg]
    if isinstance(arg, dict):
        return {key: _marshal(value) for key, value in arg.items()}
    return arg


def _unmarshal(client: WebDriverClient, value: Any) -> Any:
    if isinstance(value, dict):
        if ELEMENT_KEY in value and len(value) == 1:
            return RemoteElement(client, value[ELEMENT_KEY])
        return {key: _unmarshal(client, item) for key, item in value.items()}
    if isinstance(value, list):
        return [_unmarshal(client, item) for item in value]
    return value
