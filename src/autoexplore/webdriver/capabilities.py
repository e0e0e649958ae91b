"""Capability payloads for the supported browsers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class BrowserKind(StrEnum):
    """Browser engines a session can be started with."""

    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"


_CHROMIUM_FULL_ARGS = [
    "--disable-extensions",
    "--disable-popup-blocking",
    "--disable-notifications",
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--remote-allow-origins=*",
]

_CHROMIUM_MINIMAL_ARGS = [
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


def build_capabilities(
    kind: BrowserKind,
    headless: bool = True,
    viewport: tuple[int, int] = (1366, 768),
    user_agent: str | None = None,
    page_load_timeout_ms: int = 30000,
    minimal: bool = False,
) -> dict[str, Any]:
    """
    Build the ``alwaysMatch`` capabilities for a new session.

    The minimal variant drops everything except the flags a containerized
    browser needs to start at all; it is the fallback when the full set is
    rejected.

    Args:
        kind: Browser engine to request
        headless: Run without a visible window
        viewport: Initial window size (width, height)
        user_agent: Optional user agent override
        page_load_timeout_ms: Session page-load timeout
        minimal: Use the reduced, safest option set

    Returns:
        Capabilities dictionary for the ``POST /session`` payload
    """
    width, height = viewport
    caps: dict[str, Any] = {"browserName": _browser_name(kind)}

    if not minimal:
        caps["pageLoadStrategy"] = "normal"
        caps["acceptInsecureCerts"] = True
        caps["timeouts"] = {"pageLoad": page_load_timeout_ms, "implicit": 0}

    if kind == BrowserKind.FIREFOX:
        args: list[str] = []
        if headless:
            args.append("-headless")
        options: dict[str, Any] = {"args": args}
        if not minimal:
            args.extend([f"--width={width}", f"--height={height}"])
            prefs: dict[str, Any] = {"dom.webnotifications.enabled": False}
            if user_agent:
                prefs["general.useragent.override"] = user_agent
            options["prefs"] = prefs
        caps["moz:firefoxOptions"] = options
        return caps

    args = list(_CHROMIUM_MINIMAL_ARGS if minimal else _CHROMIUM_FULL_ARGS)
    if headless:
        args.append("--headless=new")
    if not minimal:
        args.append(f"--window-size={width},{height}")
        if user_agent:
            args.append(f"--user-agent={user_agent}")

    options_key = "ms:edgeOptions" if kind == BrowserKind.EDGE else "goog:chromeOptions"
    caps[options_key] = {"args": args}
    return caps


def _browser_name(kind: BrowserKind) -> str:
    if kind == BrowserKind.EDGE:
        return "MicrosoftEdge"
    return kind.value
