"""
State signatures: a comparable summary of where the application is.

A signature combines the normalized URL, a digest of the visible text and
the number of interactive elements. It is an approximation used for loop
and duplicate detection, tuned through :class:`SignaturePolicy`.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog

from autoexplore.config import SignaturePolicy
from autoexplore.webdriver import probes

if TYPE_CHECKING:
    from autoexplore.webdriver.client import WebDriverClient

logger = structlog.get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")
_DIGITS = re.compile(r"\d")


def normalize_url(url: str, include_query: bool = True) -> str:
    """
    Normalize a URL for deduplication.

    Drops the fragment and a trailing slash on the path, and sorts the
    query parameters.
    """
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/")
    query = urlencode(sorted(parse_qsl(parsed.query, keep_blank_values=True)))
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        "",
        query if include_query else "",
        "",
    ))


@dataclass(frozen=True)
class StateSignature:
    """Derived identity of an application state. Never persisted."""

    url: str
    text_digest: str
    interactive_count: int

    @property
    def digest(self) -> str:
        payload = f"{self.url}|{self.text_digest}|{self.interactive_count}"
        return hashlib.sha256(payload.encode()).hexdigest()

    @property
    def short_id(self) -> str:
        return self.digest[:12]


class StateFingerprintEngine:
    """Computes state signatures for a live browser session."""

    def __init__(self, policy: SignaturePolicy | None = None) -> None:
        self._policy = policy or SignaturePolicy()

    @property
    def policy(self) -> SignaturePolicy:
        return self._policy

    async def signature(self, handle: WebDriverClient) -> StateSignature:
        """Summarize the current state of a session."""
        url = await handle.current_url()
        text = await probes.visible_text(handle)
        count = await probes.interactive_count(handle)
        return self.compose(url, text, count)

    def compose(self, url: str, text: str, interactive_count: int) -> StateSignature:
        """Build a signature from already-collected observations."""
        return StateSignature(
            url=normalize_url(url, include_query=self._policy.include_query),
            text_digest=self.text_digest(text),
            interactive_count=interactive_count,
        )

    def text_digest(self, text: str) -> str:
        if self._policy.collapse_whitespace:
            text = _WHITESPACE.sub(" ", text).strip()
        if self._policy.mask_digits:
            text = _DIGITS.sub("0", text)
        if self._policy.text_limit is not None:
            text = text[: self._policy.text_limit]
        return hashlib.md5(text.encode()).hexdigest()
