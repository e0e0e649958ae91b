"""
Concurrency primitives for exploration runs.

Provides the browser session pool that crawl workers and exploration runs
lease their WebDriver sessions from.
"""

from autoexplore.concurrency.session_pool import (
    BrowserSession,
    BrowserSessionPool,
    PoolExhaustedError,
    SessionCreationError,
    SessionFactory,
    SessionNotFoundError,
    SessionPoolError,
)

__all__ = [
    "BrowserSession",
    "BrowserSessionPool",
    "PoolExhaustedError",
    "SessionCreationError",
    "SessionFactory",
    "SessionNotFoundError",
    "SessionPoolError",
]
