"""
Browser session pool.

Provides a pool of remote WebDriver sessions with:
- Reuse of idle sessions matching (browser kind, headless)
- Degraded-capability retry when a full session cannot start
- Exclusive leases: an in-use session is never handed out twice
- Idle sweeping and unconditional teardown on shutdown
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable

import structlog

from autoexplore.config import ExplorerConfig
from autoexplore.webdriver.capabilities import BrowserKind, build_capabilities
from autoexplore.webdriver.client import create_session
from autoexplore.webdriver.errors import WebDriverError

if TYPE_CHECKING:
    from autoexplore.webdriver.client import WebDriverClient

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[BrowserKind, bool, bool], Awaitable["WebDriverClient"]]
"""Creates a handle from (kind, headless, minimal)."""


class SessionPoolError(Exception):
    """Base exception for session pool errors."""


class SessionCreationError(SessionPoolError):
    """Raised when a session could not be started even with minimal options."""


class PoolExhaustedError(SessionPoolError):
    """Raised when the pool is at capacity and no session was released in time."""


class SessionNotFoundError(SessionPoolError):
    """Raised when a session id is unknown to the pool."""


@dataclass
class BrowserSession:
    """
    One pooled browser session with lease bookkeeping.

    Exactly one caller may hold ``in_use`` at a time.
    """

    id: str
    """Pool-assigned session id."""

    handle: WebDriverClient
    """The underlying WebDriver session."""

    kind: BrowserKind
    """Browser engine."""

    headless: bool
    """Whether the browser runs without a window."""

    in_use: bool = False
    """Whether a caller currently holds the lease."""

    created_at: float = field(default_factory=time.monotonic)
    last_used_at: float = field(default_factory=time.monotonic)

    use_count: int = 0
    """Number of leases handed out."""

    degraded: bool = False
    """Started with the minimal capability set."""

    @property
    def idle_seconds(self) -> float:
        """Get time since last use in seconds."""
        return time.monotonic() - self.last_used_at

    def mark_acquired(self) -> None:
        self.in_use = True
        self.use_count += 1
        self.last_used_at = time.monotonic()

    def mark_released(self) -> None:
        self.in_use = False
        self.last_used_at = time.monotonic()


class BrowserSessionPool:
    """
    Pool of WebDriver sessions for crawl workers and exploration runs.

    Usage:
        async with BrowserSessionPool(config) as pool:
            async with pool.session() as handle:
                await handle.navigate("https://example.com")
    """

    def __init__(
        self,
        config: ExplorerConfig | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        """
        Initialize the pool.

        Args:
            config: Explorer configuration (endpoint, browser options, limits)
            session_factory: Optional factory replacing remote session creation
        """
        self._config = config or ExplorerConfig()
        self._factory = session_factory or self._create_remote_session

        self._sessions: dict[str, BrowserSession] = {}
        self._creating = 0
        self._condition = asyncio.Condition()
        self._sweep_task: asyncio.Task[None] | None = None
        self._closed = False

        self._log = logger.bind(component="session_pool")

        self._stats = {
            "total_created": 0,
            "total_degraded": 0,
            "total_destroyed": 0,
            "total_acquisitions": 0,
            "total_releases": 0,
            "creation_failures": 0,
        }

    @property
    def size(self) -> int:
        return len(self._sessions)

    @property
    def in_use_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.in_use)

    @property
    def statistics(self) -> dict[str, Any]:
        """Get pool statistics."""
        return {
            **self._stats,
            "current_size": self.size,
            "in_use": self.in_use_count,
            "idle": self.size - self.in_use_count,
        }

    async def start(self) -> None:
        """Start the background idle sweep."""
        if self._sweep_task is not None:
            return
        self._log.info(
            "Starting session pool",
            webdriver_url=self._config.webdriver_url,
            max_sessions=self._config.max_sessions,
        )
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def __aenter__(self) -> BrowserSessionPool:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.shutdown()

    async def acquire(
        self,
        kind: BrowserKind | None = None,
        headless: bool | None = None,
    ) -> str:
        """
        Lease a session matching (kind, headless).

        Reuses an idle matching session when one exists, otherwise creates
        one. When ``max_sessions`` is reached, waits at most
        ``acquire_timeout_seconds`` for a release.

        Returns:
            The leased session id

        Raises:
            SessionCreationError: If a new session could not be started
            PoolExhaustedError: If the pool stayed full for the whole timeout
        """
        if self._closed:
            raise SessionPoolError("Pool is closed")

        kind = kind or self._config.browser
        headless = self._config.headless if headless is None else headless
        deadline = time.monotonic() + self._config.acquire_timeout_seconds
        self._stats["total_acquisitions"] += 1

        async with self._condition:
            while True:
                if self._closed:
                    raise SessionPoolError("Pool is closed")
                session = self._find_idle(kind, headless)
                if session is not None:
                    session.mark_acquired()
                    self._log.debug(
                        "Session reused",
                        session_id=session.id,
                        use_count=session.use_count,
                    )
                    return session.id

                if self._has_capacity():
                    self._creating += 1
                    break

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhaustedError(
                        f"No session released within {self._config.acquire_timeout_seconds}s "
                        f"(pool size: {self.size}, in use: {self.in_use_count})"
                    )
                try:
                    await asyncio.wait_for(self._condition.wait(), timeout=remaining)
                except TimeoutError:
                    continue

        try:
            handle, degraded = await self._start_session(kind, headless)
        except BaseException:
            async with self._condition:
                self._creating -= 1
                self._condition.notify()
            raise

        session = BrowserSession(
            id=str(uuid.uuid4())[:8],
            handle=handle,
            kind=kind,
            headless=headless,
            degraded=degraded,
        )
        session.mark_acquired()

        async with self._condition:
            self._creating -= 1
            self._sessions[session.id] = session

        self._stats["total_created"] += 1
        self._log.info(
            "Session created",
            session_id=session.id,
            kind=kind,
            headless=headless,
            degraded=degraded,
        )
        return session.id

    def get_handle(self, session_id: str) -> WebDriverClient | None:
        """Get the handle of a session, or None if the id is unknown."""
        session = self._sessions.get(session_id)
        return session.handle if session is not None else None

    def get_session(self, session_id: str) -> BrowserSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return session

    async def release(self, session_id: str) -> None:
        """Return a lease; the session stays alive for reuse."""
        async with self._condition:
            session = self._sessions.get(session_id)
            if session is None:
                self._log.warning("Released session not in pool", session_id=session_id)
                return
            session.mark_released()
            self._stats["total_releases"] += 1
            self._condition.notify()

        self._log.debug("Session released", session_id=session_id)

    async def destroy(self, session_id: str) -> None:
        """Terminate a session and forget it. Unknown ids are ignored."""
        async with self._condition:
            session = self._sessions.pop(session_id, None)
            self._condition.notify()

        if session is not None:
            await self._close(session)

    async def sweep_idle(self, max_idle: float | None = None) -> int:
        """
        Destroy sessions that have been idle longer than ``max_idle`` seconds.

        Returns:
            Number of sessions destroyed
        """
        limit = self._config.session_idle_timeout_seconds if max_idle is None else max_idle
        async with self._condition:
            stale = [
                s for s in self._sessions.values()
                if not s.in_use and s.idle_seconds > limit
            ]
            for session in stale:
                del self._sessions[session.id]
            if stale:
                self._condition.notify_all()

        for session in stale:
            await self._close(session)

        if stale:
            self._log.info("Idle sessions swept", count=len(stale), max_idle=limit)
        return len(stale)

    async def shutdown(self) -> None:
        """Stop sweeping and destroy every session, leased or not."""
        if self._closed:
            return
        self._closed = True

        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        async with self._condition:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._condition.notify_all()

        for session in sessions:
            await self._close(session)

        self._log.info("Session pool shut down", stats=self._stats)

    @contextlib.asynccontextmanager
    async def session(
        self,
        kind: BrowserKind | None = None,
        headless: bool | None = None,
    ) -> AsyncIterator[WebDriverClient]:
        """
        Lease a session for the duration of a block.

        The session is released, not destroyed, when the block exits, even
        on cancellation.
        """
        session_id = await self.acquire(kind, headless)
        try:
            yield self._sessions[session_id].handle
        finally:
            await self.release(session_id)

    def _find_idle(self, kind: BrowserKind, headless: bool) -> BrowserSession | None:
        for session in self._sessions.values():
            if not session.in_use and session.kind == kind and session.headless == headless:
                return session
        return None

    def _has_capacity(self) -> bool:
        limit = self._config.max_sessions
        return limit is None or self.size + self._creating < limit

    async def _start_session(
        self, kind: BrowserKind, headless: bool
    ) -> tuple[WebDriverClient, bool]:
        try:
            return await self._factory(kind, headless, False), False
        except Exception as e:
            self._log.warning(
                "Full session creation failed, retrying with minimal options",
                kind=kind,
                error=str(e),
            )

        try:
            handle = await self._factory(kind, headless, True)
        except Exception as e:
            self._stats["creation_failures"] += 1
            self._log.error("Session creation failed", kind=kind, error=str(e))
            raise SessionCreationError(f"Could not start {kind} session: {e}") from e

        self._stats["total_degraded"] += 1
        return handle, True

    async def _create_remote_session(
        self, kind: BrowserKind, headless: bool, minimal: bool
    ) -> WebDriverClient:
        capabilities = build_capabilities(
            kind,
            headless=headless,
            viewport=self._config.viewport,
            user_agent=self._config.user_agent,
            page_load_timeout_ms=self._config.page_load_timeout_ms,
            minimal=minimal,
        )
        handle = await create_session(self._config.webdriver_url, capabilities)
        if minimal:
            try:
                await handle.set_timeouts(page_load_ms=self._config.page_load_timeout_ms)
            except WebDriverError as e:
                self._log.debug("Could not set timeouts on minimal session", error=str(e))
        return handle

    async def _close(self, session: BrowserSession) -> None:
        try:
            await session.handle.quit()
        except WebDriverError as e:
            self._log.warning("Error closing session", session_id=session.id, error=str(e))
        self._stats["total_destroyed"] += 1
        self._log.debug("Session destroyed", session_id=session.id)

    async def _sweep_loop(self) -> None:
        """Background task sweeping idle sessions."""
        while not self._closed:
            try:
                await asyncio.sleep(self._config.sweep_interval_seconds)
                await self.sweep_idle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._log.error("Error in sweep loop", error=str(e))
