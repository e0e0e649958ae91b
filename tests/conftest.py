"""Pytest fixtures for autoexplore tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fakes import FakeSessionFactory, FakeSite, link_page

from autoexplore.concurrency.session_pool import BrowserSessionPool
from autoexplore.config import ExplorerConfig


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test artifacts."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fast_config() -> ExplorerConfig:
    """Configuration with short waits suitable for in-memory browsers."""
    return ExplorerConfig(
        max_pages=20,
        max_depth=3,
        crawl_timeout_seconds=10.0,
        max_concurrent_crawlers=3,
        change_detection_timeout_seconds=0.05,
        poll_interval_seconds=0.01,
        delay_between_requests_ms=0,
        capture_visual_signatures=False,
        acquire_timeout_seconds=1.0,
    )


@pytest.fixture
def chain_site() -> FakeSite:
    """Three pages linked A -> B -> C."""
    return FakeSite({
        "http://app.test/": link_page("Home", "/b"),
        "http://app.test/b": link_page("Products", "/c"),
        "http://app.test/c": link_page("Checkout"),
    })


@pytest_asyncio.fixture
async def make_pool(
    fast_config: ExplorerConfig,
) -> AsyncGenerator:
    """Build pools over fake sites; every pool is shut down after the test."""
    pools: list[BrowserSessionPool] = []

    def build(
        site: FakeSite,
        config: ExplorerConfig | None = None,
    ) -> tuple[BrowserSessionPool, FakeSessionFactory]:
        factory = FakeSessionFactory(site)
        pool = BrowserSessionPool(config or fast_config, session_factory=factory)
        pools.append(pool)
        return pool, factory

    yield build

    for pool in pools:
        await pool.shutdown()
