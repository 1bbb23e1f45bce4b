"""
Tests for main and mock_feed
"""
import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from news_terminal.config import (
    AuthConfig,
    HttpConfig,
    JobsConfig,
    SessionConfig,
    Settings,
    StoreConfig,
)
from news_terminal.main import build_parser, ingest_once, open_runtime, run_periodically
from news_terminal.mock_feed import HEADLINES, MOCK_SOURCES, MockFeedClient, register_mock_sources
from news_terminal.routing.defaults import DEFAULT_PANES
from news_terminal.store.changes import LocalChangeFeed
from news_terminal.store.memory import InMemoryStore

MEMORY_SETTINGS = Settings(
    store=StoreConfig(backend="memory"),
    http=HttpConfig(),
    auth=AuthConfig(),
    jobs=JobsConfig(),
    session=SessionConfig(),
)


# ── CLI parser ────────────────────────────────────────────────────────────────

def test_parser_watch_requires_user():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["watch"])


def test_parser_flags():
    parser = build_parser()
    assert parser.parse_args(["serve", "--mock"]).mock is True
    assert parser.parse_args(["ingest"]).mock is False
    args = parser.parse_args(["watch", "--user", "alice"])
    assert (args.command, args.user) == ("watch", "alice")


# ── Mock feed ─────────────────────────────────────────────────────────────────

async def test_register_mock_sources_only_when_empty():
    store = InMemoryStore(LocalChangeFeed())
    assert await register_mock_sources(store) == len(MOCK_SOURCES)
    assert await register_mock_sources(store) == 0


async def test_mock_client_returns_known_headlines():
    async with MockFeedClient(entries_per_fetch=(3, 3), rng=random.Random(7)) as client:
        parsed = await client.fetch_entries(MOCK_SOURCES[0])

    assert len(parsed.entries) == 3
    assert all(e.title in HEADLINES for e in parsed.entries)
    assert all(e.link.startswith("https://news.example.com/mock-wire/") for e in parsed.entries)


# ── Runtime ───────────────────────────────────────────────────────────────────

async def test_open_runtime_seeds_panes_and_ingests_mock_feed():
    runtime = await open_runtime(MEMORY_SETTINGS, mock=True)
    try:
        assert {p.id for p in runtime.panes.snapshot} == {p.id for p in DEFAULT_PANES}
        report = await ingest_once(runtime, MEMORY_SETTINGS, mock=True)
        assert report.total_inserted > 0
        assert await runtime.store.count_items() == report.total_inserted
    finally:
        await runtime.close()


async def test_ingest_once_without_sources():
    runtime = await open_runtime(MEMORY_SETTINGS)
    try:
        assert await ingest_once(runtime, MEMORY_SETTINGS, mock=True) is None
    finally:
        await runtime.close()


async def test_run_periodically_survives_job_errors():
    shutdown = asyncio.Event()
    calls = 0

    async def job():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("transient")
        if calls == 3:
            shutdown.set()

    await asyncio.wait_for(run_periodically("Test", job, 0.01, shutdown), timeout=2.0)
    assert calls == 3


async def test_run_periodically_stops_promptly():
    shutdown = asyncio.Event()
    job = AsyncMock()
    task = asyncio.create_task(run_periodically("Test", job, 3600, shutdown))
    await asyncio.sleep(0)
    shutdown.set()
    await asyncio.wait_for(task, timeout=1.0)
    job.assert_awaited_once()
