"""
news terminal: top-level orchestrator

Commands:
  - serve:   HTTP API (jobs, status, stream, panes, read/saved) plus the
             periodic ingest and archive loops in one event loop
  - ingest:  one ingestion pass over every active source
  - archive: one retention pass
  - watch:   a terminal session for one viewer, logging pane changes

Usage:
    python -m news_terminal.main serve            # live RSS sources
    python -m news_terminal.main serve --mock     # offline mock feed
    python -m news_terminal.main ingest
    python -m news_terminal.main archive
    python -m news_terminal.main watch --user alice --mock
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import uvicorn
from dotenv import load_dotenv

from news_terminal.api.server import AppContext, create_app
from news_terminal.archive.retention import ArchiveReport, RetentionJob
from news_terminal.config import Settings, load_settings
from news_terminal.core.types import NewsTerminalError
from news_terminal.ingest.feed_client import RSSFeedClient
from news_terminal.ingest.pipeline import IngestionPipeline, IngestionReport
from news_terminal.mock_feed import MockFeedClient, register_mock_sources
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.session.controller import GAP_CHECK_INTERVAL, PaneView
from news_terminal.session.sound import SoundAlert, SoundSettingsService
from news_terminal.session.terminal import TerminalSession
from news_terminal.store.changes import LocalChangeFeed
from news_terminal.store.interface import ChangeFeed, NewsStore
from news_terminal.store.memory import InMemoryStore
from news_terminal.store.redis_feed import RedisChangeFeed
from news_terminal.store.sqlite import SQLiteStore

logger = logging.getLogger("news_terminal")

MOCK_INGEST_INTERVAL_SECONDS = 5


@dataclass
class Runtime:
    """Store, change feed and pane snapshot shared by every command."""

    store: NewsStore
    changes: ChangeFeed
    panes: PaneRuleStore
    redis_feed: Optional[RedisChangeFeed] = None

    async def close(self) -> None:
        self.panes.close()
        await self.store.close()
        if self.redis_feed is not None:
            await self.redis_feed.close()
        elif isinstance(self.changes, LocalChangeFeed):
            await self.changes.close()


async def open_runtime(settings: Settings, *, mock: bool = False) -> Runtime:
    redis_feed = None
    if settings.store.uses_redis:
        redis_feed = RedisChangeFeed(settings.store.redis_url)
        await redis_feed.connect()
        changes: ChangeFeed = redis_feed
    else:
        changes = LocalChangeFeed()

    if settings.store.backend == "memory":
        store: NewsStore = InMemoryStore(changes)
    else:
        store = await SQLiteStore.open(settings.store.database_path, changes)

    panes = PaneRuleStore(store, changes)
    if settings.store.seed_defaults:
        await panes.seed_defaults()
    await panes.refresh()
    panes.watch()

    if mock:
        registered = await register_mock_sources(store)
        if registered:
            logger.info(f"Registered {registered} mock sources")

    logger.info(
        "Runtime ready",
        extra={
            "backend": settings.store.backend,
            "redis": settings.store.uses_redis,
            "panes": len(panes.snapshot),
        },
    )
    return Runtime(store=store, changes=changes, panes=panes, redis_feed=redis_feed)


def _feed_client_factory(settings: Settings, mock: bool):
    if mock:
        return MockFeedClient
    return lambda: RSSFeedClient(
        timeout_seconds=settings.jobs.fetch_timeout_seconds,
        user_agent=settings.jobs.user_agent,
    )


async def ingest_once(runtime: Runtime, settings: Settings, *, mock: bool = False) -> Optional[IngestionReport]:
    async with _feed_client_factory(settings, mock)() as client:
        return await IngestionPipeline(runtime.store, client).run()


async def archive_once(runtime: Runtime, settings: Settings) -> ArchiveReport:
    return await RetentionJob(runtime.store, retention_days=settings.jobs.retention_days).run()


async def run_periodically(
    name: str,
    job: Callable[[], Awaitable[object]],
    interval_seconds: float,
    shutdown: asyncio.Event,
) -> None:
    """Run `job` now and then every `interval_seconds` until shutdown."""
    while not shutdown.is_set():
        try:
            await job()
        except Exception as e:
            logger.error(f"{name} failed: {e}")
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass


async def _stop(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass


# ── Commands ──────────────────────────────────────────────────────────────


async def serve(settings: Settings, *, mock: bool = False) -> None:
    settings.validate_backend()
    runtime = await open_runtime(settings, mock=mock)
    shutdown_event = asyncio.Event()

    app = create_app(AppContext(
        settings=settings,
        store=runtime.store,
        panes=runtime.panes,
        changes=runtime.changes,
        feed_client=_feed_client_factory(settings, mock),
    ))
    # uvicorn owns SIGINT/SIGTERM while serving.
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=settings.http.host,
        port=settings.http.port,
        log_config=None,
    ))

    ingest_interval = MOCK_INGEST_INTERVAL_SECONDS if mock else settings.jobs.ingest_interval_seconds
    jobs = [
        asyncio.create_task(run_periodically(
            "Ingest", lambda: ingest_once(runtime, settings, mock=mock), ingest_interval, shutdown_event,
        )),
        asyncio.create_task(run_periodically(
            "Archive", lambda: archive_once(runtime, settings),
            settings.jobs.archive_interval_seconds, shutdown_event,
        )),
    ]
    logger.info(
        f"News terminal API listening on http://{settings.http.host}:{settings.http.port}"
        f"{' (mock feed)' if mock else ''}"
    )

    try:
        await server.serve()
    finally:
        logger.info("Shutting down...")
        shutdown_event.set()
        await _stop(jobs)
        await runtime.close()


async def ingest(settings: Settings, *, mock: bool = False) -> None:
    runtime = await open_runtime(settings, mock=mock)
    try:
        report = await ingest_once(runtime, settings, mock=mock)
    finally:
        await runtime.close()
    if report is None:
        print(json.dumps({"message": "No active RSS sources configured"}))
    else:
        print(json.dumps(report.to_dict(), indent=2))


async def archive(settings: Settings) -> None:
    runtime = await open_runtime(settings)
    try:
        report = await archive_once(runtime, settings)
    finally:
        await runtime.close()
    print(json.dumps(report.to_dict(), indent=2))


def _log_view(view: PaneView) -> None:
    if view.error:
        logger.warning(f"[{view.pane_id}] {view.error}")
        return
    newest = view.items[0].item.headline[:70] if view.items else "-"
    unread = sum(1 for e in view.items if not e.is_read)
    logger.info(f"[{view.pane_id}] {len(view.items)} items ({unread} unread) | {newest}")


def _log_sound(alert: SoundAlert) -> None:
    logger.info(f"*ding* {alert.item_id} (volume {alert.volume})")


async def watch(settings: Settings, user_id: str, *, mock: bool = False) -> None:
    runtime = await open_runtime(settings, mock=mock)
    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    sound_settings = SoundSettingsService(settings.session.sound_settings_path)
    sound_settings.load()

    session = TerminalSession(
        user_id,
        runtime.store,
        runtime.panes,
        runtime.changes,
        sound_settings=sound_settings,
        sound_sink=_log_sound,
        cooldown_ms=settings.session.sound_cooldown_ms,
        max_items=settings.session.max_items,
        listener=_log_view,
    )
    for view in (await session.start()).values():
        _log_view(view)

    # Without a shared change feed nothing outside this process reaches the
    # session, so the mock feed is ingested here.
    tasks = [
        asyncio.create_task(run_periodically(
            "Gap check", session.on_visible, GAP_CHECK_INTERVAL.total_seconds(), shutdown_event,
        )),
    ]
    if mock:
        tasks.append(asyncio.create_task(run_periodically(
            "Ingest", lambda: ingest_once(runtime, settings, mock=True),
            MOCK_INGEST_INTERVAL_SECONDS, shutdown_event,
        )))
    logger.info(f"Watching {len(session.controllers)} panes for {user_id}")

    await shutdown_event.wait()

    logger.info("Shutting down...")
    await _stop(tasks)
    await session.close()
    gate = session.sound_gate
    logger.info(f"Final: sounds played: {gate.fired}, suppressed: {gate.suppressed}")
    await runtime.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="news-terminal", description="news terminal server")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API with periodic jobs")
    p_serve.add_argument("--mock", action="store_true", help="Use the mock feed instead of RSS")

    p_ingest = sub.add_parser("ingest", help="Run one ingestion pass")
    p_ingest.add_argument("--mock", action="store_true", help="Use the mock feed instead of RSS")

    sub.add_parser("archive", help="Run one retention pass")

    p_watch = sub.add_parser("watch", help="Follow every pane for one viewer")
    p_watch.add_argument("--user", required=True, help="Viewer id")
    p_watch.add_argument("--mock", action="store_true", help="Ingest the mock feed in-process")
    return parser


def cli(argv: Optional[list[str]] = None) -> None:
    load_dotenv(".env")
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        if args.command == "serve":
            asyncio.run(serve(settings, mock=args.mock))
        elif args.command == "ingest":
            asyncio.run(ingest(settings, mock=args.mock))
        elif args.command == "archive":
            asyncio.run(archive(settings))
        elif args.command == "watch":
            asyncio.run(watch(settings, args.user, mock=args.mock))
    except NewsTerminalError as e:
        logger.error(str(e))
        raise SystemExit(1) from e


if __name__ == "__main__":
    cli()
