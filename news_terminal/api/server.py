"""
HTTP Job and Viewer API

FastAPI application exposing the scheduled jobs (ingest, archive), the
system status endpoint, per-user sound settings, the live news stream and
pane/read/saved management.

Usage:
    ctx = AppContext(settings, store, pane_store, changes)
    app = create_app(ctx)
    uvicorn.run(app, host=..., port=...)

Errors from the domain surface as `{"error": message}` with the status
code of their NewsTerminalError subclass.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Annotated, Any, AsyncContextManager, AsyncIterator, Callable, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from news_terminal.api.auth import TokenVerifier, verify_internal_secret
from news_terminal.archive.retention import RetentionJob
from news_terminal.config import Settings
from news_terminal.core.types import (
    AuthorizationError,
    NewsTerminalError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from news_terminal.ingest.feed_client import RSSFeedClient
from news_terminal.ingest.pipeline import EntrySource, IngestionPipeline
from news_terminal.models.news import (
    DEFAULT_SOUND_TAGS,
    FilterMode,
    NewsItem,
    PaneRules,
    SoundSettingsRecord,
    Theme,
    utcnow,
)
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.routing.router import matches_display_filter
from news_terminal.session.user_state import UserStateService
from news_terminal.store.changes import NEWS_ITEMS, ChangeEvent, ChangeType
from news_terminal.store.interface import ChangeFeed, NewsStore

logger = logging.getLogger(__name__)

SNAPSHOT_WINDOW = timedelta(hours=24)
SNAPSHOT_FETCH_LIMIT = 100
SNAPSHOT_SIZE = 20
KEEPALIVE_SECONDS = 30.0

_STATUS_CODES: list[tuple[type[NewsTerminalError], int]] = [
    (AuthorizationError, 401),
    (ValidationError, 400),
    (NotFoundError, 404),
    (PersistenceError, 500),
]


@dataclass
class AppContext:
    """Collaborators shared by every request."""

    settings: Settings
    store: NewsStore
    panes: PaneRuleStore
    changes: ChangeFeed
    feed_client: Optional[Callable[[], AsyncContextManager[EntrySource]]] = None
    keepalive_seconds: float = KEEPALIVE_SECONDS
    verifier: TokenVerifier = field(init=False)
    user_state: UserStateService = field(init=False)

    def __post_init__(self) -> None:
        auth = self.settings.auth
        self.verifier = TokenVerifier(auth.jwt_secret, auth.jwt_audience, auth.jwt_issuer)
        self.user_state = UserStateService(self.store)
        if self.feed_client is None:
            jobs = self.settings.jobs
            self.feed_client = lambda: RSSFeedClient(
                timeout_seconds=jobs.fetch_timeout_seconds,
                user_agent=jobs.user_agent,
            )


def status_code_for(error: NewsTerminalError) -> int:
    for error_cls, code in _STATUS_CODES:
        if isinstance(error, error_cls):
            return code
    return 500


def sse_message(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


# ── Dependencies ──────────────────────────────────────────────────────────


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


Context = Annotated[AppContext, Depends(get_context)]


def require_internal(
    ctx: Context, authorization: Optional[str] = Header(None)
) -> None:
    verify_internal_secret(authorization, ctx.settings.auth.internal_secret)


def require_user(ctx: Context, authorization: Optional[str] = Header(None)) -> str:
    return ctx.verifier.verify_header(authorization)


UserId = Annotated[str, Depends(require_user)]


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Request body must be valid JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


# ── Jobs ──────────────────────────────────────────────────────────────────

jobs_router = APIRouter(tags=["jobs"])


@jobs_router.post("/ingest", dependencies=[Depends(require_internal)])
async def ingest(ctx: Context):
    """Run one ingestion pass over every active source."""
    try:
        async with ctx.feed_client() as client:
            report = await IngestionPipeline(ctx.store, client).run()
    except Exception as e:
        logger.exception("RSS ingestion failed")
        return JSONResponse(status_code=500, content={"error": str(e)})

    if report is None:
        return {"message": "No active RSS sources configured"}
    return report.to_dict()


@jobs_router.post("/archive", dependencies=[Depends(require_internal)])
async def archive(ctx: Context):
    """Move items past the retention window into the archive."""
    job = RetentionJob(ctx.store, retention_days=ctx.settings.jobs.retention_days)
    try:
        report = await job.run()
    except Exception as e:
        logger.exception("Archive failed")
        return JSONResponse(status_code=500, content={"error": str(e)})
    return report.to_dict()


@jobs_router.api_route("/archive", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def archive_wrong_method():
    return JSONResponse(status_code=405, content={"error": "Method not allowed. Use POST."})


@jobs_router.get("/system-status")
async def system_status(ctx: Context):
    now = utcnow()
    status = await ctx.store.get_system_status()
    return {
        "status": status.status.value,
        "lastIngest": status.last_ingest.isoformat() if status.last_ingest else None,
        "itemsLastHour": await ctx.store.count_items(created_since=now - timedelta(hours=1)),
        "itemsLastDay": await ctx.store.count_items(created_since=now - timedelta(days=1)),
        "totalItems": await ctx.store.count_items(),
    }


# ── Sound settings ────────────────────────────────────────────────────────

sound_router = APIRouter(prefix="/sound-settings", tags=["sound"])


def validate_sound_update(body: dict[str, Any]) -> dict[str, Any]:
    """
    Check a partial sound settings update.

    Returns the recognized fields, coerced.

    Raises:
        ValidationError: On the first invalid field.
    """
    update: dict[str, Any] = {}
    if "enabled" in body:
        if not isinstance(body["enabled"], bool):
            raise ValidationError("enabled must be a boolean", field="enabled", value=body["enabled"])
        update["enabled"] = body["enabled"]

    if "volume" in body:
        volume = body["volume"]
        if isinstance(volume, bool) or not isinstance(volume, (int, float)) or not 0 <= volume <= 1:
            raise ValidationError("volume must be a number between 0 and 1", field="volume", value=volume)
        update["volume"] = float(volume)

    if "sound_tags" in body:
        tags = body["sound_tags"]
        if not isinstance(tags, list):
            raise ValidationError("sound_tags must be an array", field="sound_tags", value=tags)
        themes = []
        for tag in tags:
            try:
                themes.append(Theme(tag))
            except ValueError as e:
                raise ValidationError(f"Invalid theme tag: {tag}", field="sound_tags", value=tag) from e
        update["sound_tags"] = tuple(themes)

    return update


@sound_router.get("")
async def get_sound_settings(ctx: Context, user_id: UserId):
    record = await ctx.store.get_sound_settings(user_id)
    if record is None:
        record = await ctx.store.save_sound_settings(SoundSettingsRecord(user_id=user_id))
        logger.info("Created default sound settings", extra={"user_id": user_id})
    return record.to_dict()


@sound_router.post("")
async def update_sound_settings(request: Request, ctx: Context, user_id: UserId):
    update = validate_sound_update(await _json_object(request))
    current = await ctx.store.get_sound_settings(user_id)
    record = SoundSettingsRecord(
        user_id=user_id,
        enabled=update.get("enabled", current.enabled if current else True),
        volume=update.get("volume", current.volume if current else 0.7),
        sound_tags=update.get("sound_tags", current.sound_tags if current else DEFAULT_SOUND_TAGS),
    )
    saved = await ctx.store.save_sound_settings(record)
    return saved.to_dict()


# ── Stream ────────────────────────────────────────────────────────────────

stream_router = APIRouter(tags=["stream"])


async def event_stream(
    ctx: AppContext, user_id: str, rules: Optional[PaneRules] = None
) -> AsyncIterator[str]:
    """
    Server-sent events for one viewer.

    Yields `connected`, then `snapshot`, then one `news` event per inserted
    item (filtered by `rules` when given), with a keepalive comment after
    each idle interval. Ends when the change subscription is cancelled.
    """
    # None marks the end of the subscription.
    queue: asyncio.Queue[Optional[ChangeEvent]] = asyncio.Queue()

    async def on_insert(change: ChangeEvent) -> None:
        queue.put_nowait(change)

    subscription = ctx.changes.subscribe(NEWS_ITEMS, ChangeType.INSERT, on_insert)
    subscription.add_cancel_callback(lambda _: queue.put_nowait(None))
    try:
        yield sse_message("connected", {"userId": user_id})

        try:
            recent = await ctx.store.items_created_since(utcnow() - SNAPSHOT_WINDOW, SNAPSHOT_FETCH_LIMIT)
        except PersistenceError as e:
            logger.warning(f"Snapshot query failed: {e}", extra={"user_id": user_id})
        else:
            items = [i for i in recent if rules is None or matches_display_filter(i, rules)]
            yield sse_message("snapshot", {"items": [i.to_record() for i in items[:SNAPSHOT_SIZE]]})

        while subscription.active:
            try:
                change = await asyncio.wait_for(queue.get(), timeout=ctx.keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if change is None:
                break

            if rules is not None:
                try:
                    item = NewsItem.from_record(change.record)
                except ValidationError as e:
                    logger.warning(f"Dropping malformed stream record: {e.message}")
                    continue
                if not matches_display_filter(item, rules):
                    continue
            yield sse_message("news", change.record)
    finally:
        subscription.cancel()
        logger.debug("Stream closed", extra={"user_id": user_id})


@stream_router.get("/stream")
async def stream(
    ctx: Context,
    user_id: UserId,
    pane: Annotated[Optional[str], Query(description="Apply this pane's display filter")] = None,
):
    rules = ctx.panes.get(pane).rules if pane else None
    logger.info("Stream opened", extra={"user_id": user_id, "pane": pane})
    return StreamingResponse(
        event_stream(ctx, user_id, rules),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# ── Panes ─────────────────────────────────────────────────────────────────

panes_router = APIRouter(prefix="/panes", tags=["panes"])


@panes_router.get("")
async def list_panes(ctx: Context, user_id: UserId):
    if not ctx.panes.snapshot:
        await ctx.panes.refresh()
    return {"panes": [p.to_dict() for p in ctx.panes.snapshot]}


@panes_router.post("/{pane_id}/keywords")
async def add_keyword(pane_id: str, request: Request, ctx: Context, user_id: UserId):
    body = await _json_object(request)
    keyword = body.get("keyword")
    if not isinstance(keyword, str):
        raise ValidationError("keyword must be a string", field="keyword", value=keyword)
    pane = await ctx.panes.add_keyword(pane_id, keyword)
    return pane.to_dict()


@panes_router.delete("/{pane_id}/keywords/{keyword}")
async def remove_keyword(pane_id: str, keyword: str, ctx: Context, user_id: UserId):
    pane = await ctx.panes.remove_keyword(pane_id, keyword)
    return pane.to_dict()


@panes_router.post("/{pane_id}/filter-mode")
async def set_filter_mode(pane_id: str, request: Request, ctx: Context, user_id: UserId):
    body = await _json_object(request)
    mode = body.get("filterMode")
    if not isinstance(mode, str) or not mode:
        raise ValidationError("filterMode must be a string", field="filterMode", value=mode)
    pane = await ctx.panes.set_filter_mode(pane_id, FilterMode.from_string(mode))
    return pane.to_dict()


# ── Read / saved ──────────────────────────────────────────────────────────

items_router = APIRouter(prefix="/items", tags=["items"])


@items_router.post("/read")
async def mark_all_read(request: Request, ctx: Context, user_id: UserId):
    body = await _json_object(request)
    ids = body.get("ids")
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise ValidationError("ids must be an array of strings", field="ids", value=ids)
    marked = await ctx.user_state.mark_all_as_read(user_id, ids)
    return {"marked": marked}


@items_router.post("/{item_id}/read")
async def mark_read(item_id: str, ctx: Context, user_id: UserId):
    await ctx.user_state.mark_as_read(user_id, item_id)
    return {"itemId": item_id, "read": True}


@items_router.delete("/{item_id}/read")
async def mark_unread(item_id: str, ctx: Context, user_id: UserId):
    await ctx.user_state.mark_as_unread(user_id, item_id)
    return {"itemId": item_id, "read": False}


@items_router.post("/{item_id}/saved")
async def save_item(item_id: str, ctx: Context, user_id: UserId):
    await ctx.user_state.save_item(user_id, item_id)
    return {"itemId": item_id, "saved": True}


@items_router.delete("/{item_id}/saved")
async def unsave_item(item_id: str, ctx: Context, user_id: UserId):
    await ctx.user_state.unsave_item(user_id, item_id)
    return {"itemId": item_id, "saved": False}


# ── Application ───────────────────────────────────────────────────────────


def create_app(ctx: AppContext) -> FastAPI:
    app = FastAPI(
        title="News Terminal",
        description="Ingestion jobs and live feed API for the news terminal",
        version="0.1.0",
    )
    app.state.ctx = ctx

    @app.exception_handler(NewsTerminalError)
    async def handle_domain_error(request: Request, exc: NewsTerminalError):
        code = status_code_for(exc)
        if code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=code, content={"error": exc.message})

    app.include_router(jobs_router)
    app.include_router(sound_router)
    app.include_router(stream_router)
    app.include_router(panes_router)
    app.include_router(items_router)
    return app
