"""
Tests for api.server

Routes run through FastAPI's TestClient against the in-memory store; the
event stream generator is driven directly.
"""
import asyncio
import time
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from fastapi.testclient import TestClient

from news_terminal.api.server import AppContext, create_app, event_stream, status_code_for
from news_terminal.config import (
    AuthConfig,
    HttpConfig,
    JobsConfig,
    SessionConfig,
    Settings,
    StoreConfig,
)
from news_terminal.ingest.feed_client import ParsedFeed
from news_terminal.ingest.normalizer import FeedEntry
from news_terminal.models.news import RSSSource, utcnow
from news_terminal.store.changes import ChangeFeedError

CRON_SECRET = "cron-secret"
JWT_SECRET = "jwt-secret-for-tests-with-enough-length"

SETTINGS = Settings(
    store=StoreConfig(backend="memory"),
    http=HttpConfig(),
    auth=AuthConfig(internal_secret=CRON_SECRET, jwt_secret=JWT_SECRET),
    jobs=JobsConfig(),
    session=SessionConfig(),
)

CRON = {"Authorization": f"Bearer {CRON_SECRET}"}


def _user_headers(user_id: str = "user-1") -> dict[str, str]:
    token = jwt.encode(
        {"sub": user_id, "aud": "authenticated", "exp": int(time.time()) + 3600},
        JWT_SECRET,
        algorithm="HS256",
    )
    return {"Authorization": f"Bearer {token}"}


USER = _user_headers()


class StaticClient:
    def __init__(self, entries: list[FeedEntry]) -> None:
        self.entries = entries

    async def fetch_entries(self, source: RSSSource) -> ParsedFeed:
        return ParsedFeed(entries=self.entries)


def _feed_client(entries: list[FeedEntry]):
    @asynccontextmanager
    async def factory():
        yield StaticClient(entries)

    return factory


@asynccontextmanager
async def _broken_feed_client():
    raise RuntimeError("session setup failed")
    yield  # pragma: no cover


@pytest.fixture
async def ctx(store, panes, changes):
    return AppContext(
        settings=SETTINGS,
        store=store,
        panes=panes,
        changes=changes,
        feed_client=_feed_client([]),
        keepalive_seconds=0.05,
    )


@pytest.fixture
async def client(ctx):
    return TestClient(create_app(ctx))


# ── Jobs ──────────────────────────────────────────────────────────────────────

async def test_ingest_requires_internal_secret(client):
    resp = client.post("/ingest", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized: Invalid or missing internal secret"}


async def test_ingest_rejects_non_ascii_secret(client):
    resp = client.post("/ingest", headers=[(b"Authorization", "Bearer café".encode("latin-1"))])
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized: Invalid or missing internal secret"}


async def test_ingest_without_sources(client):
    resp = client.post("/ingest", headers=CRON)
    assert resp.status_code == 200
    assert resp.json() == {"message": "No active RSS sources configured"}


async def test_ingest_reports_totals(ctx, client, store):
    await store.save_source(RSSSource(id="wire", name="Wire", url="https://feeds.example.com/wire"))
    ctx.feed_client = _feed_client([
        FeedEntry(title="ECB holds rates steady", link="https://example.com/ecb", published_at=utcnow()),
    ])

    body = client.post("/ingest", headers=CRON).json()

    assert body["message"] == "RSS ingestion completed"
    assert body["totalInserted"] == 1
    assert body["results"] == [{"source": "Wire", "success": 1, "failed": 0, "duplicates": 0}]


async def test_ingest_unexpected_failure_is_500(ctx, client, store):
    await store.save_source(RSSSource(id="wire", name="Wire", url="https://feeds.example.com/wire"))
    ctx.feed_client = _broken_feed_client

    resp = client.post("/ingest", headers=CRON)
    assert resp.status_code == 500
    assert resp.json() == {"error": "session setup failed"}


async def test_archive_with_nothing_old(client):
    resp = client.post("/archive", headers=CRON)
    assert resp.json() == {"message": "No items to archive", "archived": 0, "deleted": 0}


async def test_archive_rejects_other_methods(client):
    resp = client.get("/archive", headers=CRON)
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed. Use POST."}


async def test_system_status(client, store, make_item):
    await store.insert_item(make_item("Fresh headline", created_at=utcnow()))

    body = client.get("/system-status").json()

    assert body == {
        "status": "live",
        "lastIngest": None,
        "itemsLastHour": 1,
        "itemsLastDay": 1,
        "totalItems": 1,
    }


# ── Sound settings ────────────────────────────────────────────────────────────

async def test_sound_settings_require_user(client):
    resp = client.get("/sound-settings")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Missing or invalid authorization header"}


async def test_sound_settings_created_on_first_read(client, store):
    body = client.get("/sound-settings", headers=USER).json()

    assert body == {
        "user_id": "user-1",
        "enabled": True,
        "volume": 0.7,
        "sound_tags": ["MONETARY_POLICY", "GEOPOLITICS", "RISK_EVENT"],
    }
    assert await store.get_sound_settings("user-1") is not None


async def test_sound_settings_partial_update(client):
    client.post("/sound-settings", headers=USER, json={"enabled": False})
    body = client.post("/sound-settings", headers=USER, json={"volume": 0.25}).json()

    assert body["enabled"] is False
    assert body["volume"] == 0.25
    assert body["sound_tags"] == ["MONETARY_POLICY", "GEOPOLITICS", "RISK_EVENT"]


@pytest.mark.parametrize(
    "payload,message",
    [
        ({"enabled": "yes"}, "enabled must be a boolean"),
        ({"volume": 1.5}, "volume must be a number between 0 and 1"),
        ({"volume": True}, "volume must be a number between 0 and 1"),
        ({"sound_tags": "RISK_EVENT"}, "sound_tags must be an array"),
        ({"sound_tags": ["EUROPE"]}, "Invalid theme tag: EUROPE"),
        (["not", "an", "object"], "Request body must be a JSON object"),
    ],
)
async def test_sound_settings_validation(client, payload, message):
    resp = client.post("/sound-settings", headers=USER, json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": message}


async def test_sound_settings_invalid_json(client):
    resp = client.post(
        "/sound-settings",
        headers={**USER, "Content-Type": "application/json"},
        content=b"{not json",
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Request body must be valid JSON"}


# ── Panes ─────────────────────────────────────────────────────────────────────

async def test_list_panes(client):
    body = client.get("/panes", headers=USER).json()
    assert len(body["panes"]) == 6
    assert {"id", "title", "rules"} <= set(body["panes"][0])


async def test_add_and_remove_keyword(client, panes):
    added = client.post("/panes/europe/keywords", headers=USER, json={"keyword": "Italy"}).json()
    assert added["rules"]["keywords"][-1] == "Italy"
    assert "Italy" in panes.get("europe").rules.keywords

    removed = client.delete("/panes/europe/keywords/Italy", headers=USER).json()
    assert "Italy" not in removed["rules"]["keywords"]


async def test_duplicate_keyword_is_400(client):
    resp = client.post("/panes/europe/keywords", headers=USER, json={"keyword": "ecb"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Keyword already exists"}


async def test_unknown_pane_is_404(client):
    resp = client.post("/panes/nope/keywords", headers=USER, json={"keyword": "x"})
    assert resp.status_code == 404
    assert resp.json() == {"error": "Pane not found: nope"}


async def test_set_filter_mode(client):
    body = client.post("/panes/corporate/filter-mode", headers=USER, json={"filterMode": "keywords-only"}).json()
    assert body["rules"]["filterMode"] == "keywords-only"

    resp = client.post("/panes/corporate/filter-mode", headers=USER, json={"filterMode": "strict"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid filter mode: strict"}


# ── Read / saved ──────────────────────────────────────────────────────────────

async def test_read_and_saved_flags(client, store):
    assert client.post("/items/n1/read", headers=USER).json() == {"itemId": "n1", "read": True}
    assert client.post("/items/n1/saved", headers=USER).json() == {"itemId": "n1", "saved": True}
    assert await store.read_ids("user-1", ["n1"]) == {"n1"}
    assert await store.saved_ids("user-1", ["n1"]) == {"n1"}

    assert client.delete("/items/n1/read", headers=USER).json() == {"itemId": "n1", "read": False}
    assert client.delete("/items/n1/saved", headers=USER).json() == {"itemId": "n1", "saved": False}
    assert await store.read_ids("user-1", ["n1"]) == set()


async def test_read_flag_survives_change_feed_outage(client, store, changes):
    with patch.object(changes, "publish", AsyncMock(side_effect=ChangeFeedError("Redis publish failed"))):
        resp = client.post("/items/n1/read", headers=USER)

    assert resp.status_code == 200
    assert resp.json() == {"itemId": "n1", "read": True}
    assert await store.read_ids("user-1", ["n1"]) == {"n1"}


def test_change_feed_errors_map_to_500():
    assert status_code_for(ChangeFeedError("Cannot connect to Redis")) == 500


async def test_mark_all_read(client, store):
    resp = client.post("/items/read", headers=USER, json={"ids": ["n1", "n2", ""]})
    assert resp.json() == {"marked": 2}
    assert await store.read_ids("user-2", ["n1"]) == set()

    bad = client.post("/items/read", headers=USER, json={"ids": "n1"})
    assert bad.status_code == 400


# ── Stream ────────────────────────────────────────────────────────────────────

async def test_stream_requires_user(client):
    assert client.get("/stream").status_code == 401


async def test_stream_unknown_pane(client):
    resp = client.get("/stream", headers=USER, params={"pane": "nope"})
    assert resp.status_code == 404


async def test_event_stream_sequence(ctx, store, changes, make_item):
    recent = make_item("ECB holds rates steady", created_at=utcnow())
    await store.insert_item(recent)
    subscribers_before = changes.subscriber_count

    stream = event_stream(ctx, "user-1")
    try:
        assert await stream.__anext__() == 'event: connected\ndata: {"userId": "user-1"}\n\n'

        snapshot = await stream.__anext__()
        assert snapshot.startswith("event: snapshot\n")
        assert recent.id in snapshot

        assert await stream.__anext__() == ": keepalive\n\n"

        live = make_item("Oil slips on supply data", created_at=utcnow())
        await store.insert_item(live)
        news = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
        assert news.startswith("event: news\n")
        assert live.id in news
    finally:
        await stream.aclose()

    assert changes.subscriber_count == subscribers_before


async def test_event_stream_applies_pane_filter(ctx, store, panes, make_item):
    stream = event_stream(ctx, "user-1", panes.get("europe").rules)
    try:
        await stream.__anext__()  # connected
        await stream.__anext__()  # snapshot

        await store.insert_item(make_item("Gold hits record", created_at=utcnow()))
        match = make_item("ECB signals pause", created_at=utcnow())
        await store.insert_item(match)

        news = await asyncio.wait_for(stream.__anext__(), timeout=1.0)
        assert match.id in news
    finally:
        await stream.aclose()


async def test_event_stream_ends_as_soon_as_subscription_is_cancelled(ctx, changes):
    ctx.keepalive_seconds = 30.0
    stream = event_stream(ctx, "user-1")
    await stream.__anext__()  # connected
    await stream.__anext__()  # snapshot

    pending = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)
    await changes.close()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=1.0)
