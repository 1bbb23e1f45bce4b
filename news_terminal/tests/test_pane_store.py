"""
Tests for routing.pane_store
"""
import pytest

from news_terminal.core.types import NotFoundError, ValidationError
from news_terminal.models.news import MAX_KEYWORDS_PER_PANE, FilterMode, Pane, PaneRules
from news_terminal.routing.defaults import DEFAULT_PANES
from news_terminal.routing.pane_store import PaneRuleStore
from news_terminal.store.changes import PANES, ChangeEvent, ChangeType


# ── Seeding / snapshot ────────────────────────────────────────────────────────

async def test_seed_defaults_populates_empty_store(store):
    pane_store = PaneRuleStore(store)
    assert await pane_store.seed_defaults() == len(DEFAULT_PANES)
    assert {p.id for p in pane_store.snapshot} == {p.id for p in DEFAULT_PANES}


async def test_seed_defaults_leaves_existing_layout(store):
    await store.save_pane(Pane(id="custom", title="Custom", rules=PaneRules(keywords=("x",))))
    pane_store = PaneRuleStore(store)
    assert await pane_store.seed_defaults() == 0
    await pane_store.refresh()
    assert [p.id for p in pane_store.snapshot] == ["custom"]


async def test_get_unknown_pane_raises(panes):
    with pytest.raises(NotFoundError, match="Pane not found"):
        panes.get("nope")


async def test_watch_without_change_feed_raises(store):
    with pytest.raises(RuntimeError):
        PaneRuleStore(store).watch()


# ── Keywords ──────────────────────────────────────────────────────────────────

async def test_add_keyword_persists_and_updates_snapshot(panes, store):
    updated = await panes.add_keyword("europe", "  Italy ")
    assert updated.rules.keywords[-1] == "Italy"
    assert panes.get("europe").rules.keywords[-1] == "Italy"

    stored = {p.id: p for p in await store.list_panes()}
    assert "Italy" in stored["europe"].rules.keywords


async def test_add_duplicate_keyword_is_case_insensitive(panes):
    with pytest.raises(ValidationError, match="Keyword already exists"):
        await panes.add_keyword("europe", "ecb")


async def test_add_empty_keyword_rejected(panes):
    with pytest.raises(ValidationError):
        await panes.add_keyword("europe", "   ")


async def test_keyword_limit(panes):
    existing = len(panes.get("americas").rules.keywords)
    for i in range(MAX_KEYWORDS_PER_PANE - existing):
        await panes.add_keyword("americas", f"kw{i}")
    assert len(panes.get("americas").rules.keywords) == MAX_KEYWORDS_PER_PANE

    with pytest.raises(ValidationError, match="Maximum of 20 keywords allowed per pane"):
        await panes.add_keyword("americas", "one-too-many")


async def test_add_keyword_unknown_pane(panes):
    with pytest.raises(NotFoundError):
        await panes.add_keyword("nope", "x")


async def test_remove_keyword_exact_match(panes):
    updated = await panes.remove_keyword("europe", "UK")
    assert "UK" not in updated.rules.keywords


async def test_remove_absent_keyword_is_noop(panes, store, changes):
    received = []

    async def on_update(change):
        received.append(change)

    changes.subscribe(PANES, ChangeType.UPDATE, on_update)
    before = panes.get("europe")
    after = await panes.remove_keyword("europe", "uk")  # case differs: no match
    assert after == before
    assert received == []


# ── Filter mode ───────────────────────────────────────────────────────────────

async def test_set_filter_mode(panes):
    updated = await panes.set_filter_mode("corporate", FilterMode.KEYWORDS_ONLY)
    assert updated.rules.filter_mode is FilterMode.KEYWORDS_ONLY
    assert panes.get("corporate").rules.filter_mode is FilterMode.KEYWORDS_ONLY


# ── Change notifications ──────────────────────────────────────────────────────

async def test_snapshot_follows_remote_updates(panes, changes):
    pane = panes.get("asia_pacific")
    remote = Pane(id=pane.id, title=pane.title, rules=pane.rules.with_keywords(("Korea",)))

    await changes.publish(ChangeEvent(PANES, ChangeType.UPDATE, remote.to_dict()))

    assert panes.get("asia_pacific").rules.keywords == ("Korea",)


async def test_close_stops_following_updates(panes, changes):
    panes.close()
    pane = panes.get("asia_pacific")
    remote = Pane(id=pane.id, title=pane.title, rules=pane.rules.with_keywords(("Korea",)))

    await changes.publish(ChangeEvent(PANES, ChangeType.UPDATE, remote.to_dict()))

    assert panes.get("asia_pacific").rules.keywords == pane.rules.keywords
