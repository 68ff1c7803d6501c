"""Tests for InMemoryStore and the shared path helpers."""

from conftest import settle
from persona_chat.store import (
    InMemoryStore,
    character_path,
    characters_path,
    chat_path,
    open_store,
    JsonFileStore,
)


# ── Paths ────────────────────────────────────────────────────


def test_paths_without_scope():
    assert characters_path("u1") == "owner/u1/characters"
    assert character_path("u1", "42") == "owner/u1/characters/42"
    assert chat_path("u1", "42") == "owner/u1/chats/42"


def test_paths_with_scope():
    assert chat_path("u1", "42", scope="/my-app/") == "my-app/owner/u1/chats/42"


def test_open_store_picks_implementation(tmp_path):
    assert isinstance(open_store(None), InMemoryStore)
    assert isinstance(open_store(tmp_path), JsonFileStore)


# ── Documents ───────────────────────────────────────────────


async def test_get_missing_doc():
    store = InMemoryStore()
    assert await store.get_doc("owner/u1/chats/1") is None


async def test_set_and_get_roundtrip():
    store = InMemoryStore()
    await store.set_doc("owner/u1/chats/1", {"messages": [{"role": "user", "text": "Olá"}]})
    doc = await store.get_doc("owner/u1/chats/1")
    assert doc == {"messages": [{"role": "user", "text": "Olá"}]}


async def test_returned_docs_are_copies():
    store = InMemoryStore()
    data = {"messages": []}
    await store.set_doc("a/b", data)
    data["messages"].append("mutated")
    doc = await store.get_doc("a/b")
    doc["messages"].append("mutated again")
    assert await store.get_doc("a/b") == {"messages": []}


async def test_merge_keeps_other_fields():
    store = InMemoryStore()
    await store.set_doc("a/b", {"messages": [], "title": "kept"})
    await store.set_doc("a/b", {"messages": [{"role": "user", "text": "x"}]}, merge=True)
    assert await store.get_doc("a/b") == {
        "messages": [{"role": "user", "text": "x"}], "title": "kept",
    }


async def test_set_without_merge_replaces():
    store = InMemoryStore()
    await store.set_doc("a/b", {"messages": [], "title": "gone"})
    await store.set_doc("a/b", {"messages": []})
    assert await store.get_doc("a/b") == {"messages": []}


# ── Subscriptions ───────────────────────────────────────────


async def test_doc_subscription_initial_and_updates():
    store = InMemoryStore()
    received = []
    store.subscribe_doc("a/b", received.append)
    await settle()
    await store.set_doc("a/b", {"v": 1})
    await store.set_doc("a/b", {"v": 2})
    await settle()
    assert received == [None, {"v": 1}, {"v": 2}]


async def test_doc_subscription_ignores_other_paths():
    store = InMemoryStore()
    received = []
    store.subscribe_doc("a/b", received.append)
    await store.set_doc("a/c", {"v": 1})
    await settle()
    assert received == [None]


async def test_collection_ordered_descending():
    store = InMemoryStore()
    await store.set_doc("owner/u1/characters/1", {"id": "1", "createdAt": "2026-01-01T00:00:00Z"})
    await store.set_doc("owner/u1/characters/2", {"id": "2", "createdAt": "2026-03-01T00:00:00Z"})
    await store.set_doc("owner/u1/characters/3", {"id": "3"})
    await store.set_doc("owner/u1/chats/1", {"messages": []})
    received = []
    store.subscribe_collection("owner/u1/characters", "createdAt", received.append)
    await settle()
    assert [d["id"] for d in received[0]] == ["2", "1", "3"]


async def test_collection_ascending():
    store = InMemoryStore()
    await store.set_doc("c/1", {"id": "1", "n": 2})
    await store.set_doc("c/2", {"id": "2", "n": 1})
    received = []
    store.subscribe_collection("c", "n", received.append, descending=False)
    await settle()
    assert [d["id"] for d in received[0]] == ["2", "1"]


async def test_collection_notified_on_member_write():
    store = InMemoryStore()
    received = []
    store.subscribe_collection("c", "n", received.append)
    await settle()
    await store.set_doc("c/1", {"id": "1", "n": 1})
    await settle()
    assert received == [[], [{"id": "1", "n": 1}]]


async def test_unsubscribe_stops_future_snapshots():
    store = InMemoryStore()
    received = []
    unsubscribe = store.subscribe_doc("a/b", received.append)
    await settle()
    unsubscribe()
    unsubscribe()
    await store.set_doc("a/b", {"v": 1})
    await settle()
    assert received == [None]
    assert store.watcher_count == 0
