"""Tests for persona_chat.registry — creation, selection, auto-selection."""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from conftest import OWNER, settle
from persona_chat.errors import PersistenceFailure, UnknownCharacter, ValidationError
from persona_chat.models import Character, Message
from persona_chat.store import character_path, chat_path


def _doc(cid: str, name: str, minutes_ago: int) -> dict:
    created = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return Character(
        id=cid, name=name, description=f"{name} desc", created_at=created, owner_id=OWNER,
    ).to_doc()


# ── create ──────────────────────────────────────────────────


async def test_create_makes_character_active(session):
    char = session.registry.create("Mago", "sábio e irónico")
    assert session.registry.active == char
    assert session.engine.conversation_id == char.id
    assert session.state.active_character_id == char.id
    assert char.owner_id == OWNER


async def test_create_trims_fields(session):
    char = session.registry.create("  Mago ", "\tsábio e irónico\n")
    assert char.name == "Mago"
    assert char.description == "sábio e irónico"


async def test_create_keeps_opaque_refs(session):
    char = session.registry.create("Mago", "sábio", "data:image/png;base64,AAA", "data:image/jpeg;base64,BBB")
    assert char.avatar_ref == "data:image/png;base64,AAA"
    assert char.background_ref == "data:image/jpeg;base64,BBB"


@pytest.mark.parametrize("name,description", [
    ("", "sábio"),
    ("   ", "sábio"),
    ("Mago", ""),
    ("Mago", "  \n"),
])
async def test_create_rejects_blank_fields(session, name, description):
    with pytest.raises(ValidationError):
        session.registry.create(name, description)
    assert session.registry.active is None
    assert session.registry.characters == []


async def test_failed_create_keeps_previous_active(session):
    mago = session.registry.create("Mago", "sábio")
    with pytest.raises(ValidationError):
        session.registry.create("", "sem nome")
    assert session.registry.active == mago


async def test_validation_error_is_a_value_error(session):
    with pytest.raises(ValueError):
        session.registry.create("", "")


async def test_create_starts_fresh_conversation(session, generator):
    mago = session.registry.create("Mago", "sábio")
    await session.engine.submit_turn(mago.id, "Olá")
    session.registry.create("Bardo", "canta")
    assert session.engine.messages == []


async def test_ids_unique_and_increasing(session):
    ids = [session.registry.create(f"C{i}", "desc").id for i in range(5)]
    assert len(set(ids)) == 5
    assert [int(i) for i in ids] == sorted(int(i) for i in ids)


async def test_create_persists_character(session, store):
    char = session.registry.create("Mago", "sábio e irónico")
    await session.tasks.drain()
    doc = await store.get_doc(character_path(OWNER, char.id))
    assert doc["name"] == "Mago"
    assert doc["description"] == "sábio e irónico"
    assert doc["ownerId"] == OWNER
    assert "createdAt" in doc


async def test_persist_failure_is_logged_not_raised(session, store, caplog):
    store.set_doc = AsyncMock(side_effect=PersistenceFailure("offline"))
    with caplog.at_level(logging.WARNING, logger="persona_chat.registry"):
        char = session.registry.create("Mago", "sábio")
        await session.tasks.drain()
    assert session.registry.active == char
    assert "character write failed" in caplog.text


# ── select / clear ──────────────────────────────────────────


async def test_select_switches_chat_subscription(session):
    mago = session.registry.create("Mago", "sábio")
    bardo = session.registry.create("Bardo", "canta")
    assert session.subscriptions.chat_target == chat_path(OWNER, bardo.id)
    session.registry.select_active(mago.id)
    assert session.registry.active == mago
    assert session.subscriptions.chat_target == chat_path(OWNER, mago.id)
    assert session.subscriptions.live_count == 2  # characters + one chat


async def test_select_unknown_raises(session):
    mago = session.registry.create("Mago", "sábio")
    with pytest.raises(UnknownCharacter):
        session.registry.select_active("404")
    assert session.registry.active == mago


async def test_select_same_character_keeps_log(session):
    mago = session.registry.create("Mago", "sábio")
    await session.engine.submit_turn(mago.id, "Olá")
    session.registry.select_active(mago.id)
    assert len(session.engine.messages) == 2


async def test_clear_tears_down_chat_subscription(session):
    session.registry.create("Mago", "sábio")
    session.registry.clear_active()
    assert session.registry.active is None
    assert session.subscriptions.chat_target is None
    assert session.engine.conversation_id is None
    session.registry.clear_active()  # idempotent
    assert session.subscriptions.live_count == 1


async def test_selected_chat_loads_remote_history(session, store):
    await store.set_doc(chat_path(OWNER, "100"), {"messages": [
        {"role": "user", "text": "Olá"}, {"role": "assistant", "text": "Olá!"},
    ]})
    session.registry.on_remote_characters([_doc("100", "Mago", 5)])
    session.registry.select_active("100")
    await settle()
    assert session.engine.messages == [
        Message(role="user", text="Olá"), Message(role="assistant", text="Olá!"),
    ]


# ── remote list / auto-select ───────────────────────────────


async def test_auto_selects_newest(session):
    session.registry.on_remote_characters([
        _doc("1", "Old", 30), _doc("2", "Newest", 1), _doc("3", "Mid", 10),
    ])
    assert session.registry.active.name == "Newest"
    assert [c.name for c in session.registry.characters] == ["Newest", "Mid", "Old"]


async def test_no_auto_select_after_explicit_clear(session):
    session.registry.clear_active()
    session.registry.on_remote_characters([_doc("1", "Mago", 1)])
    assert session.registry.active is None


async def test_remote_list_does_not_override_explicit_choice(session):
    session.registry.on_remote_characters([_doc("1", "Old", 30), _doc("2", "New", 1)])
    session.registry.select_active("1")
    session.registry.on_remote_characters([_doc("3", "Newer", 0)])
    assert session.registry.active.id == "1"


async def test_invalid_remote_documents_skipped(session, caplog):
    with caplog.at_level(logging.WARNING, logger="persona_chat.registry"):
        session.registry.on_remote_characters([{"name": "no id"}, _doc("1", "Mago", 1)])
    assert [c.id for c in session.registry.characters] == ["1"]
    assert "invalid character document" in caplog.text


async def test_remote_list_arrives_through_subscription(session, store):
    await store.set_doc(character_path(OWNER, "7"), _doc("7", "Mago", 1))
    await settle()
    assert session.registry.get("7") is not None
    assert session.registry.active.id == "7"


async def test_local_ids_stay_above_remote_ids(session):
    far_future = str(10 ** 15)
    session.registry.on_remote_characters([_doc(far_future, "Remote", 1)])
    char = session.registry.create("Local", "desc")
    assert int(char.id) > int(far_future)


async def test_naive_remote_timestamps_sort_with_local_ones(session):
    local = session.registry.create("Local", "desc")
    session.registry.on_remote_characters([{
        "id": "5", "name": "Old", "description": "from another client",
        "createdAt": "2024-01-01T00:00:00",
    }])
    assert [c.id for c in session.registry.characters] == [local.id, "5"]
    assert session.registry.active == local


async def test_naive_remote_timestamp_auto_selects_newest(session):
    session.registry.on_remote_characters([
        {"id": "1", "name": "Naive", "description": "d", "createdAt": "2024-06-01T00:00:00"},
        {"id": "2", "name": "Aware", "description": "d", "createdAt": "2024-01-01T00:00:00Z"},
    ])
    assert session.registry.active.id == "1"
