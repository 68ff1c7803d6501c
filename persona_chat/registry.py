"""Character registry — the known characters and which one is active.

Creation is local first: a new character is active as soon as it exists in
memory, and the store write happens in the background. The remote character
list is merged in as it arrives; until the user picks a character explicitly
(create, select or clear), the newest known one is selected automatically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import pydantic

from persona_chat.config import ChatConfig
from persona_chat.engine import ConversationEngine
from persona_chat.errors import PersistenceFailure, UnknownCharacter, ValidationError
from persona_chat.models import Character
from persona_chat.state import Session
from persona_chat.store import PersistentStore, character_path
from persona_chat.subscriptions import SubscriptionManager
from persona_chat.tasks import BackgroundTasks

logger = logging.getLogger(__name__)


class CharacterRegistry:
    def __init__(
        self,
        session: Session,
        store: PersistentStore,
        subscriptions: SubscriptionManager,
        engine: ConversationEngine,
        config: ChatConfig,
        tasks: BackgroundTasks | None = None,
    ) -> None:
        self._session = session
        self._store = store
        self._subscriptions = subscriptions
        self._engine = engine
        self._config = config
        self._tasks = tasks or BackgroundTasks()
        self._known: dict[str, Character] = {}
        self._active: Character | None = None
        self._user_chose = False
        self._last_id = 0
        self._unsaved: list[str] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def characters(self) -> list[Character]:
        """Known characters, newest first."""
        return sorted(self._known.values(), key=lambda c: (c.created_at, c.id), reverse=True)

    @property
    def active(self) -> Character | None:
        return self._active

    def get(self, character_id: str) -> Character | None:
        return self._known.get(character_id)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        description: str,
        avatar_ref: str | None = None,
        background_ref: str | None = None,
    ) -> Character:
        """Create a character, make it active and persist it in the background."""
        name = (name or "").strip()
        description = (description or "").strip()
        if not name:
            raise ValidationError("Character name must not be empty")
        if not description:
            raise ValidationError("Character description must not be empty")

        character = Character(
            id=self._next_id(),
            name=name,
            description=description,
            avatar_ref=avatar_ref,
            background_ref=background_ref,
            created_at=datetime.now(timezone.utc),
            owner_id=self._session.owner_id,
        )
        self._known[character.id] = character
        self._user_chose = True
        logger.info("created character id=%s name=%r", character.id, character.name)
        self._activate(character)
        self._persist(character)
        return character

    def select_active(self, character_id: str) -> Character:
        character = self._known.get(character_id)
        if character is None:
            raise UnknownCharacter(character_id)
        self._user_chose = True
        if self._active is not None and self._active.id == character_id:
            return character
        logger.info("selected character id=%s", character_id)
        self._activate(character)
        return character

    def clear_active(self) -> None:
        self._user_chose = True
        if self._active is None:
            self._subscriptions.unwatch_chat()
            return
        logger.info("cleared active character id=%s", self._active.id)
        self._activate(None)

    # ------------------------------------------------------------------
    # Remote side
    # ------------------------------------------------------------------

    def on_remote_characters(self, docs: Iterable[Any]) -> None:
        """Merge the remote character list; auto-select the newest if nothing is chosen."""
        for doc in docs:
            try:
                character = Character.model_validate(doc)
            except pydantic.ValidationError as e:
                logger.warning("skipping invalid character document: %s", e.errors()[:1])
                continue
            self._known[character.id] = character
            if character.id.isdigit():
                self._last_id = max(self._last_id, int(character.id))

        if self._active is None and not self._user_chose and self._known:
            newest = self.characters[0]
            logger.info("auto-selected newest character id=%s", newest.id)
            self._activate(newest)

    def persist_unsaved(self) -> None:
        """Write characters created before sign-in, now that an owner is known."""
        owner_id = self._session.owner_id
        if owner_id is None:
            return
        pending, self._unsaved = self._unsaved, []
        for character_id in pending:
            character = self._known[character_id].model_copy(update={"owner_id": owner_id})
            self._known[character_id] = character
            if self._active is not None and self._active.id == character_id:
                self._active = character
            self._persist(character)

    def watch_active_chat(self) -> None:
        """(Re)establish the chat subscription for the active character."""
        owner_id = self._session.owner_id
        character = self._active
        if character is None:
            self._subscriptions.unwatch_chat()
            return
        if owner_id is None:
            return
        self._subscriptions.watch_chat(
            owner_id, character.id,
            lambda snapshot, cid=character.id: self._engine.reconcile_remote(snapshot, cid),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _activate(self, character: Character | None) -> None:
        self._active = character
        self._engine.on_active_character_changed(character)
        self.watch_active_chat()

    def _next_id(self) -> str:
        # millisecond clock, bumped so ids stay strictly increasing
        self._last_id = max(time.time_ns() // 1_000_000, self._last_id + 1)
        return str(self._last_id)

    def _persist(self, character: Character) -> None:
        owner_id = self._session.owner_id
        if owner_id is None:
            logger.debug("not signed in; character %s kept in memory only", character.id)
            self._unsaved.append(character.id)
            return
        path = character_path(owner_id, character.id, self._config.owner_scope)
        self._tasks.spawn(self._write(path, character.to_doc()), name=f"persist:{path}")

    async def _write(self, path: str, doc: dict) -> None:
        try:
            await self._store.set_doc(path, doc)
        except PersistenceFailure as e:
            logger.warning("character write failed path=%s: %s", path, e)
