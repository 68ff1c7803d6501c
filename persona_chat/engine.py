"""Conversation engine — runs one user turn end-to-end and merges remote state.

Turn flow:
  1. Reject with Busy if a turn is already pending (single-flight).
  2. Append the user message to the in-memory log right away.
  3. Capture the generation token, move to AWAITING_GENERATION and send one
     request built from the active character's persona and the user text.
  4. Append the reply, or a fallback message when generation fails (a
     malformed response has its own fallback; anything else counts as a
     transport failure), and return to IDLE. A reply whose token went stale
     (the active character changed meanwhile) is dropped.
  5. Apply the latest remote snapshot that arrived during the turn, if any.
     The turn's user/assistant pair is kept on top of it when missing.
  6. Write the full log to the store in the background; failures are logged.

Remote snapshots are full logs. While idle, one at least as long as the
in-memory log replaces it; while a turn is pending, the latest one is held
back until the turn resolves.
"""

from __future__ import annotations

import logging
from typing import Any

import pydantic

from persona_chat.config import ChatConfig
from persona_chat.errors import (
    Busy,
    MalformedResponse,
    NoActiveConversation,
    PersistenceFailure,
    TransportError,
)
from persona_chat.llm import GenerationClient
from persona_chat.models import Character, ChatSnapshot, Conversation, GenerationRequest, Message
from persona_chat.prompts import build_persona
from persona_chat.state import PendingTurn, Session, TurnState
from persona_chat.store import PersistentStore, chat_path
from persona_chat.tasks import BackgroundTasks

logger = logging.getLogger(__name__)

_messages_adapter = pydantic.TypeAdapter(list[Message])


class ConversationEngine:
    def __init__(
        self,
        session: Session,
        store: PersistentStore,
        generator: GenerationClient,
        config: ChatConfig,
        tasks: BackgroundTasks | None = None,
    ) -> None:
        self._session = session
        self._store = store
        self._generator = generator
        self._config = config
        self._tasks = tasks or BackgroundTasks()
        self._state = TurnState.IDLE
        self._character: Character | None = None
        self._conversation: Conversation | None = None
        self._token = 0
        self._buffered: list[Message] | None = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._session.pending_turn is not None

    @property
    def conversation_id(self) -> str | None:
        return self._conversation.character_id if self._conversation else None

    @property
    def messages(self) -> list[Message]:
        return list(self._conversation.messages) if self._conversation else []

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_active_character_changed(self, character: Character | None) -> None:
        """Start a fresh log for the new character; any in-flight reply goes stale."""
        self._token += 1
        self._buffered = None
        self._character = character
        self._session.active_character_id = character.id if character else None
        if character is None:
            self._conversation = None
        else:
            self._conversation = Conversation(
                owner_id=self._session.owner_id, character_id=character.id,
            )
        logger.debug(
            "event=active_character_changed character=%s token=%d",
            character.id if character else None, self._token,
        )

    async def submit_turn(self, conversation_id: str, user_text: str) -> Message:
        """Run one turn and return the assistant message it produced."""
        if self._session.pending_turn is not None:
            logger.debug("submit rejected: turn pending for %s", self._session.pending_turn.conversation_id)
            raise Busy("A turn is already in progress")
        conversation = self._conversation
        if conversation is None or conversation.character_id != conversation_id:
            raise NoActiveConversation(f"Conversation {conversation_id!r} is not active")

        request = GenerationRequest(
            persona=build_persona(self._config.instruction_template, self._character),
            user_text=user_text,
        )

        conversation.messages.append(Message(role="user", text=user_text))
        token = self._token
        self._session.pending_turn = PendingTurn(token, conversation_id, user_text)
        self._transition(TurnState.AWAITING_GENERATION, "turn_submitted")

        resolved = False
        try:
            text, failed = await self._generate(request)
            message = self._resolve(token, conversation, user_text, text, failed)
            resolved = True
            return message
        finally:
            if not resolved:
                # cancelled or crashed mid-request; the turn still ends here
                self._session.pending_turn = None
                self._transition(TurnState.IDLE, "generation_aborted")
                self._apply_buffered()

    def reconcile_remote(self, snapshot: Any, conversation_id: str | None = None) -> bool:
        """Merge a remote chat snapshot. Returns True if the log was replaced."""
        if self._conversation is None:
            return False
        if conversation_id is not None and conversation_id != self._conversation.character_id:
            logger.debug("ignoring snapshot for inactive conversation %s", conversation_id)
            return False

        remote = _parse_snapshot(snapshot)
        if remote is None:
            logger.warning("discarding malformed chat snapshot for %s", self._conversation.character_id)
            return False

        if self._session.pending_turn is not None:
            self._buffered = remote
            logger.debug("event=snapshot_received buffered len=%d", len(remote))
            return False
        return self._apply(remote)

    async def drain(self) -> None:
        """Wait for outstanding background writes."""
        await self._tasks.drain()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate(self, request: GenerationRequest) -> tuple[str, bool]:
        """Return (text, failed); failures become fallback text, never exceptions."""
        try:
            reply = await self._generator.generate(request)
        except MalformedResponse as e:
            logger.warning("generation returned a malformed response: %s", e)
            return self._config.fallback_malformed_text, True
        except TransportError as e:
            logger.warning("generation request failed: %s", e)
            return self._config.fallback_transport_text, True
        except Exception:
            logger.exception("generation client failed unexpectedly")
            return self._config.fallback_transport_text, True
        return reply.text, False

    def _resolve(
        self, token: int, conversation: Conversation, user_text: str, text: str, failed: bool,
    ) -> Message:
        self._session.pending_turn = None
        if failed:
            self._transition(TurnState.ERROR, "generation_resolved")
        message = Message(role="assistant", text=text)

        if token != self._token:
            logger.info("discarding stale reply for conversation %s", conversation.character_id)
            self._transition(TurnState.IDLE, "generation_resolved")
            self._apply_buffered()
            return message

        conversation.messages.append(message)
        self._transition(TurnState.IDLE, "generation_resolved")
        self._apply_buffered([Message(role="user", text=user_text), message])
        self._persist(conversation)
        return message

    def _apply_buffered(self, turn: list[Message] | None = None) -> None:
        if self._buffered is None:
            return
        remote, self._buffered = self._buffered, None
        if turn:
            remote = _with_turn(remote, turn)
        self._apply(remote)

    def _apply(self, remote: list[Message]) -> bool:
        conversation = self._conversation
        if conversation is None:
            return False
        local = len(conversation.messages)
        if len(remote) < local:
            logger.debug("event=snapshot_received ignored remote=%d local=%d", len(remote), local)
            return False
        conversation.messages = list(remote)
        logger.debug("event=snapshot_received applied remote=%d local=%d", len(remote), local)
        return True

    def _persist(self, conversation: Conversation) -> None:
        owner_id = self._session.owner_id
        if owner_id is None:
            logger.debug("not signed in; chat %s kept in memory only", conversation.character_id)
            return
        path = chat_path(owner_id, conversation.character_id, self._config.owner_scope)
        doc = ChatSnapshot.of(conversation.messages).to_doc()
        self._tasks.spawn(self._write(path, doc), name=f"persist:{path}")

    async def _write(self, path: str, doc: dict) -> None:
        try:
            await self._store.set_doc(path, doc, merge=True)
        except PersistenceFailure as e:
            logger.warning("chat write failed path=%s: %s", path, e)
        else:
            logger.debug("chat written path=%s messages=%d", path, len(doc["messages"]))

    def _transition(self, new: TurnState, event: str) -> None:
        old, self._state = self._state, new
        logger.debug("event=%s %s -> %s", event, old.value, new.value)


def _with_turn(remote: list[Message], turn: list[Message]) -> list[Message]:
    """Append whatever part of the resolved turn the remote log does not end with."""
    for overlap in range(len(turn), 0, -1):
        if remote[-overlap:] == turn[:overlap]:
            return remote + turn[overlap:]
    return remote + turn


def _parse_snapshot(snapshot: Any) -> list[Message] | None:
    """Shape check: None means absent (empty log); malformed returns None."""
    if snapshot is None:
        return []
    if not isinstance(snapshot, dict):
        return None
    raw = snapshot.get("messages")
    if not isinstance(raw, list):
        return None
    try:
        return _messages_adapter.validate_python(raw)
    except pydantic.ValidationError:
        return None
