"""Store subscription lifecycle.

At most one live subscription exists per target:

    characters — the owner's character collection, newest first
    chat       — the chat document of the active character

Switching the chat target closes the old subscription before the new one is
opened. Every Subscription carries a generation number, and the delivery
wrapper checks it is still the current, open subscription for its target
before handing a snapshot on; a snapshot the store queued before teardown is
dropped there.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from typing import Any

from persona_chat.errors import PersistenceFailure
from persona_chat.store import PersistentStore, Unsubscribe, characters_path, chat_path

logger = logging.getLogger(__name__)


class Subscription:
    """One store subscription. close() is idempotent."""

    def __init__(self, target: str, key: str, generation: int) -> None:
        self.target = target
        self.key = key
        self.generation = generation
        self._unsubscribe: Unsubscribe | None = None
        self.closed = False

    def attach(self, unsubscribe: Unsubscribe) -> None:
        self._unsubscribe = unsubscribe

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        logger.debug("subscription closed target=%s key=%s gen=%d", self.target, self.key, self.generation)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "live"
        return f"<Subscription {self.target}:{self.key} gen={self.generation} {state}>"


class SubscriptionManager:
    def __init__(self, store: PersistentStore, owner_scope: str = "") -> None:
        self._store = store
        self._scope = owner_scope
        self._generations = itertools.count(1)
        self._live: dict[str, Subscription] = {}

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def watch_characters(self, owner_id: str, on_snapshot: Callable[[list[dict[str, Any]]], None]) -> Subscription:
        path = characters_path(owner_id, self._scope)
        return self._open(
            "characters", path,
            lambda guarded, on_error: self._store.subscribe_collection(
                path, "createdAt", guarded, on_error, descending=True,
            ),
            on_snapshot,
        )

    def watch_chat(
        self,
        owner_id: str,
        character_id: str,
        on_snapshot: Callable[[dict[str, Any] | None], None],
    ) -> Subscription:
        path = chat_path(owner_id, character_id, self._scope)
        current = self._live.get("chat")
        if current is not None and not current.closed and current.key == path:
            return current
        return self._open(
            "chat", path,
            lambda guarded, on_error: self._store.subscribe_doc(path, guarded, on_error),
            on_snapshot,
        )

    def unwatch_chat(self) -> None:
        self._close("chat")

    def unwatch_characters(self) -> None:
        self._close("characters")

    def close(self) -> None:
        for target in list(self._live):
            self._close(target)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def chat_target(self) -> str | None:
        sub = self._live.get("chat")
        return sub.key if sub is not None and not sub.closed else None

    @property
    def live_count(self) -> int:
        return sum(1 for s in self._live.values() if not s.closed)

    def current(self, target: str) -> Subscription | None:
        return self._live.get(target)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _close(self, target: str) -> None:
        sub = self._live.pop(target, None)
        if sub is not None:
            sub.close()

    def _open(self, target: str, key: str, subscribe, on_snapshot) -> Subscription:
        # Old subscription goes first so two are never live for one target.
        self._close(target)
        sub = Subscription(target, key, next(self._generations))
        self._live[target] = sub

        def guarded(snapshot: Any) -> None:
            if sub.closed or self._live.get(target) is not sub:
                logger.debug("dropping stale snapshot for %r", sub)
                return
            on_snapshot(snapshot)

        def on_error(exc: Exception) -> None:
            if sub.closed:
                return
            logger.warning("subscription error on %r: %s", sub, exc)

        try:
            sub.attach(subscribe(guarded, on_error))
        except PersistenceFailure as e:
            logger.warning("cannot subscribe %s %s: %s", target, key, e)
            self._live.pop(target, None)
            sub.closed = True
            return sub
        logger.debug("subscription opened %r", sub)
        return sub
