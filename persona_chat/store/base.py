"""PersistentStore contract, document paths and local snapshot fan-out.

A store holds JSON-like documents addressed by slash-separated paths. Every
document lives in a collection (its parent path). Subscribers receive full
snapshots, never deltas:

    subscribe_doc        → on_snapshot(dict | None)      (None = absent)
    subscribe_collection → on_snapshot(list[dict])       (ordered)

Both return an unsubscribe callable. Snapshots are delivered on the event loop
(call_soon), so one that was queued before unsubscribe may still arrive.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from persona_chat.errors import PersistenceFailure

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class PersistentStore(Protocol):
    async def get_doc(self, path: str) -> dict[str, Any] | None: ...

    async def set_doc(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None: ...

    def subscribe_doc(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe: ...

    def subscribe_collection(
        self,
        path: str,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
        *,
        descending: bool = True,
    ) -> Unsubscribe: ...


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def owner_root(owner_id: str, scope: str = "") -> str:
    prefix = scope.strip("/")
    return f"{prefix}/owner/{owner_id}" if prefix else f"owner/{owner_id}"


def characters_path(owner_id: str, scope: str = "") -> str:
    return f"{owner_root(owner_id, scope)}/characters"


def character_path(owner_id: str, character_id: str, scope: str = "") -> str:
    return f"{characters_path(owner_id, scope)}/{character_id}"


def chat_path(owner_id: str, character_id: str, scope: str = "") -> str:
    return f"{owner_root(owner_id, scope)}/chats/{character_id}"


def parent_path(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def sort_docs(docs: list[dict[str, Any]], order_by: str, descending: bool) -> list[dict[str, Any]]:
    """Order documents by a field; documents without it always sort last."""
    present = [d for d in docs if d.get(order_by) is not None]
    missing = [d for d in docs if d.get(order_by) is None]
    present.sort(key=lambda d: d[order_by], reverse=descending)
    return present + missing


# ---------------------------------------------------------------------------
# Local fan-out shared by the in-process stores
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class _Watcher:
    path: str
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback | None
    order_by: str | None = None
    descending: bool = True

    @property
    def is_collection(self) -> bool:
        return self.order_by is not None


class LocalNotifier:
    """Subscriber bookkeeping for stores that notify within this process.

    Subclasses implement _doc_snapshot() and _collection_snapshot() and call
    _notify(path) after every write.
    """

    def __init__(self) -> None:
        self._watchers: list[_Watcher] = []

    def _doc_snapshot(self, path: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def _collection_snapshot(self, path: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    def subscribe_doc(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        return self._add(_Watcher(path, on_snapshot, on_error))

    def subscribe_collection(
        self,
        path: str,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
        *,
        descending: bool = True,
    ) -> Unsubscribe:
        return self._add(_Watcher(path, on_snapshot, on_error, order_by, descending))

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)

    def _add(self, watcher: _Watcher) -> Unsubscribe:
        self._watchers.append(watcher)
        self._schedule(watcher)

        def unsubscribe() -> None:
            if watcher in self._watchers:
                self._watchers.remove(watcher)

        return unsubscribe

    def _notify(self, path: str) -> None:
        collection = parent_path(path)
        for watcher in list(self._watchers):
            if watcher.is_collection and watcher.path == collection:
                self._schedule(watcher)
            elif not watcher.is_collection and watcher.path == path:
                self._schedule(watcher)

    def _schedule(self, watcher: _Watcher) -> None:
        # Snapshot is taken now; delivery happens on the next loop iteration.
        try:
            if watcher.is_collection:
                payload: Any = sort_docs(
                    self._collection_snapshot(watcher.path),
                    watcher.order_by or "",
                    watcher.descending,
                )
            else:
                payload = self._doc_snapshot(watcher.path)
        except PersistenceFailure as e:
            logger.warning("snapshot read failed path=%s: %s", watcher.path, e)
            if watcher.on_error is not None:
                asyncio.get_running_loop().call_soon(watcher.on_error, e)
            return
        asyncio.get_running_loop().call_soon(watcher.on_snapshot, copy.deepcopy(payload))
