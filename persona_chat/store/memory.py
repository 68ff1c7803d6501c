"""In-memory document store. Default store, and the one tests use."""

from __future__ import annotations

import copy
from typing import Any

from .base import LocalNotifier, parent_path


class InMemoryStore(LocalNotifier):
    def __init__(self) -> None:
        super().__init__()
        self._docs: dict[str, dict[str, Any]] = {}

    def _doc_snapshot(self, path: str) -> dict[str, Any] | None:
        return self._docs.get(path)

    def _collection_snapshot(self, path: str) -> list[dict[str, Any]]:
        return [doc for p, doc in self._docs.items() if parent_path(p) == path]

    async def get_doc(self, path: str) -> dict[str, Any] | None:
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def set_doc(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        """Write a document. With merge, top-level keys are merged into the existing one."""
        new = copy.deepcopy(data)
        if merge and path in self._docs:
            new = {**self._docs[path], **new}
        self._docs[path] = new
        self._notify(path)
