"""JSON file storage.

Each document is one JSON file under a configurable base directory; the
document path maps directly onto the directory tree. There is no database —
reads and writes go through plain helper methods that load and dump JSON.

Directory layout:

    {base}/
      [{owner_scope}/]owner/
        {owner_id}/
          characters/
            {id}.json           ← Character document
          chats/
            {character_id}.json ← {"messages": [...], "updatedAt": ...}

Change notifications only reach subscribers in the same process.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from persona_chat.errors import PersistenceFailure

from .base import LocalNotifier


class JsonFileStore(LocalNotifier):
    def __init__(self, base_path: Path) -> None:
        super().__init__()
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _segments(self, path: str) -> list[str]:
        parts = [p for p in path.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise PersistenceFailure(f"Invalid document path {path!r}")
        return parts

    def _doc_file(self, path: str) -> Path:
        *dirs, name = self._segments(path)
        return self._base.joinpath(*dirs) / f"{name}.json"

    def _collection_dir(self, path: str) -> Path:
        return self._base.joinpath(*self._segments(path))

    def _read_json(self, file: Path) -> Any:
        try:
            return json.loads(file.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceFailure(f"Cannot read {file}: {e}") from e

    def _write_json(self, file: Path, data: Any) -> None:
        try:
            file.parent.mkdir(parents=True, exist_ok=True)
            file.write_text(json.dumps(data, indent=2))
        except (OSError, TypeError) as e:
            raise PersistenceFailure(f"Cannot write {file}: {e}") from e

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _doc_snapshot(self, path: str) -> dict[str, Any] | None:
        file = self._doc_file(path)
        if not file.is_file():
            return None
        return self._read_json(file)

    def _collection_snapshot(self, path: str) -> list[dict[str, Any]]:
        folder = self._collection_dir(path)
        if not folder.is_dir():
            return []
        return [self._read_json(f) for f in sorted(folder.glob("*.json"))]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_doc(self, path: str) -> dict[str, Any] | None:
        return self._doc_snapshot(path)

    async def set_doc(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        """Write a document. With merge, top-level keys are merged into the existing one."""
        file = self._doc_file(path)
        new = dict(data)
        if merge and file.is_file():
            existing = self._read_json(file)
            if isinstance(existing, dict):
                new = {**existing, **new}
        self._write_json(file, new)
        self._notify(path)
