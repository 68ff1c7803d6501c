"""Document stores.

PersistentStore is the contract the core consumes; InMemoryStore and
JsonFileStore are the two in-process implementations. Paths are built with
the helpers below so that every writer agrees on the layout:

    [{owner_scope}/]owner/{owner_id}/characters/{id}
    [{owner_scope}/]owner/{owner_id}/chats/{character_id}
"""

from pathlib import Path

from .base import (  # noqa: F401
    PersistentStore,
    Unsubscribe,
    character_path,
    characters_path,
    chat_path,
    owner_root,
)
from .files import JsonFileStore  # noqa: F401
from .memory import InMemoryStore  # noqa: F401


def open_store(data_dir: Path | None) -> PersistentStore:
    """JSON files under data_dir when given, otherwise an in-memory store."""
    if data_dir is not None:
        return JsonFileStore(data_dir)
    return InMemoryStore()
