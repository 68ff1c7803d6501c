"""Transient per-session state. Nothing here is persisted."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_GENERATION = "awaiting_generation"
    ERROR = "error"  # transient, always followed by IDLE


@dataclass(frozen=True)
class PendingTurn:
    token: int  # generation token captured when the request was issued
    conversation_id: str
    user_text: str


@dataclass
class Session:
    owner_id: str | None = None  # set once the identity provider is ready
    active_character_id: str | None = None
    pending_turn: PendingTurn | None = None

    @property
    def signed_in(self) -> bool:
        return self.owner_id is not None
