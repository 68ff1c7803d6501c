"""Core domain models.

The engine, registry and stores all operate on these types.
Pydantic is used for validation and serialisation at every data boundary;
store documents use camelCase keys, Python code uses snake_case.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

Role = Literal["user", "assistant"]


class Message(BaseModel):
    """One entry of a conversation log. Its sequence is its list position."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: StrictStr  # remote snapshots must carry real strings


class Character(BaseModel):
    """A persona the user chats with. Never mutated after creation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    description: str
    avatar_ref: str | None = Field(default=None, alias="avatarRef")
    background_ref: str | None = Field(default=None, alias="backgroundRef")
    created_at: datetime = Field(alias="createdAt")
    owner_id: str | None = Field(default=None, alias="ownerId")

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, value: datetime) -> datetime:
        # documents from other writers may carry naive timestamps; read them as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Conversation(BaseModel):
    """In-memory message log for one (owner, character) pair."""

    owner_id: str | None = None
    character_id: str
    messages: list[Message] = Field(default_factory=list)


class ChatSnapshot(BaseModel):
    """The chat document as stored: the full log plus a write timestamp."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[Message]
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @classmethod
    def of(cls, messages: list[Message]) -> ChatSnapshot:
        return cls(messages=list(messages), updatedAt=datetime.now(timezone.utc))

    def to_doc(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class GenerationRequest(BaseModel):
    persona: str | None = None
    user_text: str


class GenerationReply(BaseModel):
    text: str
