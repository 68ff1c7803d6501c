"""Pydantic request models for API endpoints."""

from pydantic import BaseModel


class ChatBody(BaseModel):
    message: str


class CreateCharacter(BaseModel):
    name: str
    description: str
    avatar_ref: str | None = None
    background_ref: str | None = None
