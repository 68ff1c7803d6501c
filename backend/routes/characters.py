"""Character endpoints: list, create, select and clear the active one."""

from fastapi import APIRouter, Depends, HTTPException

from persona_chat.errors import UnknownCharacter, ValidationError
from persona_chat.session import ChatSession

from .deps import get_session
from .models import CreateCharacter

router = APIRouter()


@router.get("/characters")
async def list_characters(session: ChatSession = Depends(get_session)):
    """List known characters, newest first, with the active id."""
    active = session.registry.active
    return {
        "characters": [c.to_doc() for c in session.registry.characters],
        "active": active.id if active else None,
    }


@router.post("/characters", status_code=201)
async def create_character(body: CreateCharacter, session: ChatSession = Depends(get_session)):
    """Create a character and make it active."""
    try:
        char = session.registry.create(
            body.name, body.description, body.avatar_ref, body.background_ref,
        )
    except ValidationError as e:
        raise HTTPException(422, str(e))
    return char.to_doc()


@router.put("/characters/active/{character_id}")
async def select_character(character_id: str, session: ChatSession = Depends(get_session)):
    """Switch the active character."""
    try:
        char = session.registry.select_active(character_id)
    except UnknownCharacter:
        raise HTTPException(404, "Character not found")
    return char.to_doc()


@router.delete("/characters/active")
async def clear_character(session: ChatSession = Depends(get_session)):
    """Clear the active character."""
    session.registry.clear_active()
    return {"ok": True}
