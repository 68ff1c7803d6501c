"""Chat endpoints: read the active conversation and submit a turn."""

from fastapi import APIRouter, Depends, HTTPException

from persona_chat.errors import Busy, NoActiveConversation
from persona_chat.session import ChatSession

from .deps import get_session
from .models import ChatBody

router = APIRouter()


def _chat_state(session: ChatSession) -> dict:
    engine = session.engine
    return {
        "character_id": engine.conversation_id,
        "state": engine.state.value,
        "busy": engine.is_busy,
        "messages": [m.model_dump() for m in engine.messages],
    }


@router.get("/chat")
async def get_chat(session: ChatSession = Depends(get_session)):
    """The active conversation and the engine state."""
    return _chat_state(session)


@router.post("/chat")
async def chat(body: ChatBody, session: ChatSession = Depends(get_session)):
    """Run one turn with the active character."""
    try:
        reply = await session.submit(body.message)
    except Busy:
        raise HTTPException(409, "A turn is already in progress")
    except NoActiveConversation:
        raise HTTPException(409, "No active character")
    return {"reply": reply.model_dump(), **_chat_state(session)}
