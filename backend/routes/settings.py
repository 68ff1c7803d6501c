"""Health check and session info endpoints."""

from fastapi import APIRouter, Depends

from persona_chat.session import ChatSession

from .deps import get_session

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/session")
async def get_session_info(session: ChatSession = Depends(get_session)):
    """Owner id and the generation backend in use (never the API key)."""
    return {
        "owner_id": session.owner_id,
        "ready": session.ready.is_set(),
        "provider_format": session.config.provider_format,
        "model": session.config.model,
    }
