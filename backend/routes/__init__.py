"""FastAPI API endpoints under /api.

Endpoint groups: health/session, characters (list, create, select/clear the
active one) and chat (read the active conversation, submit a turn). All of
them drive the single ChatSession stored on app.state.
"""

from fastapi import APIRouter

from .characters import router as characters_router
from .chat import router as chat_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(characters_router)
router.include_router(chat_router)
