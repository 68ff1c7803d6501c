import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.routes import router
from persona_chat.config import ChatConfig, load_config
from persona_chat.session import ChatSession


def create_app(config: ChatConfig | None = None, session: ChatSession | None = None) -> FastAPI:
    """Build the API around one ChatSession, started and closed with the app."""
    if session is None:
        session = ChatSession(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await session.start()
        yield
        await session.close()

    app = FastAPI(title="Persona Chat", lifespan=lifespan)
    app.state.session = session
    app.include_router(router, prefix="/api")
    return app


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

# Default app instance for uvicorn (reads PERSONA_CHAT_* env vars)
app = create_app()
