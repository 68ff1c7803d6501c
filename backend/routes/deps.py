from fastapi import Request

from persona_chat.session import ChatSession


def get_session(request: Request) -> ChatSession:
    return request.app.state.session
