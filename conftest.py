import asyncio

import pytest

from persona_chat.config import ChatConfig
from persona_chat.engine import ConversationEngine
from persona_chat.identity import StaticIdentity
from persona_chat.models import GenerationReply, GenerationRequest
from persona_chat.session import ChatSession
from persona_chat.state import Session
from persona_chat.store import InMemoryStore

OWNER = "owner-1"


class ScriptedGenerator:
    """Generation client returning scripted outcomes (text or exception) in order.

    Set `gate` to an asyncio.Event to hold every request until it is set.
    """

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[GenerationRequest] = []
        self.gate: asyncio.Event | None = None

    async def generate(self, request: GenerationRequest) -> GenerationReply:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if self.outcomes else "..."
        if isinstance(outcome, Exception):
            raise outcome
        return GenerationReply(text=outcome)


async def settle(rounds: int = 5) -> None:
    """Let queued snapshot deliveries and background writes run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> ChatConfig:
    return ChatConfig(provider_url="http://localhost:5001", model="test-model")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def engine(config, store, generator) -> ConversationEngine:
    return ConversationEngine(Session(owner_id=OWNER), store, generator, config)


@pytest.fixture
async def session(config, store, generator):
    """A started ChatSession on the in-memory store, signed in as OWNER."""
    s = ChatSession(config, store=store, generator=generator, identity=StaticIdentity(OWNER))
    await s.start()
    yield s
    await s.close()
