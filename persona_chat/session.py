"""ChatSession — wires store, generator, identity and the three core components.

    session = ChatSession(load_config())
    await session.start()            # waits for the identity provider
    session.registry.create("Mago", "sábio e irónico")
    reply = await session.submit("Olá")
    await session.close()

No store operation is issued before start() has an owner id.
"""

from __future__ import annotations

import asyncio
import logging

from persona_chat.config import ChatConfig
from persona_chat.engine import ConversationEngine
from persona_chat.errors import NoActiveConversation
from persona_chat.identity import AnonymousIdentity, IdentityProvider
from persona_chat.llm import EchoGenerator, GenerationClient, HttpGenerator
from persona_chat.models import Message
from persona_chat.registry import CharacterRegistry
from persona_chat.state import Session
from persona_chat.store import PersistentStore, open_store
from persona_chat.subscriptions import SubscriptionManager
from persona_chat.tasks import BackgroundTasks

logger = logging.getLogger(__name__)


def generator_from_config(config: ChatConfig) -> GenerationClient:
    if config.echo:
        return EchoGenerator()
    return HttpGenerator(
        provider_url=config.provider_url,
        api_key=config.api_key,
        provider_format=config.provider_format,
        model=config.model,
        timeout=config.timeout,
    )


class ChatSession:
    def __init__(
        self,
        config: ChatConfig,
        *,
        store: PersistentStore | None = None,
        generator: GenerationClient | None = None,
        identity: IdentityProvider | None = None,
    ) -> None:
        self.config = config
        self.state = Session()
        self.store = store if store is not None else open_store(config.data_dir)
        self.generator = generator if generator is not None else generator_from_config(config)
        self.identity = identity if identity is not None else AnonymousIdentity(config.auth_token)
        self.ready = asyncio.Event()

        self.tasks = BackgroundTasks()
        self.subscriptions = SubscriptionManager(self.store, config.owner_scope)
        self.engine = ConversationEngine(self.state, self.store, self.generator, config, self.tasks)
        self.registry = CharacterRegistry(
            self.state, self.store, self.subscriptions, self.engine, config, self.tasks,
        )

    @property
    def owner_id(self) -> str | None:
        return self.state.owner_id

    async def start(self) -> str:
        """Wait for the identity provider, then start syncing with the store."""
        if self.ready.is_set():
            return self.state.owner_id or ""
        owner_id = await self.identity.owner_id()
        self.state.owner_id = owner_id
        logger.info("signed in owner=%s", owner_id)
        self.subscriptions.watch_characters(owner_id, self.registry.on_remote_characters)
        self.registry.watch_active_chat()
        self.registry.persist_unsaved()
        self.ready.set()
        return owner_id

    async def submit(self, user_text: str) -> Message:
        """Submit a turn to the active character's conversation."""
        conversation_id = self.engine.conversation_id
        if conversation_id is None:
            raise NoActiveConversation("No character is active")
        return await self.engine.submit_turn(conversation_id, user_text)

    async def close(self) -> None:
        self.subscriptions.close()
        await self.tasks.drain()
        logger.info("session closed owner=%s", self.state.owner_id)
