"""Explicit client configuration.

Everything the core needs from its environment is passed in a ChatConfig at
construction. load_config() builds one from PERSONA_CHAT_* environment
variables, after loading the repository's .env file.
"""

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT = Path(__file__).parent.parent

DEFAULT_INSTRUCTION_TEMPLATE = (
    "You are {{{name}}}. {{{description}}}\n"
    "Stay in character at all times and answer in the user's language."
)

DEFAULT_FALLBACK_TRANSPORT = (
    "Sorry, I couldn't reach the model just now. Please try again."
)
DEFAULT_FALLBACK_MALFORMED = (
    "Sorry, I got an answer I couldn't understand. Please try again."
)


class ChatConfig(BaseModel):
    owner_scope: str = ""  # optional prefix partitioning all store paths
    auth_token: str | None = None  # pre-authenticated credential
    provider_url: str = "https://generativelanguage.googleapis.com"
    provider_format: Literal["gemini", "openai"] = "gemini"
    model: str = "gemini-2.0-flash"
    api_key: str = ""
    timeout: float = 60.0
    echo: bool = False  # reply with the user text, no model calls
    data_dir: Path | None = None  # JSON file store when set, in-memory otherwise
    instruction_template: str = DEFAULT_INSTRUCTION_TEMPLATE
    fallback_transport_text: str = DEFAULT_FALLBACK_TRANSPORT
    fallback_malformed_text: str = DEFAULT_FALLBACK_MALFORMED


_ENV_FIELDS = {
    "owner_scope": "PERSONA_CHAT_OWNER_SCOPE",
    "auth_token": "PERSONA_CHAT_AUTH_TOKEN",
    "provider_url": "PERSONA_CHAT_PROVIDER_URL",
    "provider_format": "PERSONA_CHAT_PROVIDER_FORMAT",
    "model": "PERSONA_CHAT_MODEL",
    "api_key": "PERSONA_CHAT_API_KEY",
    "timeout": "PERSONA_CHAT_TIMEOUT",
    "data_dir": "PERSONA_CHAT_DATA_DIR",
    "echo": "PERSONA_CHAT_ECHO",
}


def load_config(env_file: Path | None = None, **overrides) -> ChatConfig:
    """Read config from the environment; explicit overrides win."""
    load_dotenv(env_file or ROOT / ".env")
    values: dict = {}
    for field, var in _ENV_FIELDS.items():
        raw = os.getenv(var)
        if raw:
            values[field] = raw
    values.update(overrides)
    return ChatConfig(**values)
