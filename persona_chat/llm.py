"""Generation client — HTTP connection to a text-generation backend.

The engine injects a generator matching the protocol:

    async def generate(self, request: GenerationRequest) -> GenerationReply: ...

`request.persona` is the rendered character instruction (or None) and
`request.user_text` is what the user typed. Implementations raise
TransportError when the backend cannot be reached and MalformedResponse when
it answers with an unexpected shape; the engine turns each into its own
fallback message.

Two implementations are provided:

    HttpGenerator — real HTTP client, supports Gemini generateContent and
                    OpenAI-compatible chat completions. Selected by
                    provider_format.
    EchoGenerator — returns the user text back. Useful for smoke-testing the
                    session wiring without a running model.

Tests use scripted fakes (see conftest.py) instead.
"""

from __future__ import annotations

import logging
from typing import Literal, Protocol

import httpx

from persona_chat.errors import MalformedResponse, TransportError
from persona_chat.models import GenerationReply, GenerationRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every generator implementation must match this signature
# ---------------------------------------------------------------------------

class GenerationClient(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationReply: ...


# ---------------------------------------------------------------------------
# HttpGenerator: connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["gemini", "openai"]


class HttpGenerator:
    """Async HTTP client for generation backends.

    Supported formats:
      "gemini"  — POST /v1beta/models/{model}:generateContent
                  {"systemInstruction": {...}, "contents": [...]}
                  Response: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
      "openai"  — POST /v1/chat/completions  {"model": ..., "messages": [...]}
                  Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        provider_url:    Base URL of the backend.
        api_key:         API key, or empty string if not required.
        provider_format: Wire format to use. Defaults to "gemini".
        model:           Model identifier.
        timeout:         HTTP timeout in seconds. Defaults to 60.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "gemini",
        model: str = "",
        timeout: float = 60.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            if self._format == "gemini":
                headers["x-goog-api-key"] = self._api_key
            else:
                headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, request: GenerationRequest) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            messages = []
            if request.persona:
                messages.append({"role": "system", "content": request.persona})
            messages.append({"role": "user", "content": request.user_text})
            body: dict = {"messages": messages}
            if self._model:
                body["model"] = self._model
            return url, body

        # gemini (default)
        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        body = {"contents": [{"role": "user", "parts": [{"text": request.user_text}]}]}
        if request.persona:
            body["systemInstruction"] = {"parts": [{"text": request.persona}]}
        return url, body

    def _parse_response(self, data: object) -> str:
        """Extract the generated text from the response body."""
        if not isinstance(data, dict):
            raise MalformedResponse("Response body is not a JSON object")

        if self._format == "openai":
            choices = data.get("choices")
            if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
                raise MalformedResponse("No choices in OpenAI-compatible response")
            message = choices[0].get("message")
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, str) or not content.strip():
                raise MalformedResponse("Missing message content in OpenAI-compatible response")
            return content

        # gemini
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            raise MalformedResponse("No candidates in Gemini response")
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list) or not parts:
            raise MalformedResponse("Missing content parts in Gemini response")
        text = "".join(
            p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
        )
        if not text.strip():
            raise MalformedResponse("Empty text in Gemini response")
        return text

    async def generate(self, request: GenerationRequest) -> GenerationReply:
        url, body = self._build_request(request)
        logger.debug(
            "generate url=%s persona=%s text_len=%d",
            url, request.persona is not None, len(request.user_text),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to generation backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Generation backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"Generation backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Generation request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse("Response body is not valid JSON") from e
        text = self._parse_response(data)
        logger.debug("generate response len=%d", len(text))
        return GenerationReply(text=text)


# ---------------------------------------------------------------------------
# EchoGenerator: no network; useful for session smoke tests
# ---------------------------------------------------------------------------

class EchoGenerator:
    """Returns the user text as-is. No network calls.

    Lets you verify the session wiring (optimistic append, persistence,
    subscriptions) end-to-end without a running model.
    """

    async def generate(self, request: GenerationRequest) -> GenerationReply:
        logger.debug("EchoGenerator text_len=%d", len(request.user_text))
        return GenerationReply(text=request.user_text)
