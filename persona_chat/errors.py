"""Error taxonomy for the chat core.

None of these are fatal. Callers see ValidationError, Busy,
NoActiveConversation and UnknownCharacter; the engine turns generation errors
into fallback assistant messages; persistence failures are only logged.
"""


class ChatError(Exception):
    """Base class for errors raised to callers of the chat core."""


class ValidationError(ChatError, ValueError):
    """Bad user input to character creation (blank name or description)."""


class Busy(ChatError):
    """A turn is already pending. The new input should be dropped."""


class NoActiveConversation(ChatError):
    """A turn was submitted for a conversation that is not the active one."""


class UnknownCharacter(ChatError, LookupError):
    """Selection of a character id the registry does not know."""

    def __init__(self, character_id: str) -> None:
        self.character_id = character_id
        super().__init__(f"Unknown character {character_id!r}")


class GenerationError(RuntimeError):
    """Raised by a generation client for any failed request."""


class TransportError(GenerationError):
    """The generation backend could not be reached or returned an HTTP error."""


class MalformedResponse(GenerationError):
    """The generation backend answered with an unexpected shape."""


class PersistenceFailure(RuntimeError):
    """A store read, write or subscription failed."""
