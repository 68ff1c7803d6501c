"""Handlebars rendering of the persona instruction sent with every turn."""

from collections.abc import Callable
from typing import Any

import pybars

from persona_chat.models import Character

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_persona(template_str: str, character: Character | None) -> str | None:
    """Interpolate a character's name and description into the template.

    Returns None when there is no character, i.e. no persona to send.
    """
    if character is None:
        return None
    return render_prompt(template_str, {
        "name": character.name,
        "description": character.description,
    })
