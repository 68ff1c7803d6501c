"""Identity providers.

The core waits on IdentityProvider.owner_id() (the auth-ready event) before
it touches the store. How an identity is actually bootstrapped is up to the
provider; two simple ones are provided here.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from typing import Protocol

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def owner_id(self) -> str: ...


class StaticIdentity:
    """A fixed, already-known owner id."""

    def __init__(self, owner_id: str) -> None:
        self._owner_id = owner_id

    async def owner_id(self) -> str:
        return self._owner_id


class AnonymousIdentity:
    """Anonymous sign-in.

    With a pre-authenticated token the owner id is derived from the token, so
    every device holding it shares one history. Without one, a fresh random
    id is issued once per process.
    """

    def __init__(self, auth_token: str | None = None) -> None:
        self._auth_token = auth_token
        self._cached: str | None = None

    async def owner_id(self) -> str:
        if self._cached is None:
            if self._auth_token:
                self._cached = hashlib.sha256(self._auth_token.encode()).hexdigest()[:28]
                logger.debug("identity from token owner=%s", self._cached)
            else:
                self._cached = uuid.uuid4().hex
                logger.debug("anonymous identity owner=%s", self._cached)
        return self._cached
