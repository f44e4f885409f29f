"""Authentication boundary -- an opaque bearer-token capability check.

The workflow core only needs "who is calling and in what role". Any
identity provider can sit behind the Authenticator protocol.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from concierge.config import AuthConfig
from concierge.workflow.types import Actor

_BEARER_PREFIX = "Bearer "


class AuthenticationError(Exception):
    """Missing, malformed, or unknown credential."""


@runtime_checkable
class Authenticator(Protocol):
    async def authenticate(self, credential: str | None) -> Actor:
        """Resolve a credential to an actor, or raise AuthenticationError."""
        ...


def strip_bearer(credential: str | None) -> str:
    """Accept either a raw token or an ``Authorization: Bearer`` value."""
    if not credential:
        return ""
    if credential.startswith(_BEARER_PREFIX):
        return credential[len(_BEARER_PREFIX) :].strip()
    return credential.strip()


class StaticTokenAuthenticator:
    """Resolves tokens from a fixed token -> actor map."""

    def __init__(self, tokens: Mapping[str, Actor]) -> None:
        self._tokens = dict(tokens)

    @classmethod
    def from_config(cls, config: AuthConfig) -> StaticTokenAuthenticator:
        return cls(
            {
                token: Actor(user_id=entry.user_id, role=entry.role)
                for token, entry in config.tokens.items()
            }
        )

    async def authenticate(self, credential: str | None) -> Actor:
        token = strip_bearer(credential)
        if not token:
            raise AuthenticationError("User authentication required")
        actor = self._tokens.get(token)
        if actor is None:
            raise AuthenticationError("User authentication required")
        return actor
