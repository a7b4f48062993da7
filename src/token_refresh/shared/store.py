"""
Token storage used by the refreshing client.

The client only ever reads and writes the access token through these two
methods, so any backing (in-memory, a reactive store, a file) can be plugged in.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class TokenStore(Protocol):
    """Protocol for access token storage implementations."""

    def get_access_token(self) -> str | None:
        """Get the current access token."""
        ...

    def set_access_token(self, token: str | None) -> None:
        """Store a new access token, or clear it with None."""
        ...


class InMemoryTokenStore:
    """Keeps the access token on the instance."""

    def __init__(self, token: str | None = None):
        self._token = token

    def get_access_token(self) -> str | None:
        return self._token or None

    def set_access_token(self, token: str | None) -> None:
        self._token = token


@dataclass
class CallbackTokenStore:
    """Adapts a getter/setter pair to the TokenStore protocol."""

    getter: Callable[[], str | None]
    setter: Callable[[str | None], None]

    def get_access_token(self) -> str | None:
        return self.getter() or None

    def set_access_token(self, token: str | None) -> None:
        self.setter(token)
