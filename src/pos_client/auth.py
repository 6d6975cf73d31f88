"""Credential access for outgoing requests.

The client only reads the bearer token and, on a 401, evicts it. Whatever
login flow sets the token lives outside this library.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenProvider(Protocol):
    """Supplies the current bearer credential."""

    def get_token(self) -> str | None:
        """Return the current credential, or None when logged out."""
        ...

    def clear_token(self) -> None:
        """Evict the current credential."""
        ...


class InMemoryTokenProvider:
    """Holds a token in process memory.

    Suitable for scripts and tests; applications with durable sessions plug
    in their own ``TokenProvider``.
    """

    def __init__(self, token: str | None = None) -> None:  # noqa: D107
        self._token = token

    def get_token(self) -> str | None:  # noqa: D102
        return self._token

    def set_token(self, token: str | None) -> None:
        """Store a credential obtained by a login flow."""
        self._token = token or None

    def clear_token(self) -> None:  # noqa: D102
        if self._token is not None:
            logger.info("Clearing stored credential")
        self._token = None
