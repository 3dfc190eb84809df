"""Bearer credential sources for the Docketwise API.

Token acquisition and refresh (OAuth) live outside this package. The sync
engine only asks a ``TokenProvider`` for the current token and treats ``None``
as "account not connected".
"""

from __future__ import annotations

import os
from typing import Protocol

NOT_CONNECTED_MESSAGE = (
    "No valid Docketwise access token. Please connect your Docketwise account."
)


class TokenProvider(Protocol):
    def get_token(self) -> str | None: ...


class StaticTokenProvider:
    """Returns a fixed token (or None)."""

    def __init__(self, token: str | None) -> None:
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token


class EnvTokenProvider:
    """Reads the token from an environment variable on every call."""

    def __init__(self, variable: str = "DOCKETWISE_ACCESS_TOKEN") -> None:
        self._variable = variable

    def get_token(self) -> str | None:
        value = os.environ.get(self._variable, "").strip()
        return value or None
