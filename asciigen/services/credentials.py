"""Resolution of the API credential used for a model call."""

from __future__ import annotations

import os
from typing import Mapping, Optional, Protocol


class CredentialResolver(Protocol):
    def resolve(self, user_id: Optional[str], model_id: str) -> Optional[str]:
        ...


class EnvCredentialResolver:
    """Reads a single shared key from the environment."""

    def __init__(self, variable: str = "OPENROUTER_API_KEY") -> None:
        self._variable = variable

    def resolve(self, user_id: Optional[str], model_id: str) -> Optional[str]:
        return os.getenv(self._variable) or None


class StaticCredentialResolver:
    """Looks keys up per user, falling back to a default key."""

    def __init__(self, keys: Mapping[str, str] | None = None, default: Optional[str] = None) -> None:
        self._keys = dict(keys or {})
        self._default = default

    def resolve(self, user_id: Optional[str], model_id: str) -> Optional[str]:
        if user_id is not None and user_id in self._keys:
            return self._keys[user_id]
        return self._default
