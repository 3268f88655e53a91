# src/studio_tasks/storage/auth_store.py

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ..core.ports import KeyValueStore

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "studio_auth_token"
AUTH_USER_KEY = "studio_auth_user"


@dataclass(slots=True, frozen=True)
class PersistedAuth:
    token: str
    user: dict[str, Any]


class AuthPersistence:
    """
    Token + user identity kept in two local slots.

    The tracker only uses it to decide which owner identity the task cache
    belongs to. All methods are best-effort: failures are logged, never raised.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    def save_auth(self, token: str, user: dict[str, Any]) -> None:
        try:
            self._kv.set(AUTH_TOKEN_KEY, token)
            self._kv.set(AUTH_USER_KEY, json.dumps(user, ensure_ascii=False))
        except Exception:
            logger.exception("Failed to save auth data.")

    def load_auth(self) -> PersistedAuth | None:
        try:
            token = self._kv.get(AUTH_TOKEN_KEY)
            user_json = self._kv.get(AUTH_USER_KEY)
            if token and user_json:
                user = json.loads(user_json)
                if isinstance(user, dict):
                    return PersistedAuth(token=token, user=user)
        except Exception:
            logger.exception("Failed to load auth data.")
        return None

    def clear_auth(self) -> None:
        try:
            self._kv.delete(AUTH_TOKEN_KEY)
            self._kv.delete(AUTH_USER_KEY)
        except Exception:
            logger.exception("Failed to clear auth data.")

    def get_token(self) -> str | None:
        try:
            return self._kv.get(AUTH_TOKEN_KEY)
        except Exception:
            logger.exception("Failed to get auth token.")
            return None

    def is_authenticated(self) -> bool:
        return self.get_token() is not None

    def owner_identity(self) -> str | None:
        """Stable identity of the signed-in user, or None for anonymous mode."""
        auth = self.load_auth()
        if auth is None:
            return None
        for key in ("id", "user_id", "username", "email"):
            value = auth.user.get(key)
            if value is not None and str(value).strip():
                return str(value)
        return None
