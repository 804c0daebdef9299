"""Bearer credential storage — the single source of truth for "am I signed in".

The in-memory value is authoritative for the life of the process; storage
is best-effort persistence so a restart can attempt session restore. A
failed storage write is logged and swallowed, never raised.
"""

from __future__ import annotations

import logging

from disasterconnect_auth.keys import token_key
from disasterconnect_auth.storage import StorageAdapter

logger = logging.getLogger(__name__)


class TokenStore:
    """Single-writer store for the bearer token.

    Call load() once at start-up before the first get_token(); the
    SessionManager does this in restore_session().
    """

    def __init__(self, storage: StorageAdapter, prefix: str = "") -> None:
        self._storage = storage
        self._key = token_key(prefix)
        self._token: str | None = None
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> str | None:
        """Populate memory from storage once; later calls return memory."""
        if self._loaded:
            return self._token
        self._loaded = True
        try:
            stored = await self._storage.get(self._key)
        except Exception:
            logger.exception("Failed to read bearer token from storage")
            return self._token
        if stored and self._token is None:
            self._token = stored
        return self._token

    async def set_token(self, token: str) -> None:
        """Store the token in memory and storage, replacing any prior value."""
        if not token:
            raise ValueError("token must be a non-empty string")
        self._token = token
        self._loaded = True
        try:
            await self._storage.set(self._key, token)
        except Exception:
            logger.exception("Failed to persist bearer token; keeping in-memory value")

    def get_token(self) -> str | None:
        return self._token

    async def clear_token(self) -> None:
        """Remove the token from memory and storage."""
        self._token = None
        self._loaded = True
        try:
            await self._storage.delete(self._key)
        except Exception:
            logger.exception("Failed to delete bearer token from storage")

    def is_authenticated(self) -> bool:
        return self._token is not None
