"""Last-known UserProfile, readable synchronously by UI and authorization code.

Backed by storage so a reload can show the cached profile straight away;
restore_session() still re-validates it against the server.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from disasterconnect_auth.errors import RoleMappingError
from disasterconnect_auth.keys import profile_key
from disasterconnect_auth.models import UserProfile
from disasterconnect_auth.roles import normalize_role
from disasterconnect_auth.storage import StorageAdapter

logger = logging.getLogger(__name__)


class ProfileCache:
    def __init__(self, storage: StorageAdapter, prefix: str = "") -> None:
        self._storage = storage
        self._key = profile_key(prefix)
        self._profile: UserProfile | None = None
        self._loaded = False

    async def load(self) -> UserProfile | None:
        """Read the persisted profile once.

        A corrupt entry, or one whose role is no longer in the Role enum, is
        discarded and removed from storage rather than surfaced.
        """
        if self._loaded:
            return self._profile
        self._loaded = True

        try:
            raw = await self._storage.get(self._key)
        except Exception:
            logger.exception("Failed to read cached profile from storage")
            return self._profile
        if not raw or self._profile is not None:
            return self._profile

        try:
            self._profile = UserProfile.from_storage_json(raw)
        except (json.JSONDecodeError, ValidationError, RoleMappingError) as e:
            logger.warning(f"Discarding unusable cached profile: {e}")
            await self._delete_persisted()
        return self._profile

    def get(self) -> UserProfile | None:
        return self._profile

    async def set(self, profile: UserProfile) -> None:
        """Cache and persist a profile.

        Raises:
            RoleMappingError: the profile's role is outside the Role enum.
        """
        normalize_role(profile.role)
        for role in profile.roles:
            normalize_role(role)

        self._profile = profile
        self._loaded = True
        try:
            await self._storage.set(self._key, profile.to_storage_json())
        except Exception:
            logger.exception("Failed to persist profile; keeping in-memory value")

    async def clear(self) -> None:
        self._profile = None
        self._loaded = True
        await self._delete_persisted()

    async def _delete_persisted(self) -> None:
        try:
            await self._storage.delete(self._key)
        except Exception:
            logger.exception("Failed to delete cached profile from storage")
