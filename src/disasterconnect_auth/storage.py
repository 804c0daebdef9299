"""Durable key/value storage adapter for persisted auth state.

Normalizes the interface between the Upstash SDK (cloud) and fakeredis
(local dev, tests). The auth core only needs string get/set/delete, so the
adapter stays narrow and the TokenStore/ProfileCache never touch raw clients.

Environment detection:
  - UPSTASH_REDIS_REST_URL set → Upstash SDK
  - Otherwise → fakeredis (in-memory, no external dependency)

Unlike a module-level singleton, create_storage() returns a fresh adapter;
build one at process start and pass it to the stores that share it.

Usage:
    from disasterconnect_auth.storage import create_storage

    storage = create_storage()
    await storage.set("auth_token", token)
    value = await storage.get("auth_token")
"""

from __future__ import annotations

import os
from typing import Any


class StorageAdapter:
    """Unified async string store over Upstash SDK or a redis-py style client."""

    def __init__(self, raw_client: Any, is_upstash: bool = False) -> None:
        self._client = raw_client
        self._is_upstash = is_upstash

    @property
    def is_upstash(self) -> bool:
        return self._is_upstash

    async def get(self, key: str) -> str | None:
        value = await self._client.get(key)
        if value is None or isinstance(value, str):
            return value
        return value.decode()

    async def set(self, key: str, value: str) -> None:
        await self._client.set(key, value)

    async def delete(self, *keys: str) -> None:
        if keys:
            await self._client.delete(*keys)


def create_storage() -> StorageAdapter:
    """Build a StorageAdapter for the current environment."""
    if os.environ.get("UPSTASH_REDIS_REST_URL"):
        from upstash_redis.asyncio import Redis

        return StorageAdapter(Redis.from_env(), is_upstash=True)

    from fakeredis.aioredis import FakeRedis

    return StorageAdapter(FakeRedis(decode_responses=True), is_upstash=False)
