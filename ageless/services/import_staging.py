"""Short-lived storage for CSV imports between upload and commit.

Redis is used when ``REDIS_URL`` is set and reachable; otherwise entries live
in process memory with the same TTLs. The Redis connection is attempted once
per store.
"""
from __future__ import annotations

import json
import secrets
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis

from ageless.config import settings
from ageless.utils.logger import logger

STAGING_TTL_SECONDS = 1800
RESULT_TTL_SECONDS = 604800
STAGING_PREFIX = "import:staging:"
RESULT_PREFIX = "import:result:"


def generate_import_id() -> str:
    return f"imp_{secrets.token_hex(12)}"


class ImportStagingStore:
    def __init__(self, redis_url: Optional[str] = None, redis_client: Any = None):
        self._redis_url = redis_url
        self._redis = redis_client
        self._attempted = redis_client is not None
        self._memory: Dict[str, Tuple[float, str]] = {}

    async def _get_redis(self):
        if self._redis is not None:
            return self._redis
        if self._attempted or not self._redis_url:
            return None
        self._attempted = True
        try:
            client = aioredis.from_url(self._redis_url, socket_connect_timeout=3, decode_responses=True)
            await client.ping()
        except Exception as exc:
            logger.warning("[import] Redis unavailable (%s); using in-memory staging store", exc)
            return None
        logger.info("[import] Using Redis for the staging store")
        self._redis = client
        return client

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    async def _set(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        serialized = json.dumps(value, default=str)
        client = await self._get_redis()
        if client is not None:
            await client.setex(key, ttl, serialized)
            return
        self._memory[key] = (time.monotonic() + ttl, serialized)

    async def _get(self, key: str) -> Optional[Dict[str, Any]]:
        client = await self._get_redis()
        if client is not None:
            raw = await client.get(key)
            return json.loads(raw) if raw else None

        entry = self._memory.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if expires_at <= time.monotonic():
            self._memory.pop(key, None)
            return None
        return json.loads(raw)

    async def stage(self, import_id: str, data: Dict[str, Any]) -> None:
        await self._set(STAGING_PREFIX + import_id, data, STAGING_TTL_SECONDS)

    async def get(self, import_id: str) -> Optional[Dict[str, Any]]:
        return await self._get(STAGING_PREFIX + import_id)

    async def update(self, import_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Shallow-merge ``updates`` into a staged import. None when it has expired."""
        existing = await self.get(import_id)
        if existing is None:
            return None
        existing.update(updates)
        await self.stage(import_id, existing)
        return existing

    async def delete(self, import_id: str) -> None:
        key = STAGING_PREFIX + import_id
        client = await self._get_redis()
        if client is not None:
            await client.delete(key)
        else:
            self._memory.pop(key, None)

    async def store_result(self, import_id: str, result: Dict[str, Any]) -> None:
        await self._set(RESULT_PREFIX + import_id, result, RESULT_TTL_SECONDS)

    async def get_result(self, import_id: str) -> Optional[Dict[str, Any]]:
        return await self._get(RESULT_PREFIX + import_id)


staging_store = ImportStagingStore(redis_url=settings.REDIS_URL)
