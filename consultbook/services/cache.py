#!/usr/bin/env python3
"""
Read-through cache for public availability responses.

Sits in front of the HTTP read endpoints only. Booking and blocking writes
never read from it; every ledger mutation drops the ``availability:`` prefix.
Redis when REDIS_URL is configured, otherwise (or when Redis misbehaves) a
small in-process TTL map.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from consultbook.core.logging import get_logger

logger = get_logger(__name__)

AVAILABILITY_PREFIX = "availability:"


class AvailabilityCache:
    """TTL-bounded cache keyed by request shape."""

    def __init__(self, redis_url: Optional[str] = None, default_ttl: int = 30,
                 max_memory_entries: int = 1000):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self.max_memory_entries = max_memory_entries
        self._redis_client: Optional[redis.Redis] = None
        self._redis_failed = False
        self._memory: Dict[str, Tuple[float, Any]] = {}
        self.timer = time.monotonic
        self.hits = 0
        self.misses = 0

    async def get_redis_client(self) -> Optional[redis.Redis]:
        if not self.redis_url or self._redis_failed:
            return None
        if self._redis_client is None:
            try:
                self._redis_client = redis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=3,
                    socket_timeout=2,
                )
                await self._redis_client.ping()
                logger.info("cache_redis_connected")
            except Exception as e:
                logger.warning("cache_redis_unavailable", error=str(e))
                self._redis_failed = True
                self._redis_client = None
        return self._redis_client

    # ---------- in-process fallback ----------

    def _memory_get(self, key: str) -> Optional[Any]:
        entry = self._memory.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self.timer():
            self._memory.pop(key, None)
            return None
        return value

    def _memory_set(self, key: str, value: Any, ttl: int) -> None:
        if len(self._memory) >= self.max_memory_entries:
            now = self.timer()
            for k in [k for k, (exp, _) in self._memory.items() if exp <= now]:
                self._memory.pop(k, None)
            if len(self._memory) >= self.max_memory_entries:
                # still full: drop the entry closest to expiry
                oldest = min(self._memory, key=lambda k: self._memory[k][0])
                self._memory.pop(oldest, None)
        self._memory[key] = (self.timer() + ttl, value)

    # ---------- public API ----------

    async def get(self, key: str) -> Optional[Any]:
        client = await self.get_redis_client()
        if client:
            try:
                raw = await asyncio.wait_for(client.get(key), timeout=0.2)
                return json.loads(raw) if raw else None
            except Exception as e:
                logger.debug("cache_get_failed", key=key, error=str(e))
        return self._memory_get(key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = ttl or self.default_ttl
        client = await self.get_redis_client()
        if client:
            try:
                await asyncio.wait_for(client.setex(key, ttl, json.dumps(value)), timeout=0.5)
                return
            except Exception as e:
                logger.debug("cache_set_failed", key=key, error=str(e))
        self._memory_set(key, value, ttl)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]],
                          ttl: Optional[int] = None) -> Tuple[Any, bool]:
        """Return (value, hit). Loader errors propagate and nothing is cached."""
        cached = await self.get(key)
        if cached is not None:
            self.hits += 1
            return cached, True
        self.misses += 1
        value = await loader()
        await self.set(key, value, ttl)
        return value, False

    async def invalidate_prefix(self, prefix: str = AVAILABILITY_PREFIX) -> int:
        removed = 0
        for key in [k for k in self._memory if k.startswith(prefix)]:
            self._memory.pop(key, None)
            removed += 1
        client = await self.get_redis_client()
        if client:
            try:
                async for key in client.scan_iter(match=f"{prefix}*", count=200):
                    await client.delete(key)
                    removed += 1
            except Exception as e:
                logger.warning("cache_invalidate_failed", prefix=prefix, error=str(e))
        return removed

    async def clear(self) -> None:
        self._memory.clear()
        await self.invalidate_prefix(AVAILABILITY_PREFIX)

    async def close(self) -> None:
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None
