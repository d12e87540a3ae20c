# app/core/cache.py
"""
Explicit read-through caches.

A TTLCache wraps one async loader. Reads are served from memory until the
TTL lapses; writers call `invalidate()` so the next read reloads. A reload
that was already in flight when `invalidate()` ran is returned to its caller
but not stored.

Important:
- Caches are created in the app lifespan and stored on app.state; handlers
  get them through the `get_caches` dependency. There is no
  module-level cache state.
- This is per-process. Multiple Uvicorn workers each hold their own copy and
  converge within one TTL after a write on another worker.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from fastapi import Request

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    def __init__(
        self,
        name: str,
        loader: Callable[[], Awaitable[T]],
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._loader = loader
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._value: Optional[T] = None
        self._loaded_at: Optional[float] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        if self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self._ttl

    async def get(self) -> T:
        if self._fresh():
            return self._value  # type: ignore[return-value]

        async with self._lock:
            # Double-check inside lock.
            if self._fresh():
                return self._value  # type: ignore[return-value]

            generation = self._generation
            value = await self._loader()
            if generation != self._generation:
                # Invalidated mid-load: serve this read, keep nothing.
                logger.debug("[cache] %s invalidated during reload; not stored", self.name)
                return value

            self._value = value
            self._loaded_at = self._clock()
            logger.debug("[cache] %s reloaded", self.name)

        return self._value  # type: ignore[return-value]

    def invalidate(self) -> None:
        self._generation += 1
        self._value = None
        self._loaded_at = None
        logger.debug("[cache] %s invalidated", self.name)


@dataclass
class Caches:
    """Bundle injected into handlers."""

    devices: TTLCache
    aliases: TTLCache
    categories: TTLCache

    def invalidate_all(self) -> None:
        self.devices.invalidate()
        self.aliases.invalidate()
        self.categories.invalidate()


async def get_caches(request: Request) -> Caches:
    return request.app.state.caches
