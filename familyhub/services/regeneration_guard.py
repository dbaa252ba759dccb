from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from ..config import Settings, get_settings
from ..errors import RegenerationInProgressError
from ..redis_util import get_redis

logger = logging.getLogger(__name__)

# Deletes the key only when it still holds our token, so an expired lock
# re-acquired by another worker is never released from here.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class BaseRegenerationGuard:
    """Keeps one regeneration per (household, shopping list) running at a time."""

    async def try_acquire(self, household_id: int, shopping_list_id: int) -> Optional[str]:
        raise NotImplementedError

    async def release(self, household_id: int, shopping_list_id: int, token: str) -> None:
        raise NotImplementedError

    @asynccontextmanager
    async def hold(self, household_id: int, shopping_list_id: int) -> AsyncIterator[None]:
        token = await self.try_acquire(household_id, shopping_list_id)
        if token is None:
            logger.warning(
                "Regeneration already running for list %s household=%s",
                shopping_list_id,
                household_id,
            )
            raise RegenerationInProgressError(household_id, shopping_list_id)
        try:
            yield
        finally:
            await self.release(household_id, shopping_list_id, token)


class RegenerationGuard(BaseRegenerationGuard):
    """Process-local guard. Locks lapse after ``ttl_seconds`` in case a holder dies."""

    def __init__(self, ttl_seconds: float = 120, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._held: Dict[Tuple[int, int], Tuple[str, float]] = {}

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, deadline) in self._held.items() if deadline <= now]
        for key in expired:
            del self._held[key]

    async def try_acquire(self, household_id: int, shopping_list_id: int) -> Optional[str]:
        key = (household_id, shopping_list_id)
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if key in self._held:
                return None
            token = uuid.uuid4().hex
            self._held[key] = (token, now + self._ttl)
            return token

    async def release(self, household_id: int, shopping_list_id: int, token: str) -> None:
        key = (household_id, shopping_list_id)
        with self._lock:
            held = self._held.get(key)
            if held is not None and held[0] == token:
                del self._held[key]

    def is_held(self, household_id: int, shopping_list_id: int) -> bool:
        with self._lock:
            self._sweep(self._clock())
            return (household_id, shopping_list_id) in self._held


class RedisRegenerationGuard(BaseRegenerationGuard):
    """Guard shared by every worker through ``SET NX EX``."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 120, prefix: str = "familyhub:regen") -> None:
        self._client = client
        self._ttl = ttl_seconds
        self._prefix = prefix

    def _key(self, household_id: int, shopping_list_id: int) -> str:
        return f"{self._prefix}:{household_id}:{shopping_list_id}"

    async def try_acquire(self, household_id: int, shopping_list_id: int) -> Optional[str]:
        token = uuid.uuid4().hex
        acquired = await self._client.set(
            self._key(household_id, shopping_list_id), token, nx=True, ex=self._ttl
        )
        return token if acquired else None

    async def release(self, household_id: int, shopping_list_id: int, token: str) -> None:
        await self._client.eval(_RELEASE_SCRIPT, 1, self._key(household_id, shopping_list_id), token)


def build_regeneration_guard(settings: Settings) -> BaseRegenerationGuard:
    client = get_redis() if settings.redis_url else None
    if client is not None:
        logger.info("Using Redis regeneration guard ttl=%ss", settings.regeneration_lock_ttl_seconds)
        return RedisRegenerationGuard(client, ttl_seconds=settings.regeneration_lock_ttl_seconds)
    return RegenerationGuard(ttl_seconds=settings.regeneration_lock_ttl_seconds)


@lru_cache
def get_regeneration_guard() -> BaseRegenerationGuard:
    return build_regeneration_guard(get_settings())
