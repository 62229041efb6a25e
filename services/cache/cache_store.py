"""
Redis-backed store for rendered equations.

The store owns the only state shared between requests: whether the Redis
connection is usable. While it is DISCONNECTED, ``get`` and ``set`` do
nothing and a reconnect ping is tried at most once per retry interval, so
an outage degrades to "cache disabled" and never to a failed request.
"""
from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable, Optional

import redis.asyncio as redis

from core.config import Settings
from core.errors import CacheUnavailableError
from core.logger import logger, request_logger
from services.cache.cache_key import content_digest


class CacheState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class CacheStore:
    """Best-effort key/value cache; errors never reach the caller."""

    def __init__(
        self,
        client: Optional[Any] = None,
        lifespan_seconds: int = 1800,
        namespace: str = "",
        retry_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.lifespan_seconds = lifespan_seconds
        self.namespace = namespace
        self.retry_seconds = retry_seconds
        self._clock = clock
        self._state = CacheState.DISCONNECTED
        self._last_failure: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CacheStore":
        client = None
        if settings.redis_url:
            client = redis.from_url(settings.redis_url, decode_responses=True)
        return cls(
            client=client,
            lifespan_seconds=settings.cache_lifespan_seconds,
            namespace=settings.cache_namespace,
            retry_seconds=settings.cache_retry_seconds,
        )

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def storage_key(self, name: str) -> str:
        return f"{self.namespace}:{content_digest(name)}"

    async def connect(self) -> CacheState:
        """Ping the server once and record the outcome."""
        if not self.enabled:
            logger.info("Cache disabled: no Redis URL configured")
            return self._state
        try:
            await self.client.ping()
        except Exception as exc:  # noqa: BLE001
            self.disconnect(exc)
        else:
            if self._state is not CacheState.CONNECTED:
                logger.info("Cache connected")
            self._state = CacheState.CONNECTED
        return self._state

    def disconnect(self, reason: Optional[BaseException] = None) -> None:
        """Mark the connection unusable until the next successful ping."""
        if reason is not None:
            logger.error("Redis error: %s", reason)
        self._state = CacheState.DISCONNECTED
        self._last_failure = self._clock()

    async def _ensure_connected(self) -> None:
        if not self.enabled:
            raise CacheUnavailableError("cache disabled")
        if self._state is CacheState.CONNECTED:
            return
        if self._last_failure is not None and self._clock() - self._last_failure < self.retry_seconds:
            raise CacheUnavailableError("cache disconnected")
        if await self.connect() is not CacheState.CONNECTED:
            raise CacheUnavailableError("cache reconnect failed")

    async def get(self, name: str) -> Optional[str]:
        """Return the stored payload for ``name``, or None on miss or outage."""
        try:
            await self._ensure_connected()
        except CacheUnavailableError:
            return None

        log = request_logger(name)
        log.info("Checking cache")
        try:
            value = await self.client.get(self.storage_key(name))
        except Exception as exc:  # noqa: BLE001
            log.error("Checking cache failed: %s", exc)
            self.disconnect(exc)
            return None
        if isinstance(value, bytes):
            value = value.decode("ascii")
        return value

    async def set(self, name: str, value: str) -> bool:
        """Store ``value`` with the configured lifespan. Returns False if skipped or failed."""
        try:
            await self._ensure_connected()
        except CacheUnavailableError:
            return False

        try:
            await self.client.set(self.storage_key(name), value, ex=self.lifespan_seconds)
        except Exception as exc:  # noqa: BLE001
            request_logger(name).error("Saving to cache failed: %s", exc)
            self.disconnect(exc)
            return False
        return True

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        self._state = CacheState.DISCONNECTED
