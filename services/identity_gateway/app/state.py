"""Time bound storage of pending authorization attempts.

Every ``begin`` call remembers its nonce (and PKCE verifier, when one is
used) so the callback can prove the redirect was initiated here. Entries are
single use and expire after ``ttl_seconds``.
"""

from __future__ import annotations

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as redis_asyncio

from .config import Settings

logger = logging.getLogger(__name__)

_STATE_TTL_SECONDS = 600.0

Clock = Callable[[], float]


@dataclass(slots=True)
class CorrelationEntry:
    """Container storing one pending authorization."""

    provider: str
    nonce: str
    created_at: float
    proof_secret: Optional[str] = None

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.created_at > ttl_seconds


class CorrelationStore(ABC):
    def __init__(self, *, ttl_seconds: float = _STATE_TTL_SECONDS, clock: Clock = time.time) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @abstractmethod
    async def put(
        self, provider: str, nonce: str, proof_secret: Optional[str] = None
    ) -> CorrelationEntry:
        ...

    @abstractmethod
    async def consume(self, provider: str, nonce: str) -> Optional[CorrelationEntry]:
        """Remove and return the entry, or ``None`` when absent or expired."""

    @abstractmethod
    async def evict_expired(self) -> int:
        ...

    async def aclose(self) -> None:
        return None


class InMemoryCorrelationStore(CorrelationStore):
    """Process local store, suitable for a single gateway instance."""

    def __init__(self, *, ttl_seconds: float = _STATE_TTL_SECONDS, clock: Clock = time.time) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._entries: Dict[Tuple[str, str], CorrelationEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def put(
        self, provider: str, nonce: str, proof_secret: Optional[str] = None
    ) -> CorrelationEntry:
        await self.evict_expired()
        entry = CorrelationEntry(
            provider=provider, nonce=nonce, created_at=self._clock(), proof_secret=proof_secret
        )
        self._entries[(provider, nonce)] = entry
        return entry

    async def consume(self, provider: str, nonce: str) -> Optional[CorrelationEntry]:
        entry = self._entries.pop((provider, nonce), None)
        if entry is None:
            return None
        if entry.is_expired(self._clock(), self._ttl_seconds):
            return None
        return entry

    async def evict_expired(self) -> int:
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items() if entry.is_expired(now, self._ttl_seconds)
        ]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)


class RedisCorrelationStore(CorrelationStore):
    """Store shared by every gateway replica, backed by Redis keys with a TTL."""

    def __init__(
        self,
        redis: Any,
        *,
        ttl_seconds: float = _STATE_TTL_SECONDS,
        clock: Clock = time.time,
        key_prefix: str = "oauth:state",
        owns_client: bool = False,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
        self._redis = redis
        self._client_owned = owns_client
        self._key_prefix = key_prefix

    def _key(self, provider: str, nonce: str) -> str:
        return f"{self._key_prefix}:{provider}:{nonce}"

    async def put(
        self, provider: str, nonce: str, proof_secret: Optional[str] = None
    ) -> CorrelationEntry:
        entry = CorrelationEntry(
            provider=provider, nonce=nonce, created_at=self._clock(), proof_secret=proof_secret
        )
        await self._redis.set(
            self._key(provider, nonce),
            json.dumps(asdict(entry)),
            ex=max(1, math.ceil(self._ttl_seconds)),
        )
        return entry

    async def consume(self, provider: str, nonce: str) -> Optional[CorrelationEntry]:
        raw = await self._redis.getdel(self._key(provider, nonce))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            entry = CorrelationEntry(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning(
                "Discarding unreadable correlation entry",
                extra={"provider": provider},
            )
            return None
        # Redis expiry has one second granularity, the clock check is exact.
        if entry.is_expired(self._clock(), self._ttl_seconds):
            return None
        return entry

    async def evict_expired(self) -> int:
        return 0

    async def aclose(self) -> None:
        if self._client_owned:
            await self._redis.aclose()


def create_correlation_store(
    settings: Settings, *, clock: Clock = time.time, redis: Any | None = None
) -> CorrelationStore:
    backend = settings.correlation_backend
    if backend == "memory":
        return InMemoryCorrelationStore(ttl_seconds=settings.state_ttl_seconds, clock=clock)
    if backend == "redis":
        if redis is not None:
            return RedisCorrelationStore(redis, ttl_seconds=settings.state_ttl_seconds, clock=clock)
        client = redis_asyncio.from_url(settings.redis_url, decode_responses=True)
        return RedisCorrelationStore(
            client, ttl_seconds=settings.state_ttl_seconds, clock=clock, owns_client=True
        )
    raise RuntimeError(f"Unknown correlation backend {backend}")


__all__ = [
    "CorrelationEntry",
    "CorrelationStore",
    "InMemoryCorrelationStore",
    "RedisCorrelationStore",
    "create_correlation_store",
]
