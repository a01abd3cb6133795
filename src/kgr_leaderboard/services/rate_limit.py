"""Fixed-window rate limiting for score submissions."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from redis import asyncio as redis_asyncio

from kgr_leaderboard.core.settings import Settings
from kgr_leaderboard.services.verification import normalize_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of counting one hit against a key."""

    allowed: bool
    limit: int
    remaining: int
    reset_seconds: int


class RateLimitBackend(Protocol):
    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        """Count a hit; return ``(hits_in_window, seconds_until_reset)``."""

    async def close(self) -> None: ...


class MemoryRateLimitBackend:
    """In-process counters, suitable for a single worker and for tests."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, list[float]] = {}
        self._lock = asyncio.Lock()

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        now = self._clock()
        async with self._lock:
            self._evict(now)
            entry = self._windows.get(key)
            if entry is None:
                entry = [0, now + window_seconds]
                self._windows[key] = entry
            entry[0] += 1
            return int(entry[0]), max(0, int(entry[1] - now + 0.999))

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            self._windows.pop(key, None)

    async def close(self) -> None:
        async with self._lock:
            self._windows.clear()


class RedisRateLimitBackend:
    """Counters shared across workers through Redis ``INCR`` + ``EXPIRE``.

    Needs Redis 7 or later for ``EXPIRE ... NX``. Connection and command
    failures propagate as ``redis.exceptions.RedisError``.
    """

    def __init__(self, client: Any, *, prefix: str = "kgr:submit:") -> None:
        self._redis = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> RedisRateLimitBackend:
        return cls(redis_asyncio.from_url(url))

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        redis_key = f"{self._prefix}{key}"
        # Set value and expiry atomically
        pipe = self._redis.pipeline()
        pipe.incr(redis_key)
        pipe.expire(redis_key, int(window_seconds), nx=True)
        pipe.ttl(redis_key)
        count, _, ttl = await pipe.execute()
        reset = int(ttl) if ttl is not None and int(ttl) >= 0 else int(window_seconds)
        return int(count), reset

    async def close(self) -> None:
        await self._redis.aclose()


class SubmissionRateLimiter:
    """Allow at most ``limit`` submissions per key per window."""

    def __init__(self, backend: RateLimitBackend, *, limit: int, window_seconds: int) -> None:
        self.backend = backend
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, key: str) -> RateLimitDecision:
        """Count one submission attempt for ``key``."""
        count, reset = await self.backend.hit(key, self.window_seconds)
        allowed = count <= self.limit
        if not allowed:
            logger.info("Rate limit exceeded for %s (%d hits)", key, count)
        return RateLimitDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_seconds=reset,
        )

    async def close(self) -> None:
        await self.backend.close()


def build_rate_limiter(settings: Settings) -> SubmissionRateLimiter:
    """Use Redis when ``REDIS_URL`` is configured, in-process counters otherwise."""
    backend: RateLimitBackend
    if settings.redis_url:
        backend = RedisRateLimitBackend.from_url(settings.redis_url)
    else:
        backend = MemoryRateLimitBackend()
    return SubmissionRateLimiter(
        backend,
        limit=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
    )


def client_ip(peer: str | None, headers: Mapping[str, str], trusted_hops: int) -> str | None:
    """Resolve the submitter's IP behind ``trusted_hops`` reverse proxies."""
    if trusted_hops > 0:
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            chain = [part.strip() for part in forwarded.split(",") if part.strip()]
            if chain:
                return chain[max(0, len(chain) - trusted_hops)]
    return peer


def rate_limit_key(body: object, ip: str | None) -> str:
    """Key submissions by payer address when the body names one, by IP otherwise."""
    if isinstance(body, Mapping):
        address = body.get("address")
        if isinstance(address, str):
            return f"addr:{normalize_address(address).strip()}"
    return f"ip:{ip}"
