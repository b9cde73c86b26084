"""Fixed-window issuance rate limiting using Redis counters."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

from redis.asyncio import Redis

from popboost_api.core.settings import settings


@dataclass
class RateLimitResult:
    """Outcome of a single rate-limit check."""

    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimiter(Protocol):
    async def check_rate_limit(self, key: str) -> RateLimitResult:
        """Count one attempt against ``key`` and report whether it is allowed."""


def discount_issue_key(campaign_id: str, *, email: str | None, session_id: str) -> str:
    """Identity the issuance quota is tracked against: email when known, else session."""

    subject = f"email:{email.lower()}" if email else f"session:{session_id}"
    return f"{subject}:{campaign_id}"


class RedisRateLimiter:
    """Counts attempts per key in a fixed window."""

    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        action: str = "discount_issue",
        limit: int | None = None,
        window_seconds: int | None = None,
    ) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._action = action
        self._limit = limit or settings.discount_rate_limit
        self._window_seconds = window_seconds or settings.discount_rate_limit_window_seconds

    def _key(self, identifier: str) -> str:
        return f"ratelimit:{self._action}:{identifier}"

    async def check_rate_limit(self, key: str) -> RateLimitResult:
        counter_key = self._key(key)
        attempts = await self._redis.incr(counter_key)
        if attempts == 1:
            await self._redis.expire(counter_key, self._window_seconds)

        ttl = await self._redis.ttl(counter_key)
        if ttl is None or ttl < 0:
            # A counter without an expiry would never reset.
            await self._redis.expire(counter_key, self._window_seconds)
            ttl = self._window_seconds

        reset_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        remaining = max(self._limit - attempts, 0)
        return RateLimitResult(allowed=attempts <= self._limit, remaining=remaining, reset_at=reset_at)


class UnlimitedRateLimiter:
    """Rate limiter used when limits are bypassed for development shops."""

    async def check_rate_limit(self, key: str) -> RateLimitResult:
        return RateLimitResult(allowed=True, remaining=settings.discount_rate_limit, reset_at=datetime.now(timezone.utc))


__all__ = [
    "RateLimitResult",
    "RateLimiter",
    "RedisRateLimiter",
    "UnlimitedRateLimiter",
    "discount_issue_key",
]
