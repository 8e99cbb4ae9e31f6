"""Fixed-window request throttle backed by Redis.

Redis is optional: with no client every check passes, and a Redis error is
logged and treated as a pass so a cache outage never blocks logins.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from errors import RateLimitedError
from shared.logging import get_logger

log = get_logger(__name__)


class RateLimiter:
    KEY_PREFIX = "ratelimit:"

    def __init__(self, redis_client: Optional[aioredis.Redis]) -> None:
        self._redis = redis_client

    def _key(self, scope: str, identity: str) -> str:
        return f"{self.KEY_PREFIX}{scope}:{identity}"

    async def hit(self, scope: str, identity: str, limit: int, window_seconds: int) -> None:
        """Count one attempt for *identity* in *scope*.

        Raises:
            RateLimitedError: If more than *limit* attempts fall in the window.
        """
        if self._redis is None:
            return
        key = self._key(scope, identity)
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, window_seconds)
            if count <= limit:
                return
            ttl = await self._redis.ttl(key)
        except Exception as e:
            log.warning("rate_limiter_unavailable", scope=scope, error=str(e))
            return

        log.warning("rate_limited", scope=scope, count=count, limit=limit)
        raise RateLimitedError(
            "Too many attempts. Please try again later.",
            retry_after=max(int(ttl), 1),
        )

    async def reset(self, scope: str, identity: str) -> None:
        """Clear the counter, e.g. after a successful login."""
        if self._redis is None:
            return
        try:
            await self._redis.delete(self._key(scope, identity))
        except Exception as e:
            log.warning("rate_limiter_reset_failed", scope=scope, error=str(e))
