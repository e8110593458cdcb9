"""
Rate Limiter Module

Fixed-window request limiting for the tutoring endpoints. Redis is used when
a client is configured so that limits hold across instances; otherwise a
bounded in-process map is used. The in-process map is non-authoritative and
safe to lose on restart.
"""

import time
import threading
from collections import OrderedDict
from typing import Optional, Tuple, Callable, Any

from redis.asyncio import Redis
from fastapi import Request

from learniq.common.error_handling import RateLimitError
from learniq.common.logger import app_logger

logger = app_logger.getChild("rate_limiter")

DEFAULT_MAX_LOCAL_KEYS = 10000
DEFAULT_SWEEP_INTERVAL = 60.0


class RateLimiter:
    """
    Rate limiting utility to control request frequency.

    Examples:
        limiter = RateLimiter(redis_client)

        allowed, reset_time = await limiter.check("hint:10.0.0.1", max_requests=30, period=60)

        @router.post("/hint")
        async def hint(_: bool = Depends(limiter.rate_limit_dependency("hint", 30, 60))):
            ...
    """

    def __init__(
        self,
        redis: Optional[Redis] = None,
        prefix: str = "rate_limit:",
        max_local_keys: int = DEFAULT_MAX_LOCAL_KEYS,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the rate limiter.

        Args:
            redis: Redis client instance (optional, uses process memory if None)
            prefix: Key prefix for Redis storage
            max_local_keys: Upper bound on tracked keys in process memory
            sweep_interval: Minimum seconds between expiry sweeps
            clock: Time source, injectable for tests
        """
        self.redis = redis
        self.prefix = prefix
        self.max_local_keys = max_local_keys
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._local: "OrderedDict[str, Tuple[int, float]]" = OrderedDict()
        self._last_sweep = clock()

    async def check(
        self,
        key: str,
        max_requests: int,
        period: int,
        increment: bool = True
    ) -> Tuple[bool, Optional[int]]:
        """
        Check if the rate limit allows another request.

        Returns:
            Tuple of (is_allowed, reset_time); reset_time is the number of
            seconds until the window resets, or None when allowed.
        """
        storage_key = f"{self.prefix}{key}:{period}"

        if self.redis is not None:
            try:
                current_count = await self.check_redis(storage_key, period, increment)
                if current_count > max_requests:
                    ttl = await self.redis.ttl(storage_key)
                    return False, max(1, ttl)
                return True, None
            except Exception as e:
                logger.error(f"Redis rate limit error: {str(e)}")

        return self.check_local(storage_key, max_requests, period, increment)

    async def check_redis(self, key: str, period: int, increment: bool) -> int:
        """Count the request in Redis and return the window total."""
        if increment:
            current = await self.redis.incr(key)
            if current == 1:
                await self.redis.expire(key, period)
        else:
            current = int(await self.redis.get(key) or 0)
        return current

    def check_local(
        self,
        key: str,
        max_requests: int,
        period: int,
        increment: bool
    ) -> Tuple[bool, Optional[int]]:
        """Check rate limit using process memory."""
        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)

            count, expire_time = self._local.get(key, (0, now + period))
            if now >= expire_time:
                count, expire_time = 0, now + period

            if increment:
                count += 1
                self._local[key] = (count, expire_time)
                self._local.move_to_end(key)
                while len(self._local) > self.max_local_keys:
                    self._local.popitem(last=False)

            if count > max_requests:
                return False, max(1, int(expire_time - now))
            return True, None

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.sweep_interval:
            return
        expired = [k for k, (_, expire_time) in self._local.items() if now >= expire_time]
        for k in expired:
            del self._local[k]
        self._last_sweep = now

    @property
    def local_size(self) -> int:
        with self._lock:
            return len(self._local)

    def rate_limit_dependency(
        self,
        operation: str,
        max_requests: int,
        period: int,
        key_func: Optional[Callable[[Request], str]] = None
    ) -> Callable[[Request], Any]:
        """
        Create a FastAPI dependency for rate limiting one operation.

        The key is ``<operation>:<client ip>`` unless ``key_func`` is given.
        """
        async def dependency(request: Request) -> bool:
            client = key_func(request) if key_func else self._get_client_ip(request)
            allowed, reset_time = await self.check(f"{operation}:{client}", max_requests, period)

            if not allowed:
                raise RateLimitError(
                    f"Rate limit exceeded. Try again in {reset_time} seconds.",
                    retry_after=reset_time,
                    limit=max_requests,
                    context={"operation": operation}
                )
            return True

        return dependency

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"
