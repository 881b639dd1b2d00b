"""Per-user request rate limiting.

Requests on limited paths fall into one of three buckets, each counted in
its own fixed window per user:

- swipe: explore swipes, undos and session resets
- mutation: itinerary edits
- read: safe methods on any limited path
"""

import logging
from datetime import datetime
from enum import Enum

import redis

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.db.repositories import RetryAfter

logger = logging.getLogger(__name__)

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class RateLimitBucket(str, Enum):
    swipe = "swipe"
    mutation = "mutation"
    read = "read"


def classify_request(
    method: str, path: str, bucket_map: dict[str, RateLimitBucket]
) -> RateLimitBucket | None:
    """Bucket for a request, or None when its path is not limited.

    The first path pattern contained in the path decides; a safe method on
    that path is always a read.
    """
    for pattern, bucket in bucket_map.items():
        if pattern in path:
            return RateLimitBucket.read if method.upper() in READ_METHODS else bucket
    return None


def bucket_limits(settings: Settings) -> dict[RateLimitBucket, int]:
    """Requests per window allowed in each bucket."""
    return {
        RateLimitBucket.swipe: settings.swipes_per_min,
        RateLimitBucket.mutation: settings.mutations_per_min,
        RateLimitBucket.read: settings.reads_per_min,
    }


def make_rate_limit_key(ctx: RequestContext, bucket: RateLimitBucket | str) -> str:
    """Create rate limit key from context and bucket.

    Args:
        ctx: Request context
        bucket: Bucket name ("swipe", "mutation" or "read")

    Returns:
        Rate limit key
    """
    return f"{ctx.user_id}:{RateLimitBucket(bucket).value}"


class RedisRateLimiter:
    """Fixed-window limiter for one bucket, counted in Redis with INCR + EXPIRE."""

    def __init__(
        self,
        redis_client: redis.Redis,
        max_requests: int,
        window_seconds: int = 60,
        bucket: RateLimitBucket = RateLimitBucket.mutation,
    ) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Redis client
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
            bucket: Bucket this limiter counts, used in denial logs
        """
        self._redis = redis_client
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._bucket = bucket

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Count one request in the current window.

        Windows are aligned to multiples of window_seconds, so every user's
        window for a bucket rolls over at the same instant.

        Returns:
            RetryAfter if over quota, None if allowed
        """
        window_start = int(now.timestamp() / self._window_seconds) * self._window_seconds
        redis_key = f"ratelimit:{key}:{window_start}"

        count = self._redis.incr(redis_key)
        if count == 1:
            self._redis.expire(redis_key, self._window_seconds)

        if count <= self._max_requests:
            return None

        ttl = self._redis.ttl(redis_key)
        if ttl < 0:
            # Expiry never landed on the key; bound it and use the window end
            self._redis.expire(redis_key, self._window_seconds)
            ttl = window_start + self._window_seconds - int(now.timestamp())

        logger.info(
            f"[ratelimit] bucket={self._bucket.value} key={key} count={count} "
            f"limit={self._max_requests}"
        )
        return RetryAfter(seconds=max(1, ttl))
