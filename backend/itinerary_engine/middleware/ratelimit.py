"""Rate limiting middleware."""

from datetime import datetime

from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.db.repositories import RateLimiter
from backend.itinerary_engine.ratelimit import (
    RateLimitBucket,
    classify_request,
    make_rate_limit_key,
)


class RateLimitMiddleware:
    """Middleware for rate limiting HTTP requests.

    Maps request paths to buckets and enforces a limiter per bucket.
    """

    def __init__(
        self,
        limiters: dict[RateLimitBucket, RateLimiter],
        bucket_map: dict[str, RateLimitBucket],
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            limiters: Rate limiter per bucket
            bucket_map: Mapping from path patterns to buckets
        """
        self._limiters = limiters
        self._bucket_map = bucket_map

    def check_rate_limit(
        self, method: str, path: str, ctx: RequestContext, now: datetime | None = None
    ) -> tuple[bool, int]:
        """Check if request is allowed under rate limit.

        Args:
            method: HTTP method
            path: Request path
            ctx: Request context
            now: Current time (for testing)

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        if now is None:
            now = datetime.now()

        bucket = classify_request(method, path, self._bucket_map)
        limiter = self._limiters.get(bucket) if bucket else None

        if bucket is None or limiter is None:
            # No rate limit for this path
            return (True, 0)

        retry_after = limiter.check_quota(make_rate_limit_key(ctx, bucket), now)

        if retry_after is None:
            return (True, 0)

        return (False, retry_after.seconds)


def create_default_bucket_map() -> dict[str, RateLimitBucket]:
    """Create default bucket mapping.

    Returns:
        Dictionary mapping path patterns to buckets, most specific first
    """
    return {
        "/explore": RateLimitBucket.swipe,
        "/trips/": RateLimitBucket.mutation,
    }
