"""FastAPI dependencies wiring the document store to its collaborators."""

from datetime import datetime
from typing import Annotated

import httpx
import redis
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from backend.itinerary_engine.adapters.images import build_image_cache
from backend.itinerary_engine.adapters.places import GooglePlaceLookup
from backend.itinerary_engine.api.auth import get_current_context
from backend.itinerary_engine.config import Settings, get_settings
from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.db.engine import get_session
from backend.itinerary_engine.db.inmemory import InMemoryRateLimiter
from backend.itinerary_engine.db.repositories import RateLimiter
from backend.itinerary_engine.db.sql_repositories import (
    SqlExploreSessionRepository,
    SqlItineraryRepository,
    SqlMemberUsageRepository,
    SqlTripAccessRepository,
)
from backend.itinerary_engine.engine.allocator import SlotAllocator
from backend.itinerary_engine.engine.enrichment import PlaceEnricher
from backend.itinerary_engine.engine.explore import ExploreSessionStore
from backend.itinerary_engine.engine.quota import QuotaTracker
from backend.itinerary_engine.engine.replacer import ActivityReplacer
from backend.itinerary_engine.engine.store import ItineraryDocumentStore
from backend.itinerary_engine.middleware.ratelimit import (
    RateLimitMiddleware,
    create_default_bucket_map,
)
from backend.itinerary_engine.ratelimit import RateLimitBucket, RedisRateLimiter, bucket_limits
from backend.itinerary_engine.upstream.executor import UpstreamExecutor
from backend.itinerary_engine.utils.logging import StructuredCallLogger
from backend.itinerary_engine.utils.metrics import PrometheusCallMetrics

_http_client: httpx.AsyncClient | None = None
_executor: UpstreamExecutor | None = None
_rate_limiter: RateLimitMiddleware | None = None


def get_http_client() -> httpx.AsyncClient:
    """Process-wide HTTP client for provider calls."""
    global _http_client
    if _http_client is None:
        _http_client = httpx.AsyncClient(timeout=10.0, follow_redirects=True)
    return _http_client


def get_executor() -> UpstreamExecutor:
    """Process-wide executor so breaker and cache state are shared."""
    global _executor
    if _executor is None:
        _executor = UpstreamExecutor(
            metrics=PrometheusCallMetrics(), logger=StructuredCallLogger()
        )
    return _executor


def build_document_store(
    settings: Settings,
    session: Session,
    executor: UpstreamExecutor,
    client: httpx.AsyncClient,
) -> ItineraryDocumentStore:
    """Assemble the store over SQL repositories and live providers."""
    lookup = GooglePlaceLookup(settings, executor, client=client)
    enricher = PlaceEnricher(
        image_cache=build_image_cache(settings, executor, client),
        photo_url=lookup.photo_url,
    )
    quota = QuotaTracker(settings, SqlMemberUsageRepository(session))

    return ItineraryDocumentStore(
        settings=settings,
        itineraries=SqlItineraryRepository(session),
        access=SqlTripAccessRepository(session),
        quota=quota,
        explore=ExploreSessionStore(SqlExploreSessionRepository(session), quota),
        allocator=SlotAllocator(lookup, enricher, settings.max_places_per_day),
        replacer=ActivityReplacer(lookup, enricher, quota, settings.max_places_per_day),
    )


def get_document_store(
    session: Annotated[Session, Depends(get_session)],
) -> ItineraryDocumentStore:
    """FastAPI dependency for the document store."""
    return build_document_store(get_settings(), session, get_executor(), get_http_client())


def build_rate_limiter(settings: Settings) -> RateLimitMiddleware:
    """Redis-backed limiter when REDIS_URL is set, in-memory otherwise."""
    limits = bucket_limits(settings)
    limiters: dict[RateLimitBucket, RateLimiter]
    if settings.redis_url:
        client = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url, decode_responses=True
        )
        limiters = {
            bucket: RedisRateLimiter(client, limit, bucket=bucket)
            for bucket, limit in limits.items()
        }
    else:
        limiters = {bucket: InMemoryRateLimiter(limit) for bucket, limit in limits.items()}
    return RateLimitMiddleware(limiters, create_default_bucket_map())


def get_rate_limiter() -> RateLimitMiddleware:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = build_rate_limiter(get_settings())
    return _rate_limiter


async def enforce_rate_limit(
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    limiter: Annotated[RateLimitMiddleware, Depends(get_rate_limiter)],
) -> RequestContext:
    """Authenticate, then apply the per-user rate limit for the path bucket.

    Raises:
        HTTPException: 429 with Retry-After when over the limit
    """
    allowed, retry_after = limiter.check_rate_limit(
        request.method, request.url.path, ctx, now=datetime.now()
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after)},
        )
    return ctx
