"""Bounded execution of external provider calls.

Every call to a place-lookup or image provider goes through UpstreamExecutor:
- Hard timeout per attempt
- Bounded retries with jitter
- Per-provider circuit breaker (shared state via registry)
- Optional TTL cache keyed by caller-supplied key
- Metrics and structured logging hooks
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TypeVar

from backend.itinerary_engine.config import Settings

T = TypeVar("T")


class UpstreamError(Exception):
    """Base class for bounded-call failures."""

    pass


class UpstreamTimeoutError(UpstreamError):
    """Call exceeded its hard timeout on every attempt."""

    pass


class UpstreamCircuitOpenError(UpstreamError):
    """Circuit breaker is open for this provider."""

    pass


class UpstreamCallError(UpstreamError):
    """Call failed on every attempt."""

    pass


@dataclass(frozen=True)
class CallContext:
    """Identifies a call for logs and metrics."""

    provider: str
    operation: str
    trip_id: str | None = None


@dataclass
class CallConfig:
    """Configuration for one provider."""

    hard_timeout_ms: int
    retry_count: int
    retry_jitter_min_ms: int
    retry_jitter_max_ms: int
    breaker_failure_threshold: int = 5
    breaker_window_seconds: int = 60
    breaker_half_open_seconds: int = 30
    cache_ttl_seconds: int = 0

    @classmethod
    def from_settings(cls, settings: Settings, cache_ttl_seconds: int = 0) -> "CallConfig":
        return cls(
            hard_timeout_ms=settings.upstream_hard_timeout_ms,
            retry_count=settings.upstream_retry_count,
            retry_jitter_min_ms=settings.retry_jitter_min_ms,
            retry_jitter_max_ms=settings.retry_jitter_max_ms,
            breaker_failure_threshold=settings.circuit_breaker_failures,
            breaker_window_seconds=settings.circuit_breaker_window_sec,
            breaker_half_open_seconds=settings.circuit_breaker_half_open_sec,
            cache_ttl_seconds=cache_ttl_seconds,
        )


class BreakerState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Per-provider circuit breaker.

    Opens after failure_threshold failures inside window_seconds, then lets a
    probe through after half_open_seconds.
    """

    provider: str
    failure_threshold: int
    window_seconds: int
    half_open_seconds: int
    state: BreakerState = BreakerState.CLOSED
    failure_times: list[datetime] = field(default_factory=list)
    opened_at: datetime | None = None

    def record_success(self) -> None:
        if self.state == BreakerState.HALF_OPEN:
            self.state = BreakerState.CLOSED
            self.failure_times.clear()
            self.opened_at = None

    def record_failure(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.window_seconds)
        self.failure_times = [t for t in self.failure_times if t > cutoff]
        self.failure_times.append(now)

        tripped = len(self.failure_times) >= self.failure_threshold
        if self.state == BreakerState.HALF_OPEN or tripped:
            self.state = BreakerState.OPEN
            self.opened_at = now

    def is_open(self, now: datetime) -> bool:
        if self.state == BreakerState.OPEN and self.opened_at is not None:
            if (now - self.opened_at).total_seconds() >= self.half_open_seconds:
                self.state = BreakerState.HALF_OPEN
        return self.state == BreakerState.OPEN


class BreakerRegistry:
    """Shared per-provider breakers."""

    def __init__(self) -> None:
        self._by_provider: dict[str, CircuitBreaker] = {}

    def get_or_create(self, provider: str, config: CallConfig) -> CircuitBreaker:
        if provider not in self._by_provider:
            self._by_provider[provider] = CircuitBreaker(
                provider=provider,
                failure_threshold=config.breaker_failure_threshold,
                window_seconds=config.breaker_window_seconds,
                half_open_seconds=config.breaker_half_open_seconds,
            )
        return self._by_provider[provider]

    def clear(self) -> None:
        """Clear all breakers (useful for testing)."""
        self._by_provider.clear()


_global_breaker_registry = BreakerRegistry()


def get_breaker_registry() -> BreakerRegistry:
    """Get the global breaker registry instance."""
    return _global_breaker_registry


@dataclass
class CacheEntry:
    value: Any
    cached_at: datetime
    ttl_seconds: int

    def is_fresh(self, now: datetime) -> bool:
        return (now - self.cached_at).total_seconds() < self.ttl_seconds


class ResponseCache:
    """In-memory TTL cache for upstream responses."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str, now: datetime) -> tuple[bool, Any]:
        """Return (hit, value)."""
        entry = self._entries.get(key)
        if entry and entry.is_fresh(now):
            return True, entry.value
        if entry:
            del self._entries[key]
        return False, None

    def set(self, key: str, value: Any, ttl_seconds: int, now: datetime) -> None:
        self._entries[key] = CacheEntry(value=value, cached_at=now, ttl_seconds=ttl_seconds)


class CallMetrics:
    """No-op metrics sink; see utils.metrics for the Prometheus one."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        pass

    def inc_error(self, provider: str, reason: str) -> None:
        pass

    def inc_cache_hit(self, provider: str) -> None:
        pass


class CallLogger:
    """No-op call logger; see utils.logging for the structured one."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
    ) -> None:
        pass


class UpstreamExecutor:
    """Runs provider calls under timeout, retry, breaker, and cache policy."""

    def __init__(
        self,
        metrics: CallMetrics | None = None,
        logger: CallLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        breakers: BreakerRegistry | None = None,
        cache: ResponseCache | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            metrics: Metrics recorder (defaults to no-op)
            logger: Structured logger (defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
            breakers: Breaker registry (default: process-wide registry)
            cache: Response cache shared by calls through this executor
        """
        self._metrics = metrics or CallMetrics()
        self._logger = logger or CallLogger()
        self._sleep = sleep_fn or asyncio.sleep
        self._breakers = breakers or get_breaker_registry()
        self._cache = cache or ResponseCache()

    async def execute(
        self,
        ctx: CallContext,
        config: CallConfig,
        fn: Callable[[], Awaitable[T]],
        *,
        cache_key: str | None = None,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ) -> T:
        """Execute fn with the full bounding pipeline.

        Args:
            ctx: Call context for logs and metrics
            config: Provider configuration
            fn: Zero-argument coroutine factory; called once per attempt
            cache_key: Cache key (only used when config.cache_ttl_seconds > 0)
            retry_on: Exception types counted as retryable failures; anything
                else propagates immediately without touching the breaker

        Returns:
            The value returned by fn

        Raises:
            UpstreamTimeoutError: Every attempt timed out
            UpstreamCircuitOpenError: Breaker is open
            UpstreamCallError: Every attempt failed
        """
        start_time = time.monotonic()
        now = datetime.now()
        use_cache = cache_key is not None and config.cache_ttl_seconds > 0

        # Cached results bypass the breaker
        if use_cache:
            hit, cached = self._cache.get(f"{ctx.provider}:{cache_key}", now)
            if hit:
                elapsed_ms = (time.monotonic() - start_time) * 1000
                self._metrics.record_latency(ctx.provider, "cache_hit", elapsed_ms)
                self._metrics.inc_cache_hit(ctx.provider)
                self._logger.log_attempt(ctx, 0, "cache_hit", elapsed_ms, cache_hit=True)
                return cached

        breaker = self._breakers.get_or_create(ctx.provider, config)
        if breaker.is_open(now):
            elapsed_ms = (time.monotonic() - start_time) * 1000
            self._metrics.record_latency(ctx.provider, "breaker_open", elapsed_ms)
            self._metrics.inc_error(ctx.provider, "breaker_open")
            self._logger.log_attempt(
                ctx, 0, "breaker_open", elapsed_ms, error_reason="breaker_open"
            )
            raise UpstreamCircuitOpenError(f"Circuit breaker open for {ctx.provider}")

        last_error: BaseException | None = None
        for attempt in range(config.retry_count + 1):
            attempt_start = time.monotonic()

            try:
                result = await asyncio.wait_for(fn(), timeout=config.hard_timeout_ms / 1000)
            except TimeoutError as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                self._metrics.inc_error(ctx.provider, "timeout")
                self._logger.log_attempt(
                    ctx, attempt + 1, "timeout", elapsed_ms, error_reason="timeout"
                )
                breaker.record_failure(datetime.now())
            except retry_on as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                self._metrics.inc_error(ctx.provider, "call_error")
                self._logger.log_attempt(
                    ctx, attempt + 1, "error", elapsed_ms, error_reason=type(e).__name__
                )
                breaker.record_failure(datetime.now())
            else:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                breaker.record_success()
                self._metrics.record_latency(ctx.provider, "success", elapsed_ms)
                self._logger.log_attempt(ctx, attempt + 1, "success", elapsed_ms)

                if use_cache:
                    self._cache.set(
                        f"{ctx.provider}:{cache_key}", result, config.cache_ttl_seconds, now
                    )
                return result

            if attempt < config.retry_count:
                if breaker.is_open(datetime.now()):
                    break
                jitter_ms = random.uniform(config.retry_jitter_min_ms, config.retry_jitter_max_ms)
                await self._sleep(jitter_ms / 1000)

        if isinstance(last_error, TimeoutError):
            raise UpstreamTimeoutError(
                f"{ctx.provider}.{ctx.operation} timed out after all retries"
            )
        raise UpstreamCallError(
            f"{ctx.provider}.{ctx.operation} failed after all retries"
        ) from last_error
