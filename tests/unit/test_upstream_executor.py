"""Unit tests for the bounded upstream executor.

Tests cover:
1. Circuit breaker transitions
2. Response cache TTL
3. Timeout, retry with jitter, non-retryable errors
4. Breaker and cache integration
5. Metrics wiring
"""

import asyncio
import logging
from datetime import datetime, timedelta

import pytest
from prometheus_client import REGISTRY

from backend.itinerary_engine.upstream.executor import (
    BreakerRegistry,
    BreakerState,
    CallConfig,
    CallContext,
    CircuitBreaker,
    ResponseCache,
    UpstreamCallError,
    UpstreamCircuitOpenError,
    UpstreamExecutor,
    UpstreamTimeoutError,
)
from backend.itinerary_engine.utils.logging import StructuredCallLogger
from backend.itinerary_engine.utils.metrics import PrometheusCallMetrics


def make_config(**overrides) -> CallConfig:
    values = {
        "hard_timeout_ms": 2000,
        "retry_count": 1,
        "retry_jitter_min_ms": 200,
        "retry_jitter_max_ms": 500,
        "breaker_failure_threshold": 5,
        "breaker_window_seconds": 60,
        "breaker_half_open_seconds": 30,
        "cache_ttl_seconds": 0,
    }
    values.update(overrides)
    return CallConfig(**values)


async def no_sleep(seconds: float) -> None:
    return None


def make_executor(**kwargs) -> UpstreamExecutor:
    kwargs.setdefault("sleep_fn", no_sleep)
    return UpstreamExecutor(breakers=BreakerRegistry(), **kwargs)


def sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestCircuitBreaker:
    """CircuitBreaker state transitions."""

    def make(self, threshold: int = 3) -> CircuitBreaker:
        return CircuitBreaker(
            provider="places",
            failure_threshold=threshold,
            window_seconds=60,
            half_open_seconds=30,
        )

    def test_starts_closed(self) -> None:
        breaker = self.make()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.is_open(datetime.now()) is False

    def test_opens_after_threshold_failures(self) -> None:
        now = datetime.now()
        breaker = self.make()

        for _ in range(3):
            breaker.record_failure(now)

        assert breaker.is_open(now) is True
        assert breaker.state == BreakerState.OPEN

    def test_old_failures_fall_out_of_window(self) -> None:
        now = datetime.now()
        breaker = self.make()

        old = now - timedelta(seconds=65)
        breaker.record_failure(old)
        breaker.record_failure(old)
        breaker.record_failure(now)

        assert breaker.is_open(now) is False
        assert len(breaker.failure_times) == 1

    def test_half_open_then_success_closes(self) -> None:
        now = datetime.now()
        breaker = self.make(threshold=2)
        breaker.record_failure(now)
        breaker.record_failure(now)

        assert breaker.is_open(now + timedelta(seconds=31)) is False
        assert breaker.state == BreakerState.HALF_OPEN

        breaker.record_success()
        assert breaker.state == BreakerState.CLOSED
        assert breaker.failure_times == []

    def test_half_open_failure_reopens(self) -> None:
        now = datetime.now()
        breaker = self.make(threshold=2)
        breaker.record_failure(now)
        breaker.record_failure(now)

        probe_time = now + timedelta(seconds=31)
        breaker.is_open(probe_time)
        breaker.record_failure(probe_time)

        assert breaker.state == BreakerState.OPEN
        assert breaker.opened_at == probe_time


class TestResponseCache:
    """ResponseCache TTL behavior."""

    def test_miss_when_empty(self) -> None:
        assert ResponseCache().get("places:abc", datetime.now()) == (False, None)

    def test_hit_when_fresh(self) -> None:
        cache = ResponseCache()
        now = datetime.now()
        cache.set("places:abc", {"name": "Meiji Jingu"}, ttl_seconds=60, now=now)

        assert cache.get("places:abc", now + timedelta(seconds=30)) == (
            True,
            {"name": "Meiji Jingu"},
        )

    def test_expired_entries_are_dropped(self) -> None:
        cache = ResponseCache()
        now = datetime.now()
        cache.set("places:abc", "value", ttl_seconds=60, now=now)

        assert cache.get("places:abc", now + timedelta(seconds=61)) == (False, None)

    def test_cached_none_is_a_hit(self) -> None:
        cache = ResponseCache()
        now = datetime.now()
        cache.set("places:missing", None, ttl_seconds=60, now=now)

        assert cache.get("places:missing", now) == (True, None)


class TestUpstreamExecutor:
    """UpstreamExecutor pipeline."""

    @pytest.mark.asyncio
    async def test_successful_call(self) -> None:
        executor = make_executor()

        async def call() -> dict[str, str]:
            return {"name": "Senso-ji"}

        result = await executor.execute(CallContext("places", "details"), make_config(), call)
        assert result == {"name": "Senso-ji"}

    @pytest.mark.asyncio
    async def test_timeout_raises(self) -> None:
        executor = make_executor()

        async def slow() -> str:
            await asyncio.sleep(10)
            return "too slow"

        with pytest.raises(UpstreamTimeoutError):
            await executor.execute(
                CallContext("places", "slow"),
                make_config(hard_timeout_ms=50, retry_count=0),
                slow,
            )

    @pytest.mark.asyncio
    async def test_retry_with_jitter(self) -> None:
        sleep_calls: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleep_calls.append(seconds)

        executor = make_executor(sleep_fn=fake_sleep)
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("first attempt fails")
            return "ok"

        result = await executor.execute(CallContext("places", "flaky"), make_config(), flaky)

        assert result == "ok"
        assert attempts == 2
        assert len(sleep_calls) == 1
        assert 0.2 <= sleep_calls[0] <= 0.5

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_call_error(self) -> None:
        executor = make_executor()
        attempts = 0

        async def broken() -> str:
            nonlocal attempts
            attempts += 1
            raise RuntimeError("provider down")

        with pytest.raises(UpstreamCallError) as exc_info:
            await executor.execute(
                CallContext("places", "broken"), make_config(retry_count=2), broken
            )

        assert attempts == 3
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_non_retryable_error_propagates(self) -> None:
        executor = make_executor()
        attempts = 0

        async def bad_request() -> str:
            nonlocal attempts
            attempts += 1
            raise ValueError("bad payload")

        with pytest.raises(ValueError):
            await executor.execute(
                CallContext("places", "validate"),
                make_config(retry_count=3),
                bad_request,
                retry_on=(ConnectionError,),
            )

        assert attempts == 1

    @pytest.mark.asyncio
    async def test_breaker_opens_after_failures(self) -> None:
        executor = make_executor()
        ctx = CallContext("breaker_test", "details")
        config = make_config(retry_count=0, breaker_failure_threshold=3)

        async def always_fails() -> str:
            raise RuntimeError("always fails")

        for _ in range(3):
            with pytest.raises(UpstreamCallError):
                await executor.execute(ctx, config, always_fails)

        with pytest.raises(UpstreamCircuitOpenError):
            await executor.execute(ctx, config, always_fails)

    @pytest.mark.asyncio
    async def test_breaker_stops_remaining_retries(self) -> None:
        executor = make_executor()
        attempts = 0

        async def always_fails() -> str:
            nonlocal attempts
            attempts += 1
            raise RuntimeError("always fails")

        with pytest.raises(UpstreamCallError):
            await executor.execute(
                CallContext("breaker_mid_retry", "details"),
                make_config(retry_count=5, breaker_failure_threshold=2),
                always_fails,
            )

        assert attempts == 2

    @pytest.mark.asyncio
    async def test_breakers_are_per_provider(self) -> None:
        executor = make_executor()
        config = make_config(retry_count=0, breaker_failure_threshold=1)

        async def fails() -> str:
            raise RuntimeError("down")

        async def works() -> str:
            return "ok"

        with pytest.raises(UpstreamCallError):
            await executor.execute(CallContext("images", "fetch"), config, fails)

        assert await executor.execute(CallContext("places", "details"), config, works) == "ok"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_call(self) -> None:
        executor = make_executor(metrics=PrometheusCallMetrics())
        ctx = CallContext("cached_provider", "details")
        config = make_config(cache_ttl_seconds=3600)
        before = sample("upstream_cache_hits_total", {"provider": "cached_provider"})
        calls = 0

        async def counted() -> str:
            nonlocal calls
            calls += 1
            return f"call_{calls}"

        first = await executor.execute(ctx, config, counted, cache_key="abc")
        second = await executor.execute(ctx, config, counted, cache_key="abc")
        other = await executor.execute(ctx, config, counted, cache_key="xyz")

        assert (first, second, other) == ("call_1", "call_1", "call_2")
        assert calls == 2
        after = sample("upstream_cache_hits_total", {"provider": "cached_provider"})
        assert after - before == 1

    @pytest.mark.asyncio
    async def test_cache_ignored_without_ttl(self) -> None:
        executor = make_executor()
        calls = 0

        async def counted() -> int:
            nonlocal calls
            calls += 1
            return calls

        ctx = CallContext("uncached", "details")
        await executor.execute(ctx, make_config(), counted, cache_key="abc")
        await executor.execute(ctx, make_config(), counted, cache_key="abc")

        assert calls == 2

    @pytest.mark.asyncio
    async def test_error_metrics_recorded(self) -> None:
        executor = make_executor(metrics=PrometheusCallMetrics())
        labels = {"provider": "metric_errors", "reason": "call_error"}
        before = sample("upstream_errors_total", labels)

        async def fails() -> str:
            raise RuntimeError("down")

        with pytest.raises(UpstreamCallError):
            await executor.execute(
                CallContext("metric_errors", "details"), make_config(retry_count=1), fails
            )

        assert sample("upstream_errors_total", labels) - before == 2

    @pytest.mark.asyncio
    async def test_success_latency_recorded(self) -> None:
        executor = make_executor(metrics=PrometheusCallMetrics())
        labels = {"provider": "metric_success", "outcome": "success"}
        before = sample("upstream_latency_ms_count", labels)

        async def works() -> str:
            return "ok"

        await executor.execute(CallContext("metric_success", "details"), make_config(), works)

        assert sample("upstream_latency_ms_count", labels) - before == 1


@pytest.mark.asyncio
async def test_structured_logger_records_attempts(caplog: pytest.LogCaptureFixture) -> None:
    executor = make_executor(logger=StructuredCallLogger())
    attempts = 0

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("first attempt fails")
        return "ok"

    with caplog.at_level(logging.INFO, logger="backend.itinerary_engine.utils.logging"):
        ctx = CallContext("places", "details", trip_id="trip-1")
        await executor.execute(ctx, make_config(), flaky)

    records = [r for r in caplog.records if hasattr(r, "structured")]
    assert [r.structured["outcome"] for r in records] == ["error", "success"]
    assert records[0].levelno == logging.WARNING
    assert records[0].structured["error_reason"] == "RuntimeError"
    assert records[1].structured["trip_id"] == "trip-1"
    assert records[1].structured["attempt"] == 2
