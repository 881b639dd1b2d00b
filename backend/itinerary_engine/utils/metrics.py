"""Prometheus metrics for upstream calls and engine operations."""

from prometheus_client import Counter, Histogram

# Upstream call metrics
upstream_latency_ms = Histogram(
    "upstream_latency_ms",
    "Upstream provider call latency in milliseconds",
    ["provider", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

upstream_errors_total = Counter(
    "upstream_errors_total",
    "Total upstream provider call errors",
    ["provider", "reason"],
)

upstream_cache_hits_total = Counter(
    "upstream_cache_hits_total",
    "Total upstream response cache hits",
    ["provider"],
)

# Engine metrics
engine_operations_total = Counter(
    "engine_operations_total",
    "Itinerary engine operations by outcome",
    ["operation", "outcome"],
)

quota_denials_total = Counter(
    "quota_denials_total",
    "Usage quota denials",
    ["counter", "tier"],
)

places_distributed_total = Counter(
    "places_distributed_total",
    "Candidates processed by bulk distribution",
    ["result"],
)


class PrometheusCallMetrics:
    """Prometheus-based upstream call metrics."""

    def record_latency(self, provider: str, outcome: str, latency_ms: float) -> None:
        upstream_latency_ms.labels(provider=provider, outcome=outcome).observe(latency_ms)

    def inc_error(self, provider: str, reason: str) -> None:
        upstream_errors_total.labels(provider=provider, reason=reason).inc()

    def inc_cache_hit(self, provider: str) -> None:
        upstream_cache_hits_total.labels(provider=provider).inc()


def record_operation(operation: str, outcome: str) -> None:
    """Count an engine operation outcome (success or an error code)."""
    engine_operations_total.labels(operation=operation, outcome=outcome).inc()


def record_quota_denial(counter: str, tier: str) -> None:
    quota_denials_total.labels(counter=counter, tier=tier).inc()


def record_distribution(placed: int, skipped: int, not_placed: int) -> None:
    places_distributed_total.labels(result="placed").inc(placed)
    places_distributed_total.labels(result="already_present").inc(skipped)
    places_distributed_total.labels(result="not_placed").inc(not_placed)
