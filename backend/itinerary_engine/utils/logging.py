"""Structured logging for upstream provider calls."""

import logging
from typing import Any

from backend.itinerary_engine.upstream.executor import CallContext

logger = logging.getLogger(__name__)


class StructuredCallLogger:
    """Structured logger for bounded upstream calls."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        cache_hit: bool = False,
        error_reason: str | None = None,
    ) -> None:
        """Log call attempt with structured data."""
        log_data: dict[str, Any] = {
            "provider": ctx.provider,
            "operation": ctx.operation,
            "trip_id": ctx.trip_id,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "cache_hit": cache_hit,
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Upstream call: {ctx.provider}.{ctx.operation} - {outcome}"

        if outcome in ("success", "cache_hit"):
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
