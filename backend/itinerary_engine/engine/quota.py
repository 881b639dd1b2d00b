"""Per trip-member usage quotas.

Every consuming action is checked against a hard ceiling before it runs.
Limits are configuration; the upgraded tier may be unbounded, which is
represented as Limit(value=None) so callers can render "unlimited".
"""

import logging

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.db.repositories import MemberUsageRepository
from backend.itinerary_engine.errors import LimitReachedError
from backend.itinerary_engine.models.common import CounterName, QuotaTier
from backend.itinerary_engine.models.usage import Limit, QuotaCounters, UsageLimits
from backend.itinerary_engine.utils.metrics import record_quota_denial

logger = logging.getLogger(__name__)

_COUNTER_NOUNS = {
    CounterName.swipe: "swipe",
    CounterName.change: "change",
    CounterName.search_add: "search add",
}


def limit_message(counter: CounterName, tier: QuotaTier, limit: int) -> str:
    """User-facing denial text, worded per tier."""
    noun = _COUNTER_NOUNS[counter]
    if tier == QuotaTier.upgraded:
        return (
            f"You've used all {limit} {noun}s available for this trip. "
            "Try saving your favorites or adjusting your filters."
        )
    return (
        f"You've used all {limit} free {noun}s for this trip. "
        "Upgrade your account or this trip to keep going."
    )


class QuotaTracker:
    """Admission control for usage counters."""

    def __init__(self, settings: Settings, usage: MemberUsageRepository) -> None:
        self._settings = settings
        self._usage = usage

    def get_limits(self, tier: QuotaTier) -> UsageLimits:
        s = self._settings
        if tier == QuotaTier.upgraded:
            return UsageLimits(
                tier=tier,
                swipe=Limit(value=s.upgraded_swipe_limit),
                change=Limit(value=s.upgraded_change_limit),
                search_add=Limit(value=s.upgraded_search_add_limit),
            )
        return UsageLimits(
            tier=tier,
            swipe=Limit(value=s.free_swipe_limit),
            change=Limit(value=s.free_change_limit),
            search_add=Limit(value=s.free_search_add_limit),
        )

    def check(self, counter: CounterName, used: int, tier: QuotaTier) -> Limit:
        """Raise LimitReachedError unless one more use is allowed."""
        limit = self.get_limits(tier).for_counter(counter)
        if limit.value is None or limit.allows(used):
            return limit

        record_quota_denial(counter.value, tier.value)
        logger.info(f"[quota] denied counter={counter.value} used={used} limit={limit.value}")
        raise LimitReachedError(
            counter=counter,
            limit=limit.value,
            used=used,
            tier=tier,
            message=limit_message(counter, tier, limit.value),
        )

    def load(self, trip_id: str, user_id: str) -> QuotaCounters:
        return self._usage.load_member(trip_id, user_id)

    def check_member(
        self, counter: CounterName, trip_id: str, user_id: str, tier: QuotaTier
    ) -> QuotaCounters:
        """Check against the member's stored counters; returns them."""
        counters = self._usage.load_member(trip_id, user_id)
        self.check(counter, counters.used(counter), tier)
        return counters

    def consume(self, counter: CounterName, trip_id: str, user_id: str) -> QuotaCounters:
        """Persist exactly +1; callers check first."""
        return self._usage.increment(trip_id, user_id, counter, 1)

    def check_and_consume(
        self, counter: CounterName, trip_id: str, user_id: str, tier: QuotaTier
    ) -> QuotaCounters:
        self.check_member(counter, trip_id, user_id, tier)
        return self.consume(counter, trip_id, user_id)

    def release_swipe(self, trip_id: str, user_id: str, count: int = 1) -> QuotaCounters:
        """Give swipes back after an undo or session reset (floored at zero)."""
        return self._usage.increment(trip_id, user_id, CounterName.swipe, -count)
