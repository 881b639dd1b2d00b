"""Quota counters, limits, and explore session models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from backend.itinerary_engine.models.common import CounterName, QuotaTier, SwipeDirection


class QuotaCounters(BaseModel):
    """Usage counters for one trip-member."""

    trip_id: str
    user_id: str
    swipe_count: int = Field(0, ge=0)
    change_count: int = Field(0, ge=0)
    search_add_count: int = Field(0, ge=0)

    def used(self, counter: CounterName) -> int:
        return getattr(self, counter.value)


class Limit(BaseModel):
    """A usage ceiling. value=None means unlimited."""

    value: int | None

    @property
    def unbounded(self) -> bool:
        return self.value is None

    def allows(self, used: int) -> bool:
        return self.value is None or used < self.value

    def remaining(self, used: int) -> int | None:
        if self.value is None:
            return None
        return max(0, self.value - used)


class UsageLimits(BaseModel):
    """Limits for every counter under one tier."""

    tier: QuotaTier
    swipe: Limit
    change: Limit
    search_add: Limit

    def for_counter(self, counter: CounterName) -> Limit:
        return {
            CounterName.swipe: self.swipe,
            CounterName.change: self.change,
            CounterName.search_add: self.search_add,
        }[counter]


class EffectiveTier(BaseModel):
    """Upgrade status resolved for a trip-member."""

    account_upgraded: bool = False
    trip_upgraded: bool = False

    @property
    def is_upgraded(self) -> bool:
        return self.account_upgraded or self.trip_upgraded

    @property
    def tier(self) -> QuotaTier:
        return QuotaTier.upgraded if self.is_upgraded else QuotaTier.free


class SessionKey(BaseModel):
    """Identity of an explore session."""

    model_config = ConfigDict(frozen=True)

    trip_id: str
    user_id: str
    segment_id: str | None = None


class SwipeRecord(BaseModel):
    """One judged place, in the order it was swiped."""

    place_id: str
    direction: SwipeDirection


class ExploreSession(BaseModel):
    """Swipe state for one member on one trip (optionally one segment).

    history holds the swipes still in effect, oldest first; undo pops its tail.
    """

    trip_id: str
    user_id: str
    segment_id: str | None = None
    liked_place_ids: list[str] = Field(default_factory=list)
    discarded_place_ids: list[str] = Field(default_factory=list)
    swipe_count: int = Field(0, ge=0)
    history: list[SwipeRecord] = Field(default_factory=list)
    last_swipe_at: datetime | None = None

    @property
    def key(self) -> SessionKey:
        return SessionKey(trip_id=self.trip_id, user_id=self.user_id, segment_id=self.segment_id)

    @property
    def last_action(self) -> SwipeDirection | None:
        return self.history[-1].direction if self.history else None

    def has_swiped(self, place_id: str) -> bool:
        return place_id in self.liked_place_ids or place_id in self.discarded_place_ids
