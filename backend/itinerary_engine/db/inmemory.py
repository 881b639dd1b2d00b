"""In-memory implementations of repository interfaces."""

from datetime import datetime, timedelta

from backend.itinerary_engine.db.repositories import RetryAfter, RevisionMismatchError
from backend.itinerary_engine.models.common import CounterName, TripRole
from backend.itinerary_engine.models.itinerary import ItineraryDocument
from backend.itinerary_engine.models.usage import (
    EffectiveTier,
    ExploreSession,
    QuotaCounters,
    SessionKey,
)


class InMemoryItineraryRepository:
    """In-memory implementation of ItineraryRepository."""

    def __init__(self) -> None:
        self._documents: dict[tuple[str, str | None], dict] = {}

    def load(self, trip_id: str, segment_id: str | None = None) -> ItineraryDocument | None:
        """Load a document (a fresh copy every time)."""
        stored = self._documents.get((trip_id, segment_id))
        if stored is None:
            return None
        return ItineraryDocument.model_validate(stored)

    def save(
        self,
        trip_id: str,
        segment_id: str | None,
        document: ItineraryDocument,
        expected_revision: int | None = None,
    ) -> int:
        """Save a document, bumping its revision."""
        key = (trip_id, segment_id)
        current = self._documents.get(key)
        current_revision = current["revision"] if current else 0

        if expected_revision is not None and current is not None:
            if current_revision != expected_revision:
                raise RevisionMismatchError(expected_revision, current_revision)

        new_revision = current_revision + 1 if current is not None else document.revision
        data = document.model_dump(mode="json", by_alias=True)
        data["revision"] = new_revision
        self._documents[key] = data
        document.revision = new_revision
        return new_revision


class InMemoryMemberUsageRepository:
    """In-memory implementation of MemberUsageRepository."""

    def __init__(self) -> None:
        self._counters: dict[tuple[str, str], QuotaCounters] = {}

    def load_member(self, trip_id: str, user_id: str) -> QuotaCounters:
        """Load counters, creating a zeroed row on first access."""
        key = (trip_id, user_id)
        if key not in self._counters:
            self._counters[key] = QuotaCounters(trip_id=trip_id, user_id=user_id)
        return self._counters[key].model_copy()

    def increment(
        self, trip_id: str, user_id: str, counter: CounterName, delta: int = 1
    ) -> QuotaCounters:
        """Add delta to one counter (floored at zero)."""
        current = self.load_member(trip_id, user_id)
        value = max(0, current.used(counter) + delta)
        updated = current.model_copy(update={counter.value: value})
        self._counters[(trip_id, user_id)] = updated
        return updated.model_copy()

    def save_member(self, counters: QuotaCounters) -> None:
        self._counters[(counters.trip_id, counters.user_id)] = counters.model_copy()


class InMemoryExploreSessionRepository:
    """In-memory implementation of ExploreSessionRepository."""

    def __init__(self) -> None:
        self._sessions: dict[SessionKey, ExploreSession] = {}

    def get(self, key: SessionKey) -> ExploreSession | None:
        session = self._sessions.get(key)
        return session.model_copy(deep=True) if session else None

    def save(self, session: ExploreSession) -> None:
        self._sessions[session.key] = session.model_copy(deep=True)


class InMemoryTripAccessRepository:
    """In-memory implementation of TripAccessRepository."""

    def __init__(self) -> None:
        self._trips: dict[str, str] = {}
        self._members: dict[tuple[str, str], TripRole] = {}
        self._trip_upgrades: set[str] = set()
        self._account_upgrades: set[str] = set()

    def add_trip(self, trip_id: str, owner_id: str, trip_upgraded: bool = False) -> None:
        self._trips[trip_id] = owner_id
        if trip_upgraded:
            self._trip_upgrades.add(trip_id)

    def add_member(self, trip_id: str, user_id: str, role: TripRole) -> None:
        self._members[(trip_id, user_id)] = role

    def set_account_upgraded(self, user_id: str, upgraded: bool = True) -> None:
        if upgraded:
            self._account_upgrades.add(user_id)
        else:
            self._account_upgrades.discard(user_id)

    def trip_exists(self, trip_id: str) -> bool:
        return trip_id in self._trips

    def get_role(self, trip_id: str, user_id: str) -> TripRole | None:
        """Role on the trip; owners predating membership rows count as owner."""
        if trip_id not in self._trips:
            return None
        role = self._members.get((trip_id, user_id))
        if role is None and self._trips[trip_id] == user_id:
            return TripRole.owner
        return role

    def get_effective_tier(self, trip_id: str, user_id: str) -> EffectiveTier:
        # Trip-level upgrade is bought by the owner and applies to every member
        return EffectiveTier(
            account_upgraded=user_id in self._account_upgrades,
            trip_upgraded=trip_id in self._trip_upgrades,
        )


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed window."""

    def __init__(self, max_requests: int, window_seconds: int = 60) -> None:
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 60)
        """
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._windows: dict[str, tuple[datetime, int]] = {}

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available."""
        if key not in self._windows:
            self._windows[key] = (now, 1)
            return None

        window_start, count = self._windows[key]
        window_end = window_start + timedelta(seconds=self._window_seconds)

        if now >= window_end:
            self._windows[key] = (now, 1)
            return None

        if count >= self._max_requests:
            return RetryAfter(seconds=max(1, int((window_end - now).total_seconds())))

        self._windows[key] = (window_start, count + 1)
        return None
