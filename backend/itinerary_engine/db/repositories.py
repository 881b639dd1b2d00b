"""Repository protocol interfaces for data access."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from backend.itinerary_engine.models.common import CounterName, TripRole
from backend.itinerary_engine.models.itinerary import ItineraryDocument
from backend.itinerary_engine.models.usage import (
    EffectiveTier,
    ExploreSession,
    QuotaCounters,
    SessionKey,
)


class PersistenceError(Exception):
    """A repository read or write failed."""

    pass


class RevisionMismatchError(PersistenceError):
    """Conditional document write lost a race."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"expected revision {expected}, found {actual}")
        self.expected = expected
        self.actual = actual


class ItineraryRepository(Protocol):
    """Whole-document store keyed by trip and optional segment."""

    def load(self, trip_id: str, segment_id: str | None = None) -> ItineraryDocument | None:
        """Load a document.

        Args:
            trip_id: Trip ID
            segment_id: Trip segment ID, None for the trip-level document

        Returns:
            Document with its current revision, or None if absent
        """
        ...

    def save(
        self,
        trip_id: str,
        segment_id: str | None,
        document: ItineraryDocument,
        expected_revision: int | None = None,
    ) -> int:
        """Save a document.

        Args:
            trip_id: Trip ID
            segment_id: Trip segment ID, None for the trip-level document
            document: Document to store
            expected_revision: When set, the write only lands if the stored
                revision still equals this value

        Returns:
            New revision

        Raises:
            RevisionMismatchError: Stored revision differs from expected
            PersistenceError: Write failed
        """
        ...


class MemberUsageRepository(Protocol):
    """Per trip-member usage counters."""

    def load_member(self, trip_id: str, user_id: str) -> QuotaCounters:
        """Load counters, creating a zeroed row on first access."""
        ...

    def increment(
        self, trip_id: str, user_id: str, counter: CounterName, delta: int = 1
    ) -> QuotaCounters:
        """Atomically add delta to one counter (floored at zero).

        Raises:
            PersistenceError: Write failed
        """
        ...

    def save_member(self, counters: QuotaCounters) -> None:
        """Overwrite all counters for the member."""
        ...


class ExploreSessionRepository(Protocol):
    """Explore swipe sessions."""

    def get(self, key: SessionKey) -> ExploreSession | None:
        """Get a session, None if it does not exist yet."""
        ...

    def save(self, session: ExploreSession) -> None:
        """Insert or update a session."""
        ...


class TripAccessRepository(Protocol):
    """Trip membership and upgrade status."""

    def get_role(self, trip_id: str, user_id: str) -> TripRole | None:
        """Member's role on the trip, None if no access (or no such trip)."""
        ...

    def trip_exists(self, trip_id: str) -> bool:
        """Whether the trip exists at all."""
        ...

    def get_effective_tier(self, trip_id: str, user_id: str) -> EffectiveTier:
        """Account-level and trip-level upgrade status."""
        ...


@dataclass
class RetryAfter:
    """Rate limit retry-after information."""

    seconds: int


class RateLimiter(Protocol):
    """Rate limiter interface."""

    def check_quota(self, key: str, now: datetime) -> RetryAfter | None:
        """Check if quota is available.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            RetryAfter if over quota, None if allowed
        """
        ...
