"""Engine error taxonomy.

Every precondition failure is raised before any write. Each error carries a
stable machine code and the HTTP status the API layer renders it with.
"""

from typing import Any

from backend.itinerary_engine.models.common import CounterName, QuotaTier


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "engine_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Extra fields rendered next to code and message."""
        return {}


class NotFoundError(EngineError):
    """Trip, document, day, or target place absent."""

    code = "not_found"
    status_code = 404


class ForbiddenError(EngineError):
    """Caller lacks access to the trip."""

    code = "forbidden"
    status_code = 403


class PastDayLockedError(EngineError):
    """Mutation targets a day before today."""

    code = "past_day_locked"
    status_code = 400

    def __init__(self, day_id: str) -> None:
        super().__init__("You cannot modify days that are already in the past.")
        self.day_id = day_id

    def details(self) -> dict[str, Any]:
        return {"day_id": self.day_id}


class DuplicatePlaceError(EngineError):
    """Incoming place already exists somewhere in the document."""

    code = "duplicate_place"
    status_code = 409

    def __init__(self, place_key: str) -> None:
        super().__init__("This place is already in your itinerary.")
        self.place_key = place_key

    def details(self) -> dict[str, Any]:
        return {"place_key": self.place_key}


class LimitReachedError(EngineError):
    """Usage quota exhausted."""

    code = "limit_reached"
    status_code = 429

    def __init__(
        self, counter: CounterName, limit: int, used: int, tier: QuotaTier, message: str
    ) -> None:
        super().__init__(message)
        self.counter = counter
        self.limit = limit
        self.used = used
        self.tier = tier

    def details(self) -> dict[str, Any]:
        return {
            "counter": self.counter.value,
            "limit": self.limit,
            "used": self.used,
            "tier": self.tier.value,
        }


class UpstreamFailureError(EngineError):
    """Place lookup or persistence call failed."""

    code = "upstream_failure"
    status_code = 502


class InvalidInputError(EngineError):
    """Malformed payload."""

    code = "invalid_input"
    status_code = 400


class ConflictError(EngineError):
    """Document changed since it was loaded."""

    code = "conflict"
    status_code = 409

    def __init__(self, expected_revision: int, actual_revision: int) -> None:
        super().__init__("Itinerary was modified concurrently; reload and retry.")
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision

    def details(self) -> dict[str, Any]:
        return {
            "expected_revision": self.expected_revision,
            "actual_revision": self.actual_revision,
        }


class DayFullError(EngineError):
    """Day already holds the maximum number of places."""

    code = "limit_reached"
    status_code = 429

    def __init__(self, day_id: str, limit: int, used: int) -> None:
        super().__init__(f"This day already has {limit} places. Remove one to add another.")
        self.day_id = day_id
        self.limit = limit
        self.used = used

    def details(self) -> dict[str, Any]:
        return {"day_id": self.day_id, "limit": self.limit, "used": self.used}
