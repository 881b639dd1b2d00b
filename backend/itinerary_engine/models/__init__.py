"""Models package - re-exports for convenience."""

from backend.itinerary_engine.models.common import (
    CounterName,
    Geo,
    QuotaTier,
    SlotLabel,
    SwipeDirection,
    TripRole,
)
from backend.itinerary_engine.models.itinerary import Day, ItineraryDocument, Place, Slot
from backend.itinerary_engine.models.places import (
    FullDetailsRef,
    IdentifierOnlyRef,
    IncomingPlaceRef,
    PlaceDetails,
)
from backend.itinerary_engine.models.results import (
    AddOutcome,
    BulkAddOutcome,
    DistributionSummary,
    ReplaceOutcome,
    SessionView,
    SwipeOutcome,
)
from backend.itinerary_engine.models.usage import (
    EffectiveTier,
    ExploreSession,
    Limit,
    QuotaCounters,
    SessionKey,
    SwipeRecord,
    UsageLimits,
)

__all__ = [
    # Common
    "Geo",
    "SlotLabel",
    "SwipeDirection",
    "CounterName",
    "TripRole",
    "QuotaTier",
    # Itinerary
    "ItineraryDocument",
    "Day",
    "Slot",
    "Place",
    # Places
    "PlaceDetails",
    "FullDetailsRef",
    "IdentifierOnlyRef",
    "IncomingPlaceRef",
    # Usage
    "QuotaCounters",
    "Limit",
    "UsageLimits",
    "EffectiveTier",
    "SessionKey",
    "ExploreSession",
    "SwipeRecord",
    # Results
    "ReplaceOutcome",
    "AddOutcome",
    "BulkAddOutcome",
    "DistributionSummary",
    "SessionView",
    "SwipeOutcome",
]
