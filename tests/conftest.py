"""Shared pytest fixtures for all test suites."""

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.itinerary_engine.adapters.places import PlaceLookupError
from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.db.inmemory import (
    InMemoryExploreSessionRepository,
    InMemoryItineraryRepository,
    InMemoryMemberUsageRepository,
    InMemoryTripAccessRepository,
)
from backend.itinerary_engine.db.models import Base
from backend.itinerary_engine.engine.allocator import SlotAllocator
from backend.itinerary_engine.engine.enrichment import PlaceEnricher
from backend.itinerary_engine.engine.explore import ExploreSessionStore
from backend.itinerary_engine.engine.quota import QuotaTracker
from backend.itinerary_engine.engine.replacer import ActivityReplacer
from backend.itinerary_engine.engine.store import ItineraryDocumentStore
from backend.itinerary_engine.models.common import TripRole
from backend.itinerary_engine.models.itinerary import Day, ItineraryDocument, Place, Slot
from backend.itinerary_engine.models.places import PlaceDetails

TRIP_ID = "trip-1"
OWNER_ID = "user-1"


class FakePlaceLookup:
    """PlaceLookup double.

    Unknown ids resolve to generated details unless listed in `missing`
    (lookup returns None) or `failing` (lookup raises PlaceLookupError).
    """

    def __init__(self) -> None:
        self.details: dict[str, PlaceDetails] = {}
        self.missing: set[str] = set()
        self.failing: set[str] = set()
        self.calls: list[str] = []

    async def get_details(self, place_id: str, trip_id: str | None = None) -> PlaceDetails | None:
        self.calls.append(place_id)
        if place_id in self.failing:
            raise PlaceLookupError(f"lookup failed for {place_id}")
        if place_id in self.missing:
            return None
        if place_id in self.details:
            return self.details[place_id]
        return PlaceDetails(
            place_id=place_id,
            name=f"Place {place_id}",
            formatted_address="1-2-3 Jingumae, Shibuya, Tokyo, Japan",
            types=["tourist_attraction", "point_of_interest"],
            photo_references=[f"photo-{place_id}"],
        )

    def photo_url(self, photo_reference: str, max_width: int = 800) -> str:
        return f"https://photos.test/{photo_reference}?maxwidth={max_width}"


@dataclass
class EngineHarness:
    """In-memory engine wired the way the API wires the SQL one."""

    settings: Settings
    today: date
    lookup: FakePlaceLookup
    itineraries: InMemoryItineraryRepository
    usage: InMemoryMemberUsageRepository
    sessions: InMemoryExploreSessionRepository
    access: InMemoryTripAccessRepository
    quota: QuotaTracker
    explore: ExploreSessionStore
    allocator: SlotAllocator
    replacer: ActivityReplacer
    store: ItineraryDocumentStore
    owner: RequestContext = field(default_factory=lambda: RequestContext(user_id=OWNER_ID))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        redis_url=None,
        reference_timezone="UTC",
        max_places_per_day=6,
    )


@pytest.fixture
def today() -> date:
    return date(2025, 6, 1)


@pytest.fixture
def make_place() -> Callable[..., Place]:
    def _make(place_id: str, name: str | None = None, area: str = "Shibuya", **kwargs) -> Place:
        return Place(
            id=place_id,
            place_id=place_id,
            name=name or f"Place {place_id}",
            description="Somewhere nice",
            area=area,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_day() -> Callable[..., Day]:
    def _make(
        day_id: str,
        day_date: date,
        index: int = 1,
        slots: dict[str, list[Place]] | None = None,
    ) -> Day:
        if slots is None:
            slots = {"morning": [], "afternoon": [], "evening": []}
        return Day(
            id=day_id,
            index=index,
            date=day_date,
            title=f"Day {index}",
            slots=[Slot(label=label, places=list(places)) for label, places in slots.items()],
        )

    return _make


@pytest.fixture
def make_document() -> Callable[[list[Day]], ItineraryDocument]:
    def _make(days: list[Day]) -> ItineraryDocument:
        return ItineraryDocument(title="Tokyo in June", summary="Five days", days=days)

    return _make


@pytest.fixture
def lookup() -> FakePlaceLookup:
    return FakePlaceLookup()


@pytest.fixture
def harness(settings: Settings, today: date, lookup: FakePlaceLookup) -> EngineHarness:
    itineraries = InMemoryItineraryRepository()
    usage = InMemoryMemberUsageRepository()
    sessions = InMemoryExploreSessionRepository()
    access = InMemoryTripAccessRepository()
    access.add_trip(TRIP_ID, owner_id=OWNER_ID)

    quota = QuotaTracker(settings, usage)
    explore = ExploreSessionStore(sessions, quota)
    enricher = PlaceEnricher(photo_url=lookup.photo_url)
    allocator = SlotAllocator(lookup, enricher, settings.max_places_per_day)
    replacer = ActivityReplacer(lookup, enricher, quota, settings.max_places_per_day)
    store = ItineraryDocumentStore(
        settings=settings,
        itineraries=itineraries,
        access=access,
        quota=quota,
        explore=explore,
        allocator=allocator,
        replacer=replacer,
        today=lambda: today,
    )

    return EngineHarness(
        settings=settings,
        today=today,
        lookup=lookup,
        itineraries=itineraries,
        usage=usage,
        sessions=sessions,
        access=access,
        quota=quota,
        explore=explore,
        allocator=allocator,
        replacer=replacer,
        store=store,
    )


@pytest.fixture
def add_member(harness: EngineHarness) -> Callable[[str, TripRole], RequestContext]:
    def _add(user_id: str, role: TripRole) -> RequestContext:
        harness.access.add_member(TRIP_ID, user_id, role)
        return RequestContext(user_id=user_id)

    return _add


@pytest.fixture
def sql_session() -> Generator[Session, None, None]:
    """SQLite in-memory session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    with factory() as session:
        yield session

    Base.metadata.drop_all(engine)
    engine.dispose()
