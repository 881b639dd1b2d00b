"""Itinerary document models - the per-trip (or per-segment) smart itinerary."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from backend.itinerary_engine.models.common import SlotLabel


class Place(BaseModel):
    """Place embedded inside a slot."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str = ""
    area: str = ""
    neighborhood: str | None = None
    tags: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    image_url: str | None = None
    visited: bool = False
    place_id: str | None = None
    photo_reference: str | None = None


class Slot(BaseModel):
    """Daily time bucket holding an ordered list of places."""

    label: str
    summary: str = ""
    places: list[Place] = Field(default_factory=list)

    @property
    def canonical_label(self) -> SlotLabel | None:
        return SlotLabel.parse(self.label)

    def index_of(self, place_id: str) -> int | None:
        for i, place in enumerate(self.places):
            if place.id == place_id:
                return i
        return None

    def replace_at(self, index: int, place: Place) -> Place:
        """Swap the place at index, keeping every other position intact."""
        previous = self.places[index]
        self.places[index] = place
        return previous


class Day(BaseModel):
    """Single itinerary day."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    index: int = Field(..., ge=1)
    date: date
    title: str = ""
    theme: str = ""
    area_cluster: str = Field("", alias="areaCluster")
    overview: str = ""
    photos: list[str] = Field(default_factory=list)
    slots: list[Slot] = Field(default_factory=list)

    @property
    def place_count(self) -> int:
        return sum(len(slot.places) for slot in self.slots)

    def slot(self, label: SlotLabel) -> Slot | None:
        for slot in self.slots:
            if slot.canonical_label == label:
                return slot
        return None


class ItineraryDocument(BaseModel):
    """Complete itinerary for one trip or trip segment."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    summary: str = ""
    trip_tips: list[str] = Field(default_factory=list, alias="tripTips")
    days: list[Day] = Field(default_factory=list)
    revision: int = 0

    def day(self, day_id: str) -> Day | None:
        for day in self.days:
            if day.id == day_id:
                return day
        return None

    def chronological_days(self) -> list[Day]:
        """Days ordered by date (stable for equal dates)."""
        return sorted(self.days, key=lambda d: d.date)

    def iter_places(self):
        for day in self.days:
            for slot in day.slots:
                for place in slot.places:
                    yield day, slot, place

    def to_content(self) -> dict:
        """Serialize for storage, keeping the generator's camelCase field names."""
        return self.model_dump(mode="json", by_alias=True, exclude={"revision"})
