"""Engine operation results."""

from pydantic import BaseModel, Field

from backend.itinerary_engine.models.itinerary import Day, Place


class ReplaceOutcome(BaseModel):
    """Successful replace: the new place and the day containing it."""

    activity: Place
    day: Day
    replaced_place_id: str


class AddOutcome(BaseModel):
    """Successful single add into a named slot."""

    activity: Place
    day: Day
    slot_label: str


class DistributionSummary(BaseModel):
    """Result of bulk-distributing a candidate pool."""

    considered: int = 0
    placed: int = 0
    forced_to_last_day: bool = False
    placed_ids: list[str] = Field(default_factory=list)
    skipped_existing_ids: list[str] = Field(default_factory=list)
    not_placed_ids: list[str] = Field(default_factory=list)


class SessionView(BaseModel):
    """Explore session as presented to a member."""

    liked: list[str]
    discarded: list[str]
    swipe_count: int
    remaining_swipes: int | None
    swipe_limit: int | None


class SwipeOutcome(BaseModel):
    """Result of a swipe or undo."""

    swipe_count: int
    remaining_swipes: int | None
    limit_reached: bool
    undone_place_id: str | None = None


class BulkAddOutcome(BaseModel):
    """Swiped places appended to one slot of one day."""

    day: Day
    slot_label: str
    added: list[Place] = Field(default_factory=list)
    skipped_existing_ids: list[str] = Field(default_factory=list)
    not_added_ids: list[str] = Field(default_factory=list)
