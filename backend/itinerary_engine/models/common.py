"""Common types and enums shared across all models."""

from enum import Enum

from pydantic import BaseModel, Field


class Geo(BaseModel):
    """Geographic coordinates (WGS84)."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class SlotLabel(str, Enum):
    """Canonical daily time-slot label, in preference order."""

    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"

    @property
    def rank(self) -> int:
        return _SLOT_RANK[self]

    @classmethod
    def parse(cls, label: str | None) -> "SlotLabel | None":
        """Map a raw slot label to its canonical value, None if unrecognized."""
        if not label:
            return None
        try:
            return cls(label.strip().lower())
        except ValueError:
            return None


_SLOT_RANK = {SlotLabel.morning: 0, SlotLabel.afternoon: 1, SlotLabel.evening: 2}


class SwipeDirection(str, Enum):
    """Explore swipe direction."""

    like = "like"
    dislike = "dislike"


class CounterName(str, Enum):
    """Per trip-member usage counter."""

    swipe = "swipe_count"
    change = "change_count"
    search_add = "search_add_count"


class TripRole(str, Enum):
    """Member role on a trip."""

    owner = "owner"
    editor = "editor"
    viewer = "viewer"

    @property
    def can_edit(self) -> bool:
        return self in (TripRole.owner, TripRole.editor)


class QuotaTier(str, Enum):
    """Effective quota class for a trip-member."""

    free = "free"
    upgraded = "upgraded"
