"""Trip calendar helpers."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from backend.itinerary_engine.models.itinerary import Day


def today_in(tz_name: str, now: datetime | None = None) -> date:
    """Calendar date of now in the given IANA timezone."""
    tz = ZoneInfo(tz_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def is_past_day(day: Day | date, today: date) -> bool:
    """A day is past when its date is strictly before today."""
    day_date = day.date if isinstance(day, Day) else day
    return day_date < today
