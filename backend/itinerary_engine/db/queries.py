"""Trip-scoped query helpers."""

from sqlalchemy.orm import Query, Session

from backend.itinerary_engine.db.models import ExploreSessionRow, SmartItinerary, TripMember


def query_itinerary(session: Session, trip_id: str, segment_id: str | None) -> Query:
    """Query smart_itinerary for one trip and segment.

    A None segment matches the trip-level document only.
    """
    query = session.query(SmartItinerary).filter(SmartItinerary.trip_id == trip_id)
    if segment_id is None:
        return query.filter(SmartItinerary.segment_id.is_(None))
    return query.filter(SmartItinerary.segment_id == segment_id)


def query_member(session: Session, trip_id: str, user_id: str) -> Query:
    """Query trip_member for one trip-member."""
    return session.query(TripMember).filter(
        TripMember.trip_id == trip_id, TripMember.user_id == user_id
    )


def query_explore_session(
    session: Session, trip_id: str, user_id: str, segment_id: str | None
) -> Query:
    """Query explore_session for one trip-member and segment."""
    query = session.query(ExploreSessionRow).filter(
        ExploreSessionRow.trip_id == trip_id, ExploreSessionRow.user_id == user_id
    )
    if segment_id is None:
        return query.filter(ExploreSessionRow.segment_id.is_(None))
    return query.filter(ExploreSessionRow.segment_id == segment_id)
