"""SQL implementations of repository interfaces."""

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.itinerary_engine.db.models import (
    ExploreSessionRow,
    Profile,
    SmartItinerary,
    Trip,
    TripMember,
)
from backend.itinerary_engine.db.queries import (
    query_explore_session,
    query_itinerary,
    query_member,
)
from backend.itinerary_engine.db.repositories import PersistenceError, RevisionMismatchError
from backend.itinerary_engine.models.common import CounterName, TripRole
from backend.itinerary_engine.models.itinerary import ItineraryDocument
from backend.itinerary_engine.models.usage import (
    EffectiveTier,
    ExploreSession,
    QuotaCounters,
    SessionKey,
    SwipeRecord,
)


def _to_counters(member: TripMember) -> QuotaCounters:
    return QuotaCounters(
        trip_id=member.trip_id,
        user_id=member.user_id,
        swipe_count=member.swipe_count,
        change_count=member.change_count,
        search_add_count=member.search_add_count,
    )


class SqlItineraryRepository:
    """SQL implementation of ItineraryRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def load(self, trip_id: str, segment_id: str | None = None) -> ItineraryDocument | None:
        """Load a document with its stored revision."""
        row = query_itinerary(self._session, trip_id, segment_id).first()

        if row is None:
            return None

        document = ItineraryDocument.model_validate(row.content)
        document.revision = row.revision
        return document

    def save(
        self,
        trip_id: str,
        segment_id: str | None,
        document: ItineraryDocument,
        expected_revision: int | None = None,
    ) -> int:
        """Save a document; conditional on expected_revision when given."""
        content = document.to_content()

        try:
            query = query_itinerary(self._session, trip_id, segment_id)
            row = query.first()

            if row is None:
                row = SmartItinerary(
                    trip_id=trip_id,
                    segment_id=segment_id,
                    content=content,
                    revision=document.revision,
                )
                self._session.add(row)
                self._session.commit()
                return row.revision

            if expected_revision is None:
                new_revision = row.revision + 1
                updated = query.update(
                    {SmartItinerary.content: content, SmartItinerary.revision: new_revision},
                    synchronize_session=False,
                )
            else:
                new_revision = expected_revision + 1
                updated = query.filter(SmartItinerary.revision == expected_revision).update(
                    {SmartItinerary.content: content, SmartItinerary.revision: new_revision},
                    synchronize_session=False,
                )

            if updated == 0:
                self._session.rollback()
                actual = query_itinerary(self._session, trip_id, segment_id).first()
                raise RevisionMismatchError(
                    expected_revision if expected_revision is not None else -1,
                    actual.revision if actual is not None else 0,
                )

            self._session.commit()
            # Bulk UPDATE bypasses the identity map
            self._session.expire(row)
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(f"failed to save itinerary for trip {trip_id}") from e

        document.revision = new_revision
        return new_revision


class SqlMemberUsageRepository:
    """SQL implementation of MemberUsageRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def load_member(self, trip_id: str, user_id: str) -> QuotaCounters:
        """Load counters, creating the member row on first access."""
        member = query_member(self._session, trip_id, user_id).first()

        if member is None:
            trip = self._session.get(Trip, trip_id)
            is_owner = trip is not None and trip.owner_id == user_id
            role = TripRole.owner if is_owner else TripRole.viewer
            member = TripMember(
                trip_id=trip_id,
                user_id=user_id,
                role=role.value,
                swipe_count=0,
                change_count=0,
                search_add_count=0,
            )
            try:
                self._session.add(member)
                self._session.commit()
            except SQLAlchemyError as e:
                self._session.rollback()
                raise PersistenceError(f"failed to create member row for trip {trip_id}") from e

        return _to_counters(member)

    def increment(
        self, trip_id: str, user_id: str, counter: CounterName, delta: int = 1
    ) -> QuotaCounters:
        """Atomic UPDATE col = col + delta, floored at zero."""
        self.load_member(trip_id, user_id)
        column = getattr(TripMember, counter.value)

        try:
            query_member(self._session, trip_id, user_id).update(
                {column: case((column + delta < 0, 0), else_=column + delta)},
                synchronize_session=False,
            )
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(f"failed to update {counter.value} for trip {trip_id}") from e

        member = query_member(self._session, trip_id, user_id).one()
        self._session.refresh(member)
        return _to_counters(member)

    def save_member(self, counters: QuotaCounters) -> None:
        """Overwrite all counters for the member."""
        self.load_member(counters.trip_id, counters.user_id)

        try:
            query_member(self._session, counters.trip_id, counters.user_id).update(
                {
                    TripMember.swipe_count: counters.swipe_count,
                    TripMember.change_count: counters.change_count,
                    TripMember.search_add_count: counters.search_add_count,
                },
                synchronize_session=False,
            )
            self._session.commit()
            self._session.expire_all()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(f"failed to save counters for trip {counters.trip_id}") from e


class SqlExploreSessionRepository:
    """SQL implementation of ExploreSessionRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, key: SessionKey) -> ExploreSession | None:
        row = query_explore_session(
            self._session, key.trip_id, key.user_id, key.segment_id
        ).first()

        if row is None:
            return None

        return ExploreSession(
            trip_id=row.trip_id,
            user_id=row.user_id,
            segment_id=row.segment_id,
            liked_place_ids=list(row.liked_place_ids or []),
            discarded_place_ids=list(row.discarded_place_ids or []),
            swipe_count=row.swipe_count,
            history=[SwipeRecord.model_validate(r) for r in row.history or []],
            last_swipe_at=row.last_swipe_at,
        )

    def save(self, session: ExploreSession) -> None:
        row = query_explore_session(
            self._session, session.trip_id, session.user_id, session.segment_id
        ).first()

        if row is None:
            row = ExploreSessionRow(
                trip_id=session.trip_id,
                user_id=session.user_id,
                segment_id=session.segment_id,
            )
            self._session.add(row)

        # Fresh lists so the JSON column is flagged dirty
        row.liked_place_ids = list(session.liked_place_ids)
        row.discarded_place_ids = list(session.discarded_place_ids)
        row.swipe_count = session.swipe_count
        row.history = [r.model_dump(mode="json") for r in session.history]
        row.last_swipe_at = session.last_swipe_at

        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            raise PersistenceError(
                f"failed to save explore session for trip {session.trip_id}"
            ) from e


class SqlTripAccessRepository:
    """SQL implementation of TripAccessRepository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def trip_exists(self, trip_id: str) -> bool:
        return self._session.get(Trip, trip_id) is not None

    def get_role(self, trip_id: str, user_id: str) -> TripRole | None:
        """Role on the trip; owners predating membership rows count as owner."""
        trip = self._session.get(Trip, trip_id)
        if trip is None:
            return None

        member = query_member(self._session, trip_id, user_id).first()
        if member is not None:
            return TripRole(member.role)

        if trip.owner_id == user_id:
            return TripRole.owner
        return None

    def get_effective_tier(self, trip_id: str, user_id: str) -> EffectiveTier:
        trip = self._session.get(Trip, trip_id)
        profile = self._session.get(Profile, user_id)
        return EffectiveTier(
            account_upgraded=bool(profile and profile.is_upgraded),
            trip_upgraded=bool(trip and trip.is_upgraded),
        )
