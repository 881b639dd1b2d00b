"""Explore swipe sessions.

One session per (trip, member, optional segment) holds the liked and
discarded place ids judged so far, the ordered swipe history, and the swipe
counter. The session row is the authoritative swipe count; the member's
quota counter mirrors it.
"""

import logging
from datetime import UTC, datetime

from backend.itinerary_engine.db.repositories import ExploreSessionRepository, PersistenceError
from backend.itinerary_engine.engine.dedupe import is_valid_place_id
from backend.itinerary_engine.engine.quota import QuotaTracker
from backend.itinerary_engine.errors import InvalidInputError
from backend.itinerary_engine.models.common import CounterName, QuotaTier, SwipeDirection
from backend.itinerary_engine.models.usage import ExploreSession, SessionKey, SwipeRecord

logger = logging.getLogger(__name__)


def _bucket(session: ExploreSession, direction: SwipeDirection) -> list[str]:
    if direction == SwipeDirection.like:
        return session.liked_place_ids
    return session.discarded_place_ids


def _drop_record(session: ExploreSession, place_id: str, direction: SwipeDirection) -> None:
    for i in range(len(session.history) - 1, -1, -1):
        record = session.history[i]
        if record.place_id == place_id and record.direction == direction:
            del session.history[i]
            return


class ExploreSessionStore:
    """Swipe bookkeeping on top of an ExploreSessionRepository."""

    def __init__(self, sessions: ExploreSessionRepository, quota: QuotaTracker) -> None:
        self._sessions = sessions
        self._quota = quota

    def get_or_create(self, key: SessionKey) -> ExploreSession:
        session = self._sessions.get(key)
        if session is not None:
            return session

        session = ExploreSession(
            trip_id=key.trip_id, user_id=key.user_id, segment_id=key.segment_id
        )
        self._sessions.save(session)
        return session

    def record_swipe(
        self,
        key: SessionKey,
        place_id: str,
        direction: SwipeDirection,
        tier: QuotaTier,
        now: datetime | None = None,
    ) -> ExploreSession:
        """Append place_id to the liked or discarded set.

        The member counter is written first; a session write failure gives
        the swipe back before re-raising.

        Raises:
            LimitReachedError: Swipe quota exhausted (session untouched)
            InvalidInputError: Bad id, or place already swiped this session
            PersistenceError: Counter or session write failed
        """
        if not is_valid_place_id(place_id):
            raise InvalidInputError("A valid place id is required to swipe.")

        session = self.get_or_create(key)
        self._quota.check(CounterName.swipe, session.swipe_count, tier)

        if session.has_swiped(place_id):
            raise InvalidInputError("This place has already been swiped.")

        self._quota.consume(CounterName.swipe, key.trip_id, key.user_id)

        _bucket(session, direction).append(place_id)
        session.history.append(SwipeRecord(place_id=place_id, direction=direction))
        session.swipe_count += 1
        session.last_swipe_at = now or datetime.now(UTC)
        try:
            self._sessions.save(session)
        except PersistenceError:
            self._quota.release_swipe(key.trip_id, key.user_id)
            raise

        logger.debug(
            f"[explore] trip_id={key.trip_id} {direction.value} {place_id} "
            f"count={session.swipe_count}"
        )
        return session

    def undo(
        self,
        key: SessionKey,
        place_id: str | None = None,
        previous_action: SwipeDirection | None = None,
    ) -> tuple[ExploreSession, str]:
        """Take back a swipe; returns the session and the undone id.

        With no arguments the most recent swipe still in effect is removed
        from the set it went into. Repeated undos walk back through the
        history.

        Raises:
            InvalidInputError: Nothing to undo
        """
        session = self.get_or_create(key)

        if place_id is not None:
            directions = [previous_action] if previous_action else list(SwipeDirection)
            direction = next(
                (d for d in directions if place_id in _bucket(session, d)), None
            )
            if direction is None:
                raise InvalidInputError("That place was not swiped in this session.")
            _bucket(session, direction).remove(place_id)
            _drop_record(session, place_id, direction)
            undone = place_id
        else:
            undone = None
            while session.history:
                record = session.history.pop()
                bucket = _bucket(session, record.direction)
                if record.place_id in bucket:
                    bucket.remove(record.place_id)
                    undone = record.place_id
                    break
            if undone is None:
                raise InvalidInputError("There is nothing to undo.")

        released = session.swipe_count > 0
        session.swipe_count = max(0, session.swipe_count - 1)
        self._sessions.save(session)
        if released:
            self._quota.release_swipe(key.trip_id, key.user_id)

        return session, undone

    def reset(self, key: SessionKey) -> ExploreSession:
        """Clear both sets, the history and the counter; last_swipe_at is kept."""
        session = self.get_or_create(key)
        released = session.swipe_count

        session.liked_place_ids = []
        session.discarded_place_ids = []
        session.history = []
        session.swipe_count = 0
        self._sessions.save(session)
        if released:
            self._quota.release_swipe(key.trip_id, key.user_id, released)

        logger.info(f"[explore] trip_id={key.trip_id} session reset")
        return session

    def clear_liked(self, key: SessionKey) -> ExploreSession:
        """Move liked ids into discarded so they are not offered again.

        Their likes leave the history, so undo no longer reaches them.
        """
        session = self.get_or_create(key)

        for place_id in session.liked_place_ids:
            if place_id not in session.discarded_place_ids:
                session.discarded_place_ids.append(place_id)
        session.liked_place_ids = []
        session.history = [r for r in session.history if r.direction != SwipeDirection.like]
        self._sessions.save(session)
        return session
