"""Itinerary document facade.

Every operation resolves trip access first, then loads fresh state,
validates, mutates in memory and persists. Engine errors propagate to the
caller unchanged; persistence failures become UpstreamFailureError and
revision races become ConflictError.
"""

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date

from fastapi.concurrency import run_in_threadpool

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.db.repositories import (
    ItineraryRepository,
    PersistenceError,
    RevisionMismatchError,
    TripAccessRepository,
)
from backend.itinerary_engine.engine.allocator import SlotAllocator
from backend.itinerary_engine.engine.calendar import today_in
from backend.itinerary_engine.engine.explore import ExploreSessionStore
from backend.itinerary_engine.engine.quota import QuotaTracker
from backend.itinerary_engine.engine.replacer import ActivityReplacer, editable_day
from backend.itinerary_engine.errors import (
    ConflictError,
    EngineError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    UpstreamFailureError,
)
from backend.itinerary_engine.models.common import CounterName, QuotaTier, SwipeDirection
from backend.itinerary_engine.models.itinerary import Day, ItineraryDocument, Place
from backend.itinerary_engine.models.places import FullDetailsRef, IdentifierOnlyRef
from backend.itinerary_engine.models.results import (
    AddOutcome,
    BulkAddOutcome,
    DistributionSummary,
    ReplaceOutcome,
    SessionView,
    SwipeOutcome,
)
from backend.itinerary_engine.models.usage import ExploreSession, QuotaCounters, SessionKey
from backend.itinerary_engine.utils.metrics import record_distribution, record_operation

logger = logging.getLogger(__name__)


def _unique_ids(place_ids: list[str]) -> list[str]:
    # First occurrence order; blanks and repeats dropped
    return list(dict.fromkeys(p.strip() for p in place_ids if p.strip()))


@contextmanager
def _track(operation: str) -> Iterator[None]:
    try:
        yield
    except EngineError as e:
        record_operation(operation, e.code)
        raise
    except PersistenceError as e:
        record_operation(operation, UpstreamFailureError.code)
        logger.error(f"[{operation}] persistence failure: {e}")
        raise UpstreamFailureError("Could not save your changes.") from e
    record_operation(operation, "ok")


class ItineraryDocumentStore:
    """Entry point for all itinerary and explore mutations."""

    def __init__(
        self,
        settings: Settings,
        itineraries: ItineraryRepository,
        access: TripAccessRepository,
        quota: QuotaTracker,
        explore: ExploreSessionStore,
        allocator: SlotAllocator,
        replacer: ActivityReplacer,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize store.

        Args:
            settings: Application settings
            itineraries: Document repository
            access: Trip membership and tier resolver
            quota: Usage quota tracker
            explore: Explore session store
            allocator: Bulk distribution allocator
            replacer: Single-place editor
            today: Clock returning the reference calendar date (for testing)
        """
        self._settings = settings
        self._itineraries = itineraries
        self._access = access
        self._quota = quota
        self._explore = explore
        self._allocator = allocator
        self._replacer = replacer
        self._today = today or (lambda: today_in(settings.reference_timezone))

    # Access

    def _authorize(self, trip_id: str, ctx: RequestContext, edit: bool = True) -> None:
        role = self._access.get_role(trip_id, ctx.user_id)
        if role is None:
            if not self._access.trip_exists(trip_id):
                raise NotFoundError(f"Trip {trip_id} not found.")
            raise ForbiddenError("You do not have access to this trip.")
        if edit and not role.can_edit:
            raise ForbiddenError("You do not have permission to edit this trip.")

    def _tier(self, trip_id: str, ctx: RequestContext) -> QuotaTier:
        return self._access.get_effective_tier(trip_id, ctx.user_id).tier

    # Documents

    def _load(self, trip_id: str, segment_id: str | None) -> ItineraryDocument:
        document = self._itineraries.load(trip_id, segment_id)
        if document is None:
            raise NotFoundError(f"No itinerary found for trip {trip_id}.")
        return document

    def _save(self, trip_id: str, segment_id: str | None, document: ItineraryDocument) -> int:
        expected = document.revision if self._settings.enforce_document_revision else None
        try:
            return self._itineraries.save(trip_id, segment_id, document, expected)
        except RevisionMismatchError as e:
            logger.warning(
                f"[store] trip_id={trip_id} revision conflict "
                f"expected={e.expected} actual={e.actual}"
            )
            raise ConflictError(e.expected, e.actual) from e
        except PersistenceError as e:
            logger.error(f"[store] trip_id={trip_id} failed to save itinerary: {e}")
            raise UpstreamFailureError("Could not save the itinerary.") from e

    def _prepare_edit(
        self, trip_id: str, ctx: RequestContext, segment_id: str | None
    ) -> tuple[QuotaTier, ItineraryDocument, QuotaCounters]:
        self._authorize(trip_id, ctx)
        tier = self._tier(trip_id, ctx)
        document = self._load(trip_id, segment_id)
        return tier, document, self._quota.load(trip_id, ctx.user_id)

    def _prepare_bulk(
        self, trip_id: str, ctx: RequestContext, segment_id: str | None
    ) -> ItineraryDocument:
        self._authorize(trip_id, ctx)
        document = self._load(trip_id, segment_id)
        if not document.days:
            raise NotFoundError("Itinerary has no days to add places to.")
        return document

    # Itinerary edits

    async def replace_activity(
        self,
        trip_id: str,
        day_id: str,
        target_place_id: str,
        incoming: FullDetailsRef | IdentifierOnlyRef,
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> ReplaceOutcome:
        with _track("replace_activity"):
            tier, document, counters = await run_in_threadpool(
                self._prepare_edit, trip_id, ctx, segment_id
            )

            outcome = await self._replacer.replace(
                document, day_id, target_place_id, incoming, counters, tier, self._today()
            )
            await run_in_threadpool(self._save, trip_id, segment_id, document)
            return outcome

    async def add_place_from_search(
        self,
        trip_id: str,
        day_id: str,
        slot_label: str,
        incoming: FullDetailsRef | IdentifierOnlyRef,
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> AddOutcome:
        with _track("add_place_from_search"):
            tier, document, counters = await run_in_threadpool(
                self._prepare_edit, trip_id, ctx, segment_id
            )

            outcome = await self._replacer.add_from_search(
                document, day_id, slot_label, incoming, counters, tier, self._today()
            )
            await run_in_threadpool(self._save, trip_id, segment_id, document)
            return outcome

    async def bulk_add_to_day(
        self,
        trip_id: str,
        day_id: str,
        slot_label: str,
        place_ids: list[str],
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> BulkAddOutcome:
        """Add swiped places to one slot of one day.

        No usage counter is consumed; the swipes already were.
        """
        with _track("bulk_add_to_day"):
            candidates = _unique_ids(place_ids)
            if not candidates:
                raise InvalidInputError("No places to add.")

            document = await run_in_threadpool(self._prepare_bulk, trip_id, ctx, segment_id)
            outcome = await self._replacer.bulk_add(
                document, day_id, slot_label, candidates, self._today(), trip_id
            )

            if outcome.added:
                await run_in_threadpool(self._save, trip_id, segment_id, document)
            return outcome

    async def distribute_liked_places(
        self,
        trip_id: str,
        liked_place_ids: list[str],
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> DistributionSummary:
        with _track("distribute_liked_places"):
            candidates = _unique_ids(liked_place_ids)
            if not candidates:
                raise InvalidInputError("No liked places to add.")

            document = await run_in_threadpool(self._prepare_bulk, trip_id, ctx, segment_id)

            summary = await self._allocator.distribute_pool(
                document, candidates, self._today(), trip_id
            )

            if summary.placed_ids:
                await run_in_threadpool(self._save, trip_id, segment_id, document)

            if summary.placed > 0:
                key = SessionKey(trip_id=trip_id, user_id=ctx.user_id, segment_id=segment_id)
                try:
                    await run_in_threadpool(self._explore.clear_liked, key)
                except PersistenceError as e:
                    logger.warning(f"[distribute] trip_id={trip_id} failed to clear liked: {e}")

            record_distribution(
                len(summary.placed_ids),
                len(summary.skipped_existing_ids),
                len(summary.not_placed_ids),
            )
            logger.info(
                f"[distribute] trip_id={trip_id} considered={summary.considered} "
                f"placed={summary.placed} forced={summary.forced_to_last_day}"
            )
            return summary

    def set_place_visited(
        self,
        trip_id: str,
        day_id: str,
        place_id: str,
        visited: bool,
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> Place:
        with _track("set_place_visited"):
            self._authorize(trip_id, ctx)
            document = self._load(trip_id, segment_id)
            # Past days stay checkable; only structural edits are locked
            day = document.day(day_id)
            if day is None:
                raise NotFoundError(f"Day {day_id} not found in itinerary.")

            for slot in day.slots:
                index = slot.index_of(place_id)
                if index is not None:
                    place = slot.places[index]
                    place.visited = visited
                    self._save(trip_id, segment_id, document)
                    return place

            raise NotFoundError(f"Place {place_id} not found on day {day_id}.")

    def remove_place(
        self,
        trip_id: str,
        day_id: str,
        place_id: str,
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> Day:
        with _track("remove_place"):
            self._authorize(trip_id, ctx)
            document = self._load(trip_id, segment_id)
            day = editable_day(document, day_id, self._today())

            for slot in day.slots:
                index = slot.index_of(place_id)
                if index is not None:
                    del slot.places[index]
                    self._save(trip_id, segment_id, document)
                    return day

            raise NotFoundError(f"Place {place_id} not found on day {day_id}.")

    # Explore sessions

    def _view(self, session: ExploreSession, tier: QuotaTier) -> SessionView:
        limit = self._quota.get_limits(tier).for_counter(CounterName.swipe)
        return SessionView(
            liked=session.liked_place_ids,
            discarded=session.discarded_place_ids,
            swipe_count=session.swipe_count,
            remaining_swipes=limit.remaining(session.swipe_count),
            swipe_limit=limit.value,
        )

    def _swipe_outcome(
        self, session: ExploreSession, tier: QuotaTier, undone: str | None = None
    ) -> SwipeOutcome:
        limit = self._quota.get_limits(tier).for_counter(CounterName.swipe)
        return SwipeOutcome(
            swipe_count=session.swipe_count,
            remaining_swipes=limit.remaining(session.swipe_count),
            limit_reached=not limit.allows(session.swipe_count),
            undone_place_id=undone,
        )

    def get_explore_session(
        self, trip_id: str, ctx: RequestContext, segment_id: str | None = None
    ) -> SessionView:
        with _track("get_explore_session"):
            self._authorize(trip_id, ctx, edit=False)
            key = SessionKey(trip_id=trip_id, user_id=ctx.user_id, segment_id=segment_id)
            return self._view(self._explore.get_or_create(key), self._tier(trip_id, ctx))

    def reset_explore_session(
        self, trip_id: str, ctx: RequestContext, segment_id: str | None = None
    ) -> SessionView:
        with _track("reset_explore_session"):
            self._authorize(trip_id, ctx, edit=False)
            key = SessionKey(trip_id=trip_id, user_id=ctx.user_id, segment_id=segment_id)
            return self._view(self._explore.reset(key), self._tier(trip_id, ctx))

    def swipe(
        self,
        trip_id: str,
        place_id: str,
        direction: SwipeDirection,
        ctx: RequestContext,
        segment_id: str | None = None,
    ) -> SwipeOutcome:
        with _track("swipe"):
            self._authorize(trip_id, ctx, edit=False)
            tier = self._tier(trip_id, ctx)
            key = SessionKey(trip_id=trip_id, user_id=ctx.user_id, segment_id=segment_id)
            session = self._explore.record_swipe(key, place_id, direction, tier)
            return self._swipe_outcome(session, tier)

    def undo_swipe(
        self,
        trip_id: str,
        ctx: RequestContext,
        segment_id: str | None = None,
        place_id: str | None = None,
        previous_action: SwipeDirection | None = None,
    ) -> SwipeOutcome:
        with _track("undo_swipe"):
            self._authorize(trip_id, ctx, edit=False)
            tier = self._tier(trip_id, ctx)
            key = SessionKey(trip_id=trip_id, user_id=ctx.user_id, segment_id=segment_id)
            session, undone = self._explore.undo(key, place_id, previous_action)
            return self._swipe_outcome(session, tier, undone)
