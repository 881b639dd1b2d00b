"""Place edits within one day.

Preconditions are checked in a fixed order and each one stops the edit
before anything is written. The usage counter is persisted before the
caller persists the document.
"""

import logging
from datetime import date

from fastapi.concurrency import run_in_threadpool

from backend.itinerary_engine.adapters.places import PlaceLookup, PlaceLookupError
from backend.itinerary_engine.db.repositories import PersistenceError
from backend.itinerary_engine.engine.allocator import DEFAULT_MAX_PLACES_PER_DAY
from backend.itinerary_engine.engine.calendar import is_past_day
from backend.itinerary_engine.engine.dedupe import (
    PlaceIdentity,
    document_keys,
    find_duplicate,
    is_valid_place_id,
)
from backend.itinerary_engine.engine.enrichment import PlaceEnricher
from backend.itinerary_engine.engine.quota import QuotaTracker
from backend.itinerary_engine.errors import (
    DayFullError,
    DuplicatePlaceError,
    InvalidInputError,
    NotFoundError,
    PastDayLockedError,
    UpstreamFailureError,
)
from backend.itinerary_engine.models.common import CounterName, QuotaTier, SlotLabel
from backend.itinerary_engine.models.itinerary import Day, ItineraryDocument, Place
from backend.itinerary_engine.models.places import FullDetailsRef, IdentifierOnlyRef
from backend.itinerary_engine.models.results import AddOutcome, BulkAddOutcome, ReplaceOutcome
from backend.itinerary_engine.models.usage import QuotaCounters

logger = logging.getLogger(__name__)


def incoming_identity(incoming: FullDetailsRef | IdentifierOnlyRef) -> PlaceIdentity:
    if isinstance(incoming, FullDetailsRef):
        return PlaceIdentity(
            id=incoming.id,
            name=incoming.name,
            area=incoming.area,
            neighborhood=incoming.neighborhood,
            address=incoming.address,
        )
    return PlaceIdentity(id=incoming.id)


def editable_day(document: ItineraryDocument, day_id: str, as_of: date) -> Day:
    """Day by id, provided it is not in the past.

    Raises:
        NotFoundError: No such day
        PastDayLockedError: Day is before as_of
    """
    day = document.day(day_id)
    if day is None:
        raise NotFoundError(f"Day {day_id} not found in itinerary.")
    if is_past_day(day, as_of):
        raise PastDayLockedError(day_id)
    return day


class ActivityReplacer:
    """Applies single-place edits to a loaded document."""

    def __init__(
        self,
        lookup: PlaceLookup,
        enricher: PlaceEnricher,
        quota: QuotaTracker,
        max_places_per_day: int = DEFAULT_MAX_PLACES_PER_DAY,
    ) -> None:
        self._lookup = lookup
        self._enricher = enricher
        self._quota = quota
        self._max_places_per_day = max_places_per_day

    async def replace(
        self,
        document: ItineraryDocument,
        day_id: str,
        target_place_id: str,
        incoming: FullDetailsRef | IdentifierOnlyRef,
        counters: QuotaCounters,
        tier: QuotaTier,
        as_of: date,
    ) -> ReplaceOutcome:
        """Swap target_place_id for incoming at the same slot index.

        Mutates document in memory and persists +1 change_count; the caller
        persists the document.

        Raises:
            InvalidInputError: Incoming id is not a valid place id
            NotFoundError: Day or target place missing, or lookup found nothing
            PastDayLockedError: Day is in the past
            LimitReachedError: change_count at its limit
            DuplicatePlaceError: Incoming place already in the document
            UpstreamFailureError: Lookup or counter write failed
        """
        if not is_valid_place_id(incoming.id):
            raise InvalidInputError("Incoming place must carry a valid place id.")

        day = editable_day(document, day_id, as_of)
        self._quota.check(CounterName.change, counters.change_count, tier)

        duplicate = find_duplicate(document, incoming_identity(incoming))
        if duplicate is not None:
            raise DuplicatePlaceError(duplicate)

        slot, index = None, None
        for candidate in day.slots:
            index = candidate.index_of(target_place_id)
            if index is not None:
                slot = candidate
                break
        if slot is None or index is None:
            raise NotFoundError(f"Activity {target_place_id} not found on day {day_id}.")

        place = await self._build(counters.trip_id, incoming)
        slot.replace_at(index, place)
        await self._persist_counter(CounterName.change, counters)

        logger.info(
            f"[replace] trip_id={counters.trip_id} day={day_id} slot={slot.label} "
            f"index={index} {target_place_id} -> {place.id}"
        )
        return ReplaceOutcome(activity=place, day=day, replaced_place_id=target_place_id)

    async def add_from_search(
        self,
        document: ItineraryDocument,
        day_id: str,
        slot_label: str,
        incoming: FullDetailsRef | IdentifierOnlyRef,
        counters: QuotaCounters,
        tier: QuotaTier,
        as_of: date,
    ) -> AddOutcome:
        """Append incoming to the named slot of a day.

        Raises:
            InvalidInputError: Bad id or unknown slot label
            NotFoundError: Day or slot missing, or lookup found nothing
            PastDayLockedError: Day is in the past
            LimitReachedError: search_add_count at its limit
            DuplicatePlaceError: Incoming place already in the document
            DayFullError: Day is at the per-day ceiling
            UpstreamFailureError: Lookup or counter write failed
        """
        if not is_valid_place_id(incoming.id):
            raise InvalidInputError("Incoming place must carry a valid place id.")

        label = SlotLabel.parse(slot_label)
        if label is None:
            raise InvalidInputError(f"Unknown slot {slot_label!r}.")

        day = editable_day(document, day_id, as_of)
        self._quota.check(CounterName.search_add, counters.search_add_count, tier)

        duplicate = find_duplicate(document, incoming_identity(incoming))
        if duplicate is not None:
            raise DuplicatePlaceError(duplicate)

        if day.place_count >= self._max_places_per_day:
            raise DayFullError(day_id, self._max_places_per_day, day.place_count)

        slot = day.slot(label)
        if slot is None:
            raise NotFoundError(f"Day {day_id} has no {label.value} slot.")

        place = await self._build(counters.trip_id, incoming)
        slot.places.append(place)
        await self._persist_counter(CounterName.search_add, counters)

        logger.info(f"[search_add] trip_id={counters.trip_id} day={day_id} slot={label.value}")
        return AddOutcome(activity=place, day=day, slot_label=label.value)

    async def bulk_add(
        self,
        document: ItineraryDocument,
        day_id: str,
        slot_label: str,
        place_ids: list[str],
        as_of: date,
        trip_id: str,
    ) -> BulkAddOutcome:
        """Append swiped places to the named slot of a day, in order.

        Places already in the document are skipped. The whole batch is
        refused when the new places would push the day past its ceiling.
        A failed or empty lookup leaves that place out and the rest go on.

        Raises:
            InvalidInputError: Unknown slot label
            NotFoundError: Day or slot missing
            PastDayLockedError: Day is in the past
            DayFullError: Batch would exceed the per-day ceiling
        """
        label = SlotLabel.parse(slot_label)
        if label is None:
            raise InvalidInputError(f"Unknown slot {slot_label!r}.")

        day = editable_day(document, day_id, as_of)
        slot = day.slot(label)
        if slot is None:
            raise NotFoundError(f"Day {day_id} has no {label.value} slot.")

        outcome = BulkAddOutcome(day=day, slot_label=label.value)
        keys = document_keys(document)
        fresh: list[str] = []
        for place_id in place_ids:
            if not is_valid_place_id(place_id):
                outcome.not_added_ids.append(place_id)
            elif keys.contains(PlaceIdentity(id=place_id)):
                outcome.skipped_existing_ids.append(place_id)
            else:
                fresh.append(place_id)

        if day.place_count + len(fresh) > self._max_places_per_day:
            raise DayFullError(day_id, self._max_places_per_day, day.place_count)

        for place_id in fresh:
            try:
                details = await self._lookup.get_details(place_id, trip_id=trip_id)
            except PlaceLookupError as e:
                logger.warning(f"[bulk_add] trip_id={trip_id} lookup failed for {place_id}: {e}")
                outcome.not_added_ids.append(place_id)
                continue

            if details is None:
                logger.warning(f"[bulk_add] trip_id={trip_id} no details for {place_id}")
                outcome.not_added_ids.append(place_id)
                continue

            place = await self._enricher.build_place(trip_id, place_id, details=details)
            slot.places.append(place)
            keys.add(place)
            outcome.added.append(place)

        logger.info(
            f"[bulk_add] trip_id={trip_id} day={day_id} slot={label.value} "
            f"added={len(outcome.added)} skipped={len(outcome.skipped_existing_ids)}"
        )
        return outcome

    async def _build(self, trip_id: str, incoming: FullDetailsRef | IdentifierOnlyRef) -> Place:
        if isinstance(incoming, FullDetailsRef) and incoming.has_usable_details:
            return await self._enricher.build_place(trip_id, incoming.id, payload=incoming)

        try:
            details = await self._lookup.get_details(incoming.id, trip_id=trip_id)
        except PlaceLookupError as e:
            raise UpstreamFailureError(f"Could not load details for {incoming.id}.") from e

        if details is None:
            raise NotFoundError(f"Place {incoming.id} was not found.")

        payload = incoming if isinstance(incoming, FullDetailsRef) else None
        return await self._enricher.build_place(
            trip_id, incoming.id, payload=payload, details=details
        )

    async def _persist_counter(self, counter: CounterName, counters: QuotaCounters) -> None:
        try:
            await run_in_threadpool(
                self._quota.consume, counter, counters.trip_id, counters.user_id
            )
        except PersistenceError as e:
            raise UpstreamFailureError("Could not record usage; the edit was not saved.") from e
