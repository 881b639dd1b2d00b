"""Slot allocation and bulk distribution of liked places.

Candidates go to the least-loaded day first, then the emptiest slot of that
day, then the earliest slot (morning < afternoon < evening). When every day
is at capacity the candidate is forced into the last day's evening slot.
"""

import logging
from dataclasses import dataclass
from datetime import date

from backend.itinerary_engine.adapters.places import PlaceLookup, PlaceLookupError
from backend.itinerary_engine.engine.calendar import is_past_day
from backend.itinerary_engine.engine.dedupe import PlaceIdentity, document_keys
from backend.itinerary_engine.engine.enrichment import PlaceEnricher
from backend.itinerary_engine.models.common import SlotLabel
from backend.itinerary_engine.models.itinerary import Day, ItineraryDocument, Slot
from backend.itinerary_engine.models.results import DistributionSummary

logger = logging.getLogger(__name__)

DEFAULT_MAX_PLACES_PER_DAY = 6


@dataclass
class SlotChoice:
    day: Day
    slot: Slot


def find_best_slot(
    document: ItineraryDocument,
    as_of: date,
    max_places_per_day: int = DEFAULT_MAX_PLACES_PER_DAY,
) -> SlotChoice | None:
    """Pick the (day, slot) with the smallest (day load, slot load, slot rank)."""
    best: tuple[tuple[int, int, int], SlotChoice] | None = None

    for day in document.days:
        if is_past_day(day, as_of):
            continue

        day_total = day.place_count
        if day_total >= max_places_per_day:
            continue

        for slot in day.slots:
            label = slot.canonical_label
            if label is None:
                continue

            sort_key = (day_total, len(slot.places), label.rank)
            # Strict comparison keeps the first pair on ties
            if best is None or sort_key < best[0]:
                best = (sort_key, SlotChoice(day=day, slot=slot))

    return best[1] if best else None


def forced_fallback_slot(document: ItineraryDocument, as_of: date) -> SlotChoice | None:
    """Last chronological day's evening slot, else its least-crowded slot."""
    days = document.chronological_days()
    if not days:
        return None

    last_day = days[-1]
    if is_past_day(last_day, as_of) or not last_day.slots:
        return None

    evening = last_day.slot(SlotLabel.evening)
    if evening is not None:
        return SlotChoice(day=last_day, slot=evening)

    fewest = min(last_day.slots, key=lambda s: len(s.places))
    return SlotChoice(day=last_day, slot=fewest)


class SlotAllocator:
    """Distributes a pool of candidate place ids across an itinerary."""

    def __init__(
        self,
        lookup: PlaceLookup,
        enricher: PlaceEnricher,
        max_places_per_day: int = DEFAULT_MAX_PLACES_PER_DAY,
    ) -> None:
        self._lookup = lookup
        self._enricher = enricher
        self._max_places_per_day = max_places_per_day

    async def distribute_pool(
        self,
        document: ItineraryDocument,
        candidate_ids: list[str],
        as_of: date,
        trip_id: str,
    ) -> DistributionSummary:
        """Place every candidate it can; mutates document in place.

        A failed or empty lookup skips that candidate only.
        """
        summary = DistributionSummary()
        keys = document_keys(document)

        for candidate_id in candidate_ids:
            summary.considered += 1

            if keys.contains(PlaceIdentity(id=candidate_id)):
                summary.placed += 1
                summary.skipped_existing_ids.append(candidate_id)
                continue

            choice = find_best_slot(document, as_of, self._max_places_per_day)
            forced = False
            if choice is None:
                choice = forced_fallback_slot(document, as_of)
                forced = True

            if choice is None:
                logger.warning(
                    f"[distribute] trip_id={trip_id} no slot available for {candidate_id}"
                )
                summary.not_placed_ids.append(candidate_id)
                continue

            try:
                details = await self._lookup.get_details(candidate_id, trip_id=trip_id)
            except PlaceLookupError as e:
                logger.warning(
                    f"[distribute] trip_id={trip_id} lookup failed for {candidate_id}: {e}"
                )
                summary.not_placed_ids.append(candidate_id)
                continue

            if details is None:
                logger.warning(f"[distribute] trip_id={trip_id} no details for {candidate_id}")
                summary.not_placed_ids.append(candidate_id)
                continue

            place = await self._enricher.build_place(trip_id, candidate_id, details=details)
            choice.slot.places.append(place)
            keys.add(place)

            summary.placed += 1
            summary.placed_ids.append(candidate_id)
            if forced:
                summary.forced_to_last_day = True

        return summary
