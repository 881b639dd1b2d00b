"""Unit tests for slot allocation and bulk distribution."""

from datetime import date

import pytest

from backend.itinerary_engine.engine.allocator import (
    SlotAllocator,
    find_best_slot,
    forced_fallback_slot,
)
from backend.itinerary_engine.engine.dedupe import document_keys
from backend.itinerary_engine.engine.enrichment import PlaceEnricher

JUNE_1 = date(2025, 6, 1)
JUNE_2 = date(2025, 6, 2)
JUNE_3 = date(2025, 6, 3)


def slot_ids(day, label: str) -> list[str]:
    return [p.id for p in next(s for s in day.slots if s.label == label).places]


@pytest.fixture
def allocator(lookup) -> SlotAllocator:
    return SlotAllocator(lookup, PlaceEnricher(), max_places_per_day=6)


class TestFindBestSlot:
    """Selection of the (day, slot) pair."""

    def test_prefers_day_with_fewer_places(self, make_place, make_day, make_document) -> None:
        day_a = make_day(
            "a",
            JUNE_1,
            1,
            {"morning": [make_place("x")], "afternoon": [make_place("y")], "evening": []},
        )
        day_b = make_day(
            "b",
            JUNE_2,
            2,
            {
                "morning": [make_place("b1"), make_place("b2")],
                "afternoon": [make_place("b3")],
                "evening": [make_place("b4")],
            },
        )
        document = make_document([day_b, day_a])

        choice = find_best_slot(document, JUNE_1, 6)

        assert choice is not None
        assert choice.day.id == "a"
        assert choice.slot.label == "evening"

    def test_ties_broken_to_morning(self, make_place, make_day, make_document) -> None:
        day_a = make_day(
            "a",
            JUNE_1,
            1,
            {"morning": [], "afternoon": [], "evening": [make_place("x"), make_place("y")]},
        )
        document = make_document([day_a])

        choice = find_best_slot(document, JUNE_1, 6)

        assert choice is not None
        assert choice.slot.label == "morning"

    def test_equal_days_keep_encounter_order(self, make_day, make_document) -> None:
        document = make_document([make_day("a", JUNE_1, 1), make_day("b", JUNE_2, 2)])

        choice = find_best_slot(document, JUNE_1, 6)

        assert choice is not None
        assert (choice.day.id, choice.slot.label) == ("a", "morning")

    def test_skips_past_days(self, make_place, make_day, make_document) -> None:
        past = make_day("past", JUNE_1, 1)
        future = make_day(
            "future", JUNE_2, 2, {"morning": [make_place("x")], "afternoon": [], "evening": []}
        )
        document = make_document([past, future])

        choice = find_best_slot(document, JUNE_2, 6)

        assert choice is not None
        assert choice.day.id == "future"
        assert choice.slot.label == "afternoon"

    def test_skips_full_days(self, make_place, make_day, make_document) -> None:
        full = make_day(
            "full", JUNE_1, 1, {"morning": [make_place(f"f{i}") for i in range(6)]}
        )
        open_day = make_day("open", JUNE_2, 2, {"morning": [make_place(f"o{i}") for i in range(5)]})
        document = make_document([full, open_day])

        choice = find_best_slot(document, JUNE_1, 6)

        assert choice is not None
        assert choice.day.id == "open"

    def test_ignores_non_canonical_slots(self, make_day, make_document) -> None:
        day = make_day("a", JUNE_1, 1, {"brunch": [], "Evening": []})
        document = make_document([day])

        choice = find_best_slot(document, JUNE_1, 6)

        assert choice is not None
        assert choice.slot.label == "Evening"

    def test_none_when_everything_full(self, make_place, make_day, make_document) -> None:
        full = make_day("a", JUNE_1, 1, {"morning": [make_place(f"f{i}") for i in range(6)]})

        assert find_best_slot(make_document([full]), JUNE_1, 6) is None


class TestForcedFallback:
    """Placement when no day has room."""

    def test_last_chronological_day_evening(self, make_place, make_day, make_document) -> None:
        def full_day(day_id: str, d: date, index: int):
            return make_day(
                day_id,
                d,
                index,
                {
                    "morning": [make_place(f"{day_id}-m{i}") for i in range(2)],
                    "afternoon": [make_place(f"{day_id}-a{i}") for i in range(2)],
                    "evening": [make_place(f"{day_id}-e{i}") for i in range(2)],
                },
            )

        # List order differs from date order
        document = make_document([full_day("d3", JUNE_3, 3), full_day("d1", JUNE_1, 1)])

        choice = forced_fallback_slot(document, JUNE_1)

        assert choice is not None
        assert choice.day.id == "d3"
        assert choice.slot.label == "evening"

    def test_least_crowded_slot_without_evening(self, make_place, make_day, make_document) -> None:
        day = make_day(
            "d1",
            JUNE_1,
            1,
            {
                "morning": [make_place(f"m{i}") for i in range(4)],
                "afternoon": [make_place(f"a{i}") for i in range(2)],
            },
        )

        choice = forced_fallback_slot(make_document([day]), JUNE_1)

        assert choice is not None
        assert choice.slot.label == "afternoon"

    def test_none_when_last_day_is_past(self, make_day, make_document) -> None:
        assert forced_fallback_slot(make_document([make_day("d1", JUNE_1, 1)]), JUNE_2) is None

    def test_none_without_days(self, make_document) -> None:
        assert forced_fallback_slot(make_document([]), JUNE_1) is None


class TestDistributePool:
    """Bulk distribution of candidate ids."""

    @pytest.mark.asyncio
    async def test_example_scenario(self, allocator, make_day, make_document) -> None:
        d1 = make_day("D1", JUNE_1, 1)
        d2 = make_day("D2", JUNE_2, 2)
        document = make_document([d1, d2])

        summary = await allocator.distribute_pool(
            document, ["place-A", "place-B"], JUNE_1, "trip-1"
        )

        assert summary.placed == 2
        assert summary.forced_to_last_day is False
        assert slot_ids(d1, "morning") == ["place-A"]
        assert slot_ids(d2, "morning") == ["place-B"]
        for day in (d1, d2):
            assert slot_ids(day, "afternoon") == []
            assert slot_ids(day, "evening") == []

    @pytest.mark.asyncio
    async def test_batch_resilience(self, allocator, lookup, make_day, make_document) -> None:
        document = make_document([make_day("D1", JUNE_1, 1), make_day("D2", JUNE_2, 2)])
        lookup.failing.add("c3")

        summary = await allocator.distribute_pool(
            document, ["c1", "c2", "c3", "c4", "c5"], JUNE_1, "trip-1"
        )

        assert summary.considered == 5
        assert summary.placed == 4
        assert summary.not_placed_ids == ["c3"]
        placed = {p.id for _, _, p in document.iter_places()}
        assert placed == {"c1", "c2", "c4", "c5"}

    @pytest.mark.asyncio
    async def test_missing_details_not_placed(
        self, allocator, lookup, make_day, make_document
    ) -> None:
        document = make_document([make_day("D1", JUNE_1, 1)])
        lookup.missing.add("ghost")

        summary = await allocator.distribute_pool(document, ["ghost", "real"], JUNE_1, "trip-1")

        assert summary.placed == 1
        assert summary.not_placed_ids == ["ghost"]

    @pytest.mark.asyncio
    async def test_existing_places_count_as_placed_without_lookup(
        self, allocator, lookup, make_place, make_day, make_document
    ) -> None:
        d1 = make_day(
            "D1", JUNE_1, 1, {"morning": [make_place("kept")], "afternoon": [], "evening": []}
        )
        document = make_document([d1])

        summary = await allocator.distribute_pool(document, ["kept", "new"], JUNE_1, "trip-1")

        assert summary.placed == 2
        assert summary.skipped_existing_ids == ["kept"]
        assert summary.placed_ids == ["new"]
        assert lookup.calls == ["new"]
        assert slot_ids(d1, "morning") == ["kept"]

    @pytest.mark.asyncio
    async def test_forced_placement_exceeds_ceiling(
        self, allocator, make_place, make_day, make_document
    ) -> None:
        full = make_day(
            "D1",
            JUNE_1,
            1,
            {
                "morning": [make_place(f"m{i}") for i in range(2)],
                "afternoon": [make_place(f"a{i}") for i in range(2)],
                "evening": [make_place(f"e{i}") for i in range(2)],
            },
        )
        document = make_document([full])

        summary = await allocator.distribute_pool(document, ["extra"], JUNE_1, "trip-1")

        assert summary.placed == 1
        assert summary.forced_to_last_day is True
        assert slot_ids(full, "evening")[-1] == "extra"
        assert full.place_count == 7

    @pytest.mark.asyncio
    async def test_nowhere_to_place_when_all_days_past(
        self, allocator, make_day, make_document
    ) -> None:
        document = make_document([make_day("D1", JUNE_1, 1)])

        summary = await allocator.distribute_pool(document, ["late"], JUNE_3, "trip-1")

        assert summary.placed == 0
        assert summary.not_placed_ids == ["late"]

    @pytest.mark.asyncio
    async def test_result_has_no_duplicate_keys(self, allocator, make_day, make_document) -> None:
        document = make_document([make_day("D1", JUNE_1, 1), make_day("D2", JUNE_2, 2)])

        await allocator.distribute_pool(document, ["a", "b", "a", "c", "b"], JUNE_1, "trip-1")

        ids = [p.id for _, _, p in document.iter_places()]
        assert sorted(ids) == ["a", "b", "c"]
        assert document_keys(document).place_ids == {"a", "b", "c"}
