"""Tests for itinerary, place reference, and usage models."""

from datetime import date

import pytest
from pydantic import TypeAdapter, ValidationError

from backend.itinerary_engine.models.common import QuotaTier, SlotLabel, TripRole
from backend.itinerary_engine.models.itinerary import Day, ItineraryDocument, Place, Slot
from backend.itinerary_engine.models.places import (
    FullDetailsRef,
    IdentifierOnlyRef,
    IncomingPlaceRef,
)
from backend.itinerary_engine.models.usage import EffectiveTier, Limit, QuotaCounters


def place(place_id: str) -> Place:
    return Place(id=place_id, name=f"Place {place_id}")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("morning", SlotLabel.morning),
        ("  Afternoon ", SlotLabel.afternoon),
        ("EVENING", SlotLabel.evening),
        ("night", None),
        ("", None),
        (None, None),
    ],
)
def test_slot_label_parse(raw: str | None, expected: SlotLabel | None) -> None:
    assert SlotLabel.parse(raw) == expected


def test_slot_label_rank_follows_day_order() -> None:
    ordered = sorted(SlotLabel, key=lambda s: s.rank)
    assert ordered == [SlotLabel.morning, SlotLabel.afternoon, SlotLabel.evening]


def test_replace_at_keeps_other_positions() -> None:
    slot = Slot(label="morning", places=[place("a"), place("b"), place("c")])

    previous = slot.replace_at(1, place("x"))

    assert previous.id == "b"
    assert [p.id for p in slot.places] == ["a", "x", "c"]
    assert slot.index_of("x") == 1
    assert slot.index_of("b") is None


def test_day_helpers() -> None:
    day = Day(
        id="d1",
        index=1,
        date=date(2025, 6, 2),
        slots=[
            Slot(label="Morning", places=[place("a")]),
            Slot(label="Evening", places=[place("b"), place("c")]),
        ],
    )

    assert day.place_count == 3
    assert day.slot(SlotLabel.evening) is day.slots[1]
    assert day.slot(SlotLabel.afternoon) is None


def test_day_index_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Day(id="d0", index=0, date=date(2025, 6, 1))


def test_document_reads_and_writes_camel_case() -> None:
    content = {
        "title": "Tokyo",
        "tripTips": ["Get a Suica card"],
        "days": [
            {
                "id": "d1",
                "index": 1,
                "date": "2025-06-02",
                "areaCluster": "Shibuya",
                "slots": [{"label": "morning", "places": [{"id": "a", "name": "Place a"}]}],
            }
        ],
    }

    document = ItineraryDocument.model_validate(content)

    assert document.trip_tips == ["Get a Suica card"]
    assert document.days[0].area_cluster == "Shibuya"
    stored = document.to_content()
    assert stored["tripTips"] == ["Get a Suica card"]
    assert stored["days"][0]["areaCluster"] == "Shibuya"
    assert stored["days"][0]["date"] == "2025-06-02"
    assert "revision" not in stored


def test_chronological_days_sorts_by_date() -> None:
    document = ItineraryDocument(
        days=[
            Day(id="late", index=1, date=date(2025, 6, 3)),
            Day(id="early", index=2, date=date(2025, 6, 1)),
        ]
    )

    assert [d.id for d in document.chronological_days()] == ["early", "late"]


def test_incoming_place_ref_discriminates_on_kind() -> None:
    adapter = TypeAdapter(IncomingPlaceRef)

    full = adapter.validate_python({"kind": "full_details", "id": "p1", "name": "Senso-ji"})
    bare = adapter.validate_python({"kind": "identifier_only", "id": "p2"})

    assert isinstance(full, FullDetailsRef)
    assert isinstance(bare, IdentifierOnlyRef)
    with pytest.raises(ValidationError):
        adapter.validate_python({"kind": "unknown", "id": "p3"})


@pytest.mark.parametrize(
    ("name", "address", "usable"),
    [
        ("Senso-ji", "2 Chome-3-1 Asakusa, Taito City, Tokyo, Japan", True),
        ("Senso-ji", None, False),
        ("   ", "Asakusa, Tokyo", False),
        (None, "Asakusa, Tokyo", False),
    ],
)
def test_full_details_usability(name: str | None, address: str | None, usable: bool) -> None:
    ref = FullDetailsRef(id="p1", name=name, address=address)
    assert ref.has_usable_details is usable


def test_limit_semantics() -> None:
    bounded = Limit(value=10)
    unbounded = Limit(value=None)

    assert bounded.allows(9) is True
    assert bounded.allows(10) is False
    assert bounded.remaining(12) == 0
    assert unbounded.unbounded is True
    assert unbounded.allows(10_000) is True
    assert unbounded.remaining(5) is None


@pytest.mark.parametrize(
    ("account", "trip", "tier"),
    [
        (False, False, QuotaTier.free),
        (True, False, QuotaTier.upgraded),
        (False, True, QuotaTier.upgraded),
    ],
)
def test_effective_tier(account: bool, trip: bool, tier: QuotaTier) -> None:
    assert EffectiveTier(account_upgraded=account, trip_upgraded=trip).tier == tier


def test_roles_that_can_edit() -> None:
    assert [r for r in TripRole if r.can_edit] == [TripRole.owner, TripRole.editor]


def test_counters_are_non_negative() -> None:
    with pytest.raises(ValidationError):
        QuotaCounters(trip_id="t", user_id="u", change_count=-1)
