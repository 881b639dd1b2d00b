"""Itinerary activity endpoints - replace, search add, bulk add, distribute, update."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.itinerary_engine.api.deps import enforce_rate_limit, get_document_store
from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.engine.store import ItineraryDocumentStore
from backend.itinerary_engine.errors import InvalidInputError
from backend.itinerary_engine.models.itinerary import Day, Place
from backend.itinerary_engine.models.places import IncomingPlaceRef

router = APIRouter(prefix="/trips/{trip_id}", tags=["activities"])


class ReplaceActivityRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/activities/{activity_id}/replace."""

    day_id: str = Field(..., min_length=1)
    incoming: IncomingPlaceRef
    segment_id: str | None = None


class ActivityResponse(BaseModel):
    """A single edited place and the day that now contains it."""

    success: bool = True
    activity: Place
    day: Day


class DistributeRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/activities/distribute-liked-places."""

    liked_place_ids: list[str]
    segment_id: str | None = None


class DistributeResponse(BaseModel):
    """Response for bulk distribution."""

    success: bool = True
    distributed: int
    considered: int
    forced_to_last_day: bool
    not_placed: list[str]


class SearchAddRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/days/{day_id}/activities."""

    slot_label: str = Field(..., description="morning, afternoon or evening")
    incoming: IncomingPlaceRef
    segment_id: str | None = None


class SearchAddResponse(ActivityResponse):
    slot_label: str


class BulkAddRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/days/{day_id}/activities/bulk-add-from-swipes."""

    place_ids: list[str]
    slot: str = Field(..., description="morning, afternoon or evening")
    segment_id: str | None = None


class BulkAddResponse(BaseModel):
    """Places appended to the slot, plus what was left out."""

    success: bool = True
    added_count: int
    skipped_count: int
    activities: list[Place]
    not_added: list[str]


class UpdatePlaceRequest(BaseModel):
    """Request body for PATCH /trips/{trip_id}/days/{day_id}/places/{place_id}."""

    visited: bool | None = None
    remove: bool = False
    segment_id: str | None = None


class UpdatePlaceResponse(BaseModel):
    success: bool = True
    activity: Place | None = None
    day: Day | None = None


@router.post("/activities/{activity_id}/replace", response_model=ActivityResponse)
async def replace_activity(
    trip_id: str,
    activity_id: str,
    request: ReplaceActivityRequest,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
) -> ActivityResponse:
    """Replace one place in position with an incoming place.

    Counts against the member's change quota.
    """
    outcome = await store.replace_activity(
        trip_id,
        request.day_id,
        activity_id,
        request.incoming,
        ctx,
        segment_id=request.segment_id,
    )
    return ActivityResponse(activity=outcome.activity, day=outcome.day)


@router.post("/activities/distribute-liked-places", response_model=DistributeResponse)
async def distribute_liked_places(
    trip_id: str,
    request: DistributeRequest,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
) -> DistributeResponse:
    """Spread liked places across the remaining days."""
    summary = await store.distribute_liked_places(
        trip_id, request.liked_place_ids, ctx, segment_id=request.segment_id
    )
    return DistributeResponse(
        distributed=summary.placed,
        considered=summary.considered,
        forced_to_last_day=summary.forced_to_last_day,
        not_placed=summary.not_placed_ids,
    )


@router.post("/days/{day_id}/activities", response_model=SearchAddResponse)
async def add_activity_from_search(
    trip_id: str,
    day_id: str,
    request: SearchAddRequest,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
) -> SearchAddResponse:
    """Add a searched place to a named slot of a day."""
    outcome = await store.add_place_from_search(
        trip_id,
        day_id,
        request.slot_label,
        request.incoming,
        ctx,
        segment_id=request.segment_id,
    )
    return SearchAddResponse(
        activity=outcome.activity, day=outcome.day, slot_label=outcome.slot_label
    )


@router.patch("/days/{day_id}/places/{place_id}", response_model=UpdatePlaceResponse)
def update_place(
    trip_id: str,
    day_id: str,
    place_id: str,
    request: UpdatePlaceRequest,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
) -> UpdatePlaceResponse:
    """Mark a place visited/unvisited, or remove it."""
    if request.remove:
        day = store.remove_place(trip_id, day_id, place_id, ctx, segment_id=request.segment_id)
        return UpdatePlaceResponse(day=day)

    if request.visited is None:
        raise InvalidInputError("Provide either visited or remove.")

    place = store.set_place_visited(
        trip_id, day_id, place_id, request.visited, ctx, segment_id=request.segment_id
    )
    return UpdatePlaceResponse(activity=place)


@router.post("/days/{day_id}/activities/bulk-add-from-swipes", response_model=BulkAddResponse)
async def bulk_add_from_swipes(
    trip_id: str,
    day_id: str,
    request: BulkAddRequest,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
) -> BulkAddResponse:
    """Append places liked while exploring to one slot of a day.

    Places already in the itinerary are skipped, so retries are safe.
    """
    outcome = await store.bulk_add_to_day(
        trip_id, day_id, request.slot, request.place_ids, ctx, segment_id=request.segment_id
    )
    return BulkAddResponse(
        added_count=len(outcome.added),
        skipped_count=len(outcome.skipped_existing_ids),
        activities=outcome.added,
        not_added=outcome.not_added_ids,
    )
