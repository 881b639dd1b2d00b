"""Explore session endpoints - swipe history and swipe quota."""

from enum import Enum
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.itinerary_engine.api.deps import enforce_rate_limit, get_document_store
from backend.itinerary_engine.db.context import RequestContext
from backend.itinerary_engine.engine.store import ItineraryDocumentStore
from backend.itinerary_engine.errors import InvalidInputError
from backend.itinerary_engine.models.common import SwipeDirection
from backend.itinerary_engine.models.results import SessionView, SwipeOutcome

router = APIRouter(prefix="/trips/{trip_id}/explore", tags=["explore"])


class SwipeAction(str, Enum):
    like = "like"
    dislike = "dislike"
    undo = "undo"


class SwipeRequest(BaseModel):
    """Request body for POST /trips/{trip_id}/explore/swipe.

    undo may name the place and the action being undone; without them the
    most recent swipe is undone.
    """

    action: SwipeAction
    place_id: str | None = None
    previous_action: SwipeDirection | None = None
    segment_id: str | None = None


class ResetResponse(BaseModel):
    success: bool = True
    session: SessionView


@router.get("/session", response_model=SessionView)
def get_explore_session(
    trip_id: str,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
    segment_id: str | None = None,
) -> SessionView:
    """Liked and discarded places plus remaining swipes."""
    return store.get_explore_session(trip_id, ctx, segment_id=segment_id)


@router.delete("/session", response_model=ResetResponse)
def reset_explore_session(
    trip_id: str,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
    segment_id: str | None = None,
) -> ResetResponse:
    """Clear the session so a new discovery round can start."""
    view = store.reset_explore_session(trip_id, ctx, segment_id=segment_id)
    return ResetResponse(session=view)


@router.post("/swipe", response_model=SwipeOutcome)
def swipe(
    trip_id: str,
    request: SwipeRequest,
    ctx: Annotated[RequestContext, Depends(enforce_rate_limit)],
    store: Annotated[ItineraryDocumentStore, Depends(get_document_store)],
) -> SwipeOutcome:
    """Record a like or dislike, or undo the last swipe."""
    if request.action == SwipeAction.undo:
        return store.undo_swipe(
            trip_id,
            ctx,
            segment_id=request.segment_id,
            place_id=request.place_id,
            previous_action=request.previous_action,
        )

    if not request.place_id:
        raise InvalidInputError("place_id is required to swipe.")

    return store.swipe(
        trip_id,
        request.place_id,
        SwipeDirection(request.action.value),
        ctx,
        segment_id=request.segment_id,
    )
