"""Place lookup adapter using the Google Places Details API."""

from typing import Protocol

import httpx

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.models.common import Geo
from backend.itinerary_engine.models.places import PlaceDetails
from backend.itinerary_engine.upstream.executor import (
    CallConfig,
    CallContext,
    UpstreamError,
    UpstreamExecutor,
)

DETAIL_FIELDS = (
    "place_id",
    "name",
    "formatted_address",
    "types",
    "rating",
    "photos",
    "geometry",
    "editorial_summary",
)

# Statuses meaning "no such place" rather than a provider failure
_ABSENT_STATUSES = {"NOT_FOUND", "ZERO_RESULTS", "INVALID_REQUEST"}


class PlaceLookupError(Exception):
    """Place-lookup provider failed (network, quota, timeout, or bad response)."""

    pass


class PlaceLookup(Protocol):
    """Place-lookup collaborator."""

    async def get_details(self, place_id: str, trip_id: str | None = None) -> PlaceDetails | None:
        """Fetch details for a place.

        Returns:
            Details, or None when the provider has no such place

        Raises:
            PlaceLookupError: Provider failed or timed out
        """
        ...

    def photo_url(self, photo_reference: str, max_width: int = 800) -> str:
        """Public URL for a provider photo reference."""
        ...


def parse_place_details(place_id: str, result: dict) -> PlaceDetails:
    """Convert a Places Details `result` object into PlaceDetails."""
    location = None
    loc = (result.get("geometry") or {}).get("location")
    if loc and loc.get("lat") is not None and loc.get("lng") is not None:
        location = Geo(lat=loc["lat"], lng=loc["lng"])

    photo_refs = [
        p["photo_reference"] for p in result.get("photos") or [] if p.get("photo_reference")
    ]

    return PlaceDetails(
        place_id=result.get("place_id") or place_id,
        name=result.get("name") or "Unknown Place",
        formatted_address=result.get("formatted_address"),
        types=list(result.get("types") or []),
        photo_references=photo_refs,
        location=location,
        editorial_summary=(result.get("editorial_summary") or {}).get("overview"),
        rating=result.get("rating"),
    )


async def fetch_place_details(
    place_id: str,
    api_key: str,
    base_url: str = "https://maps.googleapis.com/maps/api/place",
    client: httpx.AsyncClient | None = None,
) -> PlaceDetails | None:
    """Fetch place details from Google Places.

    Args:
        place_id: Google place_id
        api_key: Google Maps API key
        base_url: Places API base URL
        client: Optional httpx client (for testing with mocks)

    Returns:
        PlaceDetails, or None if the place does not exist

    Raises:
        PlaceLookupError: On network/HTTP errors or a failing API status
    """
    if not api_key:
        raise PlaceLookupError("Google Maps API key not configured")

    params = {"place_id": place_id, "fields": ",".join(DETAIL_FIELDS), "key": api_key}

    close_client = False
    if client is None:
        client = httpx.AsyncClient(timeout=4.0)
        close_client = True

    try:
        response = await client.get(f"{base_url}/details/json", params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise PlaceLookupError(f"Place details request failed: {type(e).__name__}") from e
    finally:
        if close_client:
            await client.aclose()

    status = data.get("status")
    if status == "OK" and data.get("result"):
        return parse_place_details(place_id, data["result"])

    if status in _ABSENT_STATUSES:
        return None

    raise PlaceLookupError(f"Places API status {status}: {data.get('error_message', '')}")


class GooglePlaceLookup:
    """PlaceLookup backed by Google Places, bounded by UpstreamExecutor."""

    provider = "google_places"

    def __init__(
        self,
        settings: Settings,
        executor: UpstreamExecutor,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.google_maps_api_key
        self._base_url = settings.places_base_url
        self._executor = executor
        self._client = client
        self._config = CallConfig.from_settings(
            settings, cache_ttl_seconds=settings.place_details_ttl_seconds
        )

    async def get_details(self, place_id: str, trip_id: str | None = None) -> PlaceDetails | None:
        ctx = CallContext(provider=self.provider, operation="details", trip_id=trip_id)

        async def call() -> PlaceDetails | None:
            return await fetch_place_details(
                place_id, self._api_key, base_url=self._base_url, client=self._client
            )

        try:
            return await self._executor.execute(ctx, self._config, call, cache_key=place_id)
        except UpstreamError as e:
            raise PlaceLookupError(str(e)) from e

    def photo_url(self, photo_reference: str, max_width: int = 800) -> str:
        return str(
            httpx.URL(
                f"{self._base_url}/photo",
                params={
                    "maxwidth": max_width,
                    "photoreference": photo_reference,
                    "key": self._api_key,
                },
            )
        )
