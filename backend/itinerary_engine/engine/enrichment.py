"""Turn an incoming place reference plus lookup details into a Place record."""

from collections.abc import Callable
from dataclasses import dataclass

from backend.itinerary_engine.adapters.images import ImageCache, ImageCacheRequest
from backend.itinerary_engine.models.itinerary import Place
from backend.itinerary_engine.models.places import FullDetailsRef, PlaceDetails

DEFAULT_DESCRIPTION = "A great place to visit"
MAX_TAGS = 3
MAX_PHOTOS = 3


@dataclass
class Locality:
    area: str | None
    neighborhood: str | None
    city: str | None = None
    country: str | None = None


def split_address(address: str | None) -> Locality:
    """Best-effort locality from a formatted address.

    Second-to-last segment is the area, third-to-last the neighborhood. A
    single-segment address is taken as the area.
    """
    parts = [p.strip() for p in (address or "").split(",") if p.strip()]
    if not parts:
        return Locality(area=None, neighborhood=None)

    area = parts[-2] if len(parts) > 1 else parts[0]
    neighborhood = parts[-3] if len(parts) > 2 else None
    country = parts[-1] if len(parts) > 1 else None
    return Locality(area=area, neighborhood=neighborhood, city=area, country=country)


def humanize_type(place_type: str) -> str:
    return place_type.replace("_", " ")


def derive_locality(payload: FullDetailsRef | None, details: PlaceDetails | None) -> Locality:
    """Explicit payload fields win; otherwise parse whichever address we have."""
    address = None
    if payload is not None and payload.address:
        address = payload.address
    elif details is not None:
        address = details.formatted_address

    parsed = split_address(address)
    if payload is None:
        return parsed
    return Locality(
        area=payload.area or parsed.area,
        neighborhood=payload.neighborhood or parsed.neighborhood,
        city=parsed.city,
        country=parsed.country,
    )


def derive_description(payload: FullDetailsRef | None, details: PlaceDetails | None) -> str:
    if payload is not None and payload.description:
        return payload.description
    if details is not None:
        if details.editorial_summary:
            return details.editorial_summary
        if details.types:
            return humanize_type(details.types[0])
    return DEFAULT_DESCRIPTION


def derive_tags(payload: FullDetailsRef | None, details: PlaceDetails | None) -> list[str]:
    if payload is not None and payload.tags:
        return payload.tags[:MAX_TAGS]
    if details is None:
        return []
    return [humanize_type(t) for t in details.types[:MAX_TAGS]]


class PlaceEnricher:
    """Builds Place records, resolving images through the cache chain."""

    def __init__(
        self,
        image_cache: ImageCache | None = None,
        photo_url: Callable[[str], str] | None = None,
    ) -> None:
        """Initialize enricher.

        Args:
            image_cache: Image cache chain (None disables image resolution)
            photo_url: Callable mapping a photo reference to a URL, used to
                fill `photos` when no cached image is available
        """
        self._image_cache = image_cache
        self._photo_url = photo_url

    async def build_place(
        self,
        trip_id: str,
        place_id: str,
        payload: FullDetailsRef | None = None,
        details: PlaceDetails | None = None,
    ) -> Place:
        """Construct a fresh, unvisited Place."""
        locality = derive_locality(payload, details)

        name = (payload.name if payload is not None and payload.name else None) or (
            details.name if details is not None else None
        )

        photo_refs: list[str] = []
        if payload is not None and payload.photo_reference:
            photo_refs.append(payload.photo_reference)
        if details is not None:
            photo_refs.extend(r for r in details.photo_references if r not in photo_refs)

        location = (payload.location if payload is not None else None) or (
            details.location if details is not None else None
        )

        image_url = None
        if self._image_cache is not None:
            result = await self._image_cache.cache(
                ImageCacheRequest(
                    trip_id=trip_id,
                    place_id=place_id,
                    title=name or place_id,
                    city=locality.city,
                    country=locality.country,
                    image_url=payload.image_url if payload is not None else None,
                    photo_ref=photo_refs[0] if photo_refs else None,
                    lat=location.lat if location else None,
                    lng=location.lng if location else None,
                )
            )
            image_url = result.public_url
        elif payload is not None:
            image_url = payload.image_url

        photos: list[str] = []
        if image_url is None and self._photo_url is not None:
            photos = [self._photo_url(ref) for ref in photo_refs[:MAX_PHOTOS]]

        return Place(
            id=place_id,
            name=name or "Unknown Place",
            description=derive_description(payload, details),
            area=locality.area or "Unknown",
            neighborhood=locality.neighborhood,
            tags=derive_tags(payload, details),
            photos=photos,
            image_url=image_url,
            visited=False,
            place_id=place_id,
            photo_reference=photo_refs[0] if photo_refs else None,
        )
