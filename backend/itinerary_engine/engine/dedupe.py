"""Place identity keys for duplicate detection.

A place is identified by its external place id when it has one. Otherwise a
fallback key is built from the normalized name plus the best locality signal
available (explicit neighborhood/area, else parsed from a free-text address).
"""

import re
from dataclasses import dataclass

from backend.itinerary_engine.models.itinerary import ItineraryDocument, Place

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_PLACE_ID = re.compile(r"^[A-Za-z0-9_\-:.]{1,256}$")


@dataclass(frozen=True)
class PlaceIdentity:
    """Fields that participate in identity resolution."""

    id: str | None = None
    name: str | None = None
    area: str | None = None
    neighborhood: str | None = None
    address: str | None = None

    @classmethod
    def of_place(cls, place: Place) -> "PlaceIdentity":
        return cls(
            id=place.id or place.place_id,
            name=place.name,
            area=place.area or None,
            neighborhood=place.neighborhood,
        )


def is_valid_place_id(place_id: str | None) -> bool:
    """Syntactic check for an external place identifier."""
    return bool(place_id) and _PLACE_ID.match(place_id) is not None


def normalize_place_key(name: str, area: str | None = None, city: str | None = None) -> str:
    """Normalize name + locality into a compact comparison key."""
    location = area or city or ""
    combined = f"{name} {location}" if location else name
    combined = _WHITESPACE.sub(" ", combined.casefold().strip())
    combined = _PUNCTUATION.sub("", combined)
    return _WHITESPACE.sub("", combined)


def parse_address_locality(address: str | None) -> tuple[str | None, str | None]:
    """Return (area, city) from a comma-separated address.

    The next-to-last segment is the area and the one before it the city.
    """
    if not address:
        return None, None
    parts = [p.strip() for p in address.split(",") if p.strip()]
    area = parts[-2] if len(parts) >= 2 else None
    city = parts[-3] if len(parts) >= 3 else None
    return area, city


def fallback_key(identity: PlaceIdentity) -> str | None:
    """Normalized name+locality key, None when there is no usable name."""
    if not identity.name or not identity.name.strip():
        return None

    area = identity.neighborhood or identity.area
    city = None
    if not area:
        area, city = parse_address_locality(identity.address)

    key = normalize_place_key(identity.name, area, city)
    return key or None


def resolve_key(identity: PlaceIdentity | Place) -> str | None:
    """Stable identity key for a place, None if it cannot be determined."""
    if isinstance(identity, Place):
        identity = PlaceIdentity.of_place(identity)

    if identity.id and identity.id.strip():
        return identity.id.strip()

    return fallback_key(identity)


@dataclass
class DocumentKeys:
    """Primary and fallback keys of every place in a document."""

    place_ids: set[str]
    fallback_keys: set[str]

    def contains(self, identity: PlaceIdentity) -> str | None:
        """Return the colliding key if identity is already present."""
        if identity.id and identity.id.strip():
            place_id = identity.id.strip()
            return place_id if place_id in self.place_ids else None

        key = fallback_key(identity)
        if key and key in self.fallback_keys:
            return key

        return None

    def add(self, place: Place) -> None:
        identity = PlaceIdentity.of_place(place)
        if identity.id:
            self.place_ids.add(identity.id.strip())
        key = fallback_key(identity)
        if key:
            self.fallback_keys.add(key)


def document_keys(document: ItineraryDocument) -> DocumentKeys:
    """Collect identity keys across all days and slots."""
    keys = DocumentKeys(place_ids=set(), fallback_keys=set())
    for _, _, place in document.iter_places():
        keys.add(place)
    return keys


def find_duplicate(document: ItineraryDocument, identity: PlaceIdentity) -> str | None:
    """Return the colliding key if identity already exists in document."""
    return document_keys(document).contains(identity)
