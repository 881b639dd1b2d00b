"""Place lookup results and incoming place references."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

from backend.itinerary_engine.models.common import Geo


class PlaceDetails(BaseModel):
    """Descriptive details returned by the place-lookup provider."""

    place_id: str
    name: str
    formatted_address: str | None = None
    types: list[str] = Field(default_factory=list)
    photo_references: list[str] = Field(default_factory=list)
    location: Geo | None = None
    editorial_summary: str | None = None
    rating: float | None = None


class FullDetailsRef(BaseModel):
    """Incoming place carrying enough data to skip the lookup."""

    kind: Literal["full_details"] = "full_details"
    id: str
    name: str | None = None
    address: str | None = None
    description: str | None = None
    area: str | None = None
    neighborhood: str | None = None
    tags: list[str] = Field(default_factory=list)
    image_url: str | None = None
    photo_reference: str | None = None
    location: Geo | None = None

    @property
    def has_usable_details(self) -> bool:
        return bool(self.name and self.name.strip() and self.address and self.address.strip())


class IdentifierOnlyRef(BaseModel):
    """Incoming place known only by its external identifier."""

    kind: Literal["identifier_only"] = "identifier_only"
    id: str


IncomingPlaceRef = Annotated[FullDetailsRef | IdentifierOnlyRef, Field(discriminator="kind")]
