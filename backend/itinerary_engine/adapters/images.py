"""Place image caching with an ordered provider fallback chain.

Sources are tried in order (payload URL, Google photo reference, Mapbox map
thumbnail); the first one that yields an image wins. Fetched bytes are
uploaded to a BlobStore under a deterministic path so the itinerary stores a
stable URL. When every source fails the chain ends in the terminal "none"
state: cache() never raises, it returns a result with public_url=None and
the list of attempts.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

import httpx

from backend.itinerary_engine.config import Settings
from backend.itinerary_engine.upstream.executor import (
    CallConfig,
    CallContext,
    UpstreamError,
    UpstreamExecutor,
)

logger = logging.getLogger(__name__)


class ImageProvider(str, Enum):
    """Image source in fallback order."""

    payload = "payload"
    google = "google"
    mapbox = "mapbox"


class ImageFetchError(Exception):
    """Provider answered but did not return a usable image."""

    def __init__(self, reason: str, status: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status = status


@dataclass
class ImageCacheRequest:
    """Identity and hints for one place image."""

    trip_id: str
    title: str
    place_id: str | None = None
    city: str | None = None
    country: str | None = None
    image_url: str | None = None
    photo_ref: str | None = None
    lat: float | None = None
    lng: float | None = None


@dataclass
class FetchedImage:
    """Either a URL that is already stable or raw bytes to upload."""

    public_url: str | None = None
    data: bytes | None = None
    content_type: str = "image/jpeg"


@dataclass
class ProviderAttempt:
    provider: ImageProvider
    ok: bool
    status: int | None = None
    reason: str | None = None


@dataclass
class ImageCacheResult:
    public_url: str | None
    provider_used: ImageProvider | None
    attempts: list[ProviderAttempt] = field(default_factory=list)


class ImageSource(Protocol):
    """One link of the fallback chain."""

    name: ImageProvider

    def applies(self, request: ImageCacheRequest) -> bool:
        """Whether the request carries what this source needs."""
        ...

    async def fetch(self, request: ImageCacheRequest) -> FetchedImage:
        """Fetch the image; raise ImageFetchError or httpx.HTTPError on failure."""
        ...


class BlobStore(Protocol):
    """Public object storage for cached images."""

    def put(self, path: str, data: bytes, content_type: str) -> str:
        """Store data at path and return its public URL."""
        ...


class InMemoryBlobStore:
    """BlobStore kept in a dict (tests and local runs)."""

    def __init__(self, base_url: str = "memory://place-images") -> None:
        self._base_url = base_url.rstrip("/")
        self.objects: dict[str, tuple[bytes, str]] = {}

    def put(self, path: str, data: bytes, content_type: str) -> str:
        self.objects[path] = (data, content_type)
        return f"{self._base_url}/{path}"


class LocalBlobStore:
    """BlobStore writing files under a directory served at base_url."""

    def __init__(self, directory: str | Path, base_url: str) -> None:
        self._root = Path(directory)
        self._base_url = base_url.rstrip("/")

    def put(self, path: str, data: bytes, content_type: str) -> str:
        target = self._root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return f"{self._base_url}/{path}"


def image_path(request: ImageCacheRequest) -> str:
    """Deterministic storage path from the place identity."""
    identity = f"{request.place_id or ''}|{request.title}|{request.lat or ''}|{request.lng or ''}"
    digest = hashlib.sha1(identity.encode("utf-8")).hexdigest()[:16]
    return f"{request.trip_id}/{digest}.jpg"


async def _get_image(client: httpx.AsyncClient, url: str, params: dict) -> FetchedImage:
    response = await client.get(url, params=params, follow_redirects=True)
    if response.status_code >= 400:
        raise ImageFetchError(f"HTTP {response.status_code}", status=response.status_code)

    content_type = response.headers.get("content-type", "")
    if not content_type.startswith("image/"):
        raise ImageFetchError(f"unexpected content type {content_type!r}", response.status_code)
    if not response.content:
        raise ImageFetchError("empty body", response.status_code)

    return FetchedImage(data=response.content, content_type=content_type.split(";")[0])


class PayloadUrlSource:
    """Use the URL the caller already has."""

    name = ImageProvider.payload

    def applies(self, request: ImageCacheRequest) -> bool:
        return bool(request.image_url)

    async def fetch(self, request: ImageCacheRequest) -> FetchedImage:
        return FetchedImage(public_url=request.image_url)


class GooglePhotoSource:
    """Download a Google Places photo by reference."""

    name = ImageProvider.google

    def __init__(self, client: httpx.AsyncClient, api_key: str, base_url: str) -> None:
        self._client = client
        self._api_key = api_key
        self._base_url = base_url

    def applies(self, request: ImageCacheRequest) -> bool:
        return bool(request.photo_ref and self._api_key)

    async def fetch(self, request: ImageCacheRequest) -> FetchedImage:
        params = {"maxwidth": 1000, "photo_reference": request.photo_ref, "key": self._api_key}
        return await _get_image(self._client, f"{self._base_url}/photo", params)


class MapThumbnailSource:
    """Render a static map thumbnail centred on the place."""

    name = ImageProvider.mapbox

    def __init__(self, client: httpx.AsyncClient, token: str, base_url: str) -> None:
        self._client = client
        self._token = token
        self._base_url = base_url

    def applies(self, request: ImageCacheRequest) -> bool:
        return bool(self._token) and request.lat is not None and request.lng is not None

    async def fetch(self, request: ImageCacheRequest) -> FetchedImage:
        lng, lat = request.lng, request.lat
        url = f"{self._base_url}/pin-s+555555({lng},{lat})/{lng},{lat},15,0/600x400@2x"
        return await _get_image(self._client, url, {"access_token": self._token})


class ImageCache:
    """Runs the source chain and uploads the winner."""

    def __init__(
        self,
        sources: list[ImageSource],
        blob_store: BlobStore,
        executor: UpstreamExecutor,
        config: CallConfig,
    ) -> None:
        self._sources = sources
        self._blob_store = blob_store
        self._executor = executor
        self._config = config

    async def cache(self, request: ImageCacheRequest) -> ImageCacheResult:
        """Resolve a stable image URL; never raises."""
        attempts: list[ProviderAttempt] = []

        for source in self._sources:
            if not source.applies(request):
                continue

            ctx = CallContext(
                provider=f"image.{source.name.value}", operation="fetch", trip_id=request.trip_id
            )
            try:
                image = await self._executor.execute(
                    ctx,
                    self._config,
                    lambda source=source: source.fetch(request),
                    retry_on=(httpx.TransportError,),
                )
                url = image.public_url
                if url is None:
                    url = self._blob_store.put(
                        image_path(request), image.data or b"", image.content_type
                    )
            except ImageFetchError as e:
                attempts.append(
                    ProviderAttempt(source.name, ok=False, status=e.status, reason=e.reason)
                )
                continue
            except (UpstreamError, httpx.HTTPError, OSError) as e:
                attempts.append(ProviderAttempt(source.name, ok=False, reason=type(e).__name__))
                continue

            attempts.append(ProviderAttempt(source.name, ok=True))
            return ImageCacheResult(public_url=url, provider_used=source.name, attempts=attempts)

        logger.info(
            f"[image_cache] no image for trip_id={request.trip_id} place_id={request.place_id}",
            extra={"structured": {"attempts": [a.__dict__ for a in attempts]}},
        )
        return ImageCacheResult(public_url=None, provider_used=None, attempts=attempts)


def build_image_cache(
    settings: Settings,
    executor: UpstreamExecutor,
    client: httpx.AsyncClient,
    blob_store: BlobStore | None = None,
) -> ImageCache:
    """Default chain: payload URL, Google photo, Mapbox thumbnail."""
    sources: list[ImageSource] = [
        PayloadUrlSource(),
        GooglePhotoSource(client, settings.google_maps_api_key, settings.places_base_url),
        MapThumbnailSource(client, settings.mapbox_token, settings.map_thumbnail_base_url),
    ]
    store = blob_store or LocalBlobStore(settings.blob_store_dir, settings.blob_public_base_url)
    return ImageCache(sources, store, executor, CallConfig.from_settings(settings))
