"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Cache
    redis_url: str | None = None

    # Place lookup (Google Places Details)
    google_maps_api_key: str = ""
    places_base_url: str = "https://maps.googleapis.com/maps/api/place"

    # Map thumbnails (Mapbox static images)
    mapbox_token: str = ""
    map_thumbnail_base_url: str = "https://api.mapbox.com/styles/v1/mapbox/streets-v12/static"

    # Image blob storage
    blob_store_dir: str = "./var/place-images"
    blob_public_base_url: str = "http://localhost:8000/place-images"

    # Calendar
    reference_timezone: str = "UTC"

    # Itinerary shape
    max_places_per_day: int = 6

    # Usage limits per trip-member (None = unlimited)
    free_swipe_limit: int = 10
    upgraded_swipe_limit: int | None = 100
    free_change_limit: int = 10
    upgraded_change_limit: int | None = None
    free_search_add_limit: int = 20
    upgraded_search_add_limit: int | None = None

    # Upstream timeouts (milliseconds)
    upstream_hard_timeout_ms: int = 4000
    upstream_retry_count: int = 1

    # Retry jitter (milliseconds)
    retry_jitter_min_ms: int = 200
    retry_jitter_max_ms: int = 500

    # Circuit breaker
    circuit_breaker_failures: int = 5
    circuit_breaker_window_sec: int = 60
    circuit_breaker_half_open_sec: int = 30

    # Cache TTLs (seconds)
    place_details_ttl_seconds: int = 3600

    # Rate limiting (requests per minute)
    swipes_per_min: int = 60
    mutations_per_min: int = 30
    reads_per_min: int = 120

    # Whole-document writes are conditional on the loaded revision
    enforce_document_revision: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
