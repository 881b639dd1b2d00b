"""Global pytest configuration."""

import os

# Set test environment defaults before any imports
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REFERENCE_TIMEZONE", "UTC")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-key")
