"""Centralized settings for the discovery filter engine.

Uses pydantic-settings to load from environment variables (prefixed
DISCOVERY_) with defaults matching the dashboard's observed behavior.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Discovery filter settings loaded from environment variables."""

    # --- Remote data services ---
    api_base_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 30.0
    commit_path: str = "/api/v0/discover/search"
    locations_path: str = "/api/v0/discover/locations"
    userhandles_path: str = "/api/v0/discover/userhandles"

    # --- Lookup behavior ---
    debounce_ms: int = 300
    location_min_query_length: int = 2
    handle_min_query_length: int = 3
    location_result_limit: int = 20
    handle_result_limit: int = 12

    # --- Weighted selections ---
    default_weight: int = 20
    min_weight: int = 1
    max_weight: int = 100

    # --- Logging ---
    service_name: str = "discover-filters"

    model_config = {
        "env_prefix": "DISCOVERY_",
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
