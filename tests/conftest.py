"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.discover_filters.config import LookupConfig  # noqa: E402
from src.discover_filters.names import NameResolutionTable  # noqa: E402
from src.settings import get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def reset_settings():
    """Drop cached settings so env changes in one test don't leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def names():
    return NameResolutionTable()


@pytest.fixture
def fast_lookup_config():
    return LookupConfig(debounce_ms=20)
