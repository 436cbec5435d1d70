from __future__ import annotations

import pytest

from flowmesh_ai.core.config import get_settings
from test.settings import test_settings


@pytest.fixture(scope="session")
def test_config():
    """Fixture providing test configuration from Pydantic settings model.

    Returns:
        TestSettings: Test configuration with all environment variables loaded
    """
    return test_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Drop the cached agent core settings around every test so env patches apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
