"""
Root pytest configuration.

This conftest is loaded before test collection to ensure
src is in the Python path for all imports.
"""

import sys
from pathlib import Path

# Add src to path IMMEDIATELY when this file is loaded
src_path = Path(__file__).parent / "src"
src_str = str(src_path.absolute())

# Ensure it's at the very front
if src_str in sys.path:
    sys.path.remove(src_str)
sys.path.insert(0, src_str)


import pytest


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings getters are lru_cached; tests that patch the environment need a fresh read."""
    yield
    from config.database import get_database_settings
    from config.settings import (
        get_auth_settings,
        get_email_settings,
        get_settings,
        get_soa_settings,
    )
    for getter in (get_settings, get_soa_settings, get_auth_settings, get_email_settings,
                   get_database_settings):
        getter.cache_clear()


def pytest_configure(config):
    """Additional path setup during pytest configuration."""
    if src_str not in sys.path:
        sys.path.insert(0, src_str)
