"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import patch

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from entitycache.core.config.settings import CacheSettings  # noqa: E402
from entitycache.infrastructure.cache.cache_service import CacheService  # noqa: E402
from entitycache.infrastructure.cache.connection import ConnectionManager  # noqa: E402
from tests.test_fixtures.entities import Person  # noqa: E402
from tests.test_fixtures.redis_stub import InMemoryRedis  # noqa: E402


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def cache_settings():
    """Cache settings for the Person/RedisPerson sample namespace."""
    return CacheSettings(
        CACHE_DURATION_MINUTES=-1,
        SYSTEM_NAME="Person",
        CONNECTION_ENDPOINT="redis://localhost:6379",
        DATABASE_INDEX=1,
    )


@pytest.fixture(scope="session")
def use_real_redis():
    """Check if real Redis should be used for integration tests."""
    return os.getenv("USE_REAL_REDIS", "0").lower() in ("1", "true", "yes")


# ============================================================================
# Redis Fixtures
# ============================================================================


@pytest.fixture
def in_memory_redis():
    """
    In-memory Redis client stub for testing.

    Mimics Redis operations using in-memory storage.
    """
    return InMemoryRedis()


@pytest.fixture
def connection(cache_settings, in_memory_redis):
    """ConnectionManager whose shared client is the in-memory stub."""
    with patch.object(ConnectionManager, "_create_client", return_value=in_memory_redis):
        yield ConnectionManager(cache_settings)


@pytest.fixture
def connection_factory(in_memory_redis):
    """
    Build ConnectionManagers with custom settings over one in-memory store.

    Usage:
        connection = connection_factory(CACHE_DURATION_MINUTES=10)
    """
    with patch.object(ConnectionManager, "_create_client", return_value=in_memory_redis):

        def factory(**overrides):
            values = {
                "CACHE_DURATION_MINUTES": -1,
                "SYSTEM_NAME": "Person",
                "CONNECTION_ENDPOINT": "redis://localhost:6379",
            }
            values.update(overrides)
            return ConnectionManager(CacheSettings(**values))

        yield factory


@pytest.fixture
def person_cache(connection):
    """CacheService for Person entities under the RedisPerson contract."""
    return CacheService(connection, Person, "RedisPerson")
