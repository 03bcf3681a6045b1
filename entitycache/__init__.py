"""
entitycache

Generic object-to-cache mapping layer over Redis.

Usage:
    from entitycache import CacheService, ConnectionManager, cacheable

    @cacheable
    @dataclass
    class Person:
        Id: int = 0
        Name: str | None = None

    connection = ConnectionManager()
    people = CacheService(connection, Person, "RedisPerson")
"""

from entitycache.codec import EntityCodec, cacheable, schema_of
from entitycache.core.config import CacheSettings, get_settings
from entitycache.infrastructure.cache import (
    CacheService,
    ConnectionManager,
    GeoEntry,
    GeoRadiusResult,
    KeyNamespace,
    create_cache_service,
)

__version__ = "1.0.0"

__all__ = [
    "CacheService",
    "ConnectionManager",
    "CacheSettings",
    "EntityCodec",
    "GeoEntry",
    "GeoRadiusResult",
    "KeyNamespace",
    "cacheable",
    "create_cache_service",
    "get_settings",
    "schema_of",
]
