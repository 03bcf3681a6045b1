"""
Configuration Module

Centralized, type-safe configuration management for the entity cache.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Reserved field names, TTL sentinels, store types and log stages

Usage:
------
```python
from entitycache.core.config import get_settings
from entitycache.core.config.constants import TYPE_FIELD, RedisType

settings = get_settings()
print(settings.cache.SYSTEM_NAME)
```
"""

from .settings import CacheSettings, LoggingSettings, Settings, get_settings, reload_settings

__all__ = [
    "CacheSettings",
    "LoggingSettings",
    "Settings",
    "get_settings",
    "reload_settings",
]
