"""
Exception Module

Structured exception hierarchy for the entity cache.

Module Structure:
-----------------
- **base.py**: EntityCacheError base class + ConfigurationError
- **cache.py**: Remote store exceptions (connection, command, batch)
- **codec.py**: Schema and field decoding exceptions
- **validation.py**: Argument validation exceptions

Usage:
------
```python
from entitycache.core.exceptions import CacheKeyError, FieldDecodeError
```
"""

from entitycache.core.exceptions.base import ConfigurationError, EntityCacheError
from entitycache.core.exceptions.cache import (
    CacheBatchError,
    CacheConnectionError,
    CacheDisposedError,
    CacheError,
    CacheKeyError,
)
from entitycache.core.exceptions.codec import CodecError, FieldDecodeError, SchemaError
from entitycache.core.exceptions.validation import MissingArgumentError, ValidationError

__all__ = [
    # Base
    "EntityCacheError",
    "ConfigurationError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheDisposedError",
    "CacheKeyError",
    "CacheBatchError",
    # Codec
    "CodecError",
    "SchemaError",
    "FieldDecodeError",
    # Validation
    "ValidationError",
    "MissingArgumentError",
]
