"""
Core Module

Foundational components: configuration, logging and exceptions.
"""

from .exceptions import (
    CacheBatchError,
    CacheConnectionError,
    CacheDisposedError,
    CacheError,
    CacheKeyError,
    CodecError,
    ConfigurationError,
    EntityCacheError,
    FieldDecodeError,
    MissingArgumentError,
    SchemaError,
    ValidationError,
)
from .logging import get_logger, log_stage, setup_logging

__all__ = [
    # Exceptions
    "EntityCacheError",
    "ConfigurationError",
    "CacheError",
    "CacheConnectionError",
    "CacheDisposedError",
    "CacheKeyError",
    "CacheBatchError",
    "CodecError",
    "SchemaError",
    "FieldDecodeError",
    "ValidationError",
    "MissingArgumentError",
    # Logging
    "get_logger",
    "log_stage",
    "setup_logging",
]
