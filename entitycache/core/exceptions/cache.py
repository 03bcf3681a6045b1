"""
Cache-Related Exceptions

All exceptions raised while talking to the remote cache store.
"""

from entitycache.core.exceptions.base import EntityCacheError


class CacheError(EntityCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the cache store.

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect endpoint configuration
    - Authentication failure
    """
    pass


class CacheDisposedError(CacheConnectionError):
    """Raised when a connection is used after it was closed."""
    pass


class CacheKeyError(CacheError):
    """
    Raised when a single cache command fails.

    Wraps the redis-py exception; the original is chained as ``__cause__``.
    """
    pass


class CacheBatchError(CacheError):
    """
    Raised when one or more commands of a pipelined batch failed.

    Commands that succeeded before or after the failure stay applied.
    ``details["failed"]`` holds the number of failed commands.
    """
    pass
