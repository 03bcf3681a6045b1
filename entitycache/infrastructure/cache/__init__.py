"""
Cache Module

Typed entity cache over a shared Redis connection.
"""

from .cache_service import CacheService, GeoEntry, GeoRadiusResult, create_cache_service
from .connection import (
    ConnectionManager,
    close_connection,
    get_connection_manager,
    init_connection,
)
from .executor import OperationExecutor
from .key_namespace import KeyNamespace
from .scanner import ClusterScanner

__all__ = [
    "CacheService",
    "GeoEntry",
    "GeoRadiusResult",
    "create_cache_service",
    "ConnectionManager",
    "get_connection_manager",
    "init_connection",
    "close_connection",
    "OperationExecutor",
    "KeyNamespace",
    "ClusterScanner",
]
