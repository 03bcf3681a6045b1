"""
Cluster Scanner

Scatter-gather key enumeration across every primary node.

Algorithm:
1. Ask the ConnectionManager for the primary node clients
2. SCAN each node with MATCH pattern and TYPE filter
3. Optionally keep only hashes whose ``_Type`` field equals the entity kind
4. Union the keys (deduplicated, node order, then SCAN order)

The whole result set is materialized before pagination, so one page costs a
full walk of the matching keyspace.
"""

from typing import Any

from entitycache.core.config.constants import SECONDS_PER_DAY, TYPE_FIELD, RedisType, Stage
from entitycache.core.exceptions import ValidationError
from entitycache.core.logging.logger import get_logger, log_stage
from entitycache.infrastructure.cache.connection import ConnectionManager
from entitycache.infrastructure.cache.executor import OperationExecutor

logger = get_logger(__name__)


class ClusterScanner:
    """
    Enumerates namespaced keys on all primary nodes.

    Usage:
        scanner = ClusterScanner(connection, executor)
        keys = await scanner.scan("Person:RedisPerson:*", RedisType.HASH, kind="Person")
        page = ClusterScanner.paginate(keys, page=1, page_size=20)
    """

    def __init__(self, connection: ConnectionManager, executor: OperationExecutor):
        self._connection = connection
        self._executor = executor

    async def scan(
        self, pattern: str, store_type: RedisType, kind: str | None = None
    ) -> list[str]:
        """
        Collect every key matching ``pattern`` with the given store type.

        Args:
            pattern: Glob pattern, e.g. "Person:RedisPerson:*"
            store_type: Store type to keep
            kind: For hashes, only keep keys whose ``_Type`` equals this

        Returns:
            Unordered list of unique keys from all primaries
        """
        return [key for _, key in await self._collect(pattern, store_type, kind)]

    async def scan_near_expiry(self, pattern: str, kind: str, days: float) -> list[str]:
        """
        Collect hash keys of ``kind`` that expire in less than ``days`` days.

        Keys without a TTL are never near expiry.
        """
        threshold = days * SECONDS_PER_DAY
        near = []
        for node, key in await self._collect(pattern, RedisType.HASH, kind):
            ttl = await self._executor.ttl(key, node=node)
            if 0 <= ttl < threshold:
                near.append(key)

        log_stage(
            logger,
            Stage.NEAR_EXPIRY,
            "Near-expiry scan complete",
            level="debug",
            pattern=pattern,
            days=days,
            found=len(near),
        )
        return near

    @staticmethod
    def validate_page(page: int, page_size: int) -> None:
        """
        Raises:
            ValidationError: If page is negative or page_size is not positive
        """
        if page < 0:
            raise ValidationError("Page must not be negative", details={"page": page})
        if page_size <= 0:
            raise ValidationError("Page size must be positive", details={"page_size": page_size})

    @staticmethod
    def paginate(keys: list[str], page: int, page_size: int) -> list[str]:
        """Slice one page out of a materialized key list."""
        ClusterScanner.validate_page(page, page_size)
        start = page * page_size
        return keys[start:start + page_size]

    async def _collect(
        self, pattern: str, store_type: RedisType, kind: str | None
    ) -> list[tuple[Any, str]]:
        seen: set[str] = set()
        found: list[tuple[Any, str]] = []
        primaries = await self._connection.primaries()

        for node in primaries:
            async for key in self._executor.scan_iter(node, pattern, store_type.value):
                if key in seen:
                    continue
                seen.add(key)
                if kind is not None and await self._executor.hget(key, TYPE_FIELD, node=node) != kind:
                    continue
                found.append((node, key))

        log_stage(
            logger,
            Stage.SCAN,
            "Cluster scan complete",
            level="debug",
            pattern=pattern,
            type=store_type.value,
            nodes=len(primaries),
            found=len(found),
        )
        return found
