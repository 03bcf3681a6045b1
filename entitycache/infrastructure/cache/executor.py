"""
Redis Operation Executor

Executes individual Redis commands against the ConnectionManager's shared
client with consistent error handling.

Error Handling Strategy:
- Catch RedisError exceptions
- Log error with context (stage, key, etc.)
- Raise CacheKeyError with details, chained to the Redis error
- Replies that are not valid UTF-8 raise CodecError
- Connection and disposal errors from the manager pass through untouched
"""

from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import Any

from redis.exceptions import RedisError

from entitycache.core.config.constants import GEO_SORT_ASC, GEO_UNIT_KM, SCAN_BATCH_SIZE, Stage
from entitycache.core.exceptions import CacheKeyError, CodecError
from entitycache.core.logging.logger import get_logger
from entitycache.infrastructure.cache.connection import ConnectionManager

logger = get_logger(__name__)


class OperationExecutor:
    """
    Executes Redis operations with consistent error handling.

    Responsibility: Command execution with error handling and logging.

    Every method resolves the shared client through the ConnectionManager, so
    the first command connects lazily and commands after ``close()`` raise
    CacheDisposedError.
    """

    def __init__(self, connection: ConnectionManager):
        """
        Initialize operation executor.

        Args:
            connection: Connection manager owning the shared client
        """
        self._connection = connection

    def _failed(self, command: str, stage: Stage, error: RedisError, **context: Any) -> CacheKeyError:
        logger.error(f"Redis {command} failed", stage=stage.value, error=str(error), **context)
        return CacheKeyError(message=f"Redis {command} failed: {error}", details=context)

    def _undecodable(self, command: str, stage: Stage, error: UnicodeDecodeError, **context: Any) -> CodecError:
        logger.error(f"Redis {command} reply is not valid UTF-8", stage=stage.value, error=str(error), **context)
        return CodecError(message=f"Redis {command} reply is not valid UTF-8: {error}", details=context)

    # -------------------------------------------------------------------------
    # Key Operations
    # -------------------------------------------------------------------------

    async def type(self, key: str) -> str:
        """
        Get the store type of a key.

        Returns:
            "string", "hash", ... or "none" if the key does not exist
        """
        client = await self._connection.client()
        try:
            return await client.type(key)
        except RedisError as e:
            raise self._failed("TYPE", Stage.STRING_READ, e, key=key) from e

    async def exists(self, key: str) -> bool:
        client = await self._connection.client()
        try:
            return await client.exists(key) > 0
        except RedisError as e:
            raise self._failed("EXISTS", Stage.STRING_READ, e, key=key) from e

    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed and was removed
        """
        client = await self._connection.client()
        try:
            return await client.delete(key) > 0
        except RedisError as e:
            raise self._failed("DEL", Stage.DELETE, e, key=key) from e

    async def expire(self, key: str, seconds: int) -> bool:
        """
        Set a key's time-to-live.

        Returns:
            True if the timeout was set (the key exists)
        """
        client = await self._connection.client()
        try:
            return bool(await client.expire(key, seconds))
        except RedisError as e:
            raise self._failed("EXPIRE", Stage.EXPIRATION, e, key=key, seconds=seconds) from e

    async def persist(self, key: str) -> bool:
        """
        Remove a key's time-to-live.

        Returns:
            True if a timeout was removed
        """
        client = await self._connection.client()
        try:
            return bool(await client.persist(key))
        except RedisError as e:
            raise self._failed("PERSIST", Stage.EXPIRATION, e, key=key) from e

    async def ttl(self, key: str, node: Any | None = None) -> int:
        """
        Get a key's remaining time-to-live in seconds.

        Args:
            key: Redis key
            node: Node client to ask instead of the shared client

        Returns:
            Seconds left, -1 if the key has no expiry, -2 if it does not exist
        """
        client = node if node is not None else await self._connection.client()
        try:
            return await client.ttl(key)
        except RedisError as e:
            raise self._failed("TTL", Stage.NEAR_EXPIRY, e, key=key) from e

    # -------------------------------------------------------------------------
    # String Operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        client = await self._connection.client()
        try:
            return await client.get(key)
        except RedisError as e:
            raise self._failed("GET", Stage.STRING_READ, e, key=key) from e
        except UnicodeDecodeError as e:
            raise self._undecodable("GET", Stage.STRING_READ, e, key=key) from e

    async def set(self, key: str, value: bytes | str, ttl: int | None = None) -> bool:
        """
        Set a string value.

        Args:
            key: Redis key
            value: Value to store
            ttl: Time-to-live in seconds (None keeps the key forever)

        Returns:
            True if set successfully
        """
        client = await self._connection.client()
        try:
            return bool(await client.set(key, value, ex=ttl))
        except RedisError as e:
            raise self._failed("SET", Stage.STRING_WRITE, e, key=key) from e

    # -------------------------------------------------------------------------
    # Hash Operations
    # -------------------------------------------------------------------------

    async def hset(self, name: str, mapping: Mapping[str, str]) -> int:
        """
        Write several hash fields at once.

        Returns:
            Number of fields that were newly added
        """
        client = await self._connection.client()
        try:
            return await client.hset(name, mapping=dict(mapping))
        except RedisError as e:
            raise self._failed("HSET", Stage.HASH_WRITE, e, name=name) from e

    async def hgetall(self, name: str) -> dict[str, str]:
        client = await self._connection.client()
        try:
            return await client.hgetall(name)
        except RedisError as e:
            raise self._failed("HGETALL", Stage.HASH_READ, e, name=name) from e
        except UnicodeDecodeError as e:
            raise self._undecodable("HGETALL", Stage.HASH_READ, e, name=name) from e

    async def hexists(self, name: str, key: str) -> bool:
        client = await self._connection.client()
        try:
            return bool(await client.hexists(name, key))
        except RedisError as e:
            raise self._failed("HEXISTS", Stage.PARTIAL_READ, e, name=name, key=key) from e

    async def hget(self, name: str, key: str, node: Any | None = None) -> str | None:
        """
        Get a hash field value.

        Args:
            name: Hash name
            key: Field name
            node: Node client to ask instead of the shared client

        Returns:
            Field value or None if not found
        """
        client = node if node is not None else await self._connection.client()
        try:
            return await client.hget(name, key)
        except RedisError as e:
            raise self._failed("HGET", Stage.PARTIAL_READ, e, name=name, key=key) from e
        except UnicodeDecodeError as e:
            raise self._undecodable("HGET", Stage.PARTIAL_READ, e, name=name, key=key) from e

    # -------------------------------------------------------------------------
    # Batch Operations
    # -------------------------------------------------------------------------

    async def execute_batch(self, build: Callable[[Any], None]) -> list[Any]:
        """
        Run commands in one non-transactional pipeline.

        Every queued command runs even if an earlier one fails; failures come
        back as exception instances in the result list, in queue order.

        Usage:
            results = await executor.execute_batch(
                lambda pipe: [pipe.hset(k, mapping=m) for k, m in items]
            )

        Args:
            build: Callback that queues commands on the pipeline

        Returns:
            One result (or exception) per queued command
        """
        client = await self._connection.client()
        try:
            async with client.pipeline(transaction=False) as pipe:
                build(pipe)
                return await pipe.execute(raise_on_error=False)
        except RedisError as e:
            raise self._failed("PIPELINE", Stage.BATCH_WRITE, e) from e

    # -------------------------------------------------------------------------
    # Scan Operations
    # -------------------------------------------------------------------------

    async def scan_iter(
        self, node: Any, match: str, type_: str | None = None
    ) -> AsyncIterator[str]:
        """
        Iterate keys of one node matching a glob pattern.

        Args:
            node: Node client to scan
            match: Glob pattern
            type_: Only yield keys of this store type

        Yields:
            Matching keys (a key may repeat across SCAN pages)
        """
        try:
            async for key in node.scan_iter(match=match, count=SCAN_BATCH_SIZE, _type=type_):
                yield key
        except RedisError as e:
            raise self._failed("SCAN", Stage.SCAN, e, match=match, type=type_) from e

    # -------------------------------------------------------------------------
    # Geo Operations
    # -------------------------------------------------------------------------

    async def geoadd(self, name: str, entries: Iterable[tuple[float, float, str]]) -> int:
        """
        Add (longitude, latitude, member) triples to a geo set.

        Returns:
            Number of members newly added
        """
        values: list[Any] = []
        for longitude, latitude, member in entries:
            values.extend((longitude, latitude, member))
        if not values:
            return 0

        client = await self._connection.client()
        try:
            return await client.geoadd(name, values)
        except RedisError as e:
            raise self._failed("GEOADD", Stage.GEO, e, name=name) from e

    async def georadius(
        self, name: str, longitude: float, latitude: float, radius_km: float
    ) -> list[list[Any]]:
        """
        Members within a radius of a coordinate, nearest first, with distance.

        Returns:
            [[member, distance_km], ...]
        """
        client = await self._connection.client()
        try:
            return await client.georadius(
                name, longitude, latitude, radius_km,
                unit=GEO_UNIT_KM, withdist=True, sort=GEO_SORT_ASC,
            )
        except RedisError as e:
            raise self._failed("GEORADIUS", Stage.GEO, e, name=name) from e

    async def georadiusbymember(
        self, name: str, member: str, radius_km: float
    ) -> list[list[Any]]:
        """
        Members within a radius of another member, nearest first, with distance.

        Returns:
            [[member, distance_km], ...]
        """
        client = await self._connection.client()
        try:
            return await client.georadiusbymember(
                name, member, radius_km,
                unit=GEO_UNIT_KM, withdist=True, sort=GEO_SORT_ASC,
            )
        except RedisError as e:
            raise self._failed("GEORADIUSBYMEMBER", Stage.GEO, e, name=name, member=member) from e
