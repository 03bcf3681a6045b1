"""
Cache Service - Typed Entity Cache over Redis

Stores and retrieves entities of one type under one contract namespace.

Architecture:
    CacheService[T]
        ├── KeyNamespace      "{system}:{contract}:{key}"
        ├── EntityCodec[T]    entity <-> hash fields / JSON blob
        ├── OperationExecutor single commands and pipelines
        └── ClusterScanner    multi-key enumeration on every primary

Storage Modes:
- String mode: the whole entity as one orjson document (SET/GET)
- Hash mode: one hash field per entity field plus ``_Type`` (HSET/HGETALL)

TTL Precedence (every write):
    explicit duration (minutes) > configured CACHE_DURATION_MINUTES > none
    A resolved duration of -1 means the key never expires.

Usage:
    connection = ConnectionManager(settings.cache)
    people = CacheService(connection, Person, "RedisPerson")

    await people.set_hash("5", Person(Id=5, Name="Mahyar"))
    person = await people.get_hash("5")
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from entitycache.codec.entity_codec import EntityCodec
from entitycache.core.config.constants import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    INVALIDATION_TTL_SECONDS,
    NEVER_EXPIRE,
    SECONDS_PER_MINUTE,
    RedisType,
    Stage,
)
from entitycache.core.exceptions import CacheBatchError, MissingArgumentError, ValidationError
from entitycache.core.logging.logger import get_logger, log_stage
from entitycache.infrastructure.cache.connection import ConnectionManager, get_connection_manager
from entitycache.infrastructure.cache.executor import OperationExecutor
from entitycache.infrastructure.cache.key_namespace import KeyNamespace
from entitycache.infrastructure.cache.scanner import ClusterScanner

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class GeoEntry:
    """A named point for GEOADD."""

    longitude: float
    latitude: float
    member: str


@dataclass(frozen=True)
class GeoRadiusResult:
    """One radius query hit, with its distance from the center in km."""

    member: str
    distance_km: float


class CacheService(Generic[T]):
    """
    Typed cache for one entity type under one contract.

    Args:
        connection: Shared connection manager (its settings supply the
            system name and the default duration)
        entity_type: The ``@cacheable`` dataclass stored by this service
        contract_name: Second key segment, one per logical collection
    """

    def __init__(self, connection: ConnectionManager, entity_type: type[T], contract_name: str):
        settings = connection.settings
        self._connection = connection
        self._duration = settings.CACHE_DURATION_MINUTES
        self._namespace = KeyNamespace(settings.SYSTEM_NAME, contract_name)
        self._codec: EntityCodec[T] = EntityCodec(entity_type)
        self._executor = OperationExecutor(connection)
        self._scanner = ClusterScanner(connection, self._executor)

    @property
    def namespace(self) -> KeyNamespace:
        return self._namespace

    @property
    def codec(self) -> EntityCodec[T]:
        return self._codec

    @property
    def kind(self) -> str:
        return self._codec.kind

    def complete_key(self, key: str | int) -> str:
        return self._namespace.complete(key)

    # =========================================================================
    # String Mode
    # =========================================================================

    async def set_string(self, key: str | int, value: T | None, duration: int | None = None) -> bool:
        """
        Store an entity as one JSON document.

        STAGE-CACHE.1: String write

        Args:
            key: Caller key (namespaced automatically)
            value: Entity to store; None deletes the key
            duration: TTL in minutes, overrides the configured duration

        Returns:
            True if the value was stored (or the key removed for None)
        """
        full_key = self._namespace.complete(key)
        if value is None:
            await self._executor.delete(full_key)
            return True

        ttl = self._ttl_seconds(duration)
        stored = await self._executor.set(full_key, self._codec.encode_blob(value), ttl=ttl)
        log_stage(logger, Stage.STRING_WRITE, "String entry written", level="debug", key=full_key, ttl=ttl)
        return stored

    async def set_string_range(self, inputs: Mapping[str, T | None], duration: int | None = None) -> None:
        """Store several entities in string mode, one command at a time."""
        for key, value in inputs.items():
            await self.set_string(key, value, duration)

    async def get_string(self, key: str | int) -> T | None:
        """
        Read an entity stored in string mode.

        STAGE-CACHE.2: String read

        Returns:
            The entity, or None if the key is missing, not a string, or holds
            another kind
        """
        return await self._read_string(self._namespace.complete(key))

    # =========================================================================
    # Hash Mode
    # =========================================================================

    async def set_hash(self, key: str | int, value: T, duration: int | None = None) -> None:
        """
        Store an entity as a hash, then apply the TTL.

        STAGE-CACHE.3: Hash write

        Fields are merged into the stored hash with HSET. A field that was
        written earlier and is None (so omitted) now keeps its old value;
        ``delete`` the key first for a clean snapshot. A never-expire
        duration removes any earlier TTL.

        Args:
            key: Caller key (namespaced automatically)
            value: Entity to store
            duration: TTL in minutes, overrides the configured duration
        """
        if value is None:
            raise MissingArgumentError("value")

        full_key = self._namespace.complete(key)
        ttl = self._ttl_seconds(duration)
        await self._executor.hset(full_key, self._codec.encode_mapping(value))
        if ttl is None:
            await self._executor.persist(full_key)
        else:
            await self._executor.expire(full_key, ttl)
        log_stage(logger, Stage.HASH_WRITE, "Hash entry written", level="debug", key=full_key, ttl=ttl)

    async def get_hash(self, key: str | int) -> T | None:
        """
        Read an entity stored in hash mode.

        STAGE-CACHE.4: Hash read

        Returns:
            The entity, or None if the key is missing, not a hash, or tagged
            with another kind

        Raises:
            FieldDecodeError: If a stored field value cannot be parsed
        """
        return await self._read_hash(self._namespace.complete(key))

    async def set_hash_range(
        self,
        inputs: Mapping[str, T] | Iterable[T],
        key_selector: Callable[[T], Any] | None = None,
    ) -> None:
        """
        Store many entities in hash mode through one pipeline.

        STAGE-CACHE.5: Batch write

        A mapping is stored under its own keys. Any other iterable needs
        ``key_selector`` to derive each key from its entity. Each HSET is
        followed by EXPIRE (configured duration) or PERSIST (never expire),
        all sent in caller order as one non-transactional batch.

        Raises:
            MissingArgumentError: Entities given without a key_selector
            CacheBatchError: One or more commands of the batch failed;
                the others stay applied
        """
        if isinstance(inputs, Mapping):
            items = list(inputs.items())
        else:
            if key_selector is None:
                raise MissingArgumentError("key_selector")
            items = [(key_selector(entity), entity) for entity in inputs]

        payloads = [
            (self._namespace.complete(key), self._codec.encode_mapping(entity))
            for key, entity in items
        ]
        if not payloads:
            return

        ttl = self._ttl_seconds(None)

        def queue(pipe: Any) -> None:
            for full_key, mapping in payloads:
                pipe.hset(full_key, mapping=mapping)
                if ttl is None:
                    pipe.persist(full_key)
                else:
                    pipe.expire(full_key, ttl)

        results = await self._executor.execute_batch(queue)
        errors = [result for result in results if isinstance(result, Exception)]
        if errors:
            log_stage(
                logger,
                Stage.BATCH_WRITE,
                "Hash batch had failed commands",
                level="error",
                contract=self._namespace.contract_name,
                commands=len(results),
                failed=len(errors),
                error=str(errors[0]),
            )
            raise CacheBatchError(
                f"{len(errors)} of {len(results)} batched commands failed: {errors[0]}",
                details={"failed": len(errors), "commands": len(results)},
            )

        log_stage(
            logger,
            Stage.BATCH_WRITE,
            "Hash batch written",
            level="debug",
            contract=self._namespace.contract_name,
            entries=len(payloads),
            ttl=ttl,
        )

    async def hash_exists(self, key: str | int, field: str) -> bool:
        """Check whether a stored hash has the given field."""
        return await self._executor.hexists(self._namespace.complete(key), field)

    async def get_partial_hash(self, key: str | int, fields: Iterable[str]) -> list[tuple[str, str]]:
        """
        Read selected raw fields of a stored hash.

        STAGE-CACHE.6: Partial read

        Returns:
            (field, value) pairs in request order; missing fields are skipped
        """
        full_key = self._namespace.complete(key)
        result = []
        for field in fields:
            if not await self._executor.hexists(full_key, field):
                continue
            value = await self._executor.hget(full_key, field)
            # Removed between HEXISTS and HGET
            if value is None:
                continue
            result.append((field, value))
        return result

    # =========================================================================
    # Enumeration
    # =========================================================================

    async def get_all_hash(self, page: int = DEFAULT_PAGE, page_size: int = DEFAULT_PAGE_SIZE) -> list[T]:
        """
        One page of the hash entities of this contract and kind.

        Pages are windows over one full, unordered key enumeration.
        """
        ClusterScanner.validate_page(page, page_size)
        keys = await self._scan_hash_keys()
        entities = []
        for full_key in ClusterScanner.paginate(keys, page, page_size):
            entity = await self._read_hash(full_key)
            if entity is not None:
                entities.append(entity)
        return entities

    async def get_all_string(self, page: int = DEFAULT_PAGE, page_size: int = DEFAULT_PAGE_SIZE) -> list[T]:
        """One page of the string-mode entities of this contract."""
        ClusterScanner.validate_page(page, page_size)
        keys = await self._scanner.scan(self._namespace.pattern(), RedisType.STRING)
        entities = []
        for full_key in ClusterScanner.paginate(keys, page, page_size):
            entity = await self._read_string(full_key)
            if entity is not None:
                entities.append(entity)
        return entities

    async def count_all_hash(self) -> int:
        return len(await self._scan_hash_keys())

    async def count_all_string(self) -> int:
        return len(await self._scanner.scan(self._namespace.pattern(), RedisType.STRING))

    async def get_all_keys_hash(self, prefix: str = "") -> list[str]:
        """Full keys of this contract's hashes of this kind, optionally narrowed by a key prefix."""
        return await self._scan_hash_keys(prefix)

    async def get_all_keys_string(self) -> list[str]:
        """Full keys of this contract's string entries."""
        return await self._scanner.scan(self._namespace.pattern(), RedisType.STRING)

    async def get_near_expire_hash(self, days: float) -> list[str]:
        """
        Full keys of this kind's hashes that expire in less than ``days`` days.

        STAGE-SCAN.2: Near-expiry detection

        Keys without a TTL are not returned.
        """
        if days < 0:
            raise ValidationError("Days must not be negative", details={"days": days})
        return await self._scanner.scan_near_expiry(self._namespace.pattern(), self._codec.kind, days)

    # =========================================================================
    # Common
    # =========================================================================

    async def exists(self, key: str | int) -> bool:
        return await self._executor.exists(self._namespace.complete(key))

    async def set_expiration(self, key: str | int) -> bool:
        """
        Expire a key in a few seconds.

        STAGE-CACHE.7: Invalidation

        Returns:
            True if the key exists and the timeout was set
        """
        return await self._executor.expire(self._namespace.complete(key), INVALIDATION_TTL_SECONDS)

    async def delete(self, key: str | int) -> bool:
        """
        Delete a namespaced key.

        STAGE-CACHE.8: Delete

        Returns:
            True if the key existed
        """
        full_key = self._namespace.complete(key)
        deleted = await self._executor.delete(full_key)
        log_stage(logger, Stage.DELETE, "Cache entry deleted", level="debug", key=full_key, deleted=deleted)
        return deleted

    async def delete_raw(self, key: str) -> bool:
        """Delete a key exactly as given, without the namespace prefix."""
        return await self._executor.delete(key)

    async def close(self) -> None:
        """Dispose the shared connection; every service using it stops working."""
        await self._connection.close()

    # =========================================================================
    # Geo
    # =========================================================================

    async def set_geo(self, key: str | int, entries: Iterable[GeoEntry]) -> int:
        """
        Add named points to a geo set.

        STAGE-CACHE.9: Geo indexing

        Returns:
            Number of members newly added
        """
        return await self._executor.geoadd(
            self._namespace.complete(key),
            [(entry.longitude, entry.latitude, entry.member) for entry in entries],
        )

    async def get_radius_by_member(
        self, key: str | int, member: str, radius_km: float
    ) -> list[GeoRadiusResult]:
        """Members within ``radius_km`` of ``member``, nearest first."""
        hits = await self._executor.georadiusbymember(self._namespace.complete(key), member, radius_km)
        return self._radius_results(hits)

    async def get_radius_by_coordinate(
        self, key: str | int, latitude: float, longitude: float, radius_km: float
    ) -> list[GeoRadiusResult]:
        """Members within ``radius_km`` of a coordinate, nearest first."""
        hits = await self._executor.georadius(self._namespace.complete(key), longitude, latitude, radius_km)
        return self._radius_results(hits)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ttl_seconds(self, duration: int | None) -> int | None:
        if duration is not None and duration != NEVER_EXPIRE and duration <= 0:
            raise ValidationError(
                f"Duration must be {NEVER_EXPIRE} (never expire) or a positive number of minutes",
                details={"duration": duration},
            )
        minutes = duration if duration is not None else self._duration
        if minutes is None or minutes == NEVER_EXPIRE:
            return None
        return minutes * SECONDS_PER_MINUTE

    async def _scan_hash_keys(self, prefix: str = "") -> list[str]:
        return await self._scanner.scan(self._namespace.pattern(prefix), RedisType.HASH, kind=self._codec.kind)

    async def _read_hash(self, full_key: str) -> T | None:
        if await self._executor.type(full_key) != RedisType.HASH.value:
            return None
        fields = await self._executor.hgetall(full_key)
        return self._codec.decode(fields)

    async def _read_string(self, full_key: str) -> T | None:
        if await self._executor.type(full_key) != RedisType.STRING.value:
            return None
        return self._codec.decode_blob(await self._executor.get(full_key))

    @staticmethod
    def _radius_results(hits: list[list[Any]]) -> list[GeoRadiusResult]:
        return [GeoRadiusResult(member=member, distance_km=float(distance)) for member, distance in hits]


def create_cache_service(entity_type: type[T], contract_name: str) -> CacheService[T]:
    """
    Build a CacheService on the global connection manager.

    Args:
        entity_type: The ``@cacheable`` dataclass to store
        contract_name: Contract (collection) name
    """
    return CacheService(get_connection_manager(), entity_type, contract_name)
