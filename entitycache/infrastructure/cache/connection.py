"""
Redis Connection Management

Architecture:
    ConnectionManager
        ├── one shared client (redis.asyncio.Redis or RedisCluster)
        ├── primary node clients (for scatter-gather SCAN)
        └── health checks

The shared client is created on first use and reused by every CacheService
that was handed this manager. redis-py clients are safe for concurrent use
from many coroutines, so callers need no locking of their own.

Primary Discovery:
- Cluster mode: one client per primary reported by the cluster topology
- Standalone: the shared client itself, if the server reports role=master
"""

import asyncio
import time
from typing import Any

import redis.asyncio as redis
from redis.asyncio.cluster import RedisCluster
from redis.asyncio.connection import ConnectionPool, SSLConnection, parse_url
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from entitycache.core.config.constants import Stage
from entitycache.core.config.settings import CacheSettings, get_settings
from entitycache.core.exceptions import CacheConnectionError, CacheDisposedError, ConfigurationError
from entitycache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

RedisHandle = redis.Redis | RedisCluster


class ConnectionManager:
    """
    Manages the Redis connection lifecycle.

    Responsibility: Lazy connection establishment, primary discovery, cleanup.

    Usage:
        manager = ConnectionManager(settings.cache)
        client = await manager.client()
        nodes = await manager.primaries()
        await manager.close()
    """

    def __init__(self, settings: CacheSettings | None = None):
        """
        Initialize connection manager.

        Args:
            settings: Cache settings (defaults to the global settings)
        """
        self._settings = settings or get_settings().cache
        self._pool: ConnectionPool | None = None
        self._client: RedisHandle | None = None
        self._primaries: list[redis.Redis] = []
        self._lock = asyncio.Lock()
        self._is_connected = False
        self._disposed = False

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    async def connect(self) -> RedisHandle:
        """
        Establish the shared connection and discover primary nodes.

        STAGE-REDIS.2: Connection establishment

        Concurrent first calls wait on one lock; only the first creates a client.

        Raises:
            CacheConnectionError: If connection fails
            ConfigurationError: If the endpoint URL is invalid
            CacheDisposedError: If the manager was closed
        """
        self._ensure_open()
        if self._client is not None:
            return self._client

        async with self._lock:
            self._ensure_open()
            if self._client is not None:
                return self._client

            try:
                client = self._create_client()
            except ValueError as e:
                logger.error("Invalid Redis endpoint", stage=Stage.CONNECT.value, error=str(e))
                raise ConfigurationError(
                    f"Invalid Redis endpoint: {e}", details={"endpoint": self._safe_endpoint()}
                ) from e

            try:
                await client.ping()
                primaries = await self._discover_primaries(client)
            except (ConnectionError, TimeoutError) as e:
                log_stage(
                    logger,
                    Stage.CONNECT,
                    "Failed to connect to Redis",
                    level="error",
                    endpoint=self._safe_endpoint(),
                    error=str(e),
                )
                await self._release(client, [])
                raise CacheConnectionError.from_exception(
                    e,
                    message=f"Failed to connect to Redis: {e}",
                    endpoint=self._safe_endpoint(),
                ) from e

            self._client = client
            self._primaries = primaries
            self._is_connected = True

            log_stage(
                logger,
                Stage.CONNECT,
                "Redis connected successfully",
                endpoint=self._safe_endpoint(),
                cluster_mode=self._settings.CLUSTER_MODE,
                database=self._settings.DATABASE_INDEX,
                primaries=len(primaries),
            )
            return client

    async def client(self) -> RedisHandle:
        """Get the shared client, connecting on first use."""
        return await self.connect()

    async def primaries(self) -> list[redis.Redis]:
        """Get the primary (non-replica) node clients, connecting on first use."""
        await self.connect()
        return list(self._primaries)

    async def close(self) -> None:
        """
        Close the shared client, node clients and pool.

        STAGE-REDIS.3: Connection cleanup

        Any later use raises CacheDisposedError.
        """
        if self._disposed:
            return

        async with self._lock:
            self._disposed = True
            client, primaries = self._client, self._primaries
            self._client = None
            self._primaries = []
            self._is_connected = False
            await self._release(client, primaries)

        log_stage(logger, Stage.DISCONNECT, "Redis disconnected")

    async def ping(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if healthy, False otherwise
        """
        try:
            if self._client and self._is_connected:
                await self._client.ping()
                return True
        except (ConnectionError, TimeoutError):
            pass
        return False

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on the Redis connection.

        Returns:
            Dict with health status, ping latency and primary count
        """
        health = {
            "status": "healthy",
            "connected": self._is_connected,
            "endpoint": self._safe_endpoint(),
            "cluster_mode": self._settings.CLUSTER_MODE,
            "primaries": len(self._primaries),
            "ping_latency_ms": None,
        }

        if not self._client:
            health["status"] = "unhealthy"
            health["error"] = "Client not initialized"
            return health

        try:
            start = time.perf_counter()
            await self._client.ping()
            health["ping_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        except RedisError as e:
            health["status"] = "unhealthy"
            health["error"] = str(e)

        return health

    def is_connected(self) -> bool:
        return self._is_connected

    def is_disposed(self) -> bool:
        return self._disposed

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._disposed:
            raise CacheDisposedError(
                "Connection manager has been closed",
                details={"endpoint": self._safe_endpoint()},
            )

    def _create_client(self) -> RedisHandle:
        s = self._settings
        if s.CLUSTER_MODE:
            if s.DATABASE_INDEX:
                logger.warning(
                    "Redis Cluster only supports database 0, ignoring DATABASE_INDEX",
                    stage=Stage.CONNECT.value,
                    database=s.DATABASE_INDEX,
                )
            return RedisCluster.from_url(
                s.CONNECTION_ENDPOINT,
                decode_responses=True,
                socket_timeout=s.SOCKET_TIMEOUT,
                socket_connect_timeout=s.SOCKET_CONNECT_TIMEOUT,
                max_connections=s.MAX_CONNECTIONS,
            )

        self._pool = ConnectionPool.from_url(
            s.CONNECTION_ENDPOINT,
            db=s.DATABASE_INDEX,
            decode_responses=True,
            socket_timeout=s.SOCKET_TIMEOUT,
            socket_connect_timeout=s.SOCKET_CONNECT_TIMEOUT,
            max_connections=s.MAX_CONNECTIONS,
        )
        return redis.Redis(connection_pool=self._pool)

    async def _discover_primaries(self, client: RedisHandle) -> list[redis.Redis]:
        """
        Find the nodes to scan.

        STAGE-REDIS.2.4: Primary discovery
        """
        if isinstance(client, RedisCluster):
            node_kwargs = self._node_kwargs()
            primaries = [
                redis.Redis(host=node.host, port=node.port, **node_kwargs)
                for node in client.get_primaries()
            ]
        else:
            replication = await client.info("replication")
            primaries = [client] if replication.get("role") == "master" else []
            if not primaries:
                logger.warning(
                    "Connected server is a replica, key enumeration will return nothing",
                    stage=Stage.DISCOVER_PRIMARIES.value,
                    endpoint=self._safe_endpoint(),
                )

        log_stage(
            logger,
            Stage.DISCOVER_PRIMARIES,
            "Primary nodes discovered",
            level="debug",
            nodes=[self._describe(node) for node in primaries],
        )
        return primaries

    def _node_kwargs(self) -> dict[str, Any]:
        url = parse_url(self._settings.CONNECTION_ENDPOINT)
        kwargs: dict[str, Any] = {
            "decode_responses": True,
            "socket_timeout": self._settings.SOCKET_TIMEOUT,
            "socket_connect_timeout": self._settings.SOCKET_CONNECT_TIMEOUT,
        }
        if url.get("username"):
            kwargs["username"] = url["username"]
        if url.get("password"):
            kwargs["password"] = url["password"]
        if url.get("connection_class") is SSLConnection:
            kwargs["ssl"] = True
        return kwargs

    async def _release(self, client: RedisHandle | None, primaries: list[redis.Redis]) -> None:
        for node in primaries:
            if node is not client:
                await node.aclose()
        if client is not None:
            await client.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    @staticmethod
    def _describe(node: redis.Redis) -> str:
        pool = getattr(node, "connection_pool", None)
        kwargs = getattr(pool, "connection_kwargs", None) or {}
        return f"{kwargs.get('host', kwargs.get('path', '?'))}:{kwargs.get('port', '')}"

    def _safe_endpoint(self) -> str:
        # Strip credentials before logging
        endpoint = self._settings.CONNECTION_ENDPOINT
        if "@" in endpoint:
            scheme, _, rest = endpoint.partition("://")
            return f"{scheme}://***@{rest.rpartition('@')[2]}"
        return endpoint


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_connection_manager: ConnectionManager | None = None


def get_connection_manager() -> ConnectionManager:
    """
    Get the global connection manager (singleton).

    Returns:
        ConnectionManager built from the global settings
    """
    global _connection_manager

    if _connection_manager is None:
        _connection_manager = ConnectionManager()

    return _connection_manager


async def init_connection() -> ConnectionManager:
    """
    Initialize and connect the global connection manager.

    Returns:
        Connected ConnectionManager
    """
    manager = get_connection_manager()
    await manager.connect()
    return manager


async def close_connection() -> None:
    """Close the global connection manager."""
    global _connection_manager

    if _connection_manager:
        await _connection_manager.close()
        _connection_manager = None
