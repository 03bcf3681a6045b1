"""
System Constants and Enumerations

Constants shared by the codec, the scanner and the cache service.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for store types and log stages
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages attached to log entries as the ``stage`` field.

    Format: {PREFIX}.{SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    # Connection lifecycle
    CONNECT = "REDIS.2_CONNECT"
    DISCOVER_PRIMARIES = "REDIS.2.4_DISCOVER_PRIMARIES"
    DISCONNECT = "REDIS.3_DISCONNECT"

    # Codec
    SCHEMA_REGISTRATION = "CODEC.1_SCHEMA_REGISTRATION"
    FIELD_DECODE = "CODEC.2_FIELD_DECODE"

    # Cache service
    STRING_WRITE = "CACHE.1_STRING_WRITE"
    STRING_READ = "CACHE.2_STRING_READ"
    HASH_WRITE = "CACHE.3_HASH_WRITE"
    HASH_READ = "CACHE.4_HASH_READ"
    BATCH_WRITE = "CACHE.5_BATCH_WRITE"
    PARTIAL_READ = "CACHE.6_PARTIAL_READ"
    EXPIRATION = "CACHE.7_EXPIRATION"
    DELETE = "CACHE.8_DELETE"
    GEO = "CACHE.9_GEO"

    # Scatter-gather enumeration
    SCAN = "SCAN.1_CLUSTER_SCAN"
    NEAR_EXPIRY = "SCAN.2_NEAR_EXPIRY"


# ============================================================================
# Store-Level Types (as reported by the TYPE command)
# ============================================================================


class RedisType(str, Enum):
    """Value types reported by Redis ``TYPE`` and accepted by ``SCAN ... TYPE``."""

    NONE = "none"
    STRING = "string"
    HASH = "hash"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    STREAM = "stream"


# ============================================================================
# Payload Constants
# ============================================================================

TYPE_FIELD = "_Type"  # Reserved hash field holding the entity kind

NEVER_EXPIRE = -1  # Configured duration sentinel: no TTL
INVALIDATION_TTL_SECONDS = 5  # Short expiry used by explicit invalidation

KEY_SEPARATOR = ":"

# ============================================================================
# Enumeration Defaults
# ============================================================================

DEFAULT_PAGE = 0
DEFAULT_PAGE_SIZE = 20
SCAN_BATCH_SIZE = 250  # COUNT hint per SCAN call

SECONDS_PER_MINUTE = 60
SECONDS_PER_DAY = 86400

# ============================================================================
# Geo
# ============================================================================

GEO_UNIT_KM = "km"
GEO_SORT_ASC = "ASC"
