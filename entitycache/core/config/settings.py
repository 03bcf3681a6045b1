"""
Centralized Configuration Module using Pydantic Settings

Type-safe, environment-based configuration for the entity cache layer.
The cache section is the configuration value object every CacheService
consumes; the contract name is supplied per service at construction.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from entitycache.core.config.constants import NEVER_EXPIRE

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _validate_duration(v: int) -> int:
    if v != NEVER_EXPIRE and v <= 0:
        raise ValueError(
            f"CACHE_DURATION_MINUTES must be {NEVER_EXPIRE} (never expire) or a positive number"
        )
    return v


def _validate_log_level(v: str) -> str:
    if v.upper() not in VALID_LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL must be one of {VALID_LOG_LEVELS}")
    return v.upper()


class CacheSettings(BaseSettings):
    """
    Cache configuration value object.

    STAGE-0.1: Cache connection configuration

    Attributes:
        CACHE_DURATION_MINUTES: Default TTL for writes, -1 means never expire
        SYSTEM_NAME: First segment of every cache key
        CONNECTION_ENDPOINT: Redis URL (redis://, rediss://, unix://)
        DATABASE_INDEX: Logical database (standalone servers only)
        CLUSTER_MODE: Connect with the cluster client and scan every primary
    """

    CACHE_DURATION_MINUTES: int = Field(default=NEVER_EXPIRE, description="Default TTL in minutes (-1 = never)")
    SYSTEM_NAME: str = Field(default="entitycache", description="System name used as key prefix")
    CONNECTION_ENDPOINT: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    DATABASE_INDEX: int = Field(default=0, ge=0, le=15, description="Redis database number")
    CLUSTER_MODE: bool = Field(default=False, description="Use Redis Cluster client")

    SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")

    @field_validator("CACHE_DURATION_MINUTES")
    @classmethod
    def validate_duration(cls, v):
        """Validate the configured cache duration."""
        return _validate_duration(v)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        return _validate_log_level(v)

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from entitycache.core.config.settings import get_settings

        settings = get_settings()
        endpoint = settings.cache.CONNECTION_ENDPOINT
    """

    # Cache settings
    CACHE_DURATION_MINUTES: int = Field(default=NEVER_EXPIRE, description="Default TTL in minutes (-1 = never)")
    SYSTEM_NAME: str = Field(default="entitycache", description="System name used as key prefix")
    CONNECTION_ENDPOINT: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    DATABASE_INDEX: int = Field(default=0, ge=0, le=15, description="Redis database number")
    CLUSTER_MODE: bool = Field(default=False, description="Use Redis Cluster client")
    SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("CACHE_DURATION_MINUTES")
    @classmethod
    def validate_duration(cls, v):
        """Validate the configured cache duration."""
        return _validate_duration(v)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        return _validate_log_level(v)

    @property
    def cache(self) -> CacheSettings:
        """Get cache settings."""
        return CacheSettings(
            CACHE_DURATION_MINUTES=self.CACHE_DURATION_MINUTES,
            SYSTEM_NAME=self.SYSTEM_NAME,
            CONNECTION_ENDPOINT=self.CONNECTION_ENDPOINT,
            DATABASE_INDEX=self.DATABASE_INDEX,
            CLUSTER_MODE=self.CLUSTER_MODE,
            SOCKET_TIMEOUT=self.SOCKET_TIMEOUT,
            SOCKET_CONNECT_TIMEOUT=self.SOCKET_CONNECT_TIMEOUT,
            MAX_CONNECTIONS=self.MAX_CONNECTIONS,
        )

    @property
    def logging(self) -> LoggingSettings:
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
