"""
Base Exception Class

Contains only the root exception class and ConfigurationError.
Specialized exceptions live in their themed modules.
"""

from typing import Any


class EntityCacheError(Exception):
    """
    Base exception for all entity cache errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Structured error logging
    - Rich context for debugging

    Attributes:
        message: Error message
        details: Additional error details (dict)

    Example:
        raise CacheKeyError(
            "Redis HGETALL failed",
            details={"key": "Person:RedisPerson:5"}
        )
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dict with error_type, message and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }

    def with_context(self, **context) -> "EntityCacheError":
        """
        Add additional context to the error details.

        Returns:
            Self (for method chaining)
        """
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        return f"{self.__class__.__name__}(message='{self.message}'{details_str})"

    @classmethod
    def from_exception(cls, exc: Exception, message: str | None = None, **details) -> "EntityCacheError":
        """
        Create an error from another exception.

        Useful for wrapping redis-py exceptions with additional context.

        Args:
            exc: Original exception to wrap
            message: Custom message (defaults to original exception message)
            **details: Additional context to include

        Example:
            >>> try:
            ...     await client.ping()
            ... except redis.ConnectionError as e:
            ...     raise CacheConnectionError.from_exception(e, endpoint="redis://localhost")
        """
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details,
        }
        return cls(message or str(exc), details=error_details)


class ConfigurationError(EntityCacheError):
    """Raised when configuration is invalid or missing."""
    pass
