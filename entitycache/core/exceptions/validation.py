"""
Validation Exceptions

Raised before any network call when arguments are invalid.
"""

from entitycache.core.exceptions.base import EntityCacheError


class ValidationError(EntityCacheError):
    """Base exception for argument validation errors."""
    pass


class MissingArgumentError(ValidationError):
    """Raised when a required argument was not supplied."""

    def __init__(self, argument: str, message: str | None = None):
        super().__init__(message or f"Argument '{argument}' is required", details={"argument": argument})
        self.argument = argument
