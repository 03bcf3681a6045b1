"""
Codec Exceptions

Raised while describing, encoding or decoding entities.
"""

from entitycache.core.exceptions.base import EntityCacheError


class CodecError(EntityCacheError):
    """Base exception for entity encoding and decoding errors."""
    pass


class SchemaError(CodecError):
    """
    Raised when an entity class cannot be described by a schema.

    Common causes:
    - The class is not a dataclass
    - A field annotation has no supported text/JSON form
    - An init field has no default value
    """
    pass


class FieldDecodeError(CodecError):
    """
    Raised when a present, non-blank field value cannot be parsed.

    Absent fields are never an error; they keep their default.
    """

    def __init__(self, message: str, field: str, details: dict | None = None):
        super().__init__(message, details={"field": field, **(details or {})})
        self.field = field
