"""
Codec Module

Schema-driven encoding of entities into hash payloads and JSON blobs.
"""

from .entity_codec import EntityCodec
from .schema import EntitySchema, FieldDescriptor, FieldShape, cacheable, schema_of

__all__ = [
    "EntityCodec",
    "EntitySchema",
    "FieldDescriptor",
    "FieldShape",
    "cacheable",
    "schema_of",
]
