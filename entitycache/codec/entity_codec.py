"""
Entity Codec - Hash Payload and Blob Encoding

Turns entities into Redis payloads and back, driven by an EntitySchema.

Hash mode:
    encode(entity)  -> [("Id", "1"), ("Name", "Mahyar"), ("_Type", "Person")]
    decode(fields)  -> Person(Id=1, Name="Mahyar") | None

String mode:
    encode_blob(entity) -> b'{"_Type":"Person","Id":1,"Name":"Mahyar",...}'
    decode_blob(data)   -> Person(...) | None

Decoding Rules:
- Missing ``_Type`` or a different kind is a miss (None), never an error
- Absent or blank fields keep their defaults
- A present value that does not parse raises FieldDecodeError
"""

from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar

import orjson

from entitycache.codec.schema import EntitySchema, schema_of
from entitycache.core.config.constants import TYPE_FIELD, Stage
from entitycache.core.exceptions import CodecError, FieldDecodeError
from entitycache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

T = TypeVar("T")

# Errors raised by the parse functions bound in field descriptors
_PARSE_ERRORS = (ValueError, TypeError, KeyError, ArithmeticError)

HashFields = Mapping[str, Any] | Iterable[tuple[str, Any]]


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class EntityCodec(Generic[T]):
    """
    Encodes and decodes one entity type.

    Args:
        entity: The entity dataclass or a prebuilt EntitySchema

    Example:
        codec = EntityCodec(Person)
        fields = codec.encode(Person(Id=1, Name="Mahyar"))
        person = codec.decode(dict(fields))
    """

    def __init__(self, entity: type[T] | EntitySchema):
        self._schema = entity if isinstance(entity, EntitySchema) else schema_of(entity)

    @property
    def schema(self) -> EntitySchema:
        return self._schema

    @property
    def kind(self) -> str:
        return self._schema.kind

    # -------------------------------------------------------------------------
    # Hash mode
    # -------------------------------------------------------------------------

    def encode(self, entity: T) -> list[tuple[str, str]]:
        """
        Encode an entity into ordered field/value pairs.

        None-valued fields are omitted; ``_Type`` is always appended last.
        """
        self._check_instance(entity)
        pairs = []
        for descriptor in self._schema.fields:
            value = getattr(entity, descriptor.name)
            if value is None:
                continue
            pairs.append((descriptor.name, descriptor.encode(value)))
        pairs.append((TYPE_FIELD, self._schema.kind))
        return pairs

    def encode_mapping(self, entity: T) -> dict[str, str]:
        """Encode into a mapping, the shape ``HSET ... mapping=`` expects."""
        return dict(self.encode(entity))

    def decode(self, fields: HashFields | None) -> T | None:
        """
        Decode hash fields into an entity.

        Returns:
            The entity, or None when the type tag is missing or different

        Raises:
            FieldDecodeError: If a present, non-blank value cannot be parsed
        """
        if not fields:
            return None

        payload = {
            _as_text(name): _as_text(value)
            for name, value in (fields.items() if isinstance(fields, Mapping) else fields)
        }

        if payload.get(TYPE_FIELD) != self._schema.kind:
            return None

        values = {}
        for descriptor in self._schema.fields:
            text = payload.get(descriptor.name)
            if text is None or not text.strip():
                continue
            try:
                values[descriptor.name] = descriptor.decode(text)
            except _PARSE_ERRORS as e:
                log_stage(
                    logger,
                    Stage.FIELD_DECODE,
                    "Malformed hash field",
                    level="error",
                    kind=self._schema.kind,
                    field=descriptor.name,
                    error=str(e),
                )
                raise FieldDecodeError(
                    f"Cannot decode field '{descriptor.name}' of {self._schema.kind}: {e}",
                    field=descriptor.name,
                    details={"kind": self._schema.kind, "shape": descriptor.shape.value},
                ) from e

        return self._create(values)

    @staticmethod
    def type_tag(fields: HashFields | None) -> str | None:
        """Read the ``_Type`` tag of a hash payload (None if absent or blank)."""
        if not fields:
            return None
        items = fields.items() if isinstance(fields, Mapping) else fields
        for name, value in items:
            if _as_text(name) == TYPE_FIELD:
                text = _as_text(value)
                return text if text.strip() else None
        return None

    # -------------------------------------------------------------------------
    # String mode
    # -------------------------------------------------------------------------

    def encode_blob(self, entity: T) -> bytes:
        """Serialize the whole entity into one JSON document."""
        self._check_instance(entity)
        document = {TYPE_FIELD: self._schema.kind}
        document.update(self._schema.to_json(entity))
        return orjson.dumps(document)

    def decode_blob(self, data: bytes | str | None) -> T | None:
        """
        Deserialize a document produced by ``encode_blob``.

        Returns:
            The entity, or None for an empty value or a different type tag

        Raises:
            CodecError: If the document is not valid for this entity
        """
        if data is None or data == b"" or data == "":
            return None

        try:
            document = orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise CodecError(
                f"Stored value is not a {self._schema.kind} document: {e}",
                details={"kind": self._schema.kind},
            ) from e

        if not isinstance(document, dict) or document.get(TYPE_FIELD) != self._schema.kind:
            return None

        try:
            return self._schema.from_json(document)
        except _PARSE_ERRORS as e:
            raise CodecError(
                f"Cannot decode {self._schema.kind} document: {e}",
                details={"kind": self._schema.kind},
            ) from e

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _check_instance(self, entity: Any) -> None:
        if not isinstance(entity, self._schema.entity_type):
            raise CodecError(
                f"Expected {self._schema.entity_type.__name__}, got {type(entity).__name__}",
                details={"kind": self._schema.kind},
            )

    def _create(self, values: dict[str, Any]) -> T:
        try:
            return self._schema.create(**values)
        except (TypeError, ValueError) as e:
            raise CodecError(
                f"Cannot construct {self._schema.kind}: {e}",
                details={"kind": self._schema.kind},
            ) from e


__all__ = ["EntityCodec", "HashFields"]
