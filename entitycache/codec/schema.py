"""
Entity Schemas - Declarative Field Descriptor Tables

An EntitySchema describes one cacheable dataclass: its kind (the value stored
in the reserved ``_Type`` field) and one FieldDescriptor per init field.
Each descriptor carries the encode/decode function pairs for the field's
declared type, resolved once when the schema is built:

    to_text / from_text   hash-mode field value  <->  Python value
    to_json / from_json   JSON-native value      <->  Python value

Architecture:
    schema_of(cls)
        ├── type hints resolved once per class
        ├── TypeCodec per annotation (scalar, enum, array, collection, structured)
        └── EntitySchema cached per class

Supported annotations:
    str, int, float, bool, Decimal, UUID, datetime, date, time, Enum subclasses,
    Optional[X], tuple[X, ...], tuple[X, Y], list[X], set[X], frozenset[X],
    dict[K, V], Any (JSON pass-through) and nested @cacheable dataclasses.

Usage:
    @cacheable
    @dataclass
    class Person:
        Id: int = 0
        Name: str | None = None

    schema = schema_of(Person)
    schema.kind           # "Person"
    schema.field("Id")    # FieldDescriptor(name="Id", shape=SCALAR, ...)
"""

import dataclasses
import math
import threading
import types
import typing
from collections.abc import Callable
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

import orjson

from entitycache.core.config.constants import Stage
from entitycache.core.exceptions import SchemaError
from entitycache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

_KIND_ATTRIBUTE = "__cache_kind__"


class FieldShape(str, Enum):
    """How a field is rendered in a hash payload."""

    TEXT = "text"  # stored as is
    SCALAR = "scalar"  # natural text form, parsed back by the type's own rule
    ENUM = "enum"  # member name
    ARRAY = "array"  # tuple, JSON text
    COLLECTION = "collection"  # list/set/frozenset/dict, JSON text
    STRUCTURED = "structured"  # nested @cacheable dataclass or Any, JSON text


_JSON_SHAPES = frozenset({FieldShape.ARRAY, FieldShape.COLLECTION, FieldShape.STRUCTURED})


@dataclasses.dataclass(frozen=True)
class TypeCodec:
    """Encode/decode function pairs for one declared type."""

    shape: FieldShape
    to_text: Callable[[Any], str]
    from_text: Callable[[str], Any]
    to_json: Callable[[Any], Any]
    from_json: Callable[[Any], Any]


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """
    One named entity field bound to its codec.

    Attributes:
        name: Field name (also the hash field name)
        codec: Function pairs for the declared type
        nullable: Declared as Optional[...]
    """

    name: str
    codec: TypeCodec
    nullable: bool = False

    @property
    def shape(self) -> FieldShape:
        return self.codec.shape

    def encode(self, value: Any) -> str:
        return self.codec.to_text(value)

    def decode(self, text: str) -> Any:
        return self.codec.from_text(text)


@dataclasses.dataclass(frozen=True)
class EntitySchema:
    """
    Field descriptor table for one entity class.

    Attributes:
        kind: Type tag written to and compared against ``_Type``
        entity_type: The dataclass the schema builds
        fields: Descriptors in declaration order
    """

    kind: str
    entity_type: type
    fields: tuple[FieldDescriptor, ...]

    def field(self, name: str) -> FieldDescriptor:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        raise KeyError(name)

    def create(self, **values: Any) -> Any:
        """Build an entity; fields not given keep their defaults."""
        return self.entity_type(**values)

    def to_json(self, entity: Any) -> dict[str, Any]:
        """JSON-native mapping of every field (None kept as null)."""
        result = {}
        for descriptor in self.fields:
            value = getattr(entity, descriptor.name)
            result[descriptor.name] = None if value is None else descriptor.codec.to_json(value)
        return result

    def from_json(self, data: Any) -> Any:
        """Build an entity from a JSON-native mapping; missing or null fields keep defaults."""
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object for {self.kind}, got {type(data).__name__}")
        values = {}
        for descriptor in self.fields:
            raw = data.get(descriptor.name)
            if raw is not None:
                values[descriptor.name] = descriptor.codec.from_json(raw)
        return self.create(**values)


# =============================================================================
# Registration
# =============================================================================


def cacheable(cls: type | None = None, *, kind: str | None = None):
    """
    Mark a dataclass as a cacheable (structured) contract.

    Top-level entities do not need the marker, but nested dataclass fields do:
    they are stored as JSON text inside the parent's hash payload.

    Args:
        cls: The dataclass (when used without arguments)
        kind: Type tag override, defaults to the class name
    """

    def wrap(target: type) -> type:
        if not dataclasses.is_dataclass(target):
            raise SchemaError(
                f"@cacheable requires a dataclass, got {target!r}",
                details={"type": getattr(target, "__name__", repr(target))},
            )
        setattr(target, _KIND_ATTRIBUTE, kind or target.__name__)
        return target

    return wrap(cls) if cls is not None else wrap


def is_cacheable(cls: Any) -> bool:
    return isinstance(cls, type) and _KIND_ATTRIBUTE in cls.__dict__


_schemas: dict[type, EntitySchema] = {}
_schemas_lock = threading.Lock()


def schema_of(entity_type: type) -> EntitySchema:
    """
    Get (building once) the schema for an entity dataclass.

    Raises:
        SchemaError: If the class or one of its fields is unsupported
    """
    schema = _schemas.get(entity_type)
    if schema is not None:
        return schema

    with _schemas_lock:
        schema = _schemas.get(entity_type)
        if schema is None:
            schema = _build_schema(entity_type)
            _schemas[entity_type] = schema
    return schema


def _build_schema(entity_type: type) -> EntitySchema:
    if not dataclasses.is_dataclass(entity_type) or not isinstance(entity_type, type):
        raise SchemaError(
            f"Entity type must be a dataclass, got {entity_type!r}",
            details={"type": getattr(entity_type, "__name__", repr(entity_type))},
        )

    kind = entity_type.__dict__.get(_KIND_ATTRIBUTE, entity_type.__name__)

    try:
        hints = typing.get_type_hints(entity_type)
    except NameError as e:
        raise SchemaError(
            f"Cannot resolve annotations of {entity_type.__name__}: {e}",
            details={"type": entity_type.__name__},
        ) from e

    descriptors = []
    for field in dataclasses.fields(entity_type):
        if not field.init:
            continue
        if field.default is dataclasses.MISSING and field.default_factory is dataclasses.MISSING:
            raise SchemaError(
                f"Field '{field.name}' of {entity_type.__name__} needs a default value",
                details={"type": entity_type.__name__, "field": field.name},
            )
        try:
            inner, nullable = _unwrap_optional(hints[field.name])
            codec = _codec_for(inner)
        except SchemaError as e:
            raise e.with_context(type=entity_type.__name__, field=field.name)
        descriptors.append(FieldDescriptor(name=field.name, codec=codec, nullable=nullable))

    log_stage(
        logger,
        Stage.SCHEMA_REGISTRATION,
        "Entity schema registered",
        level="debug",
        kind=kind,
        fields=[d.name for d in descriptors],
    )
    return EntitySchema(kind=kind, entity_type=entity_type, fields=tuple(descriptors))


# =============================================================================
# Type codecs
# =============================================================================


def _unwrap_optional(hint: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(hint)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        if len(args) != 1:
            raise SchemaError(f"Union types are not supported: {hint!r}")
        return args[0], len(args) != len(typing.get_args(hint))
    return hint, False


def _identity(value: Any) -> Any:
    return value


def _json_text(to_json: Callable[[Any], Any]) -> Callable[[Any], str]:
    def to_text(value: Any) -> str:
        return orjson.dumps(to_json(value)).decode()

    return to_text


def _json_parse(from_json: Callable[[Any], Any]) -> Callable[[str], Any]:
    def from_text(text: str) -> Any:
        return from_json(orjson.loads(text))

    return from_text


def _parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise ValueError(f"'{text}' is not a valid boolean")


def _bool_to_text(value: bool) -> str:
    return "True" if value else "False"


def _bool_from_json(data: Any) -> bool:
    if not isinstance(data, bool):
        raise TypeError(f"expected a JSON boolean, got {data!r}")
    return data


def _int_from_json(data: Any) -> int:
    if isinstance(data, bool) or not isinstance(data, int):
        raise TypeError(f"expected a JSON integer, got {data!r}")
    return data


def _float_to_json(value: float) -> float | str:
    # JSON has no inf/nan; keep them as their repr text
    return value if math.isfinite(value) else repr(value)


def _float_from_json(data: Any) -> float:
    if isinstance(data, str):
        return float(data)
    if isinstance(data, bool) or not isinstance(data, (int, float)):
        raise TypeError(f"expected a JSON number, got {data!r}")
    return float(data)


def _str_from_json(data: Any) -> str:
    if not isinstance(data, str):
        raise TypeError(f"expected a JSON string, got {data!r}")
    return data


def _scalar(parse: Callable[[str], Any], render: Callable[[Any], str] = str) -> TypeCodec:
    """Scalar whose JSON form is its text form."""
    return TypeCodec(
        shape=FieldShape.SCALAR,
        to_text=render,
        from_text=parse,
        to_json=render,
        from_json=lambda data: parse(_str_from_json(data)),
    )


def _enum_codec(enum_type: type[Enum]) -> TypeCodec:
    def parse(text: str) -> Enum:
        if text in enum_type.__members__:
            return enum_type[text]
        for member in enum_type:
            if str(member.value) == text:
                return member
        raise ValueError(f"'{text}' is not a member of {enum_type.__name__}")

    def render(member: Enum) -> str:
        return member.name

    return TypeCodec(
        shape=FieldShape.ENUM,
        to_text=render,
        from_text=parse,
        to_json=render,
        from_json=lambda data: parse(str(data)),
    )


def _structured_codec(entity_type: type) -> TypeCodec:
    # Resolved lazily so self-referencing contracts do not recurse at registration
    def to_json(value: Any) -> Any:
        return schema_of(entity_type).to_json(value)

    def from_json(data: Any) -> Any:
        return schema_of(entity_type).from_json(data)

    return TypeCodec(
        shape=FieldShape.STRUCTURED,
        to_text=_json_text(to_json),
        from_text=_json_parse(from_json),
        to_json=to_json,
        from_json=from_json,
    )


def _sequence_codec(container: type, element: TypeCodec, shape: FieldShape) -> TypeCodec:
    def to_json(value: Any) -> list:
        return [None if item is None else element.to_json(item) for item in value]

    def from_json(data: Any) -> Any:
        if not isinstance(data, list):
            raise TypeError(f"expected a JSON array, got {data!r}")
        return container(None if item is None else element.from_json(item) for item in data)

    return TypeCodec(shape, _json_text(to_json), _json_parse(from_json), to_json, from_json)


def _fixed_tuple_codec(elements: list[TypeCodec]) -> TypeCodec:
    def to_json(value: Any) -> list:
        return [None if item is None else codec.to_json(item) for codec, item in zip(elements, value)]

    def from_json(data: Any) -> tuple:
        if not isinstance(data, list) or len(data) != len(elements):
            raise TypeError(f"expected a JSON array of {len(elements)} items, got {data!r}")
        return tuple(None if item is None else codec.from_json(item) for codec, item in zip(elements, data))

    return TypeCodec(FieldShape.ARRAY, _json_text(to_json), _json_parse(from_json), to_json, from_json)


def _mapping_codec(key: TypeCodec, value: TypeCodec) -> TypeCodec:
    if key.shape in _JSON_SHAPES:
        raise SchemaError("Dictionary keys must be text, scalar or enum types")

    def to_json(mapping: Any) -> dict:
        return {
            key.to_text(k): None if v is None else value.to_json(v)
            for k, v in mapping.items()
        }

    def from_json(data: Any) -> dict:
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {data!r}")
        return {
            key.from_text(k): None if v is None else value.from_json(v)
            for k, v in data.items()
        }

    return TypeCodec(FieldShape.COLLECTION, _json_text(to_json), _json_parse(from_json), to_json, from_json)


_ANY_CODEC = TypeCodec(
    shape=FieldShape.STRUCTURED,
    to_text=_json_text(_identity),
    from_text=_json_parse(_identity),
    to_json=_identity,
    from_json=_identity,
)

_TEXT_CODEC = TypeCodec(
    shape=FieldShape.TEXT,
    to_text=_identity,
    from_text=_identity,
    to_json=_identity,
    from_json=_str_from_json,
)

_SCALAR_CODECS: dict[Any, TypeCodec] = {
    bool: TypeCodec(FieldShape.SCALAR, _bool_to_text, _parse_bool, _identity, _bool_from_json),
    int: TypeCodec(FieldShape.SCALAR, str, int, _identity, _int_from_json),
    float: TypeCodec(FieldShape.SCALAR, repr, float, _float_to_json, _float_from_json),
    Decimal: _scalar(Decimal),
    UUID: _scalar(UUID),
    datetime: _scalar(datetime.fromisoformat, datetime.isoformat),
    date: _scalar(date.fromisoformat, date.isoformat),
    time: _scalar(time.fromisoformat, time.isoformat),
}


def _codec_for(hint: Any) -> TypeCodec:
    """Resolve the codec for a (non-Optional) annotation."""
    if hint is str:
        return _TEXT_CODEC
    if hint is Any:
        return _ANY_CODEC
    if hint in _SCALAR_CODECS:
        return _SCALAR_CODECS[hint]
    if isinstance(hint, type) and issubclass(hint, Enum):
        return _enum_codec(hint)
    if is_cacheable(hint):
        return _structured_codec(hint)
    if isinstance(hint, type) and dataclasses.is_dataclass(hint):
        raise SchemaError(
            f"Nested dataclass {hint.__name__} must be marked with @cacheable",
            details={"nested_type": hint.__name__},
        )

    origin = typing.get_origin(hint) or hint
    args = typing.get_args(hint)

    if origin in (list, set, frozenset):
        element = _element_codec(args[0]) if args else _ANY_CODEC
        return _sequence_codec(origin, element, FieldShape.COLLECTION)

    if origin is tuple:
        if not args or (len(args) == 2 and args[1] is Ellipsis):
            element = _element_codec(args[0]) if args else _ANY_CODEC
            return _sequence_codec(tuple, element, FieldShape.ARRAY)
        return _fixed_tuple_codec([_element_codec(arg) for arg in args])

    if origin is dict:
        key_hint, value_hint = args if args else (str, Any)
        return _mapping_codec(_element_codec(key_hint), _element_codec(value_hint))

    raise SchemaError(f"Unsupported field type: {hint!r}", details={"annotation": repr(hint)})


def _element_codec(hint: Any) -> TypeCodec:
    inner, _ = _unwrap_optional(hint)
    return _codec_for(inner)


__all__ = [
    "EntitySchema",
    "FieldDescriptor",
    "FieldShape",
    "TypeCodec",
    "cacheable",
    "is_cacheable",
    "schema_of",
]
