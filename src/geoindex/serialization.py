"""
Attribute value codec.

Store items are flat maps of attribute name -> AttributeValue, a small tagged
variant modelled on the typed attribute values of item stores (number,
string, binary, boolean, null, list, map). Numbers travel as strings so that
64-bit cell IDs never lose precision.

Geo hash values go through a closed set of primitive kinds (HashKind), each
with an explicit conversion pair. Anything else goes through the fallback
structural codec, which relies on pydantic to turn values into plain
JSON-like data and back.
"""
import base64
import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .errors import MalformedAttributeValue, UnsupportedType

UINT64_MAX = 2 ** 64 - 1
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class AttributeType(str, Enum):
    NUMBER = "N"
    STRING = "S"
    BINARY = "B"
    BOOLEAN = "BOOL"
    NULL = "NULL"
    LIST = "L"
    MAP = "M"


@dataclass(frozen=True)
class AttributeValue:
    """One typed store attribute."""
    type: AttributeType
    value: Any

    @classmethod
    def number(cls, value) -> "AttributeValue":
        return cls(AttributeType.NUMBER, str(value))

    @classmethod
    def string(cls, value: str) -> "AttributeValue":
        return cls(AttributeType.STRING, value)

    @classmethod
    def binary(cls, value: bytes) -> "AttributeValue":
        return cls(AttributeType.BINARY, bytes(value))

    @classmethod
    def map(cls, value: Dict[str, "AttributeValue"]) -> "AttributeValue":
        return cls(AttributeType.MAP, dict(value))

    def to_wire(self) -> dict:
        """JSON-friendly form, e.g. {"N": "42"}. Binary is base64 encoded."""
        if self.type is AttributeType.BINARY:
            return {self.type.value: base64.b64encode(self.value).decode("ascii")}
        if self.type is AttributeType.LIST:
            return {self.type.value: [item.to_wire() for item in self.value]}
        if self.type is AttributeType.MAP:
            return {self.type.value: {key: item.to_wire() for key, item in self.value.items()}}
        return {self.type.value: self.value}

    @classmethod
    def from_wire(cls, wire: Any) -> "AttributeValue":
        """
        Parse the form produced by to_wire.

        Raises:
            MalformedAttributeValue: If the wire value is not a single-key
                map naming a known attribute type, or its payload does not
                fit that type
        """
        if not isinstance(wire, dict) or len(wire) != 1:
            raise MalformedAttributeValue("single-entry typed map", type(wire).__name__)
        (tag, payload), = wire.items()
        try:
            attribute_type = AttributeType(tag)
        except ValueError:
            raise MalformedAttributeValue("known attribute type tag", repr(tag)) from None

        if attribute_type is AttributeType.BINARY:
            try:
                return cls(attribute_type, base64.b64decode(payload, validate=True))
            except (binascii.Error, TypeError, ValueError):
                raise MalformedAttributeValue("base64 binary", repr(payload)) from None
        if attribute_type is AttributeType.LIST:
            if not isinstance(payload, list):
                raise MalformedAttributeValue("list", type(payload).__name__)
            return cls(attribute_type, [cls.from_wire(item) for item in payload])
        if attribute_type is AttributeType.MAP:
            if not isinstance(payload, dict):
                raise MalformedAttributeValue("map", type(payload).__name__)
            return cls(attribute_type, {key: cls.from_wire(item) for key, item in payload.items()})
        if attribute_type in (AttributeType.NUMBER, AttributeType.STRING) and not isinstance(payload, str):
            raise MalformedAttributeValue(f"{tag} string payload", type(payload).__name__)
        if attribute_type is AttributeType.BOOLEAN and not isinstance(payload, bool):
            raise MalformedAttributeValue("boolean", type(payload).__name__)
        return cls(attribute_type, payload)


class HashKind(Enum):
    """Primitive kinds a geo hash attribute can hold."""
    UINT64 = "uint64"
    INT64 = "int64"
    STRING = "string"
    BYTES = "bytes"


def _expect(av: AttributeValue, attribute_type: AttributeType) -> None:
    if not isinstance(av, AttributeValue):
        raise MalformedAttributeValue(attribute_type.value, type(av).__name__)
    if av.type is not attribute_type:
        raise MalformedAttributeValue(attribute_type.value, av.type.value)


def _parse_integer(av: AttributeValue, kind: HashKind, low: int, high: int) -> int:
    _expect(av, AttributeType.NUMBER)
    try:
        value = int(av.value)
    except ValueError:
        raise MalformedAttributeValue(f"{kind.value} number", repr(av.value)) from None
    if not low <= value <= high:
        raise MalformedAttributeValue(f"{kind.value} number", repr(av.value))
    return value


def _check_integer(value: Any, kind: HashKind, low: int, high: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise UnsupportedType(type(value).__name__, f"expected {kind.value}")
    if not low <= value <= high:
        raise UnsupportedType(type(value).__name__, f"{value} out of {kind.value} range")
    return value


def _marshal_uint64(value: Any) -> AttributeValue:
    return AttributeValue.number(_check_integer(value, HashKind.UINT64, 0, UINT64_MAX))


def _unmarshal_uint64(av: AttributeValue) -> int:
    return _parse_integer(av, HashKind.UINT64, 0, UINT64_MAX)


def _marshal_int64(value: Any) -> AttributeValue:
    return AttributeValue.number(_check_integer(value, HashKind.INT64, INT64_MIN, INT64_MAX))


def _unmarshal_int64(av: AttributeValue) -> int:
    return _parse_integer(av, HashKind.INT64, INT64_MIN, INT64_MAX)


def _marshal_string(value: Any) -> AttributeValue:
    if not isinstance(value, str):
        raise UnsupportedType(type(value).__name__, "expected string")
    return AttributeValue.string(value)


def _unmarshal_string(av: AttributeValue) -> str:
    _expect(av, AttributeType.STRING)
    return av.value


def _marshal_bytes(value: Any) -> AttributeValue:
    if not isinstance(value, (bytes, bytearray)):
        raise UnsupportedType(type(value).__name__, "expected bytes")
    return AttributeValue.binary(value)


def _unmarshal_bytes(av: AttributeValue) -> bytes:
    _expect(av, AttributeType.BINARY)
    return av.value


_MARSHALERS: Dict[HashKind, Callable[[Any], AttributeValue]] = {
    HashKind.UINT64: _marshal_uint64,
    HashKind.INT64: _marshal_int64,
    HashKind.STRING: _marshal_string,
    HashKind.BYTES: _marshal_bytes,
}

_UNMARSHALERS: Dict[HashKind, Callable[[AttributeValue], Any]] = {
    HashKind.UINT64: _unmarshal_uint64,
    HashKind.INT64: _unmarshal_int64,
    HashKind.STRING: _unmarshal_string,
    HashKind.BYTES: _unmarshal_bytes,
}


def _from_plain(plain: Any) -> AttributeValue:
    if plain is None:
        return AttributeValue(AttributeType.NULL, True)
    if isinstance(plain, bool):
        return AttributeValue(AttributeType.BOOLEAN, plain)
    if isinstance(plain, (int, float)):
        return AttributeValue.number(plain)
    if isinstance(plain, str):
        return AttributeValue.string(plain)
    if isinstance(plain, list):
        return AttributeValue(AttributeType.LIST, [_from_plain(item) for item in plain])
    if isinstance(plain, dict):
        return AttributeValue.map({str(key): _from_plain(item) for key, item in plain.items()})
    raise UnsupportedType(type(plain).__name__)


def _to_plain(av: AttributeValue) -> Any:
    if av.type is AttributeType.NULL:
        return None
    if av.type is AttributeType.NUMBER:
        try:
            return int(av.value)
        except ValueError:
            pass
        try:
            return float(av.value)
        except ValueError:
            raise MalformedAttributeValue("number", repr(av.value)) from None
    if av.type is AttributeType.LIST:
        return [_to_plain(item) for item in av.value]
    if av.type is AttributeType.MAP:
        return {key: _to_plain(item) for key, item in av.value.items()}
    return av.value


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", repr(target))


def marshal_value(value: Any, kind: Optional[HashKind] = None) -> AttributeValue:
    """
    Convert a value into an AttributeValue.

    Args:
        value: Value to convert
        kind: Primitive kind for the fast path; None uses the fallback codec

    Returns:
        AttributeValue

    Raises:
        UnsupportedType: If the value does not fit `kind`, or the fallback
            codec cannot serialize it
    """
    if kind is not None:
        return _MARSHALERS[kind](value)
    try:
        plain = to_jsonable_python(value)
    except PydanticSerializationError as exc:
        raise UnsupportedType(type(value).__name__, str(exc)) from exc
    return _from_plain(plain)


def unmarshal_value(av: AttributeValue, kind: Optional[HashKind] = None, target: Any = None) -> Any:
    """
    Convert an AttributeValue back into a value.

    Args:
        av: Attribute value
        kind: Primitive kind for the fast path; None uses the fallback codec
        target: Type the fallback codec validates into (None returns plain
            JSON-like data)

    Raises:
        MalformedAttributeValue: If the attribute does not have the shape
            `kind` or `target` needs
        UnsupportedType: If the fallback codec cannot handle `target`
    """
    if kind is not None:
        return _UNMARSHALERS[kind](av)
    if not isinstance(av, AttributeValue):
        raise MalformedAttributeValue("attribute value", type(av).__name__)
    plain = _to_plain(av)
    if target is None:
        return plain
    try:
        adapter = TypeAdapter(target)
    except PydanticSchemaGenerationError as exc:
        raise UnsupportedType(_type_name(target), str(exc)) from exc
    try:
        return adapter.validate_python(plain)
    except ValidationError as exc:
        raise MalformedAttributeValue(_type_name(target), av.type.value) from exc
