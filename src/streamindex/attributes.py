"""
StreamIndex Attributes — Typed Attribute Decoding
=================================================

Converts the tagged attribute representation used by the change feed into
plain Python values, and back.

Wire representation (one tag per value):

    {"S": "text"}                  → "text"
    {"N": "4.5"}                   → 4.5
    {"BOOL": true}                 → True
    {"SS": ["a", "b"]}             → ["a", "b"]
    {"NS": ["1", "2"]}             → [1.0, 2.0]
    {"L": [{"S": "a"}, ...]}       → ["a", ...]
    {"M": {"k": {"N": "1"}}}       → {"k": 1.0}
    {"NULL": true}                 → None
    {"B": "<base64>"}              → "<base64>"
    {"BS": ["<base64>", ...]}      → ["<base64>", ...]

Numbers always decode to float. A malformed number is an error, never a
default value. Binary values stay base64 text, the form a `binary` field
in the index accepts; the payload is validated and re-encoded canonically.
"""

import base64
import binascii
import math
from typing import Any, Callable, Dict, List

from .errors import AttributeDecodeError


TypedValue = Dict[str, Any]
TypedImage = Dict[str, TypedValue]


def _parse_number(raw: Any) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise AttributeDecodeError(f"Malformed number: {raw!r}") from exc
    if math.isnan(value) or math.isinf(value):
        raise AttributeDecodeError(f"Malformed number: {raw!r}")
    return value


def _parse_binary(raw: Any) -> str:
    if isinstance(raw, (bytes, bytearray)):
        payload = bytes(raw)
    else:
        try:
            payload = base64.b64decode(raw, validate=True)
        except (TypeError, ValueError, binascii.Error) as exc:
            raise AttributeDecodeError(f"Malformed binary value: {raw!r}") from exc
    return base64.b64encode(payload).decode("ascii")


def _expect(kind: type, tag: str, raw: Any) -> Any:
    if not isinstance(raw, kind):
        raise AttributeDecodeError(
            f"Tag {tag} expects {kind.__name__}, got {type(raw).__name__}"
        )
    return raw


def _decode_list(raw: Any) -> List[Any]:
    return [decode(item) for item in _expect(list, "L", raw)]


def _decode_map(raw: Any) -> Dict[str, Any]:
    return {name: decode(item) for name, item in _expect(dict, "M", raw).items()}


# Closed set of tags; anything else is rejected.
_DECODERS: Dict[str, Callable[[Any], Any]] = {
    "S": lambda raw: _expect(str, "S", raw),
    "N": _parse_number,
    "BOOL": lambda raw: _expect(bool, "BOOL", raw),
    "SS": lambda raw: list(_expect(list, "SS", raw)),
    "NS": lambda raw: [_parse_number(n) for n in _expect(list, "NS", raw)],
    "B": _parse_binary,
    "BS": lambda raw: [_parse_binary(b) for b in _expect(list, "BS", raw)],
    "L": _decode_list,
    "M": _decode_map,
    "NULL": lambda raw: None,
}


def decode(attr: TypedValue) -> Any:
    """
    Decode a single typed attribute value into a plain value.

    Args:
        attr: Single-tag mapping such as {"S": "x"} or {"N": "1.5"}

    Returns:
        The decoded value (str, float, bool, list, dict or None)

    Raises:
        AttributeDecodeError: Unknown or ambiguous tag, wrong payload type,
            a malformed number or malformed base64.
    """
    if not isinstance(attr, dict) or len(attr) != 1:
        raise AttributeDecodeError(f"Expected a single-tag attribute, got {attr!r}")

    (tag, raw), = attr.items()
    decoder = _DECODERS.get(tag)
    if decoder is None:
        raise AttributeDecodeError(f"Unknown attribute tag: {tag!r}")
    return decoder(raw)


def decode_image(image: TypedImage) -> Dict[str, Any]:
    """
    Decode a full attribute map (a record image) into a plain dict.

    Args:
        image: Mapping of attribute name to typed value

    Returns:
        Dict of attribute name to decoded value
    """
    if not isinstance(image, dict):
        raise AttributeDecodeError(f"Expected an attribute map, got {type(image).__name__}")
    return {name: decode(value) for name, value in image.items()}


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def encode(value: Any) -> TypedValue:
    """
    Encode a plain value into its typed attribute representation.

    Inverse of decode() for str, numbers, bool, lists, dicts, None and
    homogeneous sets of strings or numbers. bytes encode as B and decode
    back as base64 text.
    """
    if value is None:
        return {"NULL": True}
    # bool before numbers: bool is an int subclass
    if isinstance(value, bool):
        return {"BOOL": value}
    if isinstance(value, (int, float)):
        return {"N": _format_number(value)}
    if isinstance(value, str):
        return {"S": value}
    if isinstance(value, (bytes, bytearray)):
        return {"B": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, (set, frozenset)):
        if all(isinstance(v, str) for v in value):
            return {"SS": sorted(value)}
        if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
            return {"NS": [_format_number(v) for v in sorted(value)]}
        raise AttributeDecodeError("Sets must hold only strings or only numbers")
    if isinstance(value, (list, tuple)):
        return {"L": [encode(v) for v in value]}
    if isinstance(value, dict):
        return {"M": {str(k): encode(v) for k, v in value.items()}}
    raise AttributeDecodeError(f"Cannot encode value of type {type(value).__name__}")


def encode_image(record: Dict[str, Any]) -> TypedImage:
    """Encode a plain dict into a typed attribute map."""
    return {name: encode(value) for name, value in record.items()}
