"""
Legacy payload coercion for the raw entry path.

Older clients post bare strings, numbers or booleans as the entry body
of a raw log. ``coerce_payload`` classifies such a value into an explicit
variant and ``ensure_json_object`` wraps anything that is not already a
JSON object as ``{"data": value}``.

This is a narrow compatibility shim for raw writes. It is not a general
parser and must never be applied to structured (possibly encrypted)
entries.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

_JSON_SHAPE = re.compile(r"^\s*[{\[].*[}\]]\s*$", re.DOTALL)
_NUMBER_SHAPE = re.compile(r"^-?\d+(\.\d+)?$")


class PayloadKind(Enum):
    """Variants recognized by ``coerce_payload``, in precedence order."""

    OBJECT = "object"
    ARRAY = "array"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING = "string"
    NULL = "null"


@dataclass(frozen=True)
class CoercedPayload:
    kind: PayloadKind
    value: Any


def _classify(value: Any) -> PayloadKind:
    if value is None:
        return PayloadKind.NULL
    if isinstance(value, dict):
        return PayloadKind.OBJECT
    if isinstance(value, list):
        return PayloadKind.ARRAY
    if isinstance(value, bool):
        return PayloadKind.BOOLEAN
    if isinstance(value, (int, float)):
        return PayloadKind.NUMBER
    return PayloadKind.STRING


def _parse_number(text: str) -> int | float:
    return float(text) if "." in text else int(text)


def coerce_payload(value: Any) -> CoercedPayload:
    """Classify a raw payload.

    Non-string values are classified by type. Strings are sniffed with
    precedence object > array > number > boolean > string: text shaped
    like JSON that parses becomes the parsed value, numeric text becomes
    a number, ``true``/``false`` (any case) become booleans and anything
    else stays a string.
    """
    if not isinstance(value, str):
        return CoercedPayload(_classify(value), value)

    trimmed = value.strip()

    if _JSON_SHAPE.match(trimmed):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError:
            pass
        else:
            return CoercedPayload(_classify(parsed), parsed)

    if _NUMBER_SHAPE.match(trimmed):
        return CoercedPayload(PayloadKind.NUMBER, _parse_number(trimmed))

    lowered = trimmed.lower()
    if lowered in ("true", "false"):
        return CoercedPayload(PayloadKind.BOOLEAN, lowered == "true")

    return CoercedPayload(PayloadKind.STRING, value)


def ensure_json_object(value: Any) -> dict[str, Any]:
    """Return ``value`` as a JSON object, wrapping other shapes in ``{"data": ...}``."""
    coerced = coerce_payload(value)
    if coerced.kind is PayloadKind.OBJECT:
        return coerced.value
    return {"data": coerced.value}
