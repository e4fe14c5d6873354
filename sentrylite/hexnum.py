"""Unsigned integers written as hex strings and read from hex, decimal or numbers."""

from __future__ import annotations

import re
from typing import Any

_MAX = 2**64 - 1
_MIN_SIGNED = -(2**63)
_DECIMAL = re.compile(r"\+?[0-9]+")
_HEXADECIMAL = re.compile(r"\+?[0-9a-fA-F]+")


def to_hex(value: int) -> str:
    """Format a non-negative integer as ``0x``-prefixed lowercase hex."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, got {type(value).__name__}")
    if value < 0 or value > _MAX:
        raise ValueError(f"value out of range: {value}")
    return f"{value:#x}"


def parse_hex(text: str) -> int:
    """Parse ``0x``/``0X`` prefixed hex or plain decimal into an integer."""
    if text[:2] in ("0x", "0X"):
        digits, base, pattern = text[2:], 16, _HEXADECIMAL
    else:
        digits, base, pattern = text, 10, _DECIMAL
    if not digits:
        raise ValueError("cannot parse integer from empty string")
    if not pattern.fullmatch(digits):
        raise ValueError(f"invalid digit found in string: {text!r}")
    value = int(digits, base)
    if value > _MAX:
        raise ValueError("number too large to fit in target type")
    return value


def _describe(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return f"boolean `{'true' if value else 'false'}`"
    if isinstance(value, float):
        return f"floating point `{value}`"
    if isinstance(value, (list, tuple)):
        return "sequence"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


def hex_from_json(value: Any) -> int:
    """Read a decoded JSON value: a number, or a hex or decimal string."""
    if isinstance(value, str):
        return parse_hex(value)
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            if value < _MIN_SIGNED:
                raise ValueError(f"number out of range: {value}")
            return value + _MAX + 1
        if value > _MAX:
            raise ValueError(f"number out of range: {value}")
        return value
    raise TypeError(f"invalid type: {_describe(value)}, expected a number or hex string")


def hex_to_json(value: int) -> str:
    """Produce the JSON-ready hex string for a value."""
    return to_hex(value)