"""
Canonical JSON serialization for WCAF hashing.

Every event hash, attestation and bundle signature is computed over the
output of this module, so it MUST stay byte-for-byte stable.

Rules:
- Object keys sorted lexicographically by Unicode code point
- No whitespace between tokens
- Numbers: shortest round-trip per ECMAScript NumberToString
- Strings: minimal escaping (control chars, backslash, double-quote);
  lone surrogates as \\uXXXX
- null, true, false as literals
- ABSENT object members are dropped; ABSENT array elements become null
"""

import json
import math
import re
from decimal import Decimal
from typing import Any, Optional


class _Absent:
    """Marker for a value that is not there at all (distinct from null)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return "ABSENT"


ABSENT = _Absent()


def canonical_json(value: Any) -> Optional[str]:
    """
    Serialize a value to canonical JSON.

    Args:
        value: A JSON-like value (dict, list, tuple, str, int, float,
            bool, None) or ABSENT

    Returns:
        Canonical JSON string, or None when ``value`` itself is ABSENT

    Raises:
        TypeError: If the value contains something that is not JSON-like
        ValueError: If the value contains a reference cycle
    """
    if value is ABSENT:
        return None
    return _serialize_value(value, set())


def _serialize_value(value: Any, seen: set) -> str:
    """Internal: serialize any present value to canonical JSON."""
    if value is None:
        return "null"

    if isinstance(value, bool):
        # Must check bool before int (bool is subclass of int in Python)
        return "true" if value else "false"

    if isinstance(value, (int, float)):
        return _serialize_number(value)

    if isinstance(value, str):
        return _serialize_string(value)

    if isinstance(value, (list, tuple)):
        return _guarded(value, seen, _serialize_array)

    if isinstance(value, dict):
        return _guarded(value, seen, _serialize_object)

    raise TypeError(f"Value of type {type(value).__name__} is not JSON-like")


def _guarded(container, seen: set, serializer) -> str:
    marker = id(container)
    if marker in seen:
        raise ValueError("Cannot canonicalize a cyclic structure")
    seen.add(marker)
    try:
        return serializer(container, seen)
    finally:
        seen.discard(marker)


def _serialize_number(num: float | int) -> str:
    """
    Serialize number per ECMAScript NumberToString.

    Python ints are exact and render as plain digits. Floats use the
    shortest round-trip digits, laid out with the ECMAScript exponent
    thresholds (plain notation for 1e-7 < |x| < 1e21).
    """
    if isinstance(num, int):
        return str(num)

    if math.isnan(num) or math.isinf(num):
        return "null"
    if num == 0:
        return "0"

    _, digit_tuple, exponent = Decimal(repr(abs(num))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = exponent + k
    sign = "-" if num < 0 else ""

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits

    e = n - 1
    mantissa = digits[0] + ("." + digits[1:] if k > 1 else "")
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


_SURROGATE = re.compile("[\ud800-\udfff]")


def _serialize_string(text: str) -> str:
    """
    Serialize string with proper JSON escaping.

    Uses json.dumps which handles control characters, backslash,
    and double-quote escaping correctly. Surrogate pairs are joined into
    their code point; lone surrogates are written as lowercase \\uXXXX
    escapes, as well-formed JSON.stringify does, so the output always
    encodes to UTF-8.
    """
    if _SURROGATE.search(text):
        text = text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "surrogatepass")
    out = json.dumps(text, ensure_ascii=False)
    if _SURROGATE.search(out):
        out = _SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", out)
    return out


def _serialize_array(arr: list | tuple, seen: set) -> str:
    """Serialize array with no whitespace. ABSENT elements become null."""
    items = [
        "null" if item is ABSENT else _serialize_value(item, seen)
        for item in arr
    ]
    return "[" + ",".join(items) + "]"


def _serialize_object(obj: dict, seen: set) -> str:
    """
    Serialize object with sorted keys.

    Members whose value is ABSENT are omitted entirely; None is kept
    as null.
    """
    pairs = []
    for key in sorted(obj.keys()):
        if not isinstance(key, str):
            raise TypeError(f"Object keys must be str, got {type(key).__name__}")
        val = obj[key]
        if val is ABSENT:
            continue
        pairs.append(_serialize_string(key) + ":" + _serialize_value(val, seen))

    return "{" + ",".join(pairs) + "}"
