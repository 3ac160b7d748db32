"""
Proven Payload Encoding

The signature covers the serialized payload, so the encoding is part of the
external contract:

- Compact JSON object, no whitespace between tokens
- Keys in the fixed field order of the record (NOT sorted)
- UTF-8, non-ASCII characters emitted as-is
- Standard JSON escapes for quotes, backslash and control characters
- Hash and account fields as "0x" + lowercase hex, integers as plain numbers

Two conformant implementations produce byte-identical output for the same
logical values.
"""

import json
from typing import Any, Dict, Sequence, Tuple


def encode_record(fields: Sequence[Tuple[str, Any]]) -> str:
    """
    Encode an ordered list of (key, value) pairs as compact JSON text.

    Values must already be JSON scalars (str, int, bool, None).
    """
    for key, value in fields:
        if isinstance(value, float) or not isinstance(value, (str, int, bool, type(None))):
            raise ValueError(f"Cannot encode field {key!r} of type {type(value).__name__}")
    return json.dumps(dict(fields), separators=(",", ":"), ensure_ascii=False)


def decode_record(text: str) -> Dict[str, Any]:
    """Parse encoded record text, preserving key order."""
    obj = json.loads(text)
    if not isinstance(obj, dict):
        raise ValueError("payload must be a JSON object")
    return obj
