"""
Unicode-safe Base64 Codec
========================

Card payloads live in ASCII-only tEXt chunks, but card JSON can hold any
Unicode. Text always passes through an explicit UTF-8 byte representation.
"""

import base64
import binascii
import re

_WHITESPACE = re.compile(r"\s+")


def encode(text: str) -> str:
    """Encode text as base64 of its UTF-8 bytes."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode(data: str) -> str:
    """
    Decode base64 produced by encode() or by other card tools.

    Whitespace and missing '=' padding are tolerated.

    Raises:
        ValueError: If the input is not base64 or not UTF-8 once decoded
    """
    compact = _WHITESPACE.sub("", data)
    compact += "=" * (-len(compact) % 4)
    try:
        raw = base64.b64decode(compact, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 data: {e}") from e
    return raw.decode("utf-8")
