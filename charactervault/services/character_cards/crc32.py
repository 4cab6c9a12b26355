"""
CRC32 Engine
============

Table-driven CRC-32 (reflected polynomial 0xEDB88320) as used by PNG chunk trailers.
"""

from functools import lru_cache
from typing import Tuple

CRC32_POLYNOMIAL = 0xEDB88320


@lru_cache(maxsize=None)
def crc_table() -> Tuple[int, ...]:
    """Build the 256-entry lookup table once; the tuple is shared read-only."""
    table = []
    for n in range(256):
        c = n
        for _ in range(8):
            if c & 1:
                c = CRC32_POLYNOMIAL ^ (c >> 1)
            else:
                c >>= 1
        table.append(c)
    return tuple(table)


def crc32(data: bytes) -> int:
    """
    Calculate the CRC-32 of a byte string.

    Args:
        data: Bytes to checksum (for PNG chunks: type ++ data)

    Returns:
        Unsigned 32-bit checksum
    """
    table = crc_table()
    crc = 0xFFFFFFFF
    for byte in data:
        crc = table[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc ^ 0xFFFFFFFF
