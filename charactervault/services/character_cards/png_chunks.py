"""
PNG Chunk Walker
================

Bounds-checked traversal of a PNG byte buffer (signature + chunk*).

Chunk layout: length (u32 BE) | type (4 ASCII bytes) | data | crc (u32 BE).
The walker never validates CRCs; foreign card tools sometimes ship bad ones.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Iterator

from .crc32 import crc32

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Anything larger is treated as corrupt rather than allocated
MAX_CHUNK_LENGTH = 10 * 1024 * 1024

HEADER_CHUNK = "IHDR"
TERMINAL_CHUNK = "IEND"

TEXT_CHUNK = "tEXt"
ITXT_CHUNK = "iTXt"
ZTXT_CHUNK = "zTXt"
TEXT_CHUNK_TYPES = frozenset({TEXT_CHUNK, ITXT_CHUNK, ZTXT_CHUNK})

# length + type + crc
CHUNK_OVERHEAD = 12


class PNGStructureError(Exception):
    """Buffer is not a PNG container (signature mismatch)."""
    pass


@dataclass(frozen=True)
class PNGChunk:
    """A single chunk located inside a PNG buffer."""
    type: str
    data: bytes
    offset: int
    crc: int

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        """Offset of the byte following this chunk's CRC."""
        return self.offset + CHUNK_OVERHEAD + self.length

    @property
    def is_text(self) -> bool:
        return self.type in TEXT_CHUNK_TYPES

    def crc_valid(self) -> bool:
        return crc32(self.type.encode("latin-1") + self.data) == self.crc

    def chunk_bytes(self, buffer: bytes) -> bytes:
        """Raw bytes of this chunk (header, data and original CRC) from its buffer."""
        return bytes(buffer[self.offset:self.end])


def check_signature(buffer: bytes) -> None:
    """
    Verify the 8-byte PNG magic.

    Raises:
        PNGStructureError: If the buffer does not start with the PNG signature
    """
    if len(buffer) < len(PNG_SIGNATURE) or bytes(buffer[:8]) != PNG_SIGNATURE:
        logger.debug("Invalid PNG signature")
        raise PNGStructureError("Invalid PNG file signature")


def walk_chunks(buffer: bytes, max_chunk_length: int = MAX_CHUNK_LENGTH) -> Iterator[PNGChunk]:
    """
    Walk the chunks of a PNG buffer.

    The signature is checked immediately; chunks are then produced lazily.
    Walking stops quietly at IEND, at the end of the buffer, or at the first
    chunk whose declared length is oversized or overruns the buffer.

    Args:
        buffer: PNG file data
        max_chunk_length: Ceiling for a single chunk's declared length

    Returns:
        Iterator of PNGChunk

    Raises:
        PNGStructureError: If the PNG signature does not match
    """
    check_signature(buffer)
    return _iter_chunks(buffer, max_chunk_length)


def _iter_chunks(buffer: bytes, max_chunk_length: int) -> Iterator[PNGChunk]:
    total = len(buffer)
    offset = len(PNG_SIGNATURE)

    while offset < total:
        if offset + CHUNK_OVERHEAD > total:
            logger.warning(f"Trailing {total - offset} byte(s) at offset {offset}, stopping")
            return

        length, raw_type = struct.unpack_from(">I4s", buffer, offset)
        chunk_type = raw_type.decode("latin-1")

        if length > max_chunk_length:
            logger.warning(f"Chunk '{chunk_type}' at offset {offset} declares {length} bytes, stopping")
            return

        end = offset + CHUNK_OVERHEAD + length
        if end > total:
            logger.warning(f"Incomplete chunk '{chunk_type}' at offset {offset}, stopping")
            return

        data = bytes(buffer[offset + 8:offset + 8 + length])
        (crc,) = struct.unpack_from(">I", buffer, offset + 8 + length)

        yield PNGChunk(type=chunk_type, data=data, offset=offset, crc=crc)

        if chunk_type == TERMINAL_CHUNK:
            return

        offset = end


def build_chunk(chunk_type: str, data: bytes) -> bytes:
    """
    Serialise a chunk with a freshly computed CRC.

    Args:
        chunk_type: Four-character chunk type (e.g., 'tEXt')
        data: Chunk payload

    Returns:
        length + type + data + crc bytes
    """
    type_bytes = chunk_type.encode("latin-1")
    if len(type_bytes) != 4:
        raise ValueError(f"Chunk type must be 4 bytes, got {chunk_type!r}")
    return (
        struct.pack(">I", len(data))
        + type_bytes
        + data
        + struct.pack(">I", crc32(type_bytes + data))
    )


def read_keyword(data: bytes) -> str:
    """Read a text chunk keyword (bytes up to the first NUL, or the whole payload)."""
    end = data.find(b"\x00")
    if end == -1:
        end = len(data)
    return data[:end].decode("utf-8", errors="replace")
