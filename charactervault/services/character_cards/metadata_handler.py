"""
PNG Metadata Handler
===================

Handles reading and writing tEXt/iTXt/zTXt chunks in PNG images for character card metadata.
"""

import logging
import zlib
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .png_chunks import (
    ITXT_CHUNK,
    MAX_CHUNK_LENGTH,
    PNG_SIGNATURE,
    TERMINAL_CHUNK,
    TEXT_CHUNK,
    ZTXT_CHUNK,
    PNGChunk,
    build_chunk,
    read_keyword,
    walk_chunks,
)

logger = logging.getLogger(__name__)

# Keywords used by card tools: 'chara' (V1/V2, most V3) and 'ccv3' (V3 spec)
CARD_KEYWORDS = ("chara", "ccv3")
DEFAULT_KEYWORD = "chara"

COMPRESSION_ZLIB = 0


@dataclass
class TextChunk:
    """Decoded contents of a text-bearing chunk."""
    chunk_type: str
    keyword: str
    text: Optional[str]
    offset: int
    compressed: bool = False
    error: Optional[str] = None


def _decode_text(raw: bytes) -> str:
    # Shared by all three chunk kinds. Card tools write UTF-8 even into tEXt,
    # whose nominal encoding (Latin-1) is the fallback; bytes are never replaced.
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def _inflate(raw: bytes, method: int) -> bytes:
    if method != COMPRESSION_ZLIB:
        raise ValueError(f"unsupported compression method {method}")
    return zlib.decompress(raw)


class PNGMetadataHandler:
    """Handle PNG text chunk operations for character card metadata."""

    @staticmethod
    def parse_text_chunk(chunk: PNGChunk) -> Optional[TextChunk]:
        """
        Decode a tEXt, iTXt or zTXt chunk.

        Compressed text that cannot be inflated is reported through
        TextChunk.error with text left as None.

        Args:
            chunk: Chunk produced by the walker

        Returns:
            TextChunk, or None if the chunk is not a text chunk
        """
        data = chunk.data
        keyword = read_keyword(data)
        separator = data.find(b"\x00")

        if chunk.type == TEXT_CHUNK:
            text = _decode_text(data[separator + 1:]) if separator != -1 else ""
            return TextChunk(TEXT_CHUNK, keyword, text, chunk.offset)

        if chunk.type == ITXT_CHUNK:
            return PNGMetadataHandler._parse_itxt(chunk, keyword, separator)

        if chunk.type == ZTXT_CHUNK:
            result = TextChunk(ZTXT_CHUNK, keyword, None, chunk.offset, compressed=True)
            if separator == -1 or separator + 1 >= len(data):
                result.error = "zTXt chunk is missing its compression header"
                return result
            method = data[separator + 1]
            try:
                result.text = _decode_text(_inflate(data[separator + 2:], method))
            except (zlib.error, ValueError) as e:
                logger.warning(f"Failed to decompress zTXt chunk '{keyword}': {e}")
                result.error = f"Could not decompress zTXt chunk: {e}"
            return result

        return None

    @staticmethod
    def _parse_itxt(chunk: PNGChunk, keyword: str, separator: int) -> TextChunk:
        # keyword NUL flag method language NUL translated-keyword NUL text
        data = chunk.data
        result = TextChunk(ITXT_CHUNK, keyword, "", chunk.offset)

        offset = separator + 1
        if separator == -1 or offset + 2 > len(data):
            return result

        compression_flag = data[offset]
        compression_method = data[offset + 1]
        offset += 2

        for _ in range(2):  # language tag, translated keyword
            end = data.find(b"\x00", offset)
            offset = len(data) if end == -1 else end + 1

        raw = data[offset:]
        if compression_flag == 1:
            result.compressed = True
            try:
                raw = _inflate(raw, compression_method)
            except (zlib.error, ValueError) as e:
                logger.warning(f"Failed to decompress iTXt chunk '{keyword}': {e}")
                result.text = None
                result.error = f"Could not decompress iTXt chunk: {e}"
                return result

        result.text = _decode_text(raw)
        return result

    @staticmethod
    def is_card_keyword(keyword: str, keywords: Iterable[str] = CARD_KEYWORDS) -> bool:
        """Case-insensitive check against the reserved card keywords."""
        return keyword.lower() in {k.lower() for k in keywords}

    @staticmethod
    def is_card_metadata_chunk(chunk: PNGChunk, keywords: Iterable[str] = CARD_KEYWORDS) -> bool:
        """Check whether a chunk is a text chunk carrying character card data."""
        return chunk.is_text and PNGMetadataHandler.is_card_keyword(read_keyword(chunk.data), keywords)

    @staticmethod
    def list_text_chunks(png_data: bytes, max_chunk_length: int = MAX_CHUNK_LENGTH) -> List[TextChunk]:
        """Decode every text chunk in a PNG."""
        chunks = []
        for chunk in walk_chunks(png_data, max_chunk_length):
            parsed = PNGMetadataHandler.parse_text_chunk(chunk)
            if parsed is not None:
                chunks.append(parsed)
        return chunks

    @staticmethod
    def find_card_chunk(
        png_data: bytes,
        keywords: Iterable[str] = CARD_KEYWORDS,
        max_chunk_length: int = MAX_CHUNK_LENGTH
    ) -> Optional[TextChunk]:
        """
        Locate the first text chunk carrying character card data.

        Args:
            png_data: PNG file data as bytes
            keywords: Reserved keywords (matched case-insensitively)
            max_chunk_length: Oversized-chunk ceiling for the walker

        Returns:
            TextChunk for the first match, None if no chunk matches

        Raises:
            PNGStructureError: If png_data is not a PNG
        """
        keywords = tuple(keywords)
        for chunk in walk_chunks(png_data, max_chunk_length):
            if not PNGMetadataHandler.is_card_metadata_chunk(chunk, keywords):
                continue
            parsed = PNGMetadataHandler.parse_text_chunk(chunk)
            logger.debug(f"Found {parsed.chunk_type} chunk with keyword '{parsed.keyword}' at offset {chunk.offset}")
            return parsed

        logger.debug("No character card chunk found in PNG")
        return None

    @staticmethod
    def extract(
        png_data: bytes,
        keywords: Iterable[str] = CARD_KEYWORDS,
        max_chunk_length: int = MAX_CHUNK_LENGTH
    ) -> Optional[str]:
        """
        Extract the character card payload from PNG data.

        Returns:
            Payload text (usually base64), None if absent or undecodable

        Raises:
            PNGStructureError: If png_data is not a PNG
        """
        found = PNGMetadataHandler.find_card_chunk(png_data, keywords, max_chunk_length)
        if found is None:
            return None
        return found.text

    @staticmethod
    def build_text_chunk(keyword: str, text: str) -> bytes:
        """
        Build a tEXt chunk (keyword NUL text) with its CRC.

        Raises:
            ValueError: If the keyword is not a valid PNG keyword
        """
        try:
            keyword_bytes = keyword.encode("latin-1")
        except UnicodeEncodeError:
            raise ValueError(f"PNG keyword must be Latin-1: {keyword!r}")
        if not 1 <= len(keyword_bytes) <= 79 or b"\x00" in keyword_bytes:
            raise ValueError(f"Invalid PNG keyword: {keyword!r}")

        return build_chunk(TEXT_CHUNK, keyword_bytes + b"\x00" + text.encode("utf-8"))

    @staticmethod
    def embed(
        png_data: bytes,
        payload: str,
        keyword: str = DEFAULT_KEYWORD,
        keywords: Iterable[str] = CARD_KEYWORDS,
        max_chunk_length: int = MAX_CHUNK_LENGTH
    ) -> bytes:
        """
        Embed a card payload into a PNG as a tEXt chunk right after IHDR.

        Existing card chunks (any text kind, any keyword case) are dropped so a
        re-export never leaves stale data behind. All other chunks are copied
        verbatim in their original order. If the walk stops before IEND, the
        unparsed remainder of the buffer is appended unchanged.

        Args:
            png_data: Original PNG file data
            payload: Text to store (base64-encoded card JSON)
            keyword: Keyword for the new chunk
            keywords: Keywords identifying stale card chunks to remove

        Returns:
            New PNG data with embedded metadata

        Raises:
            PNGStructureError: If png_data is not a PNG
        """
        keywords = tuple(keywords)
        metadata_chunk = PNGMetadataHandler.build_text_chunk(keyword, payload)

        output = [PNG_SIGNATURE]
        inserted = False
        dropped = 0
        walked_to = len(PNG_SIGNATURE)
        reached_end = False

        for chunk in walk_chunks(png_data, max_chunk_length):
            walked_to = chunk.end
            reached_end = chunk.type == TERMINAL_CHUNK

            if PNGMetadataHandler.is_card_metadata_chunk(chunk, keywords):
                dropped += 1
                continue

            if chunk.type == TERMINAL_CHUNK and not inserted:
                output.append(metadata_chunk)
                inserted = True

            output.append(chunk.chunk_bytes(png_data))

            if not inserted:
                output.append(metadata_chunk)
                inserted = True

        if not inserted:
            output.append(metadata_chunk)

        # Walk stopped early (oversized or truncated chunk): keep the rest as-is
        if not reached_end and walked_to < len(png_data):
            logger.warning(f"Copying {len(png_data) - walked_to} unparsed byte(s) from offset {walked_to} unchanged")
            output.append(bytes(png_data[walked_to:]))

        if dropped:
            logger.debug(f"Removed {dropped} stale card metadata chunk(s)")

        return b"".join(output)

    @staticmethod
    def extract_image(png_path: str) -> bytes:
        """
        Load image data from file.

        Args:
            png_path: Path to image file

        Returns:
            File data as bytes
        """
        try:
            with open(png_path, 'rb') as f:
                return f.read()
        except OSError as e:
            logger.error(f"Error reading image file '{png_path}': {e}")
            raise

    @staticmethod
    def save_image(png_data: bytes, output_path: str) -> None:
        """
        Save PNG data to file.

        Args:
            png_data: PNG file data as bytes
            output_path: Path to save PNG file
        """
        try:
            with open(output_path, 'wb') as f:
                f.write(png_data)
        except OSError as e:
            logger.error(f"Error saving PNG file to '{output_path}': {e}")
            raise
