"""
Character Card Importer
======================

Import character cards from PNG images or JSON files.
"""

import base64
import binascii
import json
import logging
import mimetypes
from pathlib import Path
from typing import Optional, Union

from charactervault.config.models import CodecConfig

from .format_detector import CardDecodeError, FormatDetector
from .metadata_handler import PNGMetadataHandler
from .models import CardErrorKind, CardImportResult, ParsedCard
from .png_chunks import PNG_SIGNATURE, PNGStructureError
from .schema_mapper import CardSchemaMapper

logger = logging.getLogger(__name__)

UNRECOGNIZED_JSON_MESSAGE = "Unrecognized JSON format. Expected Character Card V2, V3, or CharacterVault export."


def decode_data_url(data_url: str) -> Optional[bytes]:
    """Decode a base64 data URL (data:image/png;base64,...) to bytes."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        return None
    try:
        return base64.b64decode(payload, validate=True)
    except binascii.Error:
        return None


class CharacterCardImporter:
    """Import character cards from PNG and JSON files."""

    def __init__(self, config: Optional[CodecConfig] = None):
        """
        Initialize importer.

        Args:
            config: Codec configuration (defaults when omitted)
        """
        self.config = config or CodecConfig()

    def import_file(self, path: Union[str, Path]) -> CardImportResult:
        """Import a character card from a file on disk."""
        path = Path(path)
        try:
            data = PNGMetadataHandler.extract_image(str(path))
        except OSError as e:
            return CardImportResult.failure(CardErrorKind.INVALID_FILE, f"Could not read file '{path}': {e}")

        content_type = mimetypes.guess_type(path.name)[0] or ""
        return self.import_bytes(data, filename=path.name, content_type=content_type)

    def import_bytes(self, data: bytes, filename: str = "", content_type: str = "") -> CardImportResult:
        """
        Import character from PNG card or JSON data.

        The container is only read; failures are returned, never raised.

        Args:
            data: File contents
            filename: Original file name, used to pick the format
            content_type: Original MIME type, used to pick the format

        Returns:
            CardImportResult with card, profile image, format and warnings
        """
        logger.info(f"Importing character card {filename or '(unnamed)'} ({len(data)} bytes)")
        name = filename.lower()

        if content_type == "application/json" or name.endswith(".json"):
            return self.import_json(data)
        if content_type.startswith("image/") or name.endswith(".png"):
            return self.import_png(data)

        # No usable hint: sniff the content
        if data.startswith(PNG_SIGNATURE):
            return self.import_png(data)
        if data.lstrip()[:1] == b"{":
            return self.import_json(data)

        return CardImportResult.failure(
            CardErrorKind.UNSUPPORTED_TYPE,
            "Unsupported file type. Please upload a PNG or JSON file."
        )

    def import_json(self, data: Union[bytes, str]) -> CardImportResult:
        """Import a character from a JSON document."""
        try:
            text = data.decode("utf-8-sig") if isinstance(data, bytes) else data
            document = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
            logger.warning(f"Failed to parse JSON card: {e}")
            return CardImportResult.failure(CardErrorKind.DECODE_ERROR, "Invalid JSON file")

        parsed = CardSchemaMapper.parse(document)
        if parsed is None:
            return CardImportResult.failure(CardErrorKind.SCHEMA_ERROR, UNRECOGNIZED_JSON_MESSAGE)

        profile_image = None
        warnings = list(parsed.warnings)
        if parsed.image_data:
            profile_image = decode_data_url(parsed.image_data)
            if profile_image is None:
                warnings.append("Export image data could not be decoded and was not imported")

        return self._success(parsed, profile_image, warnings)

    def import_png(self, png_data: bytes) -> CardImportResult:
        """Import a character from a PNG carrying card metadata."""
        try:
            chunk = PNGMetadataHandler.find_card_chunk(
                png_data,
                self.config.card_keywords,
                self.config.max_chunk_length
            )
        except PNGStructureError as e:
            logger.warning(f"Rejected PNG import: {e}")
            return CardImportResult.failure(CardErrorKind.INVALID_FILE, str(e))

        if chunk is None:
            return CardImportResult.failure(
                CardErrorKind.NOT_FOUND,
                "No character data found in PNG. Make sure this is a valid character card."
            )

        if chunk.text is None:
            return CardImportResult.failure(
                CardErrorKind.UNSUPPORTED_COMPRESSION,
                chunk.error or "Compressed character data could not be read"
            )

        try:
            document = FormatDetector.decode_payload(chunk.text)
        except CardDecodeError as e:
            logger.error(f"Failed to decode character data from '{chunk.keyword}' chunk: {e}")
            return CardImportResult.failure(CardErrorKind.DECODE_ERROR, "Invalid character data in PNG file")

        parsed = CardSchemaMapper.parse(document)
        if parsed is None:
            return CardImportResult.failure(CardErrorKind.SCHEMA_ERROR, "Invalid character card format in PNG")

        return self._success(parsed, png_data, list(parsed.warnings))

    @staticmethod
    def _success(parsed: ParsedCard, profile_image: Optional[bytes], warnings: list) -> CardImportResult:
        format_name = FormatDetector.get_format_name(parsed.format)
        logger.info(f"Successfully imported character card '{parsed.card.name}' ({format_name})")
        return CardImportResult(
            success=True,
            card=parsed.card,
            format=format_name,
            profile_image=profile_image,
            warnings=warnings,
        )
