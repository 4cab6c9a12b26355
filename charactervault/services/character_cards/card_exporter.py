"""
Character Card Exporter
======================

Export characters as PNG character cards or JSON files.
"""

import base64
import json
import logging
import re
from io import BytesIO
from typing import Any, Dict, Optional

from PIL import Image, UnidentifiedImageError

from charactervault.config.models import CodecConfig

from . import base64_codec
from .card_importer import decode_data_url
from .metadata_handler import PNGMetadataHandler
from .models import CardErrorKind, CardExportResult, CardSpec, CharacterCardData, CharacterRecord
from .png_chunks import PNG_SIGNATURE, PNGStructureError
from .schema_mapper import CardSchemaMapper

logger = logging.getLogger(__name__)

MISSING_IMAGE_MESSAGE = "Character has no image. Please add an image before exporting as PNG."
UNENCODABLE_TEXT_MESSAGE = "Character contains text that cannot be encoded as UTF-8"

# Modes Pillow can write to PNG directly
PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"}


def encode_data_url(content: bytes, media_type: str = "image/png") -> str:
    """Encode bytes as a base64 data URL."""
    return f"data:{media_type};base64,{base64.b64encode(content).decode('ascii')}"


class CharacterCardExporter:
    """Export characters to PNG character cards and JSON documents."""

    def __init__(self, config: Optional[CodecConfig] = None):
        """
        Initialize exporter.

        Args:
            config: Codec configuration (defaults when omitted)
        """
        self.config = config or CodecConfig()

    def export_png(self, card: CharacterCardData, portrait: Optional[bytes]) -> CardExportResult:
        """
        Export character as PNG card.

        Args:
            card: Card to embed
            portrait: The character's PNG image

        Returns:
            CardExportResult with the PNG bytes, or a failure when there is no
            usable portrait
        """
        logger.info(f"Exporting PNG character card for '{card.name}'")

        if not portrait:
            return CardExportResult.failure(CardErrorKind.PRECONDITION, MISSING_IMAGE_MESSAGE)

        if not portrait.startswith(PNG_SIGNATURE) and self.config.convert_portraits:
            try:
                portrait = self._convert_to_png(portrait)
            except (UnidentifiedImageError, OSError) as e:
                logger.error(f"Could not convert portrait to PNG: {e}")
                return CardExportResult.failure(CardErrorKind.INVALID_FILE, "Character image could not be read")

        card_json = json.dumps(
            CardSchemaMapper.serialize(card, self.config.png_export_spec),
            ensure_ascii=False
        )
        try:
            payload = base64_codec.encode(card_json)
        except UnicodeEncodeError as e:
            logger.error(f"Card '{card.name}' cannot be encoded: {e}")
            return CardExportResult.failure(CardErrorKind.SCHEMA_ERROR, UNENCODABLE_TEXT_MESSAGE)

        try:
            card_png = PNGMetadataHandler.embed(
                portrait,
                payload,
                keyword=self.config.export_keyword,
                keywords=self.config.card_keywords,
                max_chunk_length=self.config.max_chunk_length
            )
        except PNGStructureError as e:
            logger.error(f"PNG export failed for '{card.name}': {e}")
            return CardExportResult.failure(CardErrorKind.INVALID_FILE, str(e))

        logger.info(f"Successfully exported character card for '{card.name}'")
        return CardExportResult(
            success=True,
            content=card_png,
            filename=f"{self.sanitize_filename(card.name)}.png",
            media_type="image/png",
        )

    def export_record_png(self, record: CharacterRecord) -> CardExportResult:
        """Export a stored character using its stored image as the portrait."""
        portrait = decode_data_url(record.image_data) if record.image_data else None
        return self.export_png(record.card, portrait)

    def export_json(self, card: CharacterCardData) -> CardExportResult:
        """Export character as JSON in the configured envelope (V3 by default)."""
        document = CardSchemaMapper.serialize(card, self.config.json_export_spec)
        return self._json_result(document, f"{self.sanitize_filename(card.name)}.json")

    def export_v2_json(self, card: CharacterCardData) -> CardExportResult:
        """Export character as a V2 JSON card."""
        document = CardSchemaMapper.serialize(card, CardSpec.V2)
        return self._json_result(document, f"{self.sanitize_filename(card.name)}_v2.json")

    def export_record(self, record: CharacterRecord) -> CardExportResult:
        """Export a stored character as a full CharacterVault JSON document."""
        document = CardSchemaMapper.to_record_dict(record)
        return self._json_result(document, f"{self.sanitize_filename(record.name)}.charactervault.json")

    def _json_result(self, document: Dict[str, Any], filename: str) -> CardExportResult:
        text = json.dumps(document, indent=self.config.json_indent or None, ensure_ascii=False)
        try:
            content = text.encode("utf-8")
        except UnicodeEncodeError as e:
            logger.error(f"Cannot encode {filename}: {e}")
            return CardExportResult.failure(CardErrorKind.SCHEMA_ERROR, UNENCODABLE_TEXT_MESSAGE)
        return CardExportResult(
            success=True,
            content=content,
            filename=filename,
            media_type="application/json",
        )

    @staticmethod
    def _convert_to_png(image_data: bytes) -> bytes:
        """Re-encode another image format (JPEG, WebP, ...) as PNG."""
        with Image.open(BytesIO(image_data)) as img:
            logger.info(f"Converting {img.format} portrait to PNG")
            if img.mode not in PNG_MODES:
                img = img.convert("RGBA")
            output = BytesIO()
            img.save(output, format='PNG')
        return output.getvalue()

    @staticmethod
    def sanitize_filename(name: str) -> str:
        """Sanitize a display name for use as a filename."""
        safe = re.sub(r'[^a-z0-9]', '_', name, flags=re.IGNORECASE).lower()
        return safe or "character"
