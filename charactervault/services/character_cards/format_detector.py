"""
Card Format Detector
===================

Decodes card payloads and detects which card format they follow.
"""

import json
import logging
from enum import Enum
from typing import Tuple, Optional, Dict, Any, Iterable

from . import base64_codec
from .metadata_handler import CARD_KEYWORDS, PNGMetadataHandler

logger = logging.getLogger(__name__)


class CardFormat(Enum):
    """Supported character card formats."""
    CHARACTERVAULT = "charactervault"
    CHARA_CARD_V3 = "chara_card_v3"
    CHARA_CARD_V2 = "chara_card_v2"
    CHARA_CARD_V1 = "chara_card_v1"
    UNKNOWN = "unknown"


class CardDecodeError(ValueError):
    """Card payload could not be decoded into a JSON value."""
    pass


class FormatDetector:
    """Detect character card format from decoded card data."""

    @staticmethod
    def decode_payload(payload: str) -> Any:
        """
        Decode a metadata payload into JSON.

        Payloads are normally base64 of UTF-8 JSON; a few tools store the
        JSON text directly, which is accepted when it starts with '{'.

        Raises:
            CardDecodeError: If the payload is neither
        """
        text = payload.strip()
        if not text:
            raise CardDecodeError("Character data chunk is empty")

        if not text.startswith("{"):
            try:
                text = base64_codec.decode(text)
            except ValueError as e:
                raise CardDecodeError(f"Character data is not valid base64: {e}") from e

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise CardDecodeError(f"Character data is not valid JSON: {e}") from e
        except RecursionError as e:
            raise CardDecodeError("Character data JSON is nested too deeply") from e

    @staticmethod
    def classify(data: Any) -> CardFormat:
        """
        Classify a decoded card object by its shape.

        Args:
            data: Parsed JSON value

        Returns:
            CardFormat (UNKNOWN for anything that is not an object)
        """
        if not isinstance(data, dict):
            return CardFormat.UNKNOWN

        inner = data.get("data")
        if (
            isinstance(data.get("id"), str)
            and isinstance(data.get("name"), str)
            and isinstance(inner, dict)
            and isinstance(inner.get("spec"), dict)
        ):
            return CardFormat.CHARACTERVAULT

        spec = data.get("spec")
        if spec == CardFormat.CHARA_CARD_V3.value:
            return CardFormat.CHARA_CARD_V3
        if spec == CardFormat.CHARA_CARD_V2.value or isinstance(data.get("data"), dict):
            return CardFormat.CHARA_CARD_V2

        if isinstance(data.get("name"), str):
            return CardFormat.CHARA_CARD_V1

        return CardFormat.UNKNOWN

    @classmethod
    def detect(
        cls,
        png_data: bytes,
        keywords: Iterable[str] = CARD_KEYWORDS
    ) -> Tuple[CardFormat, Optional[Dict[str, Any]]]:
        """
        Detect character card format and parse metadata.

        Args:
            png_data: PNG file data as bytes

        Returns:
            Tuple of (CardFormat, parsed_data_dict)
            parsed_data_dict is None if no valid card data found

        Raises:
            PNGStructureError: If png_data is not a PNG
        """
        payload = PNGMetadataHandler.extract(png_data, keywords)
        if payload is None:
            logger.debug("No character card metadata found in PNG")
            return (CardFormat.UNKNOWN, None)

        try:
            parsed = cls.decode_payload(payload)
        except CardDecodeError as e:
            logger.warning(f"Unreadable character card metadata: {e}")
            return (CardFormat.UNKNOWN, None)

        card_format = cls.classify(parsed)
        if card_format == CardFormat.UNKNOWN:
            return (CardFormat.UNKNOWN, None)
        return (card_format, parsed)

    @classmethod
    def get_format_name(cls, format: CardFormat) -> str:
        """Get human-readable format name."""
        names = {
            CardFormat.CHARACTERVAULT: "CharacterVault Export",
            CardFormat.CHARA_CARD_V3: "Character Card V3",
            CardFormat.CHARA_CARD_V2: "Character Card V2",
            CardFormat.CHARA_CARD_V1: "Character Card V1",
            CardFormat.UNKNOWN: "Unknown Format"
        }
        return names.get(format, "Unknown")
