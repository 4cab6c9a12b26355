"""
Character Card System
====================

Portable character configurations embedded in PNG images with base64-encoded metadata.

Supports:
- Character Card V3 and V2 (wrapped JSON, 'chara' / 'ccv3' keywords)
- Legacy V1 / TavernAI flat JSON
- CharacterVault full exports (JSON)
"""

from .card_exporter import CharacterCardExporter
from .card_importer import CharacterCardImporter
from .format_detector import CardDecodeError, CardFormat, FormatDetector
from .metadata_handler import PNGMetadataHandler, TextChunk
from .models import (
    CardErrorKind,
    CardExportResult,
    CardImportResult,
    CardSpec,
    CharacterBook,
    CharacterBookEntry,
    CharacterCardData,
    CharacterRecord,
    ParsedCard,
)
from .png_chunks import PNGChunk, PNGStructureError, walk_chunks
from .schema_mapper import CardSchemaMapper

__all__ = [
    'CharacterCardExporter',
    'CharacterCardImporter',
    'CardDecodeError',
    'CardFormat',
    'FormatDetector',
    'PNGMetadataHandler',
    'TextChunk',
    'CardErrorKind',
    'CardExportResult',
    'CardImportResult',
    'CardSpec',
    'CharacterBook',
    'CharacterBookEntry',
    'CharacterCardData',
    'CharacterRecord',
    'ParsedCard',
    'PNGChunk',
    'PNGStructureError',
    'walk_chunks',
    'CardSchemaMapper',
]
