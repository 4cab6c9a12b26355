"""
Card Schema Mapper
==================

Maps the JSON shapes used by card tools onto CharacterCardData and back.

Recognised shapes, tried in order:
- CharacterVault export: {id, name, imageData, data: {spec, characterBook, extensions}}
- Wrapped V2/V3: {spec, spec_version, data: {...}}, fields possibly split between levels
- Flat legacy (V1): fields at the top level
- Anything else with recognisable character fields (TavernAI/Pygmalion keys)
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from .format_detector import CardFormat, FormatDetector
from .models import (
    SPEC_VERSIONS,
    CardSpec,
    CharacterBook,
    CharacterCardData,
    CharacterRecord,
    ParsedCard,
)

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_NAME = "Imported Character"
DEFAULT_EXPORT_NAME = "Character"
DEFAULT_CHARACTER_VERSION = "1.0"

STRING_FIELDS = (
    "description",
    "personality",
    "scenario",
    "first_mes",
    "mes_example",
    "system_prompt",
    "post_history_instructions",
    "physical_description",
    "avatar",
    "creator_notes",
    "creator",
    "character_version",
)

# Keys some tools use instead of the standard ones
ALTERNATE_KEYS: Dict[str, Sequence[str]] = {
    "character_version": ("create_date",),
    "creator_notes": ("creatorcomment",),
}

# Pre-V2 editors (TavernAI, Pygmalion, Text Generation WebUI)
LEGACY_KEYS: Dict[str, Sequence[str]] = {
    "name": ("char_name",),
    "description": ("char_persona",),
    "scenario": ("world_scenario",),
    "first_mes": ("first_message", "char_greeting"),
    "mes_example": ("example_dialogue",),
}

BEST_EFFORT_KEYS = (
    "char_name",
    "char_persona",
    "world_scenario",
    "char_greeting",
    "first_message",
    "example_dialogue",
    "alternate_greetings",
    "description",
    "personality",
    "scenario",
    "first_mes",
)

Source = Dict[str, Any]


_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def clean_text(text: str) -> str:
    """Replace unpaired UTF-16 surrogates (e.g. a cut-off emoji escape) with U+FFFD."""
    if not _LONE_SURROGATE.search(text):
        return text
    return text.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return clean_text(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_string_list(value: Any) -> Optional[List[str]]:
    if not isinstance(value, list):
        return None
    return [text for text in (_as_text(item) for item in value) if text is not None]


def _lookup_text(sources: Sequence[Source], keys: Sequence[str]) -> str:
    """First non-empty string for any key, checking every source per key."""
    for key in keys:
        for source in sources:
            text = _as_text(source.get(key))
            if text:
                return text
    return ""


def _lookup_list(sources: Sequence[Source], key: str) -> List[str]:
    for source in sources:
        items = _as_string_list(source.get(key))
        if items is not None:
            return items
    return []


def _lookup_dict(sources: Sequence[Source], keys: Sequence[str]) -> Optional[Dict[str, Any]]:
    for key in keys:
        for source in sources:
            value = source.get(key)
            if isinstance(value, dict):
                return value
    return None


def _build_book(raw: Optional[Dict[str, Any]], warnings: List[str]) -> Optional[CharacterBook]:
    if raw is None:
        return None
    try:
        return CharacterBook.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Dropping invalid character book: {e.error_count()} validation error(s)")
        warnings.append("Character book could not be read and was not imported")
        return None


def _build_card(
    sources: Sequence[Source],
    name: str,
    warnings: List[str],
    legacy_keys: bool = False,
    book_keys: Sequence[str] = ("character_book",),
) -> CharacterCardData:
    fields: Dict[str, Any] = {"name": name}

    for field in STRING_FIELDS:
        keys = [field, *ALTERNATE_KEYS.get(field, ())]
        if legacy_keys:
            keys.extend(LEGACY_KEYS.get(field, ()))
        fields[field] = _lookup_text(sources, keys)

    fields["alternate_greetings"] = _lookup_list(sources, "alternate_greetings")
    fields["tags"] = _lookup_list(sources, "tags")
    fields["character_book"] = _build_book(_lookup_dict(sources, book_keys), warnings)
    fields["extensions"] = dict(_lookup_dict(sources, ("extensions",)) or {})

    return CharacterCardData(**fields)


# ===========================
# Shape parsers
# ===========================

def _parse_vault_export(data: Dict[str, Any]) -> Optional[ParsedCard]:
    """Full export from this tool: {id, name, imageData, data: {spec, ...}}."""
    if not (isinstance(data.get("id"), str) and isinstance(data.get("name"), str)):
        return None
    inner = data.get("data")
    if not isinstance(inner, dict) or not isinstance(inner.get("spec"), dict):
        return None

    spec = inner["spec"]
    warnings: List[str] = []
    name = _as_text(spec.get("name")) or clean_text(data["name"])
    card = _build_card(
        [spec, inner],
        name,
        warnings,
        book_keys=("characterBook", "character_book"),
    )

    image_data = data.get("imageData")
    return ParsedCard(
        format=CardFormat.CHARACTERVAULT,
        card=card,
        image_data=image_data if isinstance(image_data, str) else "",
        source_id=data["id"],
        warnings=warnings,
    )


def _parse_wrapped(data: Dict[str, Any]) -> Optional[ParsedCard]:
    """V2/V3 envelope; every field is read from data{} first, then the top level."""
    inner = data.get("data")
    if not isinstance(inner, dict):
        return None

    sources = [inner, data]
    name = _lookup_text(sources, ("name",))
    if not name:
        return None

    warnings: List[str] = []
    card_format = FormatDetector.classify(data)
    if card_format not in (CardFormat.CHARA_CARD_V2, CardFormat.CHARA_CARD_V3):
        card_format = CardFormat.CHARA_CARD_V2

    spec = data.get("spec")
    if isinstance(spec, str) and not spec.startswith("chara_card_"):
        warnings.append(f"Unrecognized card spec '{spec}', imported as {CardFormat.CHARA_CARD_V2.value}")

    return ParsedCard(
        format=card_format,
        card=_build_card(sources, name, warnings),
        warnings=warnings,
    )


def _parse_flat(data: Dict[str, Any]) -> Optional[ParsedCard]:
    """Legacy V1 card with every field at the top level."""
    name = data.get("name")
    if not isinstance(name, str):
        return None

    warnings: List[str] = []
    card = _build_card([data], clean_text(name) or DEFAULT_IMPORT_NAME, warnings)
    return ParsedCard(format=CardFormat.CHARA_CARD_V1, card=card, warnings=warnings)


def _parse_best_effort(data: Dict[str, Any]) -> Optional[ParsedCard]:
    """Salvage whatever character fields exist under known alternate names."""
    target = data.get("data") if isinstance(data.get("data"), dict) else data
    if not any(key in target for key in BEST_EFFORT_KEYS):
        return None

    warnings = ["Card format was not recognized; imported the fields that could be identified"]
    sources = [target]
    name = _lookup_text(sources, ("name", *LEGACY_KEYS["name"])) or DEFAULT_IMPORT_NAME
    card = _build_card(sources, name, warnings, legacy_keys=True)

    logger.info(f"Best-effort import recovered card '{name}'")
    return ParsedCard(format=CardFormat.CHARA_CARD_V1, card=card, warnings=warnings)


_PARSERS: Sequence[Callable[[Dict[str, Any]], Optional[ParsedCard]]] = (
    _parse_vault_export,
    _parse_wrapped,
    _parse_flat,
    _parse_best_effort,
)


def normalize_card_name(name: str) -> str:
    """Replace control characters with spaces, collapse whitespace and trim."""
    cleaned = "".join(" " if ord(ch) < 32 or ord(ch) == 127 else ch for ch in name)
    cleaned = " ".join(cleaned.split())
    return cleaned or DEFAULT_EXPORT_NAME


class CardSchemaMapper:
    """Convert between card JSON shapes and the canonical CharacterCardData."""

    @staticmethod
    def parse(data: Any) -> Optional[ParsedCard]:
        """
        Normalise decoded card JSON.

        Args:
            data: Parsed JSON value

        Returns:
            ParsedCard from the first shape parser that accepts the data,
            None if no parser recognises it
        """
        if not isinstance(data, dict):
            logger.debug(f"Card data is a {type(data).__name__}, not an object")
            return None

        for parser in _PARSERS:
            parsed = parser(data)
            if parsed is not None:
                logger.debug(f"Card '{parsed.card.name}' parsed as {parsed.format.value}")
                return parsed

        logger.debug("Card data did not match any known shape")
        return None

    @staticmethod
    def serialize(card: CharacterCardData, spec: Union[CardSpec, str] = CardSpec.V2) -> Dict[str, Any]:
        """
        Convert a card to the wrapped envelope {spec, spec_version, data}.

        Every optional field is emitted with a default so the result is
        schema-complete; the lorebook key is only present when there is one.
        """
        spec = CardSpec(spec)

        data: Dict[str, Any] = {
            "name": normalize_card_name(card.name),
            "description": card.description,
            "personality": card.personality,
            "scenario": card.scenario,
            "first_mes": card.first_mes,
            "mes_example": card.mes_example,
            "system_prompt": card.system_prompt,
            "post_history_instructions": card.post_history_instructions,
            "alternate_greetings": list(card.alternate_greetings),
        }
        if card.character_book is not None:
            data["character_book"] = card.character_book.model_dump(mode="json", exclude_none=True)
        data.update({
            "extensions": dict(card.extensions),
            "creator": card.creator,
            "character_version": card.character_version or DEFAULT_CHARACTER_VERSION,
            "tags": list(card.tags),
            "creator_notes": card.creator_notes,
            "avatar": card.avatar,
        })

        return {
            "spec": spec.value,
            "spec_version": SPEC_VERSIONS[spec],
            "data": data,
        }

    @staticmethod
    def to_record_dict(record: CharacterRecord) -> Dict[str, Any]:
        """Convert a stored character to the CharacterVault export shape."""
        card = record.card
        inner: Dict[str, Any] = {
            "spec": card.model_dump(mode="json", exclude={"character_book", "extensions"}),
        }
        if card.character_book is not None:
            inner["characterBook"] = card.character_book.model_dump(mode="json", exclude_none=True)
        inner["extensions"] = dict(card.extensions)

        exported = {
            "id": record.id,
            "name": record.name,
            "imageData": record.image_data,
            "data": inner,
            "version": record.version,
            "createdAt": record.created_at,
            "updatedAt": record.updated_at,
        }
        if record.last_opened_at is not None:
            exported["lastOpenedAt"] = record.last_opened_at
        return exported
