"""
Character Card Data Models
=========================

Pydantic models for the canonical card record, lorebooks and import/export results.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, List, Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .format_detector import CardFormat


class CardSpec(str, Enum):
    """Wrapped envelope tags written on export."""
    V2 = "chara_card_v2"
    V3 = "chara_card_v3"


SPEC_VERSIONS = {
    CardSpec.V2: "2.0",
    CardSpec.V3: "3.0",
}


# ===========================
# Lorebook
# ===========================

class CharacterBookEntry(BaseModel):
    """World info / lorebook entry."""
    model_config = ConfigDict(extra="allow")

    keys: List[str] = Field(default_factory=list)
    content: str = ""
    extensions: Dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    insertion_order: int = 100
    case_sensitive: Optional[bool] = None
    name: Optional[str] = None
    priority: Optional[int] = None
    id: Optional[Union[int, str]] = None
    comment: Optional[str] = None
    selective: Optional[bool] = None
    secondary_keys: Optional[List[str]] = None
    constant: Optional[bool] = None
    position: Optional[str] = None

    @field_validator("keys", "secondary_keys", mode="before")
    @classmethod
    def split_key_string(cls, v: Any) -> Any:
        """Some editors store keys as one comma-separated string."""
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        return v


class CharacterBook(BaseModel):
    """Character lorebook / world info."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None
    scan_depth: Optional[int] = None
    token_budget: Optional[int] = None
    recursive_scanning: Optional[bool] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)
    entries: List[CharacterBookEntry] = Field(default_factory=list)


# ===========================
# Canonical card record
# ===========================

class CharacterCardData(BaseModel):
    """
    Canonical card record.

    Every shape the importer understands is normalised into this model and
    every export is produced from it. Instances are frozen; use model_copy().
    """
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    personality: str = ""
    scenario: str = ""
    first_mes: str = ""
    mes_example: str = ""
    system_prompt: str = ""
    post_history_instructions: str = ""
    alternate_greetings: List[str] = Field(default_factory=list)
    physical_description: str = ""

    # Creator metadata
    avatar: str = ""
    creator_notes: str = ""
    creator: str = ""
    character_version: str = ""
    tags: List[str] = Field(default_factory=list)

    character_book: Optional[CharacterBook] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CharacterRecord(BaseModel):
    """A stored character: canonical card plus portrait and bookkeeping fields."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    image_data: str = Field(default="", alias="imageData")  # data URL
    card: CharacterCardData
    version: int = 1
    created_at: str = Field(default_factory=_utc_now, alias="createdAt")
    updated_at: str = Field(default_factory=_utc_now, alias="updatedAt")
    last_opened_at: Optional[str] = Field(default=None, alias="lastOpenedAt")


class ParsedCard(BaseModel):
    """Outcome of a successful schema parse."""
    format: CardFormat
    card: CharacterCardData
    image_data: str = ""  # only set by CharacterVault exports
    source_id: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


# ===========================
# Import/Export DTOs
# ===========================

class CardErrorKind(str, Enum):
    """Why an import or export did not succeed."""
    INVALID_FILE = "invalid_file"
    NOT_FOUND = "not_found"
    DECODE_ERROR = "decode_error"
    SCHEMA_ERROR = "schema_error"
    PRECONDITION = "precondition"
    UNSUPPORTED_TYPE = "unsupported_type"
    UNSUPPORTED_COMPRESSION = "unsupported_compression"


class CardImportResult(BaseModel):
    """Result of character card import operation."""
    success: bool
    card: Optional[CharacterCardData] = None
    format: str = ""  # Detected format
    profile_image: Optional[bytes] = None  # Portrait (original PNG for card images)
    error: Optional[str] = None
    error_kind: Optional[CardErrorKind] = None
    warnings: List[str] = Field(default_factory=list)  # Any issues encountered

    @classmethod
    def failure(cls, kind: CardErrorKind, error: str) -> "CardImportResult":
        return cls(success=False, error=error, error_kind=kind)


class CardExportResult(BaseModel):
    """Result of character card export operation."""
    success: bool
    content: Optional[bytes] = None
    filename: str = ""
    media_type: str = ""
    error: Optional[str] = None
    error_kind: Optional[CardErrorKind] = None

    @classmethod
    def failure(cls, kind: CardErrorKind, error: str) -> "CardExportResult":
        return cls(success=False, error=error, error_kind=kind)
