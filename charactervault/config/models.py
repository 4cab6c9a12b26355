"""Pydantic models for configuration validation."""

from typing import List

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_MAX_CHUNK_LENGTH = 10 * 1024 * 1024


class CodecConfig(BaseModel):
    """Character card codec configuration."""

    max_chunk_length: int = Field(default=DEFAULT_MAX_CHUNK_LENGTH, gt=0, description="Chunks declaring more bytes are treated as corrupt")
    card_keywords: List[str] = Field(default_factory=lambda: ["chara", "ccv3"], min_length=1)
    export_keyword: str = "chara"
    png_export_spec: str = "chara_card_v2"
    json_export_spec: str = "chara_card_v3"
    json_indent: int = Field(default=2, ge=0, le=8)
    convert_portraits: bool = Field(default=False, description="Re-encode non-PNG portraits as PNG before embedding")

    @field_validator('card_keywords')
    @classmethod
    def normalize_keywords(cls, v: List[str]) -> List[str]:
        """Keywords are matched case-insensitively; store them lower-cased."""
        keywords = [k.strip().lower() for k in v]
        if any(not k for k in keywords):
            raise ValueError('card_keywords must not contain empty values')
        return keywords

    @field_validator('png_export_spec', 'json_export_spec')
    @classmethod
    def validate_spec(cls, v: str) -> str:
        if v not in ("chara_card_v2", "chara_card_v3"):
            raise ValueError('export spec must be chara_card_v2 or chara_card_v3')
        return v

    @model_validator(mode='after')
    def export_keyword_is_card_keyword(self) -> 'CodecConfig':
        """A keyword outside card_keywords would not be replaced on re-export."""
        if self.export_keyword.lower() not in self.card_keywords:
            raise ValueError('export_keyword must be one of card_keywords')
        return self


class SystemConfig(BaseModel):
    """Top-level configuration."""

    debug: bool = False
    codec: CodecConfig = Field(default_factory=CodecConfig)
