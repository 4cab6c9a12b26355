"""
Tests for the character card exporter.
"""

import json
from io import BytesIO

import pytest
from PIL import Image

from charactervault.config.models import CodecConfig
from charactervault.services.character_cards import base64_codec
from charactervault.services.character_cards.card_exporter import (
    MISSING_IMAGE_MESSAGE,
    UNENCODABLE_TEXT_MESSAGE,
    CharacterCardExporter,
    encode_data_url,
)
from charactervault.services.character_cards.card_importer import CharacterCardImporter
from charactervault.services.character_cards.metadata_handler import PNGMetadataHandler
from charactervault.services.character_cards.models import (
    CardErrorKind,
    CharacterBook,
    CharacterCardData,
    CharacterRecord,
)
from charactervault.services.character_cards.png_chunks import PNG_SIGNATURE, walk_chunks
from conftest import b64_json, make_image_bytes, text_chunk, assemble_png, IHDR_1X1


@pytest.fixture
def exporter():
    return CharacterCardExporter()


@pytest.fixture
def card():
    return CharacterCardData(
        name="Aria the Bard",
        description="Sings of the northern sea. 🌊",
        first_mes="Well met!",
        alternate_greetings=["Again?"],
        tags=["fantasy"],
        character_version="1.0",
        character_book=CharacterBook(name="Coast", entries=[{"keys": ["sea"], "content": "Cold and grey."}]),
        extensions={"world": "north"},
    )


def card_chunk_count(png_data):
    return sum(1 for c in walk_chunks(png_data) if PNGMetadataHandler.is_card_metadata_chunk(c))


class TestPNGExport:
    """PNG cards."""

    @pytest.mark.parametrize("portrait", [None, b""])
    def test_missing_portrait(self, exporter, card, portrait):
        """Scenario: no portrait -> reported failure, no bytes."""
        result = exporter.export_png(card, portrait)

        assert not result.success
        assert result.error_kind == CardErrorKind.PRECONDITION
        assert result.error == MISSING_IMAGE_MESSAGE
        assert "image" in result.error
        assert result.content is None

    def test_round_trip(self, exporter, card, portrait_png):
        result = exporter.export_png(card, portrait_png)

        assert result.success
        assert result.filename == "aria_the_bard.png"
        assert result.media_type == "image/png"

        imported = CharacterCardImporter().import_png(result.content)
        assert imported.success
        assert imported.card == card

    def test_payload_is_wrapped_v2(self, exporter, card, portrait_png):
        result = exporter.export_png(card, portrait_png)
        payload = json.loads(base64_codec.decode(PNGMetadataHandler.extract(result.content)))

        assert payload["spec"] == "chara_card_v2"
        assert payload["spec_version"] == "2.0"
        assert payload["data"]["name"] == "Aria the Bard"
        assert payload["data"]["character_book"]["name"] == "Coast"

    def test_reexport_keeps_one_chunk(self, exporter, card, portrait_png):
        first = exporter.export_png(card, portrait_png).content
        renamed = card.model_copy(update={"name": "Aria II"})
        second = exporter.export_png(renamed, first).content

        assert card_chunk_count(second) == 1
        assert CharacterCardImporter().import_png(second).card.name == "Aria II"

    def test_replaces_foreign_card(self, exporter, card):
        """Scenario: portrait already carries a card from another tool."""
        portrait = assemble_png(
            ("IHDR", IHDR_1X1),
            text_chunk("ccv3", b64_json({"spec": "chara_card_v3", "data": {"name": "Stale"}})),
            ("IDAT", b"px"),
            ("IEND", b""),
        )
        result = exporter.export_png(card, portrait)

        assert card_chunk_count(result.content) == 1
        assert CharacterCardImporter().import_png(result.content).card.name == "Aria the Bard"

    def test_pixels_untouched(self, exporter, card, portrait_png):
        result = exporter.export_png(card, portrait_png)
        with Image.open(BytesIO(portrait_png)) as before, Image.open(BytesIO(result.content)) as after:
            assert list(before.getdata()) == list(after.getdata())

    def test_non_png_portrait_rejected(self, exporter, card):
        jpeg = make_image_bytes(fmt="JPEG")
        result = exporter.export_png(card, jpeg)

        assert not result.success
        assert result.error_kind == CardErrorKind.INVALID_FILE

    def test_non_png_portrait_converted(self, card):
        exporter = CharacterCardExporter(CodecConfig(convert_portraits=True))
        result = exporter.export_png(card, make_image_bytes(fmt="JPEG"))

        assert result.success
        assert result.content.startswith(PNG_SIGNATURE)
        assert CharacterCardImporter().import_png(result.content).card.name == "Aria the Bard"

    def test_unreadable_portrait_with_conversion(self, card):
        exporter = CharacterCardExporter(CodecConfig(convert_portraits=True))
        result = exporter.export_png(card, b"garbage bytes")
        assert result.error_kind == CardErrorKind.INVALID_FILE

    def test_export_keyword(self, card, portrait_png):
        exporter = CharacterCardExporter(CodecConfig(export_keyword="ccv3"))
        result = exporter.export_png(card, portrait_png)
        assert PNGMetadataHandler.find_card_chunk(result.content).keyword == "ccv3"

    def test_record_png(self, exporter, card, portrait_png):
        record = CharacterRecord(name=card.name, image_data=encode_data_url(portrait_png), card=card)
        assert exporter.export_record_png(record).success

    def test_record_png_without_image(self, exporter, card):
        record = CharacterRecord(name=card.name, card=card)
        assert exporter.export_record_png(record).error_kind == CardErrorKind.PRECONDITION


class TestJSONExport:
    """JSON documents."""

    def test_v3_json(self, exporter, card):
        result = exporter.export_json(card)
        document = json.loads(result.content)

        assert result.filename == "aria_the_bard.json"
        assert result.media_type == "application/json"
        assert document["spec"] == "chara_card_v3"
        assert document["spec_version"] == "3.0"
        assert document["data"]["description"] == "Sings of the northern sea. 🌊"

    def test_v2_json(self, exporter, card):
        result = exporter.export_v2_json(card)
        assert result.filename == "aria_the_bard_v2.json"
        assert json.loads(result.content)["spec"] == "chara_card_v2"

    def test_indent(self, card):
        compact = CharacterCardExporter(CodecConfig(json_indent=0)).export_json(card)
        assert b"\n" not in compact.content

    def test_record_export(self, exporter, card):
        record = CharacterRecord(name="Aria", image_data="data:image/png;base64,AAAA", card=card)
        result = exporter.export_record(record)
        document = json.loads(result.content)

        assert result.filename == "aria.charactervault.json"
        assert document["id"] == record.id
        assert document["data"]["characterBook"]["name"] == "Coast"

        reimported = CharacterCardImporter().import_json(result.content)
        assert reimported.card == card


@pytest.mark.parametrize("name,expected", [
    ("Aria", "aria"),
    ("Aria the Bard!", "aria_the_bard_"),
    ("../etc/passwd", "___etc_passwd"),
    ("", "character"),
])
def test_sanitize_filename(name, expected):
    assert CharacterCardExporter.sanitize_filename(name) == expected


def test_encode_data_url():
    assert encode_data_url(b"\x00\x01\x02") == "data:image/png;base64,AAEC"


class TestUnpairedSurrogates:
    """Cut-off emoji escapes in imported JSON."""

    def test_imported_card_exports(self, exporter, portrait_png):
        imported = CharacterCardImporter().import_json('{"name": "Aria", "description": "cut emoji \\ud83d"}')
        assert imported.card.description == "cut emoji \ufffd"

        result = exporter.export_png(imported.card, portrait_png)
        assert result.success
        assert CharacterCardImporter().import_png(result.content).card.description == "cut emoji \ufffd"
        assert exporter.export_json(imported.card).success

    def test_unencodable_extension_reported(self, exporter, portrait_png):
        card = CharacterCardData(name="Aria", extensions={"note": "\ud83d"})

        png = exporter.export_png(card, portrait_png)
        document = exporter.export_json(card)

        for result in (png, document):
            assert not result.success
            assert result.error_kind == CardErrorKind.SCHEMA_ERROR
            assert result.error == UNENCODABLE_TEXT_MESSAGE
            assert result.content is None
