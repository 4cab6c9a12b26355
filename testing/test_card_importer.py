"""
Tests for the character card importer.

Every failure is returned as a CardImportResult, never raised.
"""

import base64
import json
import zlib

import pytest

from charactervault.config.models import CodecConfig
from charactervault.services.character_cards.card_exporter import encode_data_url
from charactervault.services.character_cards.card_importer import CharacterCardImporter, decode_data_url
from charactervault.services.character_cards.metadata_handler import PNGMetadataHandler
from charactervault.services.character_cards.models import CardErrorKind
from conftest import IHDR_1X1, assemble_png, b64_json, text_chunk


@pytest.fixture
def importer():
    return CharacterCardImporter()


def b64_text(text):
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def card_png(payload, keyword="chara"):
    return assemble_png(("IHDR", IHDR_1X1), text_chunk(keyword, payload), ("IDAT", b"x"), ("IEND", b""))


class TestPNGImport:
    """PNG cards."""

    def test_flat_card(self, importer):
        """Scenario: tEXt 'chara' chunk holding base64 of a flat card."""
        png = card_png(b64_json({"name": "Aria", "description": "..."}))
        result = importer.import_bytes(png, filename="aria.png")

        assert result.success
        assert result.card.name == "Aria"
        assert result.card.description == "..."
        assert result.profile_image == png
        assert result.format == "Character Card V1"

    def test_wrapped_card(self, importer, aria_card, portrait_png):
        png = PNGMetadataHandler.embed(portrait_png, b64_json(aria_card))
        result = importer.import_png(png)

        assert result.success
        assert result.format == "Character Card V2"
        assert result.card.alternate_greetings == ["Hello again.", "Back so soon?"]

    def test_unicode_payload(self, importer):
        png = card_png(b64_json({"name": "アリア 🎻", "description": "北の海岸から来た吟遊詩人"}))
        result = importer.import_png(png)
        assert result.card.name == "アリア 🎻"
        assert result.card.description == "北の海岸から来た吟遊詩人"

    def test_uppercase_keyword(self, importer):
        result = importer.import_png(card_png(b64_json({"name": "Aria"}), keyword="CHARA"))
        assert result.success

    def test_raw_json_payload(self, importer):
        result = importer.import_png(card_png(json.dumps({"name": "Raw"})))
        assert result.success
        assert result.card.name == "Raw"

    def test_invalid_signature(self, importer):
        """Scenario: first 8 bytes wrong -> invalid file, not an empty success."""
        result = importer.import_bytes(b"\x89PNX\r\n\x1a\n" + b"\x00" * 40, filename="card.png")

        assert not result.success
        assert result.error_kind == CardErrorKind.INVALID_FILE
        assert "signature" in result.error
        assert result.card is None

    def test_no_metadata(self, importer, portrait_png):
        result = importer.import_png(portrait_png)

        assert not result.success
        assert result.error_kind == CardErrorKind.NOT_FOUND
        assert "No character data found" in result.error

    def test_bad_base64(self, importer):
        result = importer.import_png(card_png("%%%not-base64%%%"))
        assert result.error_kind == CardErrorKind.DECODE_ERROR
        assert result.error == "Invalid character data in PNG file"

    def test_base64_of_non_json(self, importer):
        result = importer.import_png(card_png("aGVsbG8gd29ybGQ="))  # 'hello world'
        assert result.error_kind == CardErrorKind.DECODE_ERROR

    def test_unrecognized_shape(self, importer):
        result = importer.import_png(card_png(b64_json(["not", "an", "object"])))
        assert result.error_kind == CardErrorKind.SCHEMA_ERROR

    def test_undecodable_compressed_chunk(self, importer):
        itxt = b"chara\x00\x01\x00\x00\x00" + b"not zlib data"
        png = assemble_png(("IHDR", IHDR_1X1), ("iTXt", itxt), ("IEND", b""))
        result = importer.import_png(png)

        assert result.error_kind == CardErrorKind.UNSUPPORTED_COMPRESSION

    def test_compressed_chunk(self, importer):
        payload = b64_json({"name": "Zipped"}).encode("ascii")
        itxt = b"chara\x00\x01\x00\x00\x00" + zlib.compress(payload)
        png = assemble_png(("IHDR", IHDR_1X1), ("iTXt", itxt), ("IEND", b""))

        assert importer.import_png(png).card.name == "Zipped"

    def test_truncated_file_still_imports(self, importer):
        png = card_png(b64_json({"name": "Aria"}))
        result = importer.import_png(png[:-5])
        assert result.success

    def test_container_not_modified(self, importer):
        png = card_png(b64_json({"name": "Aria"}))
        snapshot = bytes(png)
        importer.import_png(png)
        assert png == snapshot

    def test_configured_keywords(self):
        importer = CharacterCardImporter(CodecConfig(card_keywords=["ccv3"], export_keyword="ccv3"))
        result = importer.import_png(card_png(b64_json({"name": "Aria"}), keyword="chara"))
        assert result.error_kind == CardErrorKind.NOT_FOUND


class TestJSONImport:
    """JSON documents."""

    def test_v3_json(self, importer, aria_card):
        aria_card["spec"] = "chara_card_v3"
        result = importer.import_bytes(json.dumps(aria_card).encode("utf-8"), filename="aria.json")

        assert result.success
        assert result.format == "Character Card V3"
        assert result.profile_image is None

    def test_invalid_json(self, importer):
        result = importer.import_bytes(b"{not json", filename="broken.json")
        assert result.error_kind == CardErrorKind.DECODE_ERROR
        assert result.error == "Invalid JSON file"

    def test_unrecognized_json(self, importer):
        result = importer.import_json('{"hello": "world"}')
        assert result.error_kind == CardErrorKind.SCHEMA_ERROR
        assert result.error.startswith("Unrecognized JSON format")

    def test_utf8_bom(self, importer):
        data = "\ufeff" + json.dumps({"name": "Bom"})
        assert importer.import_json(data.encode("utf-8")).card.name == "Bom"

    def test_vault_export_keeps_image(self, importer, portrait_png):
        document = {
            "id": "1",
            "name": "Aria",
            "imageData": encode_data_url(portrait_png),
            "data": {"spec": {"name": "Aria"}, "extensions": {}},
        }
        result = importer.import_json(json.dumps(document))

        assert result.success
        assert result.format == "CharacterVault Export"
        assert result.profile_image == portrait_png

    def test_vault_export_bad_image(self, importer):
        document = {"id": "1", "name": "Aria", "imageData": "blob:xyz", "data": {"spec": {"name": "Aria"}}}
        result = importer.import_json(json.dumps(document))

        assert result.success
        assert result.profile_image is None
        assert result.warnings


class TestRouting:
    """Format selection from name, content type and content."""

    def test_content_type_json(self, importer):
        result = importer.import_bytes(b'{"name": "A"}', content_type="application/json")
        assert result.success

    def test_sniff_png(self, importer):
        assert importer.import_bytes(card_png(b64_json({"name": "A"}))).success

    def test_sniff_json(self, importer):
        assert importer.import_bytes(b'  {"name": "A"}').success

    def test_unsupported(self, importer):
        result = importer.import_bytes(b"GIF89a....", filename="card.gif")
        assert result.error_kind == CardErrorKind.UNSUPPORTED_TYPE

    def test_image_content_type_goes_to_png(self, importer):
        result = importer.import_bytes(b"\xff\xd8\xff\xe0jpeg", content_type="image/jpeg")
        assert result.error_kind == CardErrorKind.INVALID_FILE


def test_import_file(tmp_path, importer):
    path = tmp_path / "aria.png"
    path.write_bytes(card_png(b64_json({"name": "Aria"})))
    assert importer.import_file(path).card.name == "Aria"


def test_import_missing_file(tmp_path, importer):
    result = importer.import_file(tmp_path / "missing.png")
    assert result.error_kind == CardErrorKind.INVALID_FILE


def test_decode_data_url():
    assert decode_data_url("data:image/png;base64,AAEC") == b"\x00\x01\x02"
    assert decode_data_url("data:text/plain,hello") is None
    assert decode_data_url("not a url") is None


class TestDeeplyNestedJSON:
    """JSON nested past the decoder's recursion limit."""

    NESTED = "[" * 100000 + "]" * 100000

    def test_json_file(self, importer):
        result = importer.import_bytes(self.NESTED.encode("ascii"), filename="deep.json")

        assert not result.success
        assert result.error_kind == CardErrorKind.DECODE_ERROR
        assert result.error == "Invalid JSON file"

    def test_png_payload(self, importer):
        result = importer.import_png(card_png(b64_text("{\"a\":" + self.NESTED + "}")))

        assert result.error_kind == CardErrorKind.DECODE_ERROR
        assert result.error == "Invalid character data in PNG file"

    def test_raw_png_payload(self, importer):
        result = importer.import_png(card_png("{\"a\":" + self.NESTED + "}"))
        assert result.error_kind == CardErrorKind.DECODE_ERROR
