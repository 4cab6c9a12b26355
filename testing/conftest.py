"""Shared fixtures for character card tests."""

import base64
import json
import struct
from io import BytesIO

import pytest
from PIL import Image

from charactervault.services.character_cards.png_chunks import PNG_SIGNATURE, build_chunk, walk_chunks


IHDR_1X1 = struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0)


def assemble_png(*chunks):
    """Build a PNG buffer from (type, data) pairs with valid CRCs."""
    return PNG_SIGNATURE + b"".join(build_chunk(t, d) for t, d in chunks)


def text_chunk(keyword, text):
    return ("tEXt", keyword.encode("latin-1") + b"\x00" + text.encode("utf-8"))


def b64_json(obj):
    return base64.b64encode(json.dumps(obj, ensure_ascii=False).encode("utf-8")).decode("ascii")


def chunk_types(png_data):
    return [chunk.type for chunk in walk_chunks(png_data)]


def make_image_bytes(fmt="PNG", size=(4, 4), color=(200, 80, 40), pnginfo=None):
    img = Image.new("RGB", size, color=color)
    output = BytesIO()
    if pnginfo is not None:
        img.save(output, format=fmt, pnginfo=pnginfo)
    else:
        img.save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def minimal_png():
    """Hand-built 1x1 PNG: IHDR, IDAT, IEND."""
    return assemble_png(
        ("IHDR", IHDR_1X1),
        ("IDAT", b"\x78\x9c\x63\x60\x60\x60\x00\x00\x00\x04\x00\x01"),
        ("IEND", b""),
    )


@pytest.fixture
def portrait_png():
    """Real PNG written by Pillow."""
    return make_image_bytes()


@pytest.fixture
def aria_card():
    return {
        "spec": "chara_card_v2",
        "spec_version": "2.0",
        "data": {
            "name": "Aria",
            "description": "A wandering bard from the northern coast.",
            "personality": "curious, warm",
            "scenario": "A tavern at dusk.",
            "first_mes": "Well met, traveller!",
            "mes_example": "<START>\n{{char}}: Another song?",
            "alternate_greetings": ["Hello again.", "Back so soon?"],
            "tags": ["fantasy", "bard"],
            "creator": "someone",
            "character_version": "2.1",
            "extensions": {"talkativeness": "0.6"},
        },
    }
