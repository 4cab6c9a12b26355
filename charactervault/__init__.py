"""
CharacterVault - Character Card Codec

Reads and writes roleplay character cards embedded in PNG images
(tEXt/iTXt/zTXt metadata) and as standalone JSON documents.
"""

__version__ = "0.1.0"
