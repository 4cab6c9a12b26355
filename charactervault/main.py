"""Command line entry point for CharacterVault."""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from charactervault.config import ConfigLoader, ConfigLoadError, SystemConfig
from charactervault.services.character_cards import (
    CardSchemaMapper,
    CharacterCardExporter,
    CharacterCardImporter,
    CharacterRecord,
    FormatDetector,
    PNGMetadataHandler,
    PNGStructureError,
    walk_chunks,
)
from charactervault.services.character_cards.card_exporter import encode_data_url

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> Optional[Path]:
    """Configure logging. Logs go to stderr so command output can be piped."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_file = None
    if debug:
        log_dir = Path("data/debug_logs/cli")
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"cli_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    # Only our own loggers get DEBUG/INFO
    app_logger = logging.getLogger('charactervault')
    app_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    logging.getLogger('PIL').setLevel(logging.WARNING)

    return log_file


def _write_output(content: bytes, output: Optional[str]) -> None:
    if output:
        Path(output).write_bytes(content)
        print(f"Wrote {output}")
    else:
        sys.stdout.write(content.decode("utf-8"))
        sys.stdout.write("\n")


def cmd_import(args: argparse.Namespace, config: SystemConfig) -> int:
    """Import a PNG/JSON card and print it as JSON."""
    importer = CharacterCardImporter(config.codec)
    result = importer.import_file(args.file)
    if not result.success:
        print(f"Import failed: {result.error}", file=sys.stderr)
        return 1

    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    exporter = CharacterCardExporter(config.codec)
    if args.format == "vault":
        record = CharacterRecord(
            name=result.card.name,
            image_data=encode_data_url(result.profile_image) if result.profile_image else "",
            card=result.card,
        )
        exported = exporter.export_record(record)
    elif args.format == "v2":
        exported = exporter.export_v2_json(result.card)
    else:
        exported = exporter.export_json(result.card)

    _write_output(exported.content, args.output)
    return 0


def cmd_export(args: argparse.Namespace, config: SystemConfig) -> int:
    """Embed a JSON card into a portrait PNG."""
    importer = CharacterCardImporter(config.codec)
    result = importer.import_file(args.card)
    if not result.success:
        print(f"Could not read card: {result.error}", file=sys.stderr)
        return 1

    portrait = result.profile_image
    if args.portrait:
        portrait = PNGMetadataHandler.extract_image(args.portrait)

    exporter = CharacterCardExporter(config.codec)
    exported = exporter.export_png(result.card, portrait)
    if not exported.success:
        print(f"Export failed: {exported.error}", file=sys.stderr)
        return 1

    output = args.output or exported.filename
    PNGMetadataHandler.save_image(exported.content, output)
    print(f"Wrote {output}")
    return 0


def cmd_inspect(args: argparse.Namespace, config: SystemConfig) -> int:
    """List the chunks and card metadata of a PNG."""
    png_data = PNGMetadataHandler.extract_image(args.file)
    max_length = config.codec.max_chunk_length
    try:
        chunks = list(walk_chunks(png_data, max_length))
    except PNGStructureError as e:
        print(f"Invalid file: {e}", file=sys.stderr)
        return 1

    print(f"{'type':<6} {'offset':>10} {'length':>10}  crc")
    for chunk in chunks:
        status = "ok" if chunk.crc_valid() else "BAD"
        print(f"{chunk.type:<6} {chunk.offset:>10} {chunk.length:>10}  {status}")
        if chunk.is_text:
            text_chunk = PNGMetadataHandler.parse_text_chunk(chunk)
            note = text_chunk.error or f"{len(text_chunk.text or '')} chars"
            print(f"       keyword={text_chunk.keyword!r} ({note})")

    card_format, data = FormatDetector.detect(png_data, config.codec.card_keywords)
    print(f"Card format: {FormatDetector.get_format_name(card_format)}")
    if data is not None:
        parsed = CardSchemaMapper.parse(data)
        if parsed is not None:
            print(f"Card name: {parsed.card.name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="charactervault",
        description="Read and write character cards embedded in PNG images",
    )
    parser.add_argument("--config-dir", default=".", help="Directory containing config/system.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging to a timestamped file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Decode a PNG or JSON card to JSON")
    import_parser.add_argument("file", help="PNG or JSON card")
    import_parser.add_argument("-o", "--output", help="Write JSON here instead of stdout")
    import_parser.add_argument("--format", choices=["v3", "v2", "vault"], default="v3")
    import_parser.set_defaults(handler=cmd_import)

    export_parser = subparsers.add_parser("export", help="Embed a JSON card into a PNG portrait")
    export_parser.add_argument("card", help="Card JSON (V1/V2/V3 or CharacterVault export)")
    export_parser.add_argument("--portrait", help="Portrait PNG (defaults to the image in a CharacterVault export)")
    export_parser.add_argument("-o", "--output", help="Output PNG path")
    export_parser.set_defaults(handler=cmd_export)

    inspect_parser = subparsers.add_parser("inspect", help="List PNG chunks and card metadata")
    inspect_parser.add_argument("file", help="PNG file")
    inspect_parser.set_defaults(handler=cmd_inspect)

    return parser


def main(argv: Optional[list] = None) -> int:
    """Run the command line interface."""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigLoader(Path(args.config_dir)).load_system_config()
    except ConfigLoadError as e:
        print(str(e), file=sys.stderr)
        return 2

    log_file = setup_logging(debug=args.debug or config.debug)
    if log_file:
        logger.debug(f"Log file: {log_file}")

    try:
        return args.handler(args, config)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
