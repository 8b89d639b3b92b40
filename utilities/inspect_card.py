"""
Inspect an uma card PNG (or build JSON) and report what importing it yields.

Usage:
    python utilities/inspect_card.py <file> [--raw]
"""

import argparse
import json
import sys
from pathlib import Path

# Add parent directory to path so we can import uma_engine
sys.path.insert(0, str(Path(__file__).parent.parent))

from uma_engine.config import ConfigLoader
from uma_engine.services.build_cards import BuildCardImporter, CorpusLoadError, ImportStatus, SkillCorpus


def main():
    parser = argparse.ArgumentParser(description="Inspect an uma card or build JSON file")
    parser.add_argument("file", type=Path, help="PNG card or JSON build file")
    parser.add_argument("--raw", action="store_true", help="Print the raw card payload before validation")
    args = parser.parse_args()

    if not args.file.exists():
        print(f"File not found: {args.file}", file=sys.stderr)
        sys.exit(1)

    loader = ConfigLoader()
    config = loader.load_system_config()
    try:
        corpus = SkillCorpus.from_directory(loader.resolve_path(config.paths.corpus))
    except CorpusLoadError as e:
        print(f"Error loading corpus: {e}", file=sys.stderr)
        sys.exit(1)

    importer = BuildCardImporter(corpus, keyword=config.card.keyword)
    data = args.file.read_bytes()

    if args.raw and importer.is_png_upload(args.file.name, None):
        status, payload = importer.read_card_payload(data)
        print(f"Payload status: {status.value}")
        if payload is not None:
            print(json.dumps(payload, indent=2, ensure_ascii=False))

    result = importer.import_file(data, filename=args.file.name)
    print(f"Import status: {result.status.value} - {result.message}")
    if result.status != ImportStatus.OK:
        sys.exit(2)

    print(json.dumps(result.horse.to_json_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
