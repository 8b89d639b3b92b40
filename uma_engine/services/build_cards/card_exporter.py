"""
Build Card Exporter
==================

Export horse builds as JSON files or as uma card PNGs (the character's
portrait with the build embedded in a tEXt chunk).
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict

from .corpus import SkillCorpus
from .metadata_handler import PNGMetadataHandler
from .models import ExportedFile, HorseState

logger = logging.getLogger(__name__)

CARD_KEYWORD = "UmaCard"
CARD_VERSION = 1
DEFAULT_OUTFIT_ID = "100101"  # Special Week, first outfit


class PortraitNotFoundError(FileNotFoundError):
    """No portrait image available to embed the card into."""
    pass


def build_card_payload(horse: HorseState, version: int = CARD_VERSION) -> Dict[str, Any]:
    return {"version": version, "horse": horse.to_json_dict()}


def serialize_card_payload(horse: HorseState, version: int = CARD_VERSION) -> str:
    """Compact JSON text stored inside the card."""
    return json.dumps(build_card_payload(horse, version), ensure_ascii=False, separators=(',', ':'))


def portrait_filename(outfit_id: str) -> str:
    """Trained character icon filename; the first four digits are the character id."""
    return f"trained_chr_icon_{outfit_id[:4]}_{outfit_id}_02.png"


class BuildCardExporter:
    """Export horse builds to downloadable files."""

    def __init__(
        self,
        corpus: SkillCorpus,
        portraits_dir: str,
        keyword: str = CARD_KEYWORD,
        version: int = CARD_VERSION,
        default_outfit_id: str = DEFAULT_OUTFIT_ID,
    ):
        """
        Initialize exporter.

        Args:
            corpus: Corpus used to name exported files after the character
            portraits_dir: Directory holding trained character icons
            keyword: tEXt keyword for the card payload
            version: Card payload version written
            default_outfit_id: Outfit whose portrait is used for builds without one
        """
        self.corpus = corpus
        self.portraits_dir = Path(portraits_dir)
        self.keyword = keyword
        self.version = version
        self.default_outfit_id = default_outfit_id

    def base_filename(self, horse: HorseState) -> str:
        name = self.corpus.character_name(horse.outfit_id) or "horse"
        return re.sub(r"\s+", "_", name)

    def to_json(self, horse: HorseState) -> ExportedFile:
        """Export as a pretty-printed JSON file."""
        content = json.dumps(horse.to_json_dict(), indent=2, ensure_ascii=False)
        return ExportedFile(
            filename=f"{self.base_filename(horse)}.json",
            media_type="application/json",
            content=content.encode('utf-8'),
        )

    def load_portrait(self, outfit_id: str) -> bytes:
        """
        Load the portrait PNG for an outfit, falling back to the default outfit.

        Raises:
            PortraitNotFoundError: If neither portrait exists
        """
        candidates = [outfit_id or self.default_outfit_id]
        if outfit_id and outfit_id != self.default_outfit_id:
            candidates.append(self.default_outfit_id)

        for candidate in candidates:
            path = self.portraits_dir / portrait_filename(candidate)
            if path.exists():
                with open(path, 'rb') as f:
                    return f.read()
            logger.warning(f"Portrait not found: {path}")

        raise PortraitNotFoundError(f"No portrait available for outfit '{outfit_id}'")

    def to_card(self, horse: HorseState) -> ExportedFile:
        """
        Export as an uma card PNG.

        Raises:
            PortraitNotFoundError: If no portrait image is available
            PNGFormatError: If the portrait file is not a well-formed PNG
        """
        logger.info(f"Exporting uma card for outfit '{horse.outfit_id}'")
        portrait = self.load_portrait(horse.outfit_id)
        card_png = PNGMetadataHandler.write_text_chunk(
            portrait,
            self.keyword,
            serialize_card_payload(horse, self.version),
        )
        return ExportedFile(
            filename=f"{self.base_filename(horse)}_card.png",
            media_type="image/png",
            content=card_png,
        )
