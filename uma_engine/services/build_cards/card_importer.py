"""
Build Card Importer
==================

Import horse builds from JSON files or from uma card PNGs.
"""

import json
import logging
from typing import Any, Optional

from .corpus import SkillCorpus
from .invariants import BuildInvariantManager
from .metadata_handler import NotAPngError, PNGMetadataHandler, TruncatedPngError
from .models import IMPORT_MESSAGES, BuildImportResult, ImportStatus
from .validator import validate_build

logger = logging.getLogger(__name__)

CARD_KEYWORD = "UmaCard"
PNG_CONTENT_TYPE = "image/png"


def _result(status: ImportStatus, source: str, horse=None, detail: Optional[str] = None) -> BuildImportResult:
    message = IMPORT_MESSAGES[status]
    if detail:
        message = f"{message} ({detail})"
    return BuildImportResult(status=status, horse=horse, source=source, message=message)


class BuildCardImporter:
    """Import horse builds from uploaded files."""

    def __init__(
        self,
        corpus: SkillCorpus,
        manager: Optional[BuildInvariantManager] = None,
        keyword: str = CARD_KEYWORD,
    ):
        """
        Initialize importer.

        Args:
            corpus: Skill/outfit corpus used to cleanse skill ids
            manager: Invariant manager applied to every accepted record
            keyword: tEXt keyword the card payload is stored under
        """
        self.corpus = corpus
        self.manager = manager or BuildInvariantManager(corpus)
        self.keyword = keyword

    @staticmethod
    def is_png_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
        if content_type == PNG_CONTENT_TYPE:
            return True
        return bool(filename) and filename.lower().endswith(".png")

    def import_file(
        self,
        data: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> BuildImportResult:
        """Import a build, routing PNGs through the card reader and everything else through JSON."""
        if self.is_png_upload(filename, content_type):
            return self.import_card(data)
        return self.import_json(data)

    def import_json(self, data: bytes) -> BuildImportResult:
        """Import a build from raw JSON file bytes."""
        try:
            blob = json.loads(data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to parse build JSON: {e}")
            return _result(ImportStatus.INVALID_JSON, "json", detail=str(e))

        return self._accept(blob, "json")

    def import_card(self, png_data: bytes) -> BuildImportResult:
        """Import a build from the metadata of an uma card PNG."""
        status, horse_blob = self.read_card_payload(png_data)
        if status != ImportStatus.OK:
            return _result(status, "card")
        return self._accept(horse_blob, "card")

    def read_card_payload(self, png_data: bytes) -> tuple[ImportStatus, Any]:
        """
        Extract the raw ``horse`` payload from a card.

        The payload ``version`` is not checked.

        Returns:
            (ImportStatus, horse blob); the blob is None unless status is OK
        """
        try:
            text = PNGMetadataHandler.read_text_chunk(png_data, self.keyword)
        except NotAPngError:
            logger.warning("Card import rejected: not a PNG")
            return ImportStatus.NOT_A_PNG, None
        except TruncatedPngError as e:
            logger.warning(f"Card import rejected: {e}")
            return ImportStatus.TRUNCATED, None
        except UnicodeDecodeError as e:
            logger.warning(f"Card payload is not valid UTF-8: {e}")
            return ImportStatus.PAYLOAD_CORRUPT, None

        if text is None:
            return ImportStatus.NOT_FOUND, None

        try:
            card = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse uma card data: {e}")
            return ImportStatus.PAYLOAD_CORRUPT, None

        if not isinstance(card, dict) or "horse" not in card:
            logger.error("Uma card data is not an object with a 'horse' field")
            return ImportStatus.PAYLOAD_CORRUPT, None

        logger.debug(f"Read uma card payload (version={card.get('version')!r})")
        return ImportStatus.OK, card["horse"]

    def _accept(self, blob: Any, source: str) -> BuildImportResult:
        horse = validate_build(blob, self.corpus)
        if horse is None:
            return _result(ImportStatus.INVALID_RECORD, source)

        horse = self.manager.normalize_record(horse)
        logger.info(f"Imported build from {source} (outfit='{horse.outfit_id}', {len(horse.skills)} skills)")
        return _result(ImportStatus.OK, source, horse=horse)
