"""
Skill and Outfit Corpus
======================

Static game data tables the build services look skills and outfits up in.
Loaded once at startup and never mutated afterwards.
"""

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

SKILL_DATA_FILE = "skill_data.json"
SKILL_META_FILE = "skill_meta.json"
SKILL_NAMES_FILE = "skillnames.json"
UMAS_FILE = "umas.json"


class CorpusLoadError(Exception):
    """Corpus files missing or malformed."""
    pass


OUTFIT_ID_LENGTH = 6


def is_outfit_id(value: str) -> bool:
    """Outfit ids are six digits: 4-digit character id + 2-digit variant."""
    return len(value) == OUTFIT_ID_LENGTH and value.isascii() and value.isdigit()


def base_skill_id(skill_id: str) -> str:
    """Strip the ``-n`` variant suffix some name-table ids carry."""
    return skill_id.split("-")[0]


class SkillCorpus:
    """
    Read-only view over the skill catalog, skill metadata, skill names and
    the character/outfit table.
    """

    def __init__(
        self,
        skill_data: Dict[str, Dict[str, Any]],
        skill_meta: Optional[Dict[str, Dict[str, Any]]] = None,
        skill_names: Optional[Dict[str, List[str]]] = None,
        umas: Optional[Dict[str, Dict[str, Any]]] = None,
    ):
        self.skill_data: Mapping[str, Dict[str, Any]] = MappingProxyType(dict(skill_data))
        self.skill_meta: Mapping[str, Dict[str, Any]] = MappingProxyType(dict(skill_meta or {}))
        self.skill_names: Mapping[str, List[str]] = MappingProxyType(dict(skill_names or {}))
        self.umas: Mapping[str, Dict[str, Any]] = MappingProxyType(dict(umas or {}))

    @classmethod
    def from_directory(cls, corpus_dir: Path) -> "SkillCorpus":
        """
        Load the four corpus tables from a directory.

        Raises:
            CorpusLoadError: If a table is missing or is not a JSON object
        """
        corpus_dir = Path(corpus_dir)
        tables = {}
        for filename in (SKILL_DATA_FILE, SKILL_META_FILE, SKILL_NAMES_FILE, UMAS_FILE):
            path = corpus_dir / filename
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except FileNotFoundError:
                raise CorpusLoadError(f"Corpus file not found: {path}")
            except json.JSONDecodeError as e:
                raise CorpusLoadError(f"Invalid JSON in {path}: {e}")

            if not isinstance(data, dict):
                raise CorpusLoadError(f"Corpus file {path} must contain a JSON object")
            tables[filename] = data

        corpus = cls(
            skill_data=tables[SKILL_DATA_FILE],
            skill_meta=tables[SKILL_META_FILE],
            skill_names=tables[SKILL_NAMES_FILE],
            umas=tables[UMAS_FILE],
        )
        logger.info(
            f"Loaded corpus from {corpus_dir}: {len(corpus.skill_data)} skills, "
            f"{len(corpus.umas)} characters"
        )
        return corpus

    # Skills

    def has_skill(self, skill_id: str) -> bool:
        """True when the id (ignoring any variant suffix) is in the catalog."""
        return base_skill_id(skill_id) in self.skill_data

    def rarity(self, skill_id: str) -> int:
        entry = self.skill_data.get(base_skill_id(skill_id)) or {}
        return int(entry.get("rarity", 0))

    def group_id(self, skill_id: str) -> str:
        """Mutual-exclusion group of a skill; skills without metadata are their own group."""
        meta = self.skill_meta.get(skill_id) or self.skill_meta.get(base_skill_id(skill_id))
        if meta and meta.get("groupId") is not None:
            return str(meta["groupId"])
        return skill_id

    def order_key(self, skill_id: str) -> Tuple[float, str]:
        meta = self.skill_meta.get(skill_id) or {}
        return (meta.get("order", float("inf")), skill_id)

    def skill_name_entries(self) -> List[Tuple[str, List[str]]]:
        """(skill id, [ja, en]) pairs in table order."""
        return list(self.skill_names.items())

    # Characters and outfits

    def outfit_entries(self) -> List[Tuple[str, str]]:
        """(outfit id, epithet) pairs in table order."""
        entries = []
        for uma in self.umas.values():
            outfits = uma.get("outfits") if isinstance(uma, dict) else None
            if not outfits:
                continue
            for outfit_id, epithet in outfits.items():
                if isinstance(epithet, str):
                    entries.append((outfit_id, epithet))
        return entries

    def outfit_ids(self) -> List[str]:
        return [outfit_id for outfit_id, _ in self.outfit_entries()]

    def character_name(self, outfit_id: str) -> Optional[str]:
        """English character name for an outfit, None if unknown."""
        if not outfit_id:
            return None
        uma = self.umas.get(outfit_id[:4])
        if not isinstance(uma, dict):
            return None
        names = uma.get("name") or []
        if len(names) > 1 and names[1]:
            return names[1]
        return None
