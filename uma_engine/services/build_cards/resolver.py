"""
Identifier Resolver
==================

Maps noisy, human-readable names read off a screenshot (skill names, outfit
epithets) to canonical ids.

Lookup is an exact match on the normalized name first, then the first table
entry (in corpus order) whose normalized name contains the query or is
contained by it. Names that still do not match are dropped.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional

from .corpus import SkillCorpus

logger = logging.getLogger(__name__)

# Whitespace, ASCII and full-width punctuation, quotes, brackets and stars
_SKILL_NAME_STRIP = re.compile(
    r"[\s\-_・!！?？,、.。:：;；'\"‘’“”「」『』【】()（）\[\]☆★]"
)
_EPITHET_BRACKETS = re.compile(r"[\[\]「」『』【】]")
_EPITHET_STRIP = re.compile(r"[\s\-_・☆★♪]")


def normalize(text: str) -> str:
    """Normalize a skill name for lookup."""
    return _SKILL_NAME_STRIP.sub("", text.lower()).strip()


def normalize_epithet(text: str) -> str:
    """Normalize an outfit epithet such as ``[El☆Número 1]`` for lookup."""
    text = _EPITHET_BRACKETS.sub("", text.lower())
    return _EPITHET_STRIP.sub("", text).strip()


def _lookup(table: Dict[str, str], key: str) -> Optional[str]:
    if not key:
        return None

    found = table.get(key)
    if found:
        return found

    for name, mapped_id in table.items():
        if key in name or name in key:
            return mapped_id
    return None


class IdentifierResolver:
    """Name -> id lookup tables built once from a corpus."""

    def __init__(self, corpus: SkillCorpus):
        self.corpus = corpus
        self.skill_table = self._build_skill_table(corpus)
        self.epithet_table = self._build_epithet_table(corpus)
        logger.debug(
            f"Resolver tables built: {len(self.skill_table)} skill names, "
            f"{len(self.epithet_table)} epithets"
        )

    @staticmethod
    def _build_skill_table(corpus: SkillCorpus) -> Dict[str, str]:
        table: Dict[str, str] = {}
        for skill_id, names in corpus.skill_name_entries():
            # Only skills that exist in the catalog can be resolved
            if not corpus.has_skill(skill_id):
                continue
            for name in names[:2]:
                if not isinstance(name, str) or not name:
                    continue
                key = normalize(name)
                if key:
                    table[key] = skill_id
        return table

    @staticmethod
    def _build_epithet_table(corpus: SkillCorpus) -> Dict[str, str]:
        table: Dict[str, str] = {}
        for outfit_id, epithet in corpus.outfit_entries():
            key = normalize_epithet(epithet)
            if key:
                table[key] = outfit_id
        return table

    def resolve_skill_names(self, names: Iterable[str]) -> List[str]:
        """Map OCR'd skill names to skill ids, dropping unmatched names."""
        resolved = []
        for name in names:
            if not isinstance(name, str):
                continue
            skill_id = _lookup(self.skill_table, normalize(name))
            if skill_id:
                resolved.append(skill_id)
            else:
                logger.debug(f"Could not find skill id for: {name}")
        return resolved

    def resolve_outfit_epithet(self, epithet: str) -> str:
        """Map an OCR'd outfit epithet to an outfit id, "" when nothing matches."""
        if not epithet:
            return ""

        outfit_id = _lookup(self.epithet_table, normalize_epithet(epithet))
        if outfit_id:
            return outfit_id

        logger.info(f"Could not find outfit ID for: {epithet}")
        return ""
