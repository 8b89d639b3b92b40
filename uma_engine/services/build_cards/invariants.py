"""
Build Invariant Manager
======================

Pure state transitions on HorseState. Every transition returns a new record
and leaves the following true:

- every forced position refers to a skill that is held
- a record with an outfit holds exactly that outfit's unique skill
- holding the runaway skill forces the Oonige strategy
- at most one skill per group
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Union

from .corpus import SkillCorpus, base_skill_id, is_outfit_id
from .models import (
    MOOD_MAX,
    MOOD_MIN,
    STAT_FIELDS,
    STAT_MAX,
    STAT_MIN,
    Aptitude,
    HorseState,
    OCRHorseData,
    Strategy,
)
from .resolver import IdentifierResolver

logger = logging.getLogger(__name__)

RUNAWAY_SKILL_ID = "202051"

# Alt-outfit unique inherit that every character can learn
UNIVERSAL_PINK_SKILLS = frozenset({"92111091"})

# Unique skills sit in rarity classes 3-5; rarity 6 are evolved/pink skills
GENERAL_RARITY_LIMIT = 3
UNIQUE_RARITIES = range(3, 6)
PINK_RARITY = 6

# Leading digit of the inheritable ("gold") copy of a unique skill
INHERITED_UNIQUE_PREFIX = "9"

APTITUDE_ATTRS = {
    "surfaceAptitude": "surface_aptitude",
    "distanceAptitude": "distance_aptitude",
    "strategyAptitude": "strategy_aptitude",
}


def derive_unique_skill_id(outfit_id: str) -> str:
    """
    Unique skill id of an outfit.

    The character index is the outfit id without its first and last two
    digits, the variant is the last two digits.
    """
    index = int(outfit_id[1:-2])
    variant = int(outfit_id[-2:])
    return str(100000 + 10000 * (variant - 1) + index * 10 + 1)


def inherited_unique_skill_id(unique_skill_id: str) -> str:
    """Palette-swapped (inheritable) counterpart of a unique skill."""
    base = base_skill_id(unique_skill_id)
    return INHERITED_UNIQUE_PREFIX + base[1:]


class BuildInvariantManager:
    """Applies mutations to builds while keeping them internally consistent."""

    def __init__(self, corpus: SkillCorpus, resolver: Optional[IdentifierResolver] = None):
        self.corpus = corpus
        self.resolver = resolver or IdentifierResolver(corpus)

    # ------------------------------------------------------------------
    # Skill classification
    # ------------------------------------------------------------------

    def is_universally_accessible(self, skill_id: str) -> bool:
        return skill_id in UNIVERSAL_PINK_SKILLS or skill_id.startswith("4")

    def is_general_skill(self, skill_id: str) -> bool:
        """Skills any character can hold, kept across outfit changes."""
        return (
            self.corpus.rarity(skill_id) < GENERAL_RARITY_LIMIT
            or self.is_universally_accessible(skill_id)
        )

    def selectable_skills(self, outfit_id: str) -> List[str]:
        """Skills the picker offers for an outfit, in catalog order."""
        selectable = []
        for skill_id in self.corpus.skill_data:
            rarity = self.corpus.rarity(skill_id)
            if rarity in UNIQUE_RARITIES:
                continue
            if (
                rarity != PINK_RARITY
                or (outfit_id and skill_id.startswith(outfit_id))
                or self.is_universally_accessible(skill_id)
            ):
                selectable.append(skill_id)
        return selectable

    def sorted_skills(self, horse: HorseState) -> List[str]:
        """Held skills in display order: metadata order, then id."""
        return sorted(horse.skill_ids(), key=self.corpus.order_key)

    def unique_skill_for(self, outfit_id: str) -> Optional[str]:
        if not outfit_id:
            return None
        skill_id = derive_unique_skill_id(outfit_id)
        if not self.corpus.has_skill(skill_id):
            logger.warning(f"Unique skill {skill_id} for outfit {outfit_id} is not in the skill catalog")
        return skill_id

    # ------------------------------------------------------------------
    # Invariant repair
    # ------------------------------------------------------------------

    def prune_forced_positions(self, horse: HorseState) -> HorseState:
        held = set(horse.skills.values())
        kept = {sid: pos for sid, pos in horse.forced_skill_positions.items() if sid in held}
        if len(kept) == len(horse.forced_skill_positions):
            return horse
        return horse.model_copy(update={"forced_skill_positions": kept})

    def enforce_runaway_coupling(self, horse: HorseState) -> HorseState:
        if horse.has_skill(RUNAWAY_SKILL_ID) and horse.strategy != Strategy.OONIGE:
            logger.debug("Runaway skill held, switching strategy to Oonige")
            return horse.model_copy(update={"strategy": Strategy.OONIGE})
        return horse

    def _with_unique_skill(self, skills: Dict[str, str], outfit_id: str) -> Dict[str, str]:
        unique_id = self.unique_skill_for(outfit_id)
        if unique_id is None:
            return skills
        group = self.corpus.group_id(unique_id)
        # Unique skill leads; any other occupant of its group is dropped
        others = {g: sid for g, sid in skills.items() if g != group and sid != unique_id}
        return {group: unique_id, **others}

    def _finalize(self, horse: HorseState) -> HorseState:
        return self.enforce_runaway_coupling(self.prune_forced_positions(horse))

    def normalize_record(self, horse: HorseState) -> HorseState:
        """Repair a freshly validated record so all invariants hold."""
        if horse.outfit_id:
            skills = self._with_unique_skill(dict(horse.skills), horse.outfit_id)
            if skills != horse.skills:
                horse = horse.model_copy(update={"skills": skills})
        return self._finalize(horse)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_outfit_change(self, horse: HorseState, outfit_id: str) -> HorseState:
        """Switch outfit: keep general skills, swap in the new unique skill."""
        if outfit_id and not is_outfit_id(outfit_id):
            raise ValueError(f"Malformed outfit id: {outfit_id!r}")

        old_unique = self.unique_skill_for(horse.outfit_id)
        skills = {
            g: sid for g, sid in horse.skills.items()
            if self.is_general_skill(sid) and sid != old_unique
        }
        if outfit_id:
            unique_id = self.unique_skill_for(outfit_id)
            skills[self.corpus.group_id(unique_id)] = unique_id

        removed = set(horse.skills.values()) - set(skills.values())
        if removed:
            logger.debug(f"Outfit change to '{outfit_id}' removed skills: {sorted(removed)}")

        updated = horse.model_copy(update={"outfit_id": outfit_id, "skills": skills})
        return self._finalize(updated)

    def apply_ocr_assembly(self, data: OCRHorseData) -> HorseState:
        """Build a record from vision-extracted fields."""
        outfit_id = self.resolver.resolve_outfit_epithet(data.outfit or "")
        skill_ids = self.resolver.resolve_skill_names(data.skills or [])

        if outfit_id:
            unique_id = derive_unique_skill_id(outfit_id)
            unique_base = base_skill_id(unique_id)
            inherited = inherited_unique_skill_id(unique_id)
            skill_ids = [
                sid for sid in skill_ids
                if base_skill_id(sid) not in (unique_base, inherited)
            ]
            skill_ids.insert(0, unique_id)

        skills: Dict[str, str] = {}
        for skill_id in skill_ids:
            skills[self.corpus.group_id(skill_id)] = skill_id
        if outfit_id:
            skills = self._with_unique_skill(skills, outfit_id)

        horse = HorseState(
            outfit_id=outfit_id,
            speed=_clamp_stat(data.speed),
            stamina=_clamp_stat(data.stamina),
            power=_clamp_stat(data.power),
            guts=_clamp_stat(data.guts),
            wisdom=_clamp_stat(data.wisdom),
            strategy=data.strategy,
            distance_aptitude=data.distance_aptitude,
            surface_aptitude=data.surface_aptitude,
            strategy_aptitude=data.strategy_aptitude,
            mood=MOOD_MAX,
            skills=skills,
        )
        logger.info(
            f"Assembled build from OCR: outfit='{outfit_id}', "
            f"{len(skills)} skills from {len(data.skills)} names"
        )
        return self._finalize(horse)

    def set_forced_position(
        self,
        horse: HorseState,
        skill_id: str,
        raw_value: Union[str, float, int, None],
    ) -> HorseState:
        """Set a forced activation position, or clear it for empty/unparsable input."""
        value = _parse_meters(raw_value)
        positions = dict(horse.forced_skill_positions)
        if value is None:
            positions.pop(skill_id, None)
        else:
            positions[skill_id] = value
        return self._finalize(horse.model_copy(update={"forced_skill_positions": positions}))

    def set_skills(self, horse: HorseState, skill_ids: Iterable[str]) -> HorseState:
        """Replace the skill selection; the outfit's unique skill stays."""
        skills: Dict[str, str] = {}
        for skill_id in skill_ids:
            if self.corpus.has_skill(skill_id):
                skills[self.corpus.group_id(skill_id)] = skill_id
        if horse.outfit_id:
            skills = self._with_unique_skill(skills, horse.outfit_id)
        return self._finalize(horse.model_copy(update={"skills": skills}))

    def add_skill(self, horse: HorseState, skill_id: str) -> HorseState:
        """Add a skill, replacing whatever held its group."""
        if not self.corpus.has_skill(skill_id):
            raise ValueError(f"Unknown skill id: {skill_id}")
        group = self.corpus.group_id(skill_id)
        if horse.outfit_id and group == self.corpus.group_id(self.unique_skill_for(horse.outfit_id)):
            return horse
        skills = dict(horse.skills)
        skills[group] = skill_id
        return self._finalize(horse.model_copy(update={"skills": skills}))

    def remove_skill(self, horse: HorseState, skill_id: str) -> HorseState:
        """Remove a skill and its forced position. The outfit's unique skill is not removable."""
        if horse.outfit_id and skill_id == self.unique_skill_for(horse.outfit_id):
            return horse
        skills = {g: sid for g, sid in horse.skills.items() if sid != skill_id}
        return self._finalize(horse.model_copy(update={"skills": skills}))

    def set_strategy(self, horse: HorseState, strategy: Union[Strategy, str]) -> HorseState:
        return self._finalize(horse.model_copy(update={"strategy": Strategy(strategy)}))

    def set_stat(self, horse: HorseState, stat: str, value: float) -> HorseState:
        if stat not in STAT_FIELDS:
            raise ValueError(f"Unknown stat: {stat}")
        return horse.model_copy(update={stat: _clamp_stat(value)})

    def set_aptitude(self, horse: HorseState, field: str, aptitude: Union[Aptitude, str]) -> HorseState:
        attr = APTITUDE_ATTRS.get(field, field)
        if attr not in APTITUDE_ATTRS.values():
            raise ValueError(f"Unknown aptitude field: {field}")
        return horse.model_copy(update={attr: Aptitude(aptitude)})

    def set_mood(self, horse: HorseState, mood: int) -> HorseState:
        if isinstance(mood, bool) or not isinstance(mood, int) or not MOOD_MIN <= mood <= MOOD_MAX:
            raise ValueError(f"Mood must be an integer between {MOOD_MIN} and {MOOD_MAX}")
        return horse.model_copy(update={"mood": mood})

    def reset(self) -> HorseState:
        return HorseState()


def _clamp_stat(value: float) -> int:
    return max(STAT_MIN, min(STAT_MAX, int(round(value))))


def _parse_meters(raw_value: Union[str, float, int, None]) -> Optional[float]:
    if raw_value is None or isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, (int, float)):
        try:
            value = float(raw_value)
        except OverflowError:
            return None
    else:
        text = str(raw_value).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    if not math.isfinite(value):
        return None
    return value
