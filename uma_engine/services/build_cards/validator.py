"""
Build Validator
==============

Turns an untrusted, loosely-typed blob (parsed JSON from a file or from a
card payload) into a canonical HorseState, or rejects it.
"""

import logging
import math
from typing import Any, Dict, Optional

from .corpus import SkillCorpus, is_outfit_id
from .models import (
    APTITUDE_FIELDS,
    MOOD_MAX,
    MOOD_MIN,
    STAT_FIELDS,
    Aptitude,
    HorseState,
    Strategy,
)

logger = logging.getLogger(__name__)

VALID_STRATEGIES = {s.value for s in Strategy}
VALID_APTITUDES = {a.value for a in Aptitude}


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid stat
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _finite_float(value: Any) -> Optional[float]:
    if not _is_number(value):
        return None
    try:
        value = float(value)
    except OverflowError:
        return None
    return value if math.isfinite(value) else None


def _in_closed_set(value: Any, allowed: set) -> bool:
    return isinstance(value, str) and value in allowed


def validate_build(blob: Any, corpus: SkillCorpus) -> Optional[HorseState]:
    """
    Validate and convert a plain-data build into a HorseState.

    Rejects unless the five stats and mood are numbers, strategy and the three
    aptitudes belong to their closed sets, mood is within [-2, 2] and
    ``skills`` is a list. Unknown skill ids are dropped, not rejected.
    Forced positions are carried over as-is when they are a mapping; pruning
    against the skill set is left to the invariant manager.

    Returns:
        HorseState, or None when the blob is not a recognized build
    """
    if not isinstance(blob, dict):
        logger.warning("Rejected build: payload is not an object")
        return None

    for field in STAT_FIELDS + ("mood",):
        if not _is_number(blob.get(field)):
            logger.warning(f"Rejected build: '{field}' missing or not numeric")
            return None

    if not _in_closed_set(blob.get("strategy"), VALID_STRATEGIES):
        logger.warning(f"Rejected build: invalid strategy {blob.get('strategy')!r}")
        return None

    for field in APTITUDE_FIELDS:
        if not _in_closed_set(blob.get(field), VALID_APTITUDES):
            logger.warning(f"Rejected build: invalid {field} {blob.get(field)!r}")
            return None

    mood = blob["mood"]
    if mood < MOOD_MIN or mood > MOOD_MAX:
        logger.warning(f"Rejected build: mood {mood} out of range")
        return None

    raw_skills = blob.get("skills")
    if not isinstance(raw_skills, list):
        logger.warning("Rejected build: 'skills' missing or not a list")
        return None

    skills: Dict[str, str] = {}
    dropped = 0
    for skill_id in raw_skills:
        if isinstance(skill_id, str) and corpus.has_skill(skill_id):
            skills[corpus.group_id(skill_id)] = skill_id
        else:
            dropped += 1
    if dropped:
        logger.info(f"Dropped {dropped} unknown skill id(s) from imported build")

    raw_positions = blob.get("forcedSkillPositions", blob.get("forcedPositions"))
    forced_positions: Dict[str, float] = {}
    if isinstance(raw_positions, dict):
        for skill_id, meters in raw_positions.items():
            meters = _finite_float(meters)
            if isinstance(skill_id, str) and meters is not None:
                forced_positions[skill_id] = meters

    outfit_id = blob.get("outfitId")
    if not isinstance(outfit_id, str):
        outfit_id = ""
    elif outfit_id and not is_outfit_id(outfit_id):
        logger.warning(f"Ignoring malformed outfit id {outfit_id!r} in imported build")
        outfit_id = ""

    return HorseState(
        outfit_id=outfit_id,
        speed=round(blob["speed"]),
        stamina=round(blob["stamina"]),
        power=round(blob["power"]),
        guts=round(blob["guts"]),
        wisdom=round(blob["wisdom"]),
        strategy=blob["strategy"],
        distance_aptitude=blob["distanceAptitude"],
        surface_aptitude=blob["surfaceAptitude"],
        strategy_aptitude=blob["strategyAptitude"],
        mood=round(mood),
        skills=skills,
        forced_skill_positions=forced_positions,
    )
