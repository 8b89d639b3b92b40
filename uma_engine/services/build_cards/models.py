"""
Build Card Data Models
=====================

Pydantic models for the canonical horse build record and the results that
import/export operations hand back to callers.
"""

from enum import Enum
from typing import Optional, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field


STAT_MIN = 1
STAT_MAX = 2000
MOOD_MIN = -2
MOOD_MAX = 2

STAT_FIELDS = ("speed", "stamina", "power", "guts", "wisdom")
APTITUDE_FIELDS = ("surfaceAptitude", "distanceAptitude", "strategyAptitude")


class Strategy(str, Enum):
    """Running styles."""
    NIGE = "Nige"        # Front Runner
    SENKOU = "Senkou"    # Pace Chaser
    SASI = "Sasi"        # Late Surger
    OIKOMI = "Oikomi"    # End Closer
    OONIGE = "Oonige"    # Runaway


class Aptitude(str, Enum):
    """Letter-grade aptitudes, best first."""
    S = "S"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"
    G = "G"


class HorseState(BaseModel):
    """
    Canonical build record.

    ``skills`` maps group id -> skill id, so at most one skill per group can
    ever be held. ``forced_skill_positions`` maps skill id -> meters and may
    only reference skills that are present in ``skills``. Both containers are
    treated as values: mutations go through ``model_copy`` with fresh dicts.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    outfit_id: str = Field(default="", alias="outfitId")
    speed: int = 1200
    stamina: int = 1200
    power: int = 800
    guts: int = 400
    wisdom: int = 400
    strategy: Strategy = Strategy.SENKOU
    distance_aptitude: Aptitude = Field(default=Aptitude.A, alias="distanceAptitude")
    surface_aptitude: Aptitude = Field(default=Aptitude.A, alias="surfaceAptitude")
    strategy_aptitude: Aptitude = Field(default=Aptitude.A, alias="strategyAptitude")
    mood: int = MOOD_MAX
    skills: Dict[str, str] = Field(default_factory=dict)
    forced_skill_positions: Dict[str, float] = Field(default_factory=dict, alias="forcedSkillPositions")

    def skill_ids(self) -> List[str]:
        """Skill ids in insertion order."""
        return list(self.skills.values())

    def has_skill(self, skill_id: str) -> bool:
        return skill_id in self.skills.values()

    def to_json_dict(self) -> Dict[str, Any]:
        """Plain-data form used for JSON files and card payloads."""
        return {
            "outfitId": self.outfit_id,
            "speed": self.speed,
            "stamina": self.stamina,
            "power": self.power,
            "guts": self.guts,
            "wisdom": self.wisdom,
            "strategy": self.strategy.value,
            "distanceAptitude": self.distance_aptitude.value,
            "surfaceAptitude": self.surface_aptitude.value,
            "strategyAptitude": self.strategy_aptitude.value,
            "mood": self.mood,
            "skills": self.skill_ids(),
            "forcedSkillPositions": dict(self.forced_skill_positions),
        }


class OCRHorseData(BaseModel):
    """Fields read off a screenshot by the vision model."""
    name: str = ""
    outfit: str = ""
    speed: int
    stamina: int
    power: int
    guts: int
    wisdom: int
    surface_aptitude: Aptitude = Field(default=Aptitude.A, alias="surfaceAptitude")
    distance_aptitude: Aptitude = Field(default=Aptitude.A, alias="distanceAptitude")
    strategy_aptitude: Aptitude = Field(default=Aptitude.A, alias="strategyAptitude")
    strategy: Strategy = Strategy.NIGE
    skills: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


# ===========================
# Import/Export DTOs
# ===========================

class ImportStatus(str, Enum):
    """Outcome of importing a build from a file."""
    OK = "ok"
    NOT_A_PNG = "not_a_png"
    TRUNCATED = "truncated"
    NOT_FOUND = "not_found"
    PAYLOAD_CORRUPT = "payload_corrupt"
    INVALID_JSON = "invalid_json"
    INVALID_RECORD = "invalid_record"


IMPORT_MESSAGES = {
    ImportStatus.OK: "Build loaded.",
    ImportStatus.NOT_A_PNG: "Not a PNG image.",
    ImportStatus.TRUNCATED: "PNG file is truncated or has no IEND chunk.",
    ImportStatus.NOT_FOUND: "No uma card data found in PNG. Please use a valid uma card image.",
    ImportStatus.PAYLOAD_CORRUPT: "Uma card data embedded in the PNG is corrupted.",
    ImportStatus.INVALID_JSON: "Failed to parse JSON file.",
    ImportStatus.INVALID_RECORD: "Not a recognized horse build. Please check the file format.",
}


class BuildImportResult(BaseModel):
    """Result of a build import operation."""
    status: ImportStatus
    horse: Optional[HorseState] = None
    source: str = "json"  # json or card
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ImportStatus.OK


class ExportedFile(BaseModel):
    """A file produced by the exporter, ready to be offered as a download."""
    filename: str
    media_type: str
    content: bytes
