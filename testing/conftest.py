"""Shared fixtures: a small skill/outfit corpus and PNG builders."""

import io
import struct
import zlib

import pytest
from PIL import Image

from uma_engine.services.build_cards import (
    BuildCardImporter,
    BuildInvariantManager,
    IdentifierResolver,
    SkillCorpus,
)
from uma_engine.services.build_cards.card_exporter import portrait_filename
from uma_engine.services.build_cards.metadata_handler import PNG_SIGNATURE


SKILL_DATA = {
    "100011": {"rarity": 3},    # Special Week [Special Dreamer] unique
    "110011": {"rarity": 3},    # Special Week [Hopp'n♪Happy Heart] unique
    "100021": {"rarity": 3},    # Silence Suzuka [Silent Innocence] unique
    "900011": {"rarity": 1},    # inheritable copy of 100011
    "200011": {"rarity": 1},
    "200012": {"rarity": 2},
    "200332": {"rarity": 2},
    "202051": {"rarity": 1},    # runaway
    "410011": {"rarity": 6},
    "92111091": {"rarity": 6},
    "1001011": {"rarity": 6},
    "1002011": {"rarity": 6},
}

SKILL_META = {
    "100011": {"groupId": 10001, "order": 1},
    "110011": {"groupId": 11001, "order": 1},
    "100021": {"groupId": 10002, "order": 1},
    "900011": {"groupId": 90001, "order": 50},
    "200011": {"groupId": 20001, "order": 20},
    "200012": {"groupId": 20001, "order": 19},
    "200332": {"groupId": 20033, "order": 10},
    "202051": {"groupId": 20205, "order": 5},
    "410011": {"groupId": 41001, "order": 30},
    "92111091": {"groupId": 921110, "order": 31},
}

SKILL_NAMES = {
    "100011": ["シューティングスター", "Shooting Star"],
    "110011": ["流れ星", "Falling Star"],
    "100021": ["先頭の景色は譲らない…！", "Innocent Swift"],
    "900011": ["シューティングスター", "Shooting Star"],
    "200011": ["右回り○", "Right-Handed ○"],
    "200012": ["右回り◎", "Right-Handed ◎"],
    "200332": ["スピードスター", "Speed Star"],
    "202051": ["大逃げ", "Runaway"],
    "999999": ["幻のスキル", "Phantom Skill"],  # not in the catalog
}

UMAS = {
    "1001": {
        "name": ["スペシャルウィーク", "Special Week"],
        "outfits": {"100101": "[Special Dreamer]", "100102": "[Hopp'n♪Happy Heart]"},
    },
    "1002": {
        "name": ["サイレンススズカ", "Silence Suzuka"],
        "outfits": {"100201": "[Silent Innocence]"},
    },
}


def make_chunk(chunk_type: bytes, data: bytes) -> bytes:
    body = chunk_type + data
    return struct.pack(">I", len(data)) + body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)


def make_minimal_png(extra_chunks=()) -> bytes:
    """1x1 grayscale PNG, optional extra chunks placed before IEND."""
    ihdr = make_chunk(b"IHDR", struct.pack(">IIBBBBB", 1, 1, 8, 0, 0, 0, 0))
    idat = make_chunk(b"IDAT", zlib.compress(b"\x00\x00"))
    return PNG_SIGNATURE + ihdr + idat + b"".join(extra_chunks) + make_chunk(b"IEND", b"")


def make_pil_png(size=(8, 8), color=(200, 30, 60)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", size, color).save(output, format="PNG")
    return output.getvalue()


def build_blob(**overrides):
    blob = {
        "outfitId": "",
        "speed": 1200,
        "stamina": 1000,
        "power": 900,
        "guts": 400,
        "wisdom": 600,
        "strategy": "Senkou",
        "distanceAptitude": "A",
        "surfaceAptitude": "A",
        "strategyAptitude": "B",
        "mood": 1,
        "skills": [],
        "forcedSkillPositions": {},
    }
    blob.update(overrides)
    return blob


@pytest.fixture
def corpus():
    return SkillCorpus(
        skill_data=SKILL_DATA,
        skill_meta=SKILL_META,
        skill_names=SKILL_NAMES,
        umas=UMAS,
    )


@pytest.fixture
def resolver(corpus):
    return IdentifierResolver(corpus)


@pytest.fixture
def manager(corpus, resolver):
    return BuildInvariantManager(corpus, resolver)


@pytest.fixture
def importer(corpus, manager):
    return BuildCardImporter(corpus, manager)


@pytest.fixture
def minimal_png():
    return make_minimal_png()


@pytest.fixture
def png_factory():
    return make_minimal_png


@pytest.fixture
def chunk_factory():
    return make_chunk


@pytest.fixture
def blob_factory():
    return build_blob


@pytest.fixture
def portraits_dir(tmp_path):
    """Portrait directory holding icons for the default outfit and Silence Suzuka."""
    directory = tmp_path / "portraits"
    directory.mkdir()
    for outfit_id in ("100101", "100201"):
        (directory / portrait_filename(outfit_id)).write_bytes(make_pil_png())
    return directory


@pytest.fixture
def pil_png_factory():
    return make_pil_png


@pytest.fixture
def corpus_tables():
    """Corpus tables keyed by their on-disk filename."""
    return {
        "skill_data.json": SKILL_DATA,
        "skill_meta.json": SKILL_META,
        "skillnames.json": SKILL_NAMES,
        "umas.json": UMAS,
    }
