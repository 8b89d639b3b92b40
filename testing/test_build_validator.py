"""
Tests for build validation.

Tests cover:
- Acceptance of a well-formed build
- Rejection of missing/non-numeric stats, bad enums, mood out of range
- Cleansing of unknown skill ids
- Forced-position carry-over
"""

import pytest

from uma_engine.services.build_cards import Aptitude, Strategy, validate_build


class TestAccept:

    def test_valid_build(self, corpus, blob_factory):
        horse = validate_build(blob_factory(skills=["200332", "100011"]), corpus)

        assert horse is not None
        assert horse.speed == 1200
        assert horse.strategy == Strategy.SENKOU
        assert horse.strategy_aptitude == Aptitude.B
        assert horse.mood == 1
        assert horse.skill_ids() == ["200332", "100011"]

    def test_outfit_id_defaults_to_empty(self, corpus, blob_factory):
        blob = blob_factory()
        del blob["outfitId"]
        assert validate_build(blob, corpus).outfit_id == ""

    def test_malformed_outfit_id_dropped(self, corpus, blob_factory):
        assert validate_build(blob_factory(outfitId="special"), corpus).outfit_id == ""

    def test_mood_bounds_inclusive(self, corpus, blob_factory):
        assert validate_build(blob_factory(mood=-2), corpus).mood == -2
        assert validate_build(blob_factory(mood=2), corpus).mood == 2

    def test_float_stats_rounded(self, corpus, blob_factory):
        assert validate_build(blob_factory(speed=1199.6), corpus).speed == 1200

    def test_input_not_mutated(self, corpus, blob_factory):
        blob = blob_factory(skills=["200332", "nope"])
        validate_build(blob, corpus)
        assert blob["skills"] == ["200332", "nope"]


class TestReject:

    def test_mood_out_of_range(self, corpus, blob_factory):
        assert validate_build(blob_factory(mood=3), corpus) is None
        assert validate_build(blob_factory(mood=-3), corpus) is None

    @pytest.mark.parametrize("field", ["speed", "stamina", "power", "guts", "wisdom", "mood"])
    def test_missing_numeric_field(self, corpus, blob_factory, field):
        blob = blob_factory()
        del blob[field]
        assert validate_build(blob, corpus) is None

    @pytest.mark.parametrize("value", ["1200", None, True, [1200], float("nan")])
    def test_non_numeric_stat(self, corpus, blob_factory, value):
        assert validate_build(blob_factory(speed=value), corpus) is None

    @pytest.mark.parametrize("strategy", ["Runner", "nige", "", None, 1])
    def test_bad_strategy(self, corpus, blob_factory, strategy):
        assert validate_build(blob_factory(strategy=strategy), corpus) is None

    @pytest.mark.parametrize("field", ["surfaceAptitude", "distanceAptitude", "strategyAptitude"])
    def test_bad_aptitude(self, corpus, blob_factory, field):
        assert validate_build(blob_factory(**{field: "Z"}), corpus) is None
        assert validate_build(blob_factory(**{field: "a"}), corpus) is None

    def test_skills_missing(self, corpus, blob_factory):
        blob = blob_factory()
        del blob["skills"]
        assert validate_build(blob, corpus) is None

    def test_skills_not_a_list(self, corpus, blob_factory):
        assert validate_build(blob_factory(skills={"200332": True}), corpus) is None
        assert validate_build(blob_factory(skills="200332"), corpus) is None

    @pytest.mark.parametrize("blob", [None, [], "horse", 42])
    def test_not_an_object(self, corpus, blob):
        assert validate_build(blob, corpus) is None


class TestSkillCleansing:

    def test_unknown_ids_dropped(self, corpus, blob_factory):
        horse = validate_build(blob_factory(skills=["200332", "999999"]), corpus)
        assert horse.skill_ids() == ["200332"]

    def test_non_string_ids_dropped(self, corpus, blob_factory):
        horse = validate_build(blob_factory(skills=[200332, None, "202051"]), corpus)
        assert horse.skill_ids() == ["202051"]

    def test_same_group_keeps_last(self, corpus, blob_factory):
        horse = validate_build(blob_factory(skills=["200011", "200012"]), corpus)
        assert horse.skill_ids() == ["200012"]


class TestForcedPositions:

    def test_carried_over(self, corpus, blob_factory):
        horse = validate_build(
            blob_factory(skills=["200332"], forcedSkillPositions={"200332": 850.5}),
            corpus,
        )
        assert horse.forced_skill_positions == {"200332": 850.5}

    def test_not_cross_checked_against_skills(self, corpus, blob_factory):
        horse = validate_build(blob_factory(forcedSkillPositions={"200332": 100}), corpus)
        assert horse.forced_skill_positions == {"200332": 100}

    def test_alternate_key_accepted(self, corpus, blob_factory):
        blob = blob_factory(skills=["200332"])
        del blob["forcedSkillPositions"]
        blob["forcedPositions"] = {"200332": 400}
        assert validate_build(blob, corpus).forced_skill_positions == {"200332": 400}

    def test_non_mapping_defaults_empty(self, corpus, blob_factory):
        horse = validate_build(blob_factory(forcedSkillPositions=[1, 2]), corpus)
        assert horse.forced_skill_positions == {}

    def test_non_numeric_values_skipped(self, corpus, blob_factory):
        horse = validate_build(
            blob_factory(forcedSkillPositions={"200332": "far", "202051": 300}),
            corpus,
        )
        assert horse.forced_skill_positions == {"202051": 300}

    def test_oversized_integer_skipped(self, corpus, blob_factory):
        horse = validate_build(
            blob_factory(skills=["200332"], forcedSkillPositions={"200332": 10 ** 400, "202051": 300}),
            corpus,
        )
        assert horse.forced_skill_positions == {"202051": 300.0}
