"""
Unit tests for the content library and activity records.
"""

import json

import pytest

from coach.activity import ActivityType, DifficultyLevel, ScoringMetric
from coach.domains import TRAINABLE_DOMAINS, CognitiveDomain
from coach.errors import LibraryError
from coach.library import ContentLibrary, load_library


class TestPackagedLibrary:
    """Tests against the shipped activities.json."""

    def test_every_domain_is_served(self, library):
        for domain in TRAINABLE_DOMAINS + [CognitiveDomain.ORIENTATION, CognitiveDomain.CLOSING]:
            assert library.for_domain(domain), domain

    def test_every_exercise_family_is_present(self, library):
        types = {a.type for a in library}
        for activity_type in ActivityType:
            if activity_type == ActivityType.CONVERSATION:
                continue
            assert activity_type in types, activity_type

    def test_word_garden_pair(self, library):
        plant = library.get("word_garden_plant")
        harvest = library.get("word_garden_harvest")
        assert "{words}" in plant.line(1)
        assert harvest.paired_activity_id == plant.id
        assert harvest.param("delay_type") == "delayed"

    def test_rule_change_has_switch_line(self, library):
        assert any("SWITCH" in line for line in library.get("rule_change_game").script)


class TestActivityRecords:
    """Tests for record parsing."""

    def test_difficulty_levels_apply(self, make_activity):
        activity = make_activity(
            type="digit_span",
            difficulty="adaptive",
            difficulty_params={"sequence_length": 3},
            difficulty_levels={"high": {"sequence_length": 5}},
            scoring={"metric": "span", "normalization": {"min_expected": 2, "max_expected": 8}},
        )
        hard = activity.with_difficulty(DifficultyLevel.HIGH)

        assert activity.param("sequence_length") == 3
        assert hard.param("sequence_length") == 5
        assert hard.difficulty == DifficultyLevel.HIGH
        assert activity.scoring.metric == ScoringMetric.SPAN
        assert activity.scoring.bounds(3, 9) == (2, 8)

    def test_line_defaults(self, make_activity):
        activity = make_activity(type="conversation", script=["Hi.", "Bye."])
        assert activity.line(5) == ""
        assert activity.closing_line == "Bye."


class TestLoadLibrary:
    """Tests for loading and validation."""

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "activities.json"
        path.write_text(json.dumps([
            {"id": "hello", "type": "orientation", "cognitive_domain": "orientation", "script": ["Hi"]},
        ]), encoding="utf-8")
        library = load_library(path)
        assert len(library) == 1
        assert "hello" in library

    def test_missing_file(self, tmp_path):
        with pytest.raises(LibraryError):
            load_library(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(LibraryError):
            load_library(path)

    def test_unknown_type_names_the_record(self):
        with pytest.raises(LibraryError, match="mystery"):
            ContentLibrary.from_records([{"id": "mystery", "type": "juggling", "cognitive_domain": "language"}])

    def test_duplicate_ids(self):
        record = {"id": "twice", "type": "conversation", "cognitive_domain": "language"}
        with pytest.raises(LibraryError, match="twice"):
            ContentLibrary.from_records([record, record])

    def test_not_an_array(self):
        with pytest.raises(LibraryError):
            ContentLibrary.from_records({"id": "x"})
