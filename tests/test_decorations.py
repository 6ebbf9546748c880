"""
tests/test_decorations.py — Member Decoration Tests
====================================================
Name normalization, alternative-character marking, ABAS standards and
de-duplication.
"""

from __future__ import annotations

import pytest
from conftest import member

from rollcall.constants import normalize_name
from rollcall.engine.alternatives import alternative_ids, mark_alternatives
from rollcall.engine.filters import AbasStandards
from rollcall.engine.members import AbasEntry, Character, dedupe_members
from rollcall.engine.standards import FactionStandards, apply_standards, required_abas


class TestNames:
    @pytest.mark.parametrize("forum, game", [
        ("John_Smith", "John Smith"),
        ("John Smith", "John_Smith"),
        ("John_Smith", "John_Smith"),
        ("Mary_Ann_Lee", "Mary Ann Lee"),
    ])
    def test_match_is_symmetric(self, forum, game):
        assert normalize_name(forum) == normalize_name(game)

    def test_different_names_do_not_match(self):
        assert normalize_name("John_Smith") != normalize_name("John Smyth")

    def test_normalize_blank(self):
        assert normalize_name(None) == ""
        assert normalize_name("  ") == ""


class TestCharacterDecoding:
    def test_from_dict(self):
        c = Character.from_dict({
            "character_id": "12", "character_name": "Jane_Doe", "rank": 4,
            "rank_name": "Sergeant", "user_id": 99,
        })
        assert c.character_id == 12
        assert c.name == "Jane Doe"
        assert c.user_id == 99

    def test_abas_entry_keys(self):
        a = AbasEntry.from_dict({"character_id": 1, "abas": "3.50", "total_abas": 120})
        assert (a.score, a.total_score) == ("3.50", 120)
        b = AbasEntry.from_dict({"character_id": 2, "score": 0})
        assert b.score == "0"
        assert b.total_score is None


class TestAlternatives:
    def test_single_characters_untouched(self):
        members = [member(1, "A One", 3, user_id=10), member(2, "B Two", 2, user_id=11)]
        marked = mark_alternatives(members)
        assert not any(m.is_primary_character or m.is_alternative for m in marked)

    def test_highest_rank_is_primary(self):
        members = [
            member(1, "A One", 3, user_id=10),
            member(2, "A Two", 7, user_id=10),
            member(3, "A Three", 1, user_id=10),
        ]
        marked = mark_alternatives(members)
        assert [m.is_primary_character for m in marked] == [False, True, False]
        assert alternative_ids(marked) == [1, 3]

    def test_tie_goes_to_first_in_roster(self):
        members = [member(1, "A One", 5, user_id=10), member(2, "A Two", 5, user_id=10)]
        assert alternative_ids(mark_alternatives(members)) == [2]

    def test_override_wins(self):
        members = [member(1, "A One", 9, user_id=10), member(2, "A Two", 1, user_id=10)]
        assert alternative_ids(mark_alternatives(members, {10: 2})) == [1]

    def test_override_off_roster_ignored(self):
        members = [member(1, "A One", 9, user_id=10), member(2, "A Two", 1, user_id=10)]
        assert alternative_ids(mark_alternatives(members, {10: 77})) == [2]

    def test_members_without_user_ignored(self):
        members = [member(1, "A One", 9), member(2, "A Two", 1)]
        assert alternative_ids(mark_alternatives(members)) == []


class TestStandards:
    FACTION = FactionStandards(supervisor_rank=10, minimum_abas=2.0, minimum_supervisor_abas=5.0)

    def test_faction_minimum(self):
        assert required_abas(member(1, "A", 3), self.FACTION) == 2.0

    def test_supervisor_minimum(self):
        assert required_abas(member(1, "A", 10), self.FACTION) == 5.0

    def test_roster_rank_standard_beats_faction(self):
        roster = AbasStandards(by_rank={3: 8.0})
        assert required_abas(member(1, "A", 3), self.FACTION, roster) == 8.0

    def test_roster_name_standard_beats_rank(self):
        roster = AbasStandards(by_rank={3: 8.0}, by_name={"Jane_Doe": 1.0})
        assert required_abas(member(1, "Jane Doe", 3), self.FACTION, roster) == 1.0

    def test_no_standard(self):
        assert required_abas(member(1, "A", 3), FactionStandards()) is None

    def test_apply_flags(self):
        members = [
            member(1, "A", 3, abas="2.50"),
            member(2, "B", 3, abas="1.00"),
            member(3, "C", 3),  # never recorded, measured as 0
        ]
        result = apply_standards(members, self.FACTION)
        assert [m.meets_abas_standard for m in result] == [True, False, False]

    def test_apply_without_standard_leaves_none(self):
        result = apply_standards([member(1, "A", 3, abas="9")], FactionStandards())
        assert result[0].meets_abas_standard is None


class TestDedupe:
    def test_keeps_first_position_last_data(self):
        members = [member(1, "A", 1), member(2, "B", 1), member(1, "A", 1, label="red")]
        result = dedupe_members(members)
        assert [m.character_id for m in result] == [1, 2]
        assert result[0].label == "red"

    def test_missing_abas_stays_none(self):
        m = member(1, "A", 1)
        assert m.abas is None
        assert m.to_dict()["abas"] is None
