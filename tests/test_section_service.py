"""
tests/test_section_service.py — Roster Section Edit Tests
==========================================================
Auto-filter persistence and manual moves between sections.
"""

from __future__ import annotations

import pytest
from conftest import ACTOR_ID, member, seed_faction, seed_roster
from sqlalchemy import select
from sqlalchemy.orm import Session

from rollcall.database.models import RosterSection
from rollcall.errors import Forbidden, RecordNotFound
from rollcall.services.section_service import auto_filter_sections, move_member, move_members

MEMBERS = [
    member(1, "Jane Doe", 6),
    member(2, "John Smith", 3),
    member(3, "Ann Lee", 3),
    member(4, "Bob Stone", 1),
]


@pytest.fixture
def roster_id(db_engine):
    seed_faction(db_engine)
    return seed_roster(db_engine, sections=[
        {"name": "Command", "configuration": {"include_ranks": [6]}},
        {"name": "Officers", "configuration": {"include_ranks": [3], "exclude_names": ["Ann_Lee"]},
         "character_ids": [4]},
        {"name": "Misc", "character_ids": [1, 2]},
    ])


def _sections(engine, roster_id) -> dict[str, list[int]]:
    with Session(engine) as s:
        rows = s.scalars(
            select(RosterSection).where(RosterSection.roster_id == roster_id)
        ).all()
        return {r.name: list(r.character_ids or []) for r in rows}


def _section_id(engine, roster_id, name) -> int:
    with Session(engine) as s:
        return s.scalars(
            select(RosterSection.id).where(
                RosterSection.roster_id == roster_id, RosterSection.name == name,
            )
        ).one()


class TestAutoFilter:
    def test_replaces_every_section(self, db_engine, roster_id):
        assignment = auto_filter_sections(
            db_engine, roster_id=roster_id, actor_id=ACTOR_ID, members=MEMBERS,
        )

        assert _sections(db_engine, roster_id) == {
            "Command": [1],
            "Officers": [2],
            "Misc": [],
        }
        assert sorted(m.character_id for m in assignment.unassigned) == [3, 4]

    def test_other_actor_forbidden(self, db_engine, roster_id):
        with pytest.raises(Forbidden):
            auto_filter_sections(db_engine, roster_id=roster_id, actor_id=999, members=MEMBERS)
        assert _sections(db_engine, roster_id)["Misc"] == [1, 2]

    def test_unknown_roster(self, db_engine):
        with pytest.raises(RecordNotFound):
            auto_filter_sections(db_engine, roster_id=404, actor_id=ACTOR_ID, members=[])


class TestMoves:
    def test_move_into_section(self, db_engine, roster_id):
        dest = _section_id(db_engine, roster_id, "Officers")
        move_member(db_engine, roster_id=roster_id, actor_id=ACTOR_ID,
                    character_id=1, destination_section_id=dest)

        sections = _sections(db_engine, roster_id)
        assert sections["Officers"] == [4, 1]
        assert sections["Misc"] == [2]

    def test_move_out_of_all_sections(self, db_engine, roster_id):
        move_members(db_engine, roster_id=roster_id, actor_id=ACTOR_ID,
                     character_ids=[2, 4], destination_section_id=None)

        sections = _sections(db_engine, roster_id)
        assert sections["Officers"] == []
        assert sections["Misc"] == [1]

    def test_member_in_one_section_after_move(self, db_engine, roster_id):
        dest = _section_id(db_engine, roster_id, "Misc")
        move_members(db_engine, roster_id=roster_id, actor_id=ACTOR_ID,
                     character_ids=[1, 4, 4], destination_section_id=dest)

        sections = _sections(db_engine, roster_id)
        placed = [cid for ids in sections.values() for cid in ids]
        assert sorted(placed) == [1, 2, 4]
        assert sections["Misc"] == [2, 1, 4]

    def test_foreign_section_rejected(self, db_engine, roster_id):
        other = seed_roster(db_engine, name="Other", sections=[{"name": "Elsewhere"}])
        foreign = _section_id(db_engine, other, "Elsewhere")
        with pytest.raises(RecordNotFound):
            move_member(db_engine, roster_id=roster_id, actor_id=ACTOR_ID,
                        character_id=1, destination_section_id=foreign)

    def test_other_actor_forbidden(self, db_engine, roster_id):
        with pytest.raises(Forbidden):
            move_member(db_engine, roster_id=roster_id, actor_id=999,
                        character_id=1, destination_section_id=None)
