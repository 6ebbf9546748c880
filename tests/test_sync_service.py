"""
tests/test_sync_service.py — Sync Preview / Apply Tests
========================================================
Preview reads only cached data; apply commits all-or-nothing and never
deletes manual memberships.
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest
from conftest import (
    ACTOR_ID,
    character,
    seed_category,
    seed_faction,
    seed_forum_group,
    seed_membership,
    seed_roster_cache,
)
from sqlalchemy import select
from sqlalchemy.orm import Session

from rollcall.constants import CATEGORY_UNIT
from rollcall.database.models import Membership, SyncExclusion
from rollcall.errors import CachePreconditionFailed, Forbidden, ForumSyncUnavailable
from rollcall.services.access import AllowAll
from rollcall.services.sync_service import (
    apply_sync,
    get_exclusions,
    preview_sync,
    replace_exclusions,
)

ALLOW = AllowAll()
GROUP = 10

ROSTER = [
    character(1, "Jane Doe", 3),
    character(2, "John Smith", 4),
    character(3, "Ann Lee", 2),
    character(4, "Bob Stone", 1),
    character(5, "Cy Young", 1),
]


@pytest.fixture
def unit(db_engine):
    seed_faction(db_engine)
    seed_roster_cache(db_engine, ROSTER)
    return seed_category(db_engine, name="Patrol", forum_group_id=GROUP, default_title="Officer")


def _preview(engine, category_id, authorizer=ALLOW):
    return preview_sync(engine, authorizer, actor_id=ACTOR_ID,
                        category_type=CATEGORY_UNIT, category_id=category_id)


def _apply(engine, category_id, add=(), remove=()):
    return apply_sync(engine, ALLOW, actor_id=ACTOR_ID, category_type=CATEGORY_UNIT,
                      category_id=category_id, add_ids=add, remove_ids=remove)


def _member_ids(engine, category_id) -> set[int]:
    with Session(engine) as s:
        return set(s.scalars(
            select(Membership.character_id).where(Membership.category_id == category_id)
        ))


def _ids(candidates) -> set[int]:
    return {c.character_id for c in candidates}


class TestPreview:
    def test_manual_members_protected(self, db_engine, unit):
        seed_membership(db_engine, unit, 1)
        seed_membership(db_engine, unit, 2, manual=True)
        seed_membership(db_engine, unit, 3)
        seed_forum_group(db_engine, GROUP, ["Jane_Doe"], ["Bob_Stone"])

        diff = _preview(db_engine, unit)

        assert _ids(diff.to_add) == {4}
        assert _ids(diff.to_remove) == {3}

    def test_primary_elsewhere_flagged(self, db_engine, unit):
        other = seed_category(db_engine, name="Traffic")
        seed_membership(db_engine, other, 1)
        seed_forum_group(db_engine, GROUP, ["Jane_Doe", "Cy_Young"])

        diff = _preview(db_engine, unit)

        flags = {c.character_id: c.is_already_assigned for c in diff.to_add}
        assert flags == {1: True, 5: False}

    def test_secondary_elsewhere_not_flagged(self, db_engine, unit):
        other = seed_category(db_engine, name="Guard", secondary=True)
        seed_membership(db_engine, other, 1, secondary=True)
        seed_forum_group(db_engine, GROUP, ["Jane_Doe"])

        assert _preview(db_engine, unit).to_add[0].is_already_assigned is False

    def test_secondary_category_never_flags(self, db_engine, unit):
        side = seed_category(db_engine, name="Guard", forum_group_id=11, secondary=True)
        seed_membership(db_engine, unit, 1)
        seed_forum_group(db_engine, 11, ["Jane_Doe"])

        assert _preview(db_engine, side).to_add[0].is_already_assigned is False

    def test_exclusions_flagged(self, db_engine, unit):
        seed_forum_group(db_engine, GROUP, ["Jane_Doe", "Ann_Lee"])
        replace_exclusions(db_engine, ALLOW, actor_id=ACTOR_ID, category_type=CATEGORY_UNIT,
                           category_id=unit, names=["Ann Lee"])

        flags = {c.character_id: c.is_excluded for c in _preview(db_engine, unit).to_add}
        assert flags == {1: False, 3: True}

    def test_unresolvable_forum_names_dropped(self, db_engine, unit):
        seed_forum_group(db_engine, GROUP, ["Ghost_Rider", "Jane_Doe"])
        assert _ids(_preview(db_engine, unit).to_add) == {1}

    def test_missing_forum_cache(self, db_engine, unit):
        with pytest.raises(CachePreconditionFailed):
            _preview(db_engine, unit)

    def test_empty_forum_cache(self, db_engine, unit):
        seed_forum_group(db_engine, GROUP, [])
        with pytest.raises(CachePreconditionFailed):
            _preview(db_engine, unit)

    def test_missing_roster_cache(self, db_engine):
        seed_faction(db_engine)
        cat = seed_category(db_engine, forum_group_id=GROUP)
        seed_forum_group(db_engine, GROUP, ["Jane_Doe"])
        with pytest.raises(CachePreconditionFailed):
            _preview(db_engine, cat)

    def test_no_forum_group_configured(self, db_engine):
        seed_faction(db_engine)
        cat = seed_category(db_engine)
        with pytest.raises(ForumSyncUnavailable):
            _preview(db_engine, cat)

    def test_forbidden_before_anything_else(self, db_engine):
        authorizer = MagicMock()
        authorizer.can_manage.return_value = False
        with pytest.raises(Forbidden):
            _preview(db_engine, 12345, authorizer)

    def test_never_fetches_upstream(self, db_engine, unit):
        seed_forum_group(db_engine, GROUP, ["Jane_Doe"])
        with patch("rollcall.clients.forum_api.ForumApiClient.fetch_group") as fetch:
            _preview(db_engine, unit)
        fetch.assert_not_called()


class TestApply:
    def test_adds_and_removes(self, db_engine, unit):
        seed_membership(db_engine, unit, 3)

        result = _apply(db_engine, unit, add=[4], remove=[3])

        assert result.success
        assert (result.added, result.removed) == ([4], [3])
        assert _member_ids(db_engine, unit) == {4}
        with Session(db_engine) as s:
            row = s.scalars(select(Membership).where(Membership.character_id == 4)).one()
            assert (row.manual, row.title, row.created_by) == (False, "Officer", ACTOR_ID)

    def test_manual_rows_survive_removal(self, db_engine, unit):
        seed_membership(db_engine, unit, 2, manual=True)
        result = _apply(db_engine, unit, remove=[2])
        assert result.removed == []
        assert _member_ids(db_engine, unit) == {2}

    def test_existing_members_skipped(self, db_engine, unit):
        seed_membership(db_engine, unit, 1)
        result = _apply(db_engine, unit, add=[1, 5, 5])
        assert (result.added, result.skipped) == ([5], [1])
        with Session(db_engine) as s:
            assert s.query(Membership).filter_by(category_id=unit).count() == 2

    def test_does_not_block_second_primary(self, db_engine, unit, caplog):
        other = seed_category(db_engine, name="Traffic")
        seed_membership(db_engine, other, 1)

        with caplog.at_level(logging.WARNING):
            result = _apply(db_engine, unit, add=[1])

        assert result.added == [1]
        assert "several primary assignments" in caplog.text

    def test_all_or_nothing(self, db_engine, unit):
        seed_membership(db_engine, unit, 3)
        with patch("rollcall.services.sync_service.primary_assignments",
                   side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                _apply(db_engine, unit, add=[4], remove=[3])
        assert _member_ids(db_engine, unit) == {3}

    def test_preview_then_apply_converges(self, db_engine, unit):
        seed_membership(db_engine, unit, 3)
        seed_membership(db_engine, unit, 2, manual=True)
        seed_forum_group(db_engine, GROUP, ["Jane_Doe", "Bob_Stone"])

        diff = _preview(db_engine, unit)
        _apply(db_engine, unit, add=_ids(diff.to_add), remove=_ids(diff.to_remove))
        again = _preview(db_engine, unit)

        assert _member_ids(db_engine, unit) == {1, 2, 4}
        assert again.to_add == [] and again.to_remove == []


class TestExclusions:
    def test_replace_and_get(self, db_engine, unit):
        replace_exclusions(db_engine, ALLOW, actor_id=ACTOR_ID, category_type=CATEGORY_UNIT,
                           category_id=unit, names=["Jane Doe", "Ann_Lee"])
        saved = replace_exclusions(db_engine, ALLOW, actor_id=ACTOR_ID,
                                   category_type=CATEGORY_UNIT, category_id=unit,
                                   names=["Bob Stone", " ", "Bob Stone"])

        assert saved == ["Bob Stone"]
        assert get_exclusions(db_engine, ALLOW, actor_id=ACTOR_ID,
                              category_type=CATEGORY_UNIT, category_id=unit) == ["Bob Stone"]

    def test_scoped_to_category(self, db_engine, unit):
        other = seed_category(db_engine, name="Traffic")
        replace_exclusions(db_engine, ALLOW, actor_id=ACTOR_ID, category_type=CATEGORY_UNIT,
                           category_id=other, names=["Jane Doe"])
        replace_exclusions(db_engine, ALLOW, actor_id=ACTOR_ID, category_type=CATEGORY_UNIT,
                           category_id=unit, names=[])
        with Session(db_engine) as s:
            assert s.query(SyncExclusion).count() == 1
