"""
tests/conftest.py — Shared Test Fixtures
=========================================

In-memory SQLite engine, seed helpers, fake upstream clients and the
``run_async`` driver used by the async service tests.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from rollcall.clients.forum_api import ForumGroup
from rollcall.constants import CATEGORY_UNIT
from rollcall.database.models import (
    ActivityScore,
    Base,
    CachedFactionRoster,
    CachedForumGroup,
    Faction,
    Membership,
    OrganizationCategory,
    Roster,
    RosterSection,
)
from rollcall.engine.members import AbasEntry, Character, Member
from rollcall.errors import UpstreamFetchFailed

FACTION_ID = 7
ACTOR_ID = 501
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Rollcall tables.

    Uses StaticPool so every session (and every ``run_db`` worker thread)
    sees the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def inline_db(monkeypatch):
    """Run ``run_db`` work on the event loop thread.

    The shared in-memory connection must not be used from several worker
    threads at once, which ``asyncio.gather`` over ``run_db`` would do.
    """
    async def _inline(func, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr("rollcall.services.roster_service.run_db", _inline)
    monkeypatch.setattr("rollcall.services.snapshot_service.run_db", _inline)
    return _inline


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def character(cid: int, name: str, rank: int = 1, *, user_id: int | None = None,
              rank_name: str | None = None) -> Character:
    return Character(
        character_id=cid,
        character_name=name,
        rank=rank,
        rank_name=rank_name if rank_name is not None else f"Rank {rank}",
        user_id=user_id,
    )


def member(cid: int, name: str, rank: int = 1, **kwargs) -> Member:
    user_id = kwargs.pop("user_id", None)
    return Member(character=character(cid, name, rank, user_id=user_id), **kwargs)


def seed_faction(engine: Engine, faction_id: int = FACTION_ID, **kwargs) -> int:
    with Session(engine) as s:
        s.add(Faction(id=faction_id, name=kwargs.pop("name", "LSPD"), **kwargs))
        s.commit()
    return faction_id


def seed_category(
    engine: Engine,
    *,
    faction_id: int = FACTION_ID,
    type: str = CATEGORY_UNIT,
    name: str = "Patrol",
    forum_group_id: int | None = None,
    secondary: bool = False,
    default_title: str | None = None,
) -> int:
    with Session(engine) as s:
        cat = OrganizationCategory(
            faction_id=faction_id,
            type=type,
            name=name,
            forum_group_id=forum_group_id,
            secondary=secondary,
            default_title=default_title,
        )
        s.add(cat)
        s.commit()
        return cat.id


def seed_membership(
    engine: Engine,
    category_id: int,
    character_id: int,
    *,
    type: str = CATEGORY_UNIT,
    manual: bool = False,
    secondary: bool = False,
    title: str | None = None,
) -> int:
    with Session(engine) as s:
        row = Membership(
            type=type,
            category_id=category_id,
            character_id=character_id,
            manual=manual,
            secondary=secondary,
            title=title,
        )
        s.add(row)
        s.commit()
        return row.id


def seed_roster_cache(
    engine: Engine,
    characters: list[Character],
    *,
    faction_id: int = FACTION_ID,
    last_sync: datetime = NOW,
) -> None:
    with Session(engine) as s:
        s.merge(CachedFactionRoster(
            faction_id=faction_id,
            members=[c.to_dict() for c in characters],
            last_sync=last_sync,
        ))
        s.commit()


def seed_abas(engine: Engine, scores: dict[int, str], *, faction_id: int = FACTION_ID,
              last_sync: datetime = NOW) -> None:
    with Session(engine) as s:
        for cid, score in scores.items():
            s.add(ActivityScore(character_id=cid, faction_id=faction_id, score=score,
                                last_sync=last_sync))
        s.commit()


def seed_forum_group(
    engine: Engine,
    group_id: int,
    members: list[str],
    leaders: list[str] | None = None,
    *,
    faction_id: int = FACTION_ID,
    last_sync: datetime = NOW,
) -> None:
    with Session(engine) as s:
        s.merge(CachedForumGroup(
            faction_id=faction_id,
            group_id=group_id,
            members=members,
            leaders=leaders or [],
            last_sync=last_sync,
        ))
        s.commit()


def seed_roster(
    engine: Engine,
    *,
    faction_id: int = FACTION_ID,
    name: str = "Main roster",
    filter_config_json: str | None = None,
    created_by: int = ACTOR_ID,
    organization: tuple[str, int] | None = None,
    sections: list[dict] | None = None,
) -> int:
    with Session(engine) as s:
        roster = Roster(
            faction_id=faction_id,
            name=name,
            filter_config_json=filter_config_json,
            created_by=created_by,
            organization_category_type=organization[0] if organization else None,
            organization_category_id=organization[1] if organization else None,
        )
        for i, sec in enumerate(sections or []):
            roster.sections.append(RosterSection(
                name=sec.get("name", f"Section {i}"),
                order=sec.get("order", i),
                configuration=sec.get("configuration"),
                character_ids=sec.get("character_ids", []),
            ))
        s.add(roster)
        s.commit()
        return roster.id


# ---------------------------------------------------------------------------
# Fake upstream clients
# ---------------------------------------------------------------------------
class FakeFactionApi:
    """Stands in for :class:`FactionApiClient`; counts calls per endpoint."""

    def __init__(self, roster: list[Character] | None = None,
                 abas: list[AbasEntry] | None = None,
                 roster_error: Exception | None = None,
                 abas_error: Exception | None = None):
        self.roster = roster or []
        self.abas = abas or []
        self.roster_error = roster_error
        self.abas_error = abas_error
        self.roster_calls = 0
        self.abas_calls = 0

    async def fetch_roster(self, faction_id: int, access_token: str) -> list[Character]:
        self.roster_calls += 1
        if self.roster_error:
            raise self.roster_error
        return list(self.roster)

    async def fetch_activity_scores(self, faction_id: int, access_token: str) -> list[AbasEntry]:
        self.abas_calls += 1
        if self.abas_error:
            raise self.abas_error
        return list(self.abas)


class FakeForumClient:
    """Stands in for :class:`ForumApiClient`."""

    def __init__(self, groups: dict[int, tuple[list[str], list[str]]] | None = None,
                 users: dict[int, str] | None = None,
                 failing: set[int] | None = None):
        self.groups = groups or {}
        self.users = users or {}
        self.failing = failing or set()
        self.group_calls: list[int] = []
        self.user_calls: list[int] = []

    async def fetch_group(self, group_id: int) -> ForumGroup:
        self.group_calls.append(group_id)
        if group_id in self.failing:
            raise UpstreamFetchFailed(f"forum group {group_id}", 500)
        members, leaders = self.groups.get(group_id, ([], []))
        return ForumGroup(group_id, list(members), list(leaders))

    async def fetch_user(self, user_id: int) -> str | None:
        self.user_calls.append(user_id)
        if user_id in self.failing:
            raise UpstreamFetchFailed(f"forum user {user_id}", 500)
        return self.users.get(user_id)
