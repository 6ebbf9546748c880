"""
rollcall.services.cache_store — Keyed cache records with last-sync stamps
==========================================================================

One object wrapping every cache table the aggregator reads and writes:

    faction roster   keyed by faction_id
    activity scores  keyed by (faction_id, character_id)
    forum groups     keyed by (faction_id, group_id)
    forum users      keyed by (faction_id, forum_user_id)

Every upsert overwrites in place and stamps ``last_sync`` with the time the
caller passes in; concurrent writers are last-writer-wins.  All methods are
synchronous and meant to be awaited through :func:`rollcall.database.engine.run_db`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from rollcall.database.engine import get_session
from rollcall.database.models import (
    ActivityScore,
    CachedFactionRoster,
    CachedForumGroup,
    CachedForumUser,
)
from rollcall.engine.members import AbasEntry, Character

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rollcall.clients.forum_api import ForumGroup

logger = logging.getLogger(__name__)


class CacheStore:
    """get/upsert over the cache tables.

    Usage::

        store = CacheStore(engine)
        cached = store.get_faction_roster(faction_id)
        if cached is None:
            store.upsert_faction_roster(faction_id, characters, now)
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Faction roster
    # ------------------------------------------------------------------
    def get_faction_roster(self, faction_id: int) -> CachedFactionRoster | None:
        with get_session(self._engine) as session:
            return session.get(CachedFactionRoster, faction_id)

    def upsert_faction_roster(
        self, faction_id: int, characters: list[Character], now: datetime,
    ) -> None:
        payload = [c.to_dict() for c in characters]
        with get_session(self._engine) as session:
            row = session.get(CachedFactionRoster, faction_id)
            if row is None:
                session.add(CachedFactionRoster(
                    faction_id=faction_id, members=payload, last_sync=now,
                ))
            else:
                row.members = payload
                row.last_sync = now
        logger.info("Cached %d roster members for faction %d.", len(payload), faction_id)

    # ------------------------------------------------------------------
    # Activity scores
    # ------------------------------------------------------------------
    def get_activity_scores(self, faction_id: int) -> dict[int, ActivityScore]:
        with get_session(self._engine) as session:
            rows = session.scalars(
                select(ActivityScore).where(ActivityScore.faction_id == faction_id)
            ).all()
            return {r.character_id: r for r in rows}

    def upsert_activity_scores(
        self, faction_id: int, entries: Iterable[AbasEntry], now: datetime,
    ) -> int:
        """Insert or overwrite one row per entry.  Returns the row count."""
        latest = {e.character_id: e for e in entries}
        if not latest:
            return 0
        with get_session(self._engine) as session:
            existing = {
                r.character_id: r
                for r in session.scalars(
                    select(ActivityScore).where(
                        ActivityScore.faction_id == faction_id,
                        ActivityScore.character_id.in_(latest),
                    )
                )
            }
            for character_id, entry in latest.items():
                row = existing.get(character_id)
                if row is None:
                    session.add(ActivityScore(
                        character_id=character_id,
                        faction_id=faction_id,
                        score=entry.score,
                        total_score=entry.total_score,
                        last_sync=now,
                    ))
                else:
                    row.score = entry.score
                    # responses without a total keep the stored one
                    if entry.total_score is not None:
                        row.total_score = entry.total_score
                    row.last_sync = now
        logger.info("Cached %d ABAS rows for faction %d.", len(latest), faction_id)
        return len(latest)

    # ------------------------------------------------------------------
    # Forum groups
    # ------------------------------------------------------------------
    def get_forum_group(self, faction_id: int, group_id: int) -> CachedForumGroup | None:
        with get_session(self._engine) as session:
            return session.get(CachedForumGroup, (faction_id, group_id))

    def upsert_forum_group(self, faction_id: int, group: ForumGroup, now: datetime) -> None:
        with get_session(self._engine) as session:
            row = session.get(CachedForumGroup, (faction_id, group.group_id))
            if row is None:
                session.add(CachedForumGroup(
                    faction_id=faction_id,
                    group_id=group.group_id,
                    members=list(group.members),
                    leaders=list(group.leaders),
                    last_sync=now,
                ))
            else:
                row.members = list(group.members)
                row.leaders = list(group.leaders)
                row.last_sync = now

    # ------------------------------------------------------------------
    # Forum users
    # ------------------------------------------------------------------
    def get_forum_user(self, faction_id: int, forum_user_id: int) -> CachedForumUser | None:
        with get_session(self._engine) as session:
            return session.get(CachedForumUser, (faction_id, forum_user_id))

    def upsert_forum_user(
        self, faction_id: int, forum_user_id: int, username: str | None, now: datetime,
    ) -> None:
        with get_session(self._engine) as session:
            row = session.get(CachedForumUser, (faction_id, forum_user_id))
            if row is None:
                session.add(CachedForumUser(
                    faction_id=faction_id,
                    forum_user_id=forum_user_id,
                    username=username,
                    last_sync=now,
                ))
            else:
                row.username = username
                row.last_sync = now
