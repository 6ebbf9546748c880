"""
rollcall.services.roster_service — Roster aggregation
======================================================

:class:`RosterAggregator` is the composition path:

1. ``compose_roster`` returns the faction's current members decorated
   with ABAS, refetching the faction roster and ABAS together whenever
   either would be stale.  When a filter config is given, the forum groups
   and users it references are resolved into username sets.
2. ``build_roster_view`` loads a configured roster, composes, filters and
   decorates it (labels, assignment titles, alternative characters, ABAS
   standards) and returns a :class:`RosterViewResult`.
3. ``refresh_forum_groups`` is the manual forum sync that the sync
   preview relies on.

Only the faction roster fetch can fail the operation.  ABAS and individual
forum lookups fall back to cached data, or to nothing, with a warning.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from rollcall.clients.forum_api import ForumApiClient, ForumGroup
from rollcall.constants import normalize_name
from rollcall.database.engine import get_session, run_db
from rollcall.database.models import (
    ActivityScore,
    Faction,
    OrganizationCategory,
    PrimaryCharacterOverride,
    Roster,
    RosterLabel,
)
from rollcall.engine.alternatives import alternative_ids, mark_alternatives
from rollcall.engine.filters import RosterFilterConfig, apply_filters, parse_filter_config
from rollcall.engine.freshness import effective_threshold, is_stale, utcnow
from rollcall.engine.members import Character, Member, dedupe_members
from rollcall.engine.sections import SectionConfig
from rollcall.engine.standards import FactionStandards, apply_standards
from rollcall.errors import ForumSyncUnavailable, RecordNotFound, UpstreamFetchFailed
from rollcall.services.membership_service import category_memberships, primary_assignments

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from rollcall.clients.faction_api import FactionApiClient
    from rollcall.config import RollcallConfig
    from rollcall.services.cache_store import CacheStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ComposedRoster:
    """Merged member list plus the forum username sets resolved for it.

    Username sets and the ``groups_by_username`` keys are normalized
    (``First Last``).
    """

    faction_id: int
    members: list[Member]
    included_usernames: frozenset[str] = frozenset()
    excluded_usernames: frozenset[str] = frozenset()
    groups_by_username: dict[str, list[int]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SectionView:
    id: int
    name: str
    description: str | None
    order: int
    configuration: dict[str, Any] | None
    character_ids: list[int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "configuration": self.configuration,
            "character_ids": list(self.character_ids),
        }


@dataclass(frozen=True, slots=True)
class RosterViewResult:
    roster_id: int
    roster_name: str
    faction_id: int
    members: list[Member]
    missing_forum_users: list[str]
    sections: list[SectionView]
    config: RosterFilterConfig | None = None

    @property
    def labels(self) -> dict[str, str]:
        """Colour → caption palette from the roster config."""
        return dict(self.config.labels) if self.config else {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "roster": {"id": self.roster_id, "name": self.roster_name},
            "faction_id": self.faction_id,
            "members": [m.to_dict() for m in self.members],
            "missingForumUsers": list(self.missing_forum_users),
            "sections": [s.to_dict() for s in self.sections],
            "rosterConfig": self.config.model_dump() if self.config else {},
        }


@dataclass(frozen=True, slots=True)
class ForumRefreshResult:
    refreshed: list[int] = field(default_factory=list)
    fresh: list[int] = field(default_factory=list)  # skipped, cache still valid
    failed: dict[int, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _ViewContext:
    """Everything ``build_roster_view`` needs from the database, read at once."""

    roster_id: int
    roster_name: str
    faction_id: int
    filter_json: str | None
    sections: list[SectionView]
    labels: dict[int, str]
    scope: dict[int, tuple[int, str | None]] | None  # character_id → (membership_id, title)
    primary_titles: dict[int, str | None]
    overrides: dict[int, int]
    standards: FactionStandards


def _decorate(character: Character, score: ActivityScore | None) -> Member:
    if score is None:
        return Member(character=character)
    return Member(
        character=character,
        abas=score.score,
        total_abas=score.total_score,
        abas_last_sync=score.last_sync,
    )


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class RosterAggregator:
    """Compose faction rosters from the cache store and the upstream APIs.

    Usage::

        aggregator = RosterAggregator(engine, store, FactionApiClient(), config)
        view = await aggregator.build_roster_view(roster_id, access_token=token)
    """

    def __init__(
        self,
        engine: Engine,
        store: CacheStore,
        faction_api: FactionApiClient,
        config: RollcallConfig,
        *,
        forum_client_factory: Callable[[Faction], ForumApiClient | None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._store = store
        self._faction_api = faction_api
        self._config = config
        self._forum_client_factory = forum_client_factory or (
            lambda faction: ForumApiClient.for_faction(faction, config)
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------
    async def compose_roster(
        self,
        faction_id: int,
        *,
        access_token: str,
        force_refresh: bool = False,
        filter_config: RosterFilterConfig | None = None,
    ) -> ComposedRoster:
        """Return the decorated member list for *faction_id*.

        Raises
        ------
        RecordNotFound
            Unknown faction.
        ReauthRequired
            The faction API rejected *access_token*.
        UpstreamFetchFailed
            The faction roster was due for a refetch and the fetch failed.
        """
        faction = await run_db(self._load_faction, faction_id)
        now = self._clock()

        characters = await self._current_characters(faction_id, access_token, force_refresh, now)
        scores = await run_db(self._store.get_activity_scores, faction_id)
        members = [_decorate(c, scores.get(c.character_id)) for c in characters]

        if filter_config is None or not filter_config.forum_filter_active:
            return ComposedRoster(faction_id=faction_id, members=members)

        included, excluded, groups_by_username = await self._resolve_forum(
            faction, filter_config, force_refresh, now,
        )
        members = [
            replace(m, forum_groups=tuple(groups_by_username.get(m.name, ())))
            for m in members
        ]
        return ComposedRoster(
            faction_id=faction_id,
            members=members,
            included_usernames=included,
            excluded_usernames=excluded,
            groups_by_username=groups_by_username,
        )

    async def _current_characters(
        self, faction_id: int, access_token: str, force_refresh: bool, now: datetime,
    ) -> list[Character]:
        cached = await run_db(self._store.get_faction_roster, faction_id)
        threshold = effective_threshold(
            self._config.roster_cache_minutes, self._config.abas_cache_minutes,
        )
        if (
            not force_refresh
            and cached is not None
            and not is_stale(now, cached.last_sync, threshold)
        ):
            return [Character.from_dict(raw) for raw in cached.members]

        logger.info(
            "Refreshing faction %d roster + ABAS (%s)",
            faction_id, "forced" if force_refresh else "stale",
        )
        roster_result, abas_result = await asyncio.gather(
            self._faction_api.fetch_roster(faction_id, access_token),
            self._faction_api.fetch_activity_scores(faction_id, access_token),
            return_exceptions=True,
        )

        if isinstance(roster_result, BaseException):
            logger.error("Faction %d roster fetch failed: %s", faction_id, roster_result)
            raise roster_result
        if isinstance(abas_result, UpstreamFetchFailed):
            logger.warning(
                "Faction %d ABAS fetch failed, keeping previous scores: %s",
                faction_id, abas_result,
            )
            abas_result = []
        elif isinstance(abas_result, BaseException):
            raise abas_result

        await run_db(self._store.upsert_faction_roster, faction_id, roster_result, now)
        if abas_result:
            await run_db(self._store.upsert_activity_scores, faction_id, abas_result, now)
        return roster_result

    # ------------------------------------------------------------------
    # Forum resolution
    # ------------------------------------------------------------------
    async def _resolve_forum(
        self,
        faction: Faction,
        config: RosterFilterConfig,
        force_refresh: bool,
        now: datetime,
    ) -> tuple[frozenset[str], frozenset[str], dict[str, list[int]]]:
        client = self._forum_client_factory(faction)
        if client is None:
            logger.info("Faction %d has no forum configured, using cached forum data only", faction.id)

        group_ids = config.referenced_group_ids
        user_ids = config.referenced_user_ids
        group_names, user_names = await asyncio.gather(
            asyncio.gather(*(
                self._forum_group(faction.id, gid, client, force_refresh, now) for gid in group_ids
            )),
            asyncio.gather(*(
                self._forum_user(faction.id, uid, client, force_refresh, now) for uid in user_ids
            )),
        )
        by_group = dict(zip(group_ids, group_names, strict=True))
        by_user = dict(zip(user_ids, user_names, strict=True))

        def collect(groups: Iterable[int], users: Iterable[int]) -> frozenset[str]:
            names = [n for gid in groups for n in by_group[gid]]
            names += [by_user[uid] for uid in users if by_user[uid]]
            return frozenset(normalize_name(n) for n in names)

        groups_by_username: dict[str, list[int]] = defaultdict(list)
        for gid, names in by_group.items():
            for name in dict.fromkeys(normalize_name(n) for n in names):
                groups_by_username[name].append(gid)

        return (
            collect(config.forum_groups_included, config.forum_users_included),
            collect(config.forum_groups_excluded, config.forum_users_excluded),
            dict(groups_by_username),
        )

    async def _forum_group(
        self,
        faction_id: int,
        group_id: int,
        client: ForumApiClient | None,
        force_refresh: bool,
        now: datetime,
    ) -> list[str]:
        """Member + leader usernames of one group; never raises on fetch failure."""
        cached = await run_db(self._store.get_forum_group, faction_id, group_id)
        cached_names = (
            ForumGroup(group_id, cached.members or [], cached.leaders or []).usernames
            if cached is not None else []
        )
        fresh = cached is not None and not force_refresh and not is_stale(
            now, cached.last_sync, self._config.forum_cache_minutes,
        )
        if fresh or client is None:
            return cached_names

        try:
            group = await client.fetch_group(group_id)
        except UpstreamFetchFailed as exc:
            logger.warning("Forum group %d fetch failed, using cached copy: %s", group_id, exc)
            return cached_names

        await run_db(self._store.upsert_forum_group, faction_id, group, now)
        return group.usernames

    async def _forum_user(
        self,
        faction_id: int,
        user_id: int,
        client: ForumApiClient | None,
        force_refresh: bool,
        now: datetime,
    ) -> str | None:
        cached = await run_db(self._store.get_forum_user, faction_id, user_id)
        fresh = cached is not None and not force_refresh and not is_stale(
            now, cached.last_sync, self._config.forum_cache_minutes,
        )
        if fresh or client is None:
            return cached.username if cached else None

        try:
            username = await client.fetch_user(user_id)
        except UpstreamFetchFailed as exc:
            logger.warning("Forum user %d fetch failed, using cached copy: %s", user_id, exc)
            return cached.username if cached else None

        await run_db(self._store.upsert_forum_user, faction_id, user_id, username, now)
        return username

    async def refresh_forum_groups(
        self,
        faction_id: int,
        group_ids: Iterable[int] | None = None,
        *,
        force: bool = True,
    ) -> ForumRefreshResult:
        """Populate the forum group cache.

        With no *group_ids*, every forum group linked to one of the
        faction's units/details is refreshed.  Failures are collected per
        group in the result.

        Raises
        ------
        ForumSyncUnavailable
            The faction has no forum URL/key configured.
        """
        faction = await run_db(self._load_faction, faction_id)
        client = self._forum_client_factory(faction)
        if client is None:
            raise ForumSyncUnavailable(f"Faction {faction_id} has no forum API configured")

        ids = sorted(set(group_ids)) if group_ids is not None else await run_db(
            self._linked_group_ids, faction_id,
        )
        now = self._clock()

        async def one(gid: int) -> tuple[int, str | None]:
            if not force:
                cached = await run_db(self._store.get_forum_group, faction_id, gid)
                if cached is not None and not is_stale(
                    now, cached.last_sync, self._config.forum_cache_minutes,
                ):
                    return gid, "fresh"
            try:
                group = await client.fetch_group(gid)
            except UpstreamFetchFailed as exc:
                logger.warning("Forum group %d refresh failed: %s", gid, exc)
                return gid, str(exc)
            await run_db(self._store.upsert_forum_group, faction_id, group, now)
            return gid, None

        outcomes = await asyncio.gather(*(one(gid) for gid in ids))
        result = ForumRefreshResult(
            refreshed=[gid for gid, err in outcomes if err is None],
            fresh=[gid for gid, err in outcomes if err == "fresh"],
            failed={gid: err for gid, err in outcomes if err not in (None, "fresh")},
        )
        logger.info(
            "Forum refresh for faction %d: %d refreshed, %d fresh, %d failed",
            faction_id, len(result.refreshed), len(result.fresh), len(result.failed),
        )
        return result

    # ------------------------------------------------------------------
    # Roster view
    # ------------------------------------------------------------------
    async def build_roster_view(
        self,
        roster_id: int,
        *,
        access_token: str,
        force_refresh: bool = False,
    ) -> RosterViewResult:
        ctx = await run_db(self._load_view_context, roster_id)
        config = parse_filter_config(ctx.filter_json, roster_id=ctx.roster_id)

        composed = await self.compose_roster(
            ctx.faction_id,
            access_token=access_token,
            force_refresh=force_refresh,
            filter_config=config,
        )
        filtered = apply_filters(
            composed.members, config, composed.included_usernames, composed.excluded_usernames,
        )
        members = filtered.kept

        if ctx.scope is not None:
            members = [
                replace(m, membership_id=ctx.scope[m.character_id][0],
                        assignment_title=ctx.scope[m.character_id][1])
                for m in members if m.character_id in ctx.scope
            ]
        elif config is not None and config.show_assignment_titles:
            members = [
                replace(m, assignment_title=ctx.primary_titles.get(m.character_id))
                for m in members
            ]

        members = [replace(m, label=ctx.labels.get(m.character_id)) for m in members]
        if config is not None and config.mark_alternative_characters:
            members = mark_alternatives(members, ctx.overrides)
        members = apply_standards(
            members, ctx.standards, config.abas_standards if config else None,
        )
        members = dedupe_members(members)

        alternatives = alternative_ids(members)
        sections = [
            replace(s, character_ids=alternatives)
            if SectionConfig.from_dict(s.configuration).alternative_characters else s
            for s in ctx.sections
        ]

        return RosterViewResult(
            roster_id=ctx.roster_id,
            roster_name=ctx.roster_name,
            faction_id=ctx.faction_id,
            members=members,
            missing_forum_users=filtered.missing_expected,
            sections=sections,
            config=config,
        )

    # ------------------------------------------------------------------
    # Sync DB readers (run through run_db)
    # ------------------------------------------------------------------
    def _load_faction(self, faction_id: int) -> Faction:
        with get_session(self._engine) as session:
            faction = session.get(Faction, faction_id)
            if faction is None:
                raise RecordNotFound(f"Faction {faction_id} does not exist")
            return faction

    def _linked_group_ids(self, faction_id: int) -> list[int]:
        with get_session(self._engine) as session:
            return sorted(set(session.scalars(
                select(OrganizationCategory.forum_group_id).where(
                    OrganizationCategory.faction_id == faction_id,
                    OrganizationCategory.forum_group_id.is_not(None),
                )
            )))

    def _load_view_context(self, roster_id: int) -> _ViewContext:
        with get_session(self._engine) as session:
            roster = session.get(Roster, roster_id)
            if roster is None:
                raise RecordNotFound(f"Roster {roster_id} does not exist")
            faction = session.get(Faction, roster.faction_id)

            sections = sorted(
                (
                    SectionView(
                        id=s.id,
                        name=s.name,
                        description=s.description,
                        order=s.order or 0,
                        configuration=s.configuration,
                        character_ids=list(s.character_ids or []),
                    )
                    for s in roster.sections
                ),
                key=lambda s: (s.order, s.id),
            )
            labels = {
                lbl.character_id: lbl.color
                for lbl in session.scalars(
                    select(RosterLabel).where(RosterLabel.roster_id == roster_id)
                )
            }

            scope = None
            if roster.organization_category_type and roster.organization_category_id:
                scope = {
                    m.character_id: (m.id, m.title)
                    for m in category_memberships(
                        session, roster.organization_category_type, roster.organization_category_id,
                    )
                }

            primary_titles = {
                m.character_id: m.title for m in primary_assignments(session, roster.faction_id)
            }
            overrides = {
                o.user_id: o.character_id
                for o in session.scalars(
                    select(PrimaryCharacterOverride).where(
                        PrimaryCharacterOverride.faction_id == roster.faction_id
                    )
                )
            }

            return _ViewContext(
                roster_id=roster.id,
                roster_name=roster.name,
                faction_id=roster.faction_id,
                filter_json=roster.filter_config_json,
                sections=sections,
                labels=labels,
                scope=scope,
                primary_titles=primary_titles,
                overrides=overrides,
                standards=FactionStandards(
                    supervisor_rank=faction.supervisor_rank,
                    minimum_abas=faction.minimum_abas or 0.0,
                    minimum_supervisor_abas=faction.minimum_supervisor_abas or 0.0,
                ),
            )
