"""
rollcall.services.snapshot_service — Frozen roster renders
===========================================================

A snapshot stores the full :class:`RosterViewResult` of a roster as JSON,
rendered with a forced refresh so it reflects upstream at that moment.
Snapshots are never updated afterwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from rollcall.database.engine import get_session, run_db
from rollcall.database.models import RosterSnapshot
from rollcall.errors import Forbidden

if TYPE_CHECKING:
    from rollcall.services.roster_service import RosterAggregator, RosterViewResult

logger = logging.getLogger(__name__)

MIN_SNAPSHOT_NAME_LENGTH = 3


def _store_snapshot(engine, view: RosterViewResult, name: str, actor_id: int) -> RosterSnapshot:
    with get_session(engine) as session:
        snapshot = RosterSnapshot(
            faction_id=view.faction_id,
            roster_id=view.roster_id,
            name=name,
            data=view.to_dict(),
            created_by=actor_id,
        )
        session.add(snapshot)
        session.flush()
        session.refresh(snapshot)
    return snapshot


async def create_snapshot(
    aggregator: RosterAggregator,
    engine,
    *,
    roster_id: int,
    name: str,
    actor_id: int,
    access_token: str,
) -> RosterSnapshot:
    """Render *roster_id* and store it under *name*.

    Raises
    ------
    ValueError
        *name* is shorter than three characters.
    Forbidden
        The roster's config does not allow snapshots.
    """
    name = (name or "").strip()
    if len(name) < MIN_SNAPSHOT_NAME_LENGTH:
        raise ValueError(
            f"Snapshot name must be at least {MIN_SNAPSHOT_NAME_LENGTH} characters long"
        )

    view = await aggregator.build_roster_view(
        roster_id, access_token=access_token, force_refresh=True,
    )
    if view.config is None or not view.config.allow_roster_snapshots:
        raise Forbidden(f"Roster {roster_id} does not allow snapshots")

    snapshot = await run_db(_store_snapshot, engine, view, name, actor_id)
    logger.info("Snapshot %r (%d) taken of roster %d", name, snapshot.id, roster_id)
    return snapshot


def list_snapshots(engine, roster_id: int) -> list[RosterSnapshot]:
    with get_session(engine) as session:
        return list(session.scalars(
            select(RosterSnapshot)
            .where(RosterSnapshot.roster_id == roster_id)
            .order_by(RosterSnapshot.created_at.desc(), RosterSnapshot.id.desc())
        ))
