"""
rollcall.services.section_service — Roster section membership
==============================================================

Section member lists are stored on ``roster_sections.character_ids``.
They change only through an explicit action: the auto-filter (which
rewrites every section from the classifier) or a manual move.  Only the
roster's creator may change them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.orm import Session

from rollcall.database.engine import get_session
from rollcall.database.models import Roster
from rollcall.engine.members import Member
from rollcall.engine.sections import SectionAssignment, SectionConfig, SectionRule, classify_sections
from rollcall.errors import Forbidden, RecordNotFound

logger = logging.getLogger(__name__)


def _owned_roster(session: Session, roster_id: int, actor_id: int) -> Roster:
    roster = session.get(Roster, roster_id)
    if roster is None:
        raise RecordNotFound(f"Roster {roster_id} does not exist")
    if roster.created_by != actor_id:
        raise Forbidden(f"Actor {actor_id} may not edit roster {roster_id}")
    return roster


def auto_filter_sections(
    engine,
    *,
    roster_id: int,
    actor_id: int,
    members: Iterable[Member],
) -> SectionAssignment:
    """Classify *members* into the roster's sections and persist the result.

    Every section's list is replaced, including sections no one matched.
    *members* is normally the ``members`` of a freshly built roster view.
    """
    with get_session(engine) as session:
        roster = _owned_roster(session, roster_id, actor_id)
        rules = [
            SectionRule(s.id, s.order or 0, SectionConfig.from_dict(s.configuration))
            for s in roster.sections
        ]
        assignment = classify_sections(members, rules)
        for section in roster.sections:
            section.character_ids = assignment.character_ids(section.id)

    logger.info(
        "Auto-filtered roster %d: %d assigned, %d unassigned",
        roster_id,
        sum(len(v) for v in assignment.assigned.values()),
        len(assignment.unassigned),
    )
    return assignment


def move_members(
    engine,
    *,
    roster_id: int,
    actor_id: int,
    character_ids: Iterable[int],
    destination_section_id: int | None,
) -> None:
    """Move characters into one section, or out of all of them (``None``).

    A character sits in at most one section afterwards.
    """
    ids = list(dict.fromkeys(character_ids))
    moving = set(ids)

    with get_session(engine) as session:
        roster = _owned_roster(session, roster_id, actor_id)
        sections = {s.id: s for s in roster.sections}
        if destination_section_id is not None and destination_section_id not in sections:
            raise RecordNotFound(
                f"Section {destination_section_id} is not part of roster {roster_id}"
            )

        for section in sections.values():
            current = list(section.character_ids or [])
            kept = [cid for cid in current if cid not in moving]
            if len(kept) != len(current):
                section.character_ids = kept

        if destination_section_id is not None:
            dest = sections[destination_section_id]
            dest.character_ids = [*(dest.character_ids or []), *ids]


def move_member(
    engine,
    *,
    roster_id: int,
    actor_id: int,
    character_id: int,
    destination_section_id: int | None,
) -> None:
    move_members(
        engine,
        roster_id=roster_id,
        actor_id=actor_id,
        character_ids=[character_id],
        destination_section_id=destination_section_id,
    )
