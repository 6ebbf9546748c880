"""
rollcall.services.membership_service — Unit/detail membership records
======================================================================

Writes that can create a primary assignment (``add_members`` and
``transfer_membership``) check the one-primary-per-character rule before
touching the table and raise :class:`~rollcall.errors.InvariantViolation`
when it would break.  Title edits and removals cannot break it and are not
checked.  Concurrent title edits are last-writer-wins.

Every public function takes the engine first and an :class:`Authorizer`
plus ``actor_id``; the category being changed is authorized before any
read of its rows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from rollcall.constants import CATEGORY_TYPES
from rollcall.database.engine import get_session
from rollcall.database.models import Membership, OrganizationCategory
from rollcall.errors import InvariantViolation, RecordNotFound
from rollcall.services.access import Authorizer, require_manage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session-level helpers (shared with the sync and roster services)
# ---------------------------------------------------------------------------

def get_category(session: Session, category_type: str, category_id: int) -> OrganizationCategory:
    """Load a unit/detail or raise :class:`RecordNotFound`."""
    if category_type not in CATEGORY_TYPES:
        raise ValueError(f"Unknown category type {category_type!r}")
    category = session.get(OrganizationCategory, category_id)
    if category is None or category.type != category_type:
        raise RecordNotFound(f"{category_type}:{category_id} does not exist")
    return category


def category_memberships(session: Session, category_type: str, category_id: int) -> list[Membership]:
    return list(session.scalars(
        select(Membership)
        .where(Membership.type == category_type, Membership.category_id == category_id)
        .order_by(Membership.id)
    ))


def primary_assignments(
    session: Session,
    faction_id: int,
    *,
    character_ids: Iterable[int] | None = None,
    exclude_category: tuple[str, int] | None = None,
    exclude_membership_id: int | None = None,
) -> list[Membership]:
    """Every ``secondary=False`` membership in *faction_id*.

    Narrow with *character_ids*; drop rows of *exclude_category* or the
    single row *exclude_membership_id*.
    """
    stmt = (
        select(Membership)
        .join(
            OrganizationCategory,
            and_(
                OrganizationCategory.id == Membership.category_id,
                OrganizationCategory.type == Membership.type,
            ),
        )
        .where(
            OrganizationCategory.faction_id == faction_id,
            Membership.secondary.is_(False),
        )
    )
    if character_ids is not None:
        stmt = stmt.where(Membership.character_id.in_(list(character_ids)))
    if exclude_category is not None:
        ctype, cid = exclude_category
        stmt = stmt.where(~and_(Membership.type == ctype, Membership.category_id == cid))
    if exclude_membership_id is not None:
        stmt = stmt.where(Membership.id != exclude_membership_id)
    return list(session.scalars(stmt))


def _get_membership(session: Session, membership_id: int) -> Membership:
    row = session.get(Membership, membership_id)
    if row is None:
        raise RecordNotFound(f"Membership {membership_id} does not exist")
    return row


def _load_generated(session: Session, rows: list[Membership]) -> None:
    # created_at / updated_at are server-generated; load them before detaching
    session.flush()
    for row in rows:
        session.refresh(row)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def list_memberships(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    category_type: str,
    category_id: int,
) -> list[Membership]:
    require_manage(authorizer, actor_id, category_type, category_id)
    with get_session(engine) as session:
        get_category(session, category_type, category_id)
        return category_memberships(session, category_type, category_id)


def add_members(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    category_type: str,
    category_id: int,
    character_ids: Iterable[int],
    title: str | None = None,
    manual: bool = True,
) -> list[Membership]:
    """Add *character_ids* to a unit/detail.

    The new rows take the category's ``secondary`` flag, and its
    ``default_title`` when *title* is empty.

    Raises
    ------
    InvariantViolation
        The category is primary and one or more characters already hold a
        primary assignment.  Nothing is inserted.
    """
    require_manage(authorizer, actor_id, category_type, category_id)
    ids = list(dict.fromkeys(character_ids))
    if not ids:
        raise ValueError("No members to add")

    with get_session(engine) as session:
        category = get_category(session, category_type, category_id)

        if not category.secondary:
            conflicts = primary_assignments(session, category.faction_id, character_ids=ids)
            if conflicts:
                raise InvariantViolation({m.character_id for m in conflicts})

        rows = [
            Membership(
                type=category_type,
                category_id=category_id,
                character_id=cid,
                title=title or category.default_title,
                secondary=category.secondary,
                manual=manual,
                created_by=actor_id,
            )
            for cid in ids
        ]
        session.add_all(rows)
        _load_generated(session, rows)

    logger.info(
        "Actor %s added %d member(s) to %s:%d", actor_id, len(rows), category_type, category_id,
    )
    return rows


def update_title(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    membership_id: int,
    title: str | None,
) -> Membership:
    with get_session(engine) as session:
        row = _get_membership(session, membership_id)
        require_manage(authorizer, actor_id, row.type, row.category_id)
        row.title = title
        _load_generated(session, [row])
    return row


def remove_membership(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    membership_id: int,
) -> None:
    """Delete one membership, manual or not."""
    with get_session(engine) as session:
        row = _get_membership(session, membership_id)
        require_manage(authorizer, actor_id, row.type, row.category_id)
        session.delete(row)
    logger.info("Actor %s removed membership %d", actor_id, membership_id)


def transfer_membership(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    membership_id: int,
    destination_type: str,
    destination_id: int,
) -> Membership:
    """Move a membership to another unit/detail.

    The actor must manage both ends.  The row takes the destination's
    ``secondary`` flag; moving into a primary category re-checks the
    character's other primary assignments.
    """
    with get_session(engine) as session:
        row = _get_membership(session, membership_id)
        require_manage(authorizer, actor_id, row.type, row.category_id)
        require_manage(authorizer, actor_id, destination_type, destination_id)
        destination = get_category(session, destination_type, destination_id)

        if not destination.secondary:
            conflicts = primary_assignments(
                session,
                destination.faction_id,
                character_ids=[row.character_id],
                exclude_membership_id=row.id,
            )
            if conflicts:
                raise InvariantViolation({row.character_id})

        source = (row.type, row.category_id)
        row.type = destination_type
        row.category_id = destination_id
        row.secondary = destination.secondary
        row.created_by = actor_id
        _load_generated(session, [row])

    logger.info(
        "Actor %s moved membership %d from %s:%d to %s:%d",
        actor_id, membership_id, *source, destination_type, destination_id,
    )
    return row
