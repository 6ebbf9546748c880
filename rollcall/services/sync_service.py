"""
rollcall.services.sync_service — Forum group ↔ unit/detail reconciliation
==========================================================================

``preview_sync`` reads only cached data (faction roster + forum group) and
never triggers a refetch; a missing or empty cache raises
:class:`~rollcall.errors.CachePreconditionFailed`.  ``apply_sync`` commits
a human-confirmed subset of the preview in one transaction.

``apply_sync`` does not re-check the one-primary-assignment rule for the
rows it inserts; the preview's ``is_already_assigned`` flag is the only
guard.  Characters that end up with more than one primary assignment are
logged as a warning.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import delete, select

from rollcall.database.engine import get_session
from rollcall.database.models import (
    CachedFactionRoster,
    CachedForumGroup,
    Membership,
    SyncExclusion,
)
from rollcall.engine.members import Character
from rollcall.engine.sync_diff import SyncDiff, compute_sync_diff, resolve_character_ids
from rollcall.errors import CachePreconditionFailed, ForumSyncUnavailable
from rollcall.services.access import Authorizer, require_manage
from rollcall.services.membership_service import (
    category_memberships,
    get_category,
    primary_assignments,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SyncResult:
    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)  # already members

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "added": self.added,
            "removed": self.removed,
            "skipped": self.skipped,
        }


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

def preview_sync(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    category_type: str,
    category_id: int,
) -> SyncDiff:
    """Propose additions/removals that make the category match its forum group.

    Raises
    ------
    Forbidden
        The actor may not manage the category.
    ForumSyncUnavailable
        The category has no forum group configured.
    CachePreconditionFailed
        The forum group or faction roster cache is missing or empty.
    """
    require_manage(authorizer, actor_id, category_type, category_id)

    with get_session(engine) as session:
        category = get_category(session, category_type, category_id)
        if category.forum_group_id is None:
            raise ForumSyncUnavailable(
                f"{category_type}:{category_id} has no forum group configured"
            )

        group = session.get(CachedForumGroup, (category.faction_id, category.forum_group_id))
        usernames = [*(group.members or []), *(group.leaders or [])] if group else []
        if not usernames:
            raise CachePreconditionFailed(
                f"Forum group {category.forum_group_id} is not cached; run a forum sync first"
            )

        cached = session.get(CachedFactionRoster, category.faction_id)
        if cached is None or not cached.members:
            raise CachePreconditionFailed(
                f"Faction {category.faction_id} roster is not cached; run a member sync first"
            )
        roster = [Character.from_dict(raw) for raw in cached.members]

        memberships = category_memberships(session, category_type, category_id)
        conflicts = primary_assignments(
            session, category.faction_id, exclude_category=(category_type, category_id),
        )
        excluded_names = session.scalars(
            select(SyncExclusion.character_name).where(
                SyncExclusion.category_type == category_type,
                SyncExclusion.category_id == category_id,
            )
        ).all()

        diff = compute_sync_diff(
            forum_ids=resolve_character_ids(usernames, roster),
            existing_ids={m.character_id for m in memberships},
            manual_ids={m.character_id for m in memberships if m.manual},
            conflicting_ids={m.character_id for m in conflicts},
            excluded_names=excluded_names,
            category_secondary=category.secondary,
            roster=roster,
        )

    logger.info(
        "Sync preview for %s:%d → %d to add, %d to remove",
        category_type, category_id, len(diff.to_add), len(diff.to_remove),
    )
    return diff


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------

def apply_sync(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    category_type: str,
    category_id: int,
    add_ids: Iterable[int] = (),
    remove_ids: Iterable[int] = (),
) -> SyncResult:
    """Insert *add_ids* and delete non-manual rows for *remove_ids*, atomically.

    Ids already in the category are skipped.  Rows flagged ``manual`` are
    never deleted here, even when listed in *remove_ids*.
    """
    require_manage(authorizer, actor_id, category_type, category_id)
    remove = set(remove_ids)

    with get_session(engine) as session:
        category = get_category(session, category_type, category_id)
        existing = {m.character_id for m in category_memberships(session, category_type, category_id)}

        added: list[int] = []
        skipped: list[int] = []
        for cid in dict.fromkeys(add_ids):
            if cid in existing:
                skipped.append(cid)
                continue
            session.add(Membership(
                type=category_type,
                category_id=category_id,
                character_id=cid,
                title=category.default_title,
                secondary=category.secondary,
                manual=False,
                created_by=actor_id,
            ))
            added.append(cid)

        removed: list[int] = []
        if remove:
            doomed = session.scalars(
                select(Membership).where(
                    Membership.type == category_type,
                    Membership.category_id == category_id,
                    Membership.character_id.in_(remove),
                    Membership.manual.is_(False),
                )
            ).all()
            for row in doomed:
                removed.append(row.character_id)
                session.delete(row)

        if added and not category.secondary:
            session.flush()
            held = Counter(
                m.character_id
                for m in primary_assignments(session, category.faction_id, character_ids=added)
            )
            doubled = sorted(cid for cid, n in held.items() if n > 1)
            if doubled:
                logger.warning(
                    "Sync of %s:%d left characters with several primary assignments: %s",
                    category_type, category_id, doubled,
                )

    logger.info(
        "Actor %s applied sync to %s:%d (+%d / -%d)",
        actor_id, category_type, category_id, len(added), len(removed),
    )
    return SyncResult(added=added, removed=sorted(set(removed)), skipped=skipped)


# ---------------------------------------------------------------------------
# Exclusion list
# ---------------------------------------------------------------------------

def get_exclusions(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    category_type: str,
    category_id: int,
) -> list[str]:
    require_manage(authorizer, actor_id, category_type, category_id)
    with get_session(engine) as session:
        return list(session.scalars(
            select(SyncExclusion.character_name)
            .where(
                SyncExclusion.category_type == category_type,
                SyncExclusion.category_id == category_id,
            )
            .order_by(SyncExclusion.id)
        ))


def replace_exclusions(
    engine,
    authorizer: Authorizer,
    *,
    actor_id: int,
    category_type: str,
    category_id: int,
    names: Iterable[str],
) -> list[str]:
    """Replace the category's exclusion list with *names* (blank and repeated names dropped)."""
    require_manage(authorizer, actor_id, category_type, category_id)
    cleaned = list(dict.fromkeys(n.strip() for n in names if n and n.strip()))

    with get_session(engine) as session:
        get_category(session, category_type, category_id)
        session.execute(
            delete(SyncExclusion).where(
                SyncExclusion.category_type == category_type,
                SyncExclusion.category_id == category_id,
            )
        )
        session.add_all(
            SyncExclusion(category_type=category_type, category_id=category_id, character_name=n)
            for n in cleaned
        )

    logger.info(
        "Exclusion list for %s:%d replaced (%d names)", category_type, category_id, len(cleaned),
    )
    return cleaned
