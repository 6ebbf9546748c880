"""
rollcall.engine.sync_diff — Forum group → membership diff
==========================================================

Pure computation behind the sync preview.  Given the character ids found
in a forum group and the current memberships of a unit/detail:

    to_add    = forum − existing
    to_remove = existing − forum − manual

Add candidates carry two advisory flags the caller uses to pre-deselect
them: ``is_already_assigned`` (holds a primary assignment elsewhere and
this category is not secondary) and ``is_excluded`` (name is on the
category's exclusion list).  Manual memberships are never proposed for
removal.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field

from rollcall.constants import normalize_name
from rollcall.engine.members import Character

__all__ = ["SyncCandidate", "SyncDiff", "resolve_character_ids", "compute_sync_diff"]


@dataclass(frozen=True, slots=True)
class SyncCandidate:
    character_id: int
    character_name: str
    rank_name: str
    is_already_assigned: bool = False
    is_excluded: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class SyncDiff:
    to_add: list[SyncCandidate] = field(default_factory=list)
    to_remove: list[SyncCandidate] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "toAdd": [c.to_dict() for c in self.to_add],
            "toRemove": [c.to_dict() for c in self.to_remove],
        }


def resolve_character_ids(usernames: Iterable[str], roster: Iterable[Character]) -> set[int]:
    """Map forum usernames to character ids, dropping names not on the roster."""
    by_name = {c.name: c.character_id for c in roster}
    found: set[int] = set()
    for username in usernames:
        character_id = by_name.get(normalize_name(username))
        if character_id is not None:
            found.add(character_id)
    return found


def _candidate(character_id: int, roster: dict[int, Character], **flags: bool) -> SyncCandidate:
    c = roster.get(character_id)
    return SyncCandidate(
        character_id=character_id,
        character_name=c.character_name if c else f"ID: {character_id}",
        rank_name=c.rank_name if c and c.rank_name else "N/A",
        **flags,
    )


def _sort_key(c: SyncCandidate) -> tuple[str, int]:
    return (normalize_name(c.character_name).lower(), c.character_id)


def compute_sync_diff(
    *,
    forum_ids: set[int],
    existing_ids: set[int],
    manual_ids: set[int],
    conflicting_ids: set[int],
    excluded_names: Iterable[str],
    category_secondary: bool,
    roster: Iterable[Character],
) -> SyncDiff:
    by_id = {c.character_id: c for c in roster}
    excluded = {normalize_name(n) for n in excluded_names}

    to_add = [
        _candidate(
            cid,
            by_id,
            is_already_assigned=(not category_secondary) and cid in conflicting_ids,
            is_excluded=cid in by_id and by_id[cid].name in excluded,
        )
        for cid in forum_ids - existing_ids
    ]
    to_remove = [
        _candidate(cid, by_id)
        for cid in existing_ids - forum_ids - manual_ids
    ]

    return SyncDiff(
        to_add=sorted(to_add, key=_sort_key),
        to_remove=sorted(to_remove, key=_sort_key),
    )
