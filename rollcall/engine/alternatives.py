"""
rollcall.engine.alternatives — Primary / alternative character marking
=======================================================================

A player may run several characters in the same faction.  Characters
sharing a ``user_id`` are grouped; one is the player's primary character
and the rest are alternatives.  The primary is the manual override when it
is still on the roster, otherwise the highest-ranked character (earliest
in roster order on ties).  Players with a single character are left alone.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace

from rollcall.engine.members import Member

__all__ = ["mark_alternatives", "alternative_ids"]


def mark_alternatives(members: list[Member], overrides: dict[int, int] | None = None) -> list[Member]:
    """Return *members* with ``is_primary_character``/``is_alternative`` set.

    *overrides* maps ``user_id`` → manually chosen primary ``character_id``.
    """
    overrides = overrides or {}
    by_user: dict[int, list[Member]] = defaultdict(list)
    for m in members:
        if m.character.user_id is not None:
            by_user[m.character.user_id].append(m)

    primary_of: dict[int, int] = {}
    for user_id, chars in by_user.items():
        if len(chars) < 2:
            continue
        ids = {c.character_id for c in chars}
        manual = overrides.get(user_id)
        if manual in ids:
            primary_of[user_id] = manual
        else:
            primary_of[user_id] = max(chars, key=lambda c: c.rank).character_id

    marked: list[Member] = []
    for m in members:
        primary = primary_of.get(m.character.user_id) if m.character.user_id is not None else None
        if primary is None:
            marked.append(m)
        elif m.character_id == primary:
            marked.append(replace(m, is_primary_character=True))
        else:
            marked.append(replace(m, is_alternative=True))
    return marked


def alternative_ids(members: list[Member]) -> list[int]:
    return [m.character_id for m in members if m.is_alternative]
