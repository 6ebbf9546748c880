"""
rollcall.engine.standards — ABAS standard evaluation
=====================================================

Resolution order for the minimum a member must reach:
  1. roster standard by character name
  2. roster standard by rank
  3. faction minimum (supervisor minimum when rank >= supervisor_rank)

A member with no recorded ABAS is measured as 0.  ``None`` means no
standard applies (faction minimum of 0 and no roster standard).
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from rollcall.constants import normalize_name
from rollcall.engine.filters import AbasStandards
from rollcall.engine.members import Member

__all__ = ["FactionStandards", "required_abas", "apply_standards"]


@dataclass(frozen=True, slots=True)
class FactionStandards:
    supervisor_rank: int = 10
    minimum_abas: float = 0.0
    minimum_supervisor_abas: float = 0.0


def _score(member: Member) -> float:
    try:
        return float(member.abas) if member.abas is not None else 0.0
    except ValueError:
        return 0.0


def required_abas(
    member: Member,
    faction: FactionStandards,
    roster: AbasStandards | None = None,
) -> float | None:
    if roster is not None:
        by_name = {normalize_name(k): v for k, v in roster.by_name.items()}
        if member.name in by_name:
            return by_name[member.name]
        if member.rank in roster.by_rank:
            return roster.by_rank[member.rank]

    if member.rank >= faction.supervisor_rank:
        required = faction.minimum_supervisor_abas
    else:
        required = faction.minimum_abas
    return required if required > 0 else None


def apply_standards(
    members: list[Member],
    faction: FactionStandards,
    roster: AbasStandards | None = None,
) -> list[Member]:
    result = []
    for m in members:
        required = required_abas(m, faction, roster)
        meets = None if required is None else _score(m) >= required
        result.append(replace(m, meets_abas_standard=meets))
    return result
