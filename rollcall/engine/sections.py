"""
rollcall.engine.sections — Section auto-classification
=======================================================

Assigns each member to the first section (by ascending ``order``) whose
rules match them.  A section matches when its ``include_names`` holds the
member's name (either ``First Last`` or ``First_Last``) or its
``include_ranks`` holds the member's rank, unless ``exclude_names`` also
holds the name.  Members matching nothing stay unassigned.

Only run on demand; the result replaces every section's member list.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import reduce
from typing import Any

from rollcall.constants import normalize_name
from rollcall.engine.members import Member

__all__ = ["SectionConfig", "SectionRule", "SectionAssignment", "classify_sections"]


@dataclass(frozen=True, slots=True)
class SectionConfig:
    include_names: frozenset[str] = frozenset()
    include_ranks: frozenset[int] = frozenset()
    exclude_names: frozenset[str] = frozenset()
    alternative_characters: bool = False

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> SectionConfig:
        raw = raw or {}
        return cls(
            include_names=frozenset(normalize_name(n) for n in raw.get("include_names") or []),
            include_ranks=frozenset(int(r) for r in raw.get("include_ranks") or []),
            exclude_names=frozenset(normalize_name(n) for n in raw.get("exclude_names") or []),
            alternative_characters=bool(raw.get("alternative_characters", False)),
        )

    @property
    def has_rules(self) -> bool:
        return bool(self.include_names or self.include_ranks)

    def matches(self, member: Member) -> bool:
        name = member.name
        included = name in self.include_names or member.rank in self.include_ranks
        return included and name not in self.exclude_names


@dataclass(frozen=True, slots=True)
class SectionRule:
    section_id: int
    order: int
    config: SectionConfig


@dataclass(frozen=True, slots=True)
class SectionAssignment:
    assigned: dict[int, list[Member]] = field(default_factory=dict)
    unassigned: list[Member] = field(default_factory=list)

    def character_ids(self, section_id: int) -> list[int]:
        return [m.character_id for m in self.assigned.get(section_id, [])]


def _first_match(member: Member, rules: list[SectionRule]) -> int | None:
    return next((r.section_id for r in rules if r.config.matches(member)), None)


def classify_sections(members: Iterable[Member], sections: Iterable[SectionRule]) -> SectionAssignment:
    """Return the first-match-wins assignment of *members* to *sections*."""
    ordered = sorted(sections, key=lambda r: (r.order, r.section_id))
    matchable = [r for r in ordered if r.config.has_rules]

    def fold(acc: SectionAssignment, member: Member) -> SectionAssignment:
        target = _first_match(member, matchable)
        if target is None:
            return SectionAssignment(acc.assigned, [*acc.unassigned, member])
        return SectionAssignment(
            {**acc.assigned, target: [*acc.assigned[target], member]},
            acc.unassigned,
        )

    start = SectionAssignment({r.section_id: [] for r in ordered}, [])
    return reduce(fold, members, start)
