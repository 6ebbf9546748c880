"""
rollcall.engine.members — Character and Member value types
===========================================================

A :class:`Character` is what the game-world API reports; a :class:`Member`
is a character decorated with everything the roster view shows next to it
(ABAS, label, assignment, forum groups, alternative-character flags).
Both are immutable; decoration returns a new object via
:func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from rollcall.constants import normalize_name

__all__ = ["Character", "AbasEntry", "Member", "dedupe_members"]


@dataclass(frozen=True, slots=True)
class Character:
    """External identity as reported by the faction roster source."""

    character_id: int
    character_name: str
    rank: int
    rank_name: str = ""
    last_online: str | None = None
    last_duty: str | None = None
    user_id: int | None = None  # owning player account, shared by alternatives

    @property
    def name(self) -> str:
        """Underscore-normalized name used for every comparison."""
        return normalize_name(self.character_name)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Character:
        return cls(
            character_id=int(raw["character_id"]),
            character_name=str(raw.get("character_name") or ""),
            rank=int(raw.get("rank") or 0),
            rank_name=str(raw.get("rank_name") or ""),
            last_online=raw.get("last_online"),
            last_duty=raw.get("last_duty"),
            user_id=int(raw["user_id"]) if raw.get("user_id") is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class AbasEntry:
    """One row of the ABAS response."""

    character_id: int
    score: str | None
    total_score: int | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AbasEntry:
        score = raw.get("abas", raw.get("score"))
        total = raw.get("total_abas", raw.get("total_score"))
        return cls(
            character_id=int(raw["character_id"]),
            score=str(score) if score is not None else None,
            total_score=int(total) if total is not None else None,
        )


@dataclass(frozen=True, slots=True)
class Member:
    """A character plus roster decorations.

    ``abas`` is ``None`` when no score was ever recorded, which is distinct
    from a recorded ``"0.00"``.
    """

    character: Character
    abas: str | None = None
    total_abas: int | None = None
    abas_last_sync: datetime | None = None
    label: str | None = None
    assignment_title: str | None = None
    membership_id: int | None = None
    forum_groups: tuple[int, ...] = field(default_factory=tuple)
    is_primary_character: bool = False
    is_alternative: bool = False
    meets_abas_standard: bool | None = None

    @property
    def character_id(self) -> int:
        return self.character.character_id

    @property
    def character_name(self) -> str:
        return self.character.character_name

    @property
    def rank(self) -> int:
        return self.character.rank

    @property
    def name(self) -> str:
        return self.character.name

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON-safe rendering, used for snapshots and API output."""
        data = self.character.to_dict()
        data.update(
            abas=self.abas,
            total_abas=self.total_abas,
            abas_last_sync=self.abas_last_sync.isoformat() if self.abas_last_sync else None,
            label=self.label,
            assignment_title=self.assignment_title,
            membership_id=self.membership_id,
            forum_groups=list(self.forum_groups),
            is_primary_character=self.is_primary_character,
            is_alternative=self.is_alternative,
            meets_abas_standard=self.meets_abas_standard,
        )
        return data


def dedupe_members(members: list[Member]) -> list[Member]:
    """Drop repeated character ids, keeping the last occurrence's data
    at the first occurrence's position."""
    by_id: dict[int, Member] = {}
    for m in members:
        by_id[m.character_id] = m
    return list(by_id.values())
