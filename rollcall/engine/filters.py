"""
rollcall.engine.filters — Roster filter rules
==============================================

A roster's filter document is user-authored JSON stored on the ``rosters``
row.  :func:`parse_filter_config` turns it into a typed
:class:`RosterFilterConfig` (or ``None`` when it is absent or malformed),
and :func:`apply_filters` evaluates it against a member list.

Evaluation is ordered and short-circuits per member; the first rule that
drops a member ends evaluation for that member:

    1. include_ranks   (only when non-empty)
    2. exclude_ranks
    3. include_members (substring match, only when non-empty)
    4. exclude_members (substring match)
    5. forum usernames (excluded set, then included set when non-empty)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from rollcall.constants import normalize_name
from rollcall.engine.members import Member

logger = logging.getLogger(__name__)

__all__ = [
    "AbasStandards",
    "RosterFilterConfig",
    "FilterResult",
    "parse_filter_config",
    "apply_filters",
]


# ---------------------------------------------------------------------------
# Config document
# ---------------------------------------------------------------------------
class AbasStandards(BaseModel):
    model_config = ConfigDict(extra="ignore")

    by_rank: dict[int, float] = Field(default_factory=dict)
    by_name: dict[str, float] = Field(default_factory=dict)

    @field_validator("by_rank", "by_name", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        return {} if value is None else value


class RosterFilterConfig(BaseModel):
    """Typed view of a roster's filter JSON.  Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    include_ranks: list[int] = Field(default_factory=list)
    exclude_ranks: list[int] = Field(default_factory=list)
    include_members: list[str] = Field(default_factory=list)
    exclude_members: list[str] = Field(default_factory=list)
    forum_groups_included: list[int] = Field(default_factory=list)
    forum_groups_excluded: list[int] = Field(default_factory=list)
    forum_users_included: list[int] = Field(default_factory=list)
    forum_users_excluded: list[int] = Field(default_factory=list)
    alert_forum_users_missing: bool = False
    show_assignment_titles: bool = False
    allow_roster_snapshots: bool = False
    mark_alternative_characters: bool = False
    abas_standards: AbasStandards | None = None
    labels: dict[str, str] = Field(default_factory=dict)

    @field_validator(
        "include_ranks", "exclude_ranks", "include_members", "exclude_members",
        "forum_groups_included", "forum_groups_excluded",
        "forum_users_included", "forum_users_excluded",
        mode="before",
    )
    @classmethod
    def _null_list_is_empty(cls, value):
        return [] if value is None else value

    @field_validator("labels", mode="before")
    @classmethod
    def _null_labels_are_empty(cls, value):
        return {} if value is None else value

    @field_validator(
        "alert_forum_users_missing", "show_assignment_titles",
        "allow_roster_snapshots", "mark_alternative_characters",
        mode="before",
    )
    @classmethod
    def _null_flag_is_off(cls, value):
        return False if value is None else value

    @property
    def forum_filter_active(self) -> bool:
        return bool(
            self.forum_groups_included
            or self.forum_groups_excluded
            or self.forum_users_included
            or self.forum_users_excluded
        )

    @property
    def referenced_group_ids(self) -> list[int]:
        return sorted(set(self.forum_groups_included) | set(self.forum_groups_excluded))

    @property
    def referenced_user_ids(self) -> list[int]:
        return sorted(set(self.forum_users_included) | set(self.forum_users_excluded))


def parse_filter_config(raw: str | None, *, roster_id: int | None = None) -> RosterFilterConfig | None:
    """Parse a stored filter document.

    Returns ``None`` for an empty document and for malformed JSON; the
    latter is logged so the roster still renders, unfiltered.  A key set
    to ``null`` only turns off its own rule.
    """
    if raw is None or not raw.strip():
        return None
    try:
        return RosterFilterConfig.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning(
            "Malformed filter config on roster %s, rendering unfiltered: %s",
            roster_id, exc.errors(include_url=False),
        )
        return None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FilterResult:
    kept: list[Member]
    missing_expected: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class _Context:
    config: RosterFilterConfig
    included: frozenset[str]
    excluded: frozenset[str]
    include_names: tuple[str, ...]
    exclude_names: tuple[str, ...]
    forum_active: bool


def _drop_not_in_include_ranks(m: Member, ctx: _Context) -> bool:
    ranks = ctx.config.include_ranks
    return bool(ranks) and m.rank not in ranks


def _drop_excluded_rank(m: Member, ctx: _Context) -> bool:
    return m.rank in ctx.config.exclude_ranks


def _drop_not_in_include_members(m: Member, ctx: _Context) -> bool:
    return bool(ctx.include_names) and not any(n in m.name for n in ctx.include_names)


def _drop_excluded_member(m: Member, ctx: _Context) -> bool:
    return any(n in m.name for n in ctx.exclude_names)


def _drop_by_forum(m: Member, ctx: _Context) -> bool:
    if not ctx.forum_active:
        return False
    if m.name in ctx.excluded:
        return True
    return bool(ctx.included) and m.name not in ctx.included


# Order matters: each rule only sees members every earlier rule kept
_RULES: tuple[Callable[[Member, _Context], bool], ...] = (
    _drop_not_in_include_ranks,
    _drop_excluded_rank,
    _drop_not_in_include_members,
    _drop_excluded_member,
    _drop_by_forum,
)


def _normalized(names: Iterable[str]) -> frozenset[str]:
    return frozenset(normalize_name(n) for n in names if n)


def apply_filters(
    members: list[Member],
    config: RosterFilterConfig | None,
    included_usernames: Iterable[str] = (),
    excluded_usernames: Iterable[str] = (),
) -> FilterResult:
    """Filter *members* by *config* and report expected-but-absent forum users.

    ``missing_expected`` is only computed when the config asks for it and a
    forum filter is active.  It compares against *members* before filtering,
    so rank/name rules never cause a forum user to be reported missing.
    """
    if config is None:
        return FilterResult(kept=list(members))

    ctx = _Context(
        config=config,
        included=_normalized(included_usernames),
        excluded=_normalized(excluded_usernames),
        include_names=tuple(normalize_name(n) for n in config.include_members if n),
        exclude_names=tuple(normalize_name(n) for n in config.exclude_members if n),
        forum_active=config.forum_filter_active,
    )

    kept = [m for m in members if not any(rule(m, ctx) for rule in _RULES)]

    missing: list[str] = []
    if config.alert_forum_users_missing and ctx.forum_active:
        on_roster = {m.name for m in members}
        missing = sorted(u for u in ctx.included - ctx.excluded if u not in on_roster)

    return FilterResult(kept=kept, missing_expected=missing)
