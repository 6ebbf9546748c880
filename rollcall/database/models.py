"""
rollcall.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- factions                  — Tenant rows with forum integration + ABAS minimums
- cached_faction_rosters    — One cached game-API roster per faction
- activity_scores           — Per (character, faction) ABAS cache
- cached_forum_groups       — Per (faction, forum group) member/leader usernames
- cached_forum_users        — Per (faction, forum user id) username lookups
- organization_categories   — Units (cat_2) and details (cat_3)
- memberships               — Character → unit/detail assignments
- sync_exclusions           — Names barred from automatic sync addition
- rosters                   — User-configured roster views
- roster_sections           — Ordered sections within a roster
- roster_labels             — Per-roster colour labels on characters
- roster_snapshots          — Frozen roster view renders
- primary_character_overrides — Manually chosen primary character per user
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Rollcall ORM models."""


# ---------------------------------------------------------------------------
# Faction — top-level tenant
# ---------------------------------------------------------------------------
class Faction(Base):
    __tablename__ = "factions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)  # game-world faction id
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    supervisor_rank: Mapped[int] = mapped_column(Integer, default=10)
    minimum_abas: Mapped[float] = mapped_column(Float, default=0.0)
    minimum_supervisor_abas: Mapped[float] = mapped_column(Float, default=0.0)

    # Optional forum integration; both must be set for forum features
    forum_api_url: Mapped[str | None] = mapped_column(String(255), default=None)
    forum_api_key: Mapped[str | None] = mapped_column(String(255), default=None)

    @property
    def forum_configured(self) -> bool:
        return bool(self.forum_api_url and self.forum_api_key)

    def __repr__(self) -> str:
        return f"<Faction id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Caches — overwritten in place, never deleted except by faction cascade
# ---------------------------------------------------------------------------
class CachedFactionRoster(Base):
    """Whole-roster cache.  Overwritten wholesale on every refetch."""
    __tablename__ = "cached_faction_rosters"

    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True
    )
    members: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<CachedFactionRoster faction={self.faction_id} members={len(self.members or [])}>"


class ActivityScore(Base):
    """ABAS cache row, one per (character, faction)."""
    __tablename__ = "activity_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_id: Mapped[int] = mapped_column(Integer, nullable=False)
    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[str | None] = mapped_column(String(32), default=None)  # decimal string
    total_score: Mapped[int | None] = mapped_column(Integer, default=None)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    __table_args__ = (
        UniqueConstraint("character_id", "faction_id", name="uq_activity_scores_char_faction"),
    )

    def __repr__(self) -> str:
        return f"<ActivityScore char={self.character_id} score={self.score!r}>"


class CachedForumGroup(Base):
    __tablename__ = "cached_forum_groups"

    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True
    )
    group_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    members: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    leaders: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<CachedForumGroup faction={self.faction_id} group={self.group_id}>"


class CachedForumUser(Base):
    __tablename__ = "cached_forum_users"

    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True
    )
    forum_user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str | None] = mapped_column(String(255), default=None)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<CachedForumUser id={self.forum_user_id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# Organisation — units (cat_2) and details (cat_3)
# ---------------------------------------------------------------------------
class OrganizationCategory(Base):
    """A unit or detail.  Details hang under a unit via ``parent_id``."""
    __tablename__ = "organization_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # cat_2 | cat_3
    parent_id: Mapped[int | None] = mapped_column(Integer, default=None)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    forum_group_id: Mapped[int | None] = mapped_column(Integer, default=None)
    secondary: Mapped[bool] = mapped_column(Boolean, default=False)
    default_title: Mapped[str | None] = mapped_column(String(255), default=None)

    __table_args__ = (
        Index("ix_org_categories_faction_type", "faction_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<OrganizationCategory {self.type}:{self.id} name={self.name!r}>"


class Membership(Base):
    """Assignment of a character to a unit/detail.

    At most one row per character may have ``secondary=False`` across the
    faction.  That rule is checked by the writers in
    :mod:`rollcall.services.membership_service`, not by a constraint.
    """
    __tablename__ = "memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False)
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    character_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), default=None)
    secondary: Mapped[bool] = mapped_column(Boolean, default=False)
    manual: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_memberships_category", "type", "category_id"),
        Index("ix_memberships_character", "character_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Membership id={self.id} {self.type}:{self.category_id} "
            f"char={self.character_id} secondary={self.secondary} manual={self.manual}>"
        )


class SyncExclusion(Base):
    __tablename__ = "sync_exclusions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_type: Mapped[str] = mapped_column(String(10), nullable=False)
    category_id: Mapped[int] = mapped_column(Integer, nullable=False)
    character_name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        Index("ix_sync_exclusions_category", "category_type", "category_id"),
    )

    def __repr__(self) -> str:
        return f"<SyncExclusion {self.category_type}:{self.category_id} {self.character_name!r}>"


# ---------------------------------------------------------------------------
# Rosters
# ---------------------------------------------------------------------------
class Roster(Base):
    __tablename__ = "rosters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Raw user-authored JSON; parsed (and possibly rejected) at read time
    filter_config_json: Mapped[str | None] = mapped_column(Text, default=None)
    organization_category_type: Mapped[str | None] = mapped_column(String(10), default=None)
    organization_category_id: Mapped[int | None] = mapped_column(Integer, default=None)
    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    sections: Mapped[list[RosterSection]] = relationship(
        back_populates="roster", cascade="all, delete-orphan",
        order_by="RosterSection.order",
    )

    def __repr__(self) -> str:
        return f"<Roster id={self.id} name={self.name!r}>"


class RosterSection(Base):
    __tablename__ = "roster_sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roster_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rosters.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    order: Mapped[int] = mapped_column(Integer, default=0)
    configuration: Mapped[dict | None] = mapped_column(JSONType, default=None)
    character_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    roster: Mapped[Roster] = relationship(back_populates="sections")

    def __repr__(self) -> str:
        return f"<RosterSection id={self.id} name={self.name!r} order={self.order}>"


class RosterLabel(Base):
    __tablename__ = "roster_labels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roster_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rosters.id", ondelete="CASCADE"), nullable=False
    )
    character_id: Mapped[int] = mapped_column(Integer, nullable=False)
    color: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("roster_id", "character_id", name="uq_roster_labels_roster_char"),
    )

    def __repr__(self) -> str:
        return f"<RosterLabel roster={self.roster_id} char={self.character_id} {self.color!r}>"


class RosterSnapshot(Base):
    __tablename__ = "roster_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), nullable=False
    )
    roster_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("rosters.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    created_by: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<RosterSnapshot id={self.id} roster={self.roster_id} name={self.name!r}>"


class PrimaryCharacterOverride(Base):
    """Manually chosen primary character for a player with several characters."""
    __tablename__ = "primary_character_overrides"

    faction_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    character_id: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<PrimaryCharacterOverride user={self.user_id} char={self.character_id}>"
