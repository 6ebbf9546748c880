"""Initial schema: factions, caches, organisation memberships, rosters

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "factions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("supervisor_rank", sa.Integer(), server_default="10"),
        sa.Column("minimum_abas", sa.Float(), server_default="0"),
        sa.Column("minimum_supervisor_abas", sa.Float(), server_default="0"),
        sa.Column("forum_api_url", sa.String(255), nullable=True),
        sa.Column("forum_api_key", sa.String(255), nullable=True),
    )

    # -- caches ---------------------------------------------------------
    op.create_table(
        "cached_faction_rosters",
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("members", JSONType, nullable=False),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "activity_scores",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("character_id", sa.Integer(), nullable=False),
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("score", sa.String(32), nullable=True),
        sa.Column("total_score", sa.Integer(), nullable=True),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("character_id", "faction_id", name="uq_activity_scores_char_faction"),
    )
    op.create_table(
        "cached_forum_groups",
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("group_id", sa.Integer(), primary_key=True),
        sa.Column("members", JSONType, nullable=False),
        sa.Column("leaders", JSONType, nullable=False),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        "cached_forum_users",
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("forum_user_id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
    )

    # -- organisation -----------------------------------------------------
    op.create_table(
        "organization_categories",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("forum_group_id", sa.Integer(), nullable=True),
        sa.Column("secondary", sa.Boolean(), server_default=sa.false()),
        sa.Column("default_title", sa.String(255), nullable=True),
    )
    op.create_index(
        "ix_org_categories_faction_type", "organization_categories", ["faction_id", "type"],
    )
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("character_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("secondary", sa.Boolean(), server_default=sa.false()),
        sa.Column("manual", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_memberships_category", "memberships", ["type", "category_id"])
    op.create_index("ix_memberships_character", "memberships", ["character_id"])
    op.create_table(
        "sync_exclusions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("category_type", sa.String(10), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("character_name", sa.String(255), nullable=False),
    )
    op.create_index(
        "ix_sync_exclusions_category", "sync_exclusions", ["category_type", "category_id"],
    )

    # -- rosters ----------------------------------------------------------
    op.create_table(
        "rosters",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("filter_config_json", sa.Text(), nullable=True),
        sa.Column("organization_category_type", sa.String(10), nullable=True),
        sa.Column("organization_category_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "roster_sections",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "roster_id", sa.Integer(),
            sa.ForeignKey("rosters.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), server_default="0"),
        sa.Column("configuration", JSONType, nullable=True),
        sa.Column("character_ids", JSONType, nullable=False),
    )
    op.create_table(
        "roster_labels",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "roster_id", sa.Integer(),
            sa.ForeignKey("rosters.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("character_id", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(50), nullable=False),
        sa.UniqueConstraint("roster_id", "character_id", name="uq_roster_labels_roster_char"),
    )
    op.create_table(
        "roster_snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "roster_id", sa.Integer(),
            sa.ForeignKey("rosters.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("data", JSONType, nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "primary_character_overrides",
        sa.Column(
            "faction_id", sa.Integer(),
            sa.ForeignKey("factions.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("character_id", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("primary_character_overrides")
    op.drop_table("roster_snapshots")
    op.drop_table("roster_labels")
    op.drop_table("roster_sections")
    op.drop_table("rosters")
    op.drop_index("ix_sync_exclusions_category", table_name="sync_exclusions")
    op.drop_table("sync_exclusions")
    op.drop_index("ix_memberships_character", table_name="memberships")
    op.drop_index("ix_memberships_category", table_name="memberships")
    op.drop_table("memberships")
    op.drop_index("ix_org_categories_faction_type", table_name="organization_categories")
    op.drop_table("organization_categories")
    op.drop_table("cached_forum_users")
    op.drop_table("cached_forum_groups")
    op.drop_table("activity_scores")
    op.drop_table("cached_faction_rosters")
    op.drop_table("factions")
