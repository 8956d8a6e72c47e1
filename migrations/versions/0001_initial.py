"""initial schema: users, boards, suggestions, votes, roadmap, audit

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 09:12:44.301127

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create every table plus the two partial unique vote indexes."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("first_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(128), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reset_token_hash", sa.String(64), nullable=True, unique=True),
        sa.Column("reset_token_expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("actor_session_id", sa.String(64), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
    )
    op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    op.create_table(
        "boards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("allow_anonymous_votes", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("allow_public_submissions", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("roadmap_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("default_categories_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("header_color", sa.String(16), nullable=True),
        sa.Column("button_color", sa.String(16), nullable=True),
        sa.Column("background_color", sa.String(16), nullable=True),
        sa.Column("logo_storage_key", sa.String(512), nullable=True),
        sa.Column("logo_content_type", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_boards_owner_user_id", "boards", ["owner_user_id"])
    op.create_index("idx_boards_is_public", "boards", ["is_public"])

    op.create_table(
        "board_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("board_id", sa.Integer(), sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("color", sa.String(16), nullable=False, server_default="#6b7280"),
        sa.UniqueConstraint("board_id", "name", name="uq_board_categories_board_name"),
    )

    op.create_table(
        "suggestions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("board_id", sa.Integer(), sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("author_session_id", sa.String(64), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("vote_count >= 0", name="ck_suggestions_vote_count_nonnegative"),
    )
    op.create_index("idx_suggestions_board_created", "suggestions", ["board_id", "created_at"])
    op.create_index("idx_suggestions_board_votes", "suggestions", ["board_id", "vote_count"])
    op.create_index("idx_suggestions_status", "suggestions", ["status"])

    op.create_table(
        "suggestion_comments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("suggestion_id", sa.Integer(), sa.ForeignKey("suggestions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_suggestion_comments_suggestion_id", "suggestion_comments", ["suggestion_id"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("suggestion_id", sa.Integer(), sa.ForeignKey("suggestions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("voter_kind", sa.String(16), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "(voter_kind = 'account' AND user_id IS NOT NULL AND session_id IS NULL)"
            " OR (voter_kind = 'session' AND session_id IS NOT NULL AND user_id IS NULL)",
            name="ck_votes_one_voter",
        ),
    )
    op.create_index(
        "uq_votes_account_suggestion",
        "votes",
        ["user_id", "suggestion_id"],
        unique=True,
        sqlite_where=sa.text("voter_kind = 'account'"),
        postgresql_where=sa.text("voter_kind = 'account'"),
    )
    op.create_index(
        "uq_votes_session_suggestion",
        "votes",
        ["session_id", "suggestion_id"],
        unique=True,
        sqlite_where=sa.text("voter_kind = 'session'"),
        postgresql_where=sa.text("voter_kind = 'session'"),
    )
    op.create_index("idx_votes_suggestion_created", "votes", ["suggestion_id", "created_at"])

    op.create_table(
        "roadmap_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("board_id", sa.Integer(), sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
        sa.Column("suggestion_id", sa.Integer(), sa.ForeignKey("suggestions.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="planned"),
        sa.Column("priority", sa.String(16), nullable=True),
        sa.Column("item_type", sa.String(32), nullable=True),
        sa.Column("vote_snapshot", sa.Integer(), nullable=True),
        sa.Column("estimated_release_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "idx_roadmap_items_board_status_eta", "roadmap_items", ["board_id", "status", "estimated_release_date"]
    )
    op.create_index("idx_roadmap_items_board_created", "roadmap_items", ["board_id", "created_at"])


def downgrade() -> None:
    op.drop_table("roadmap_items")
    op.drop_index("idx_votes_suggestion_created", table_name="votes")
    op.drop_index("uq_votes_session_suggestion", table_name="votes")
    op.drop_index("uq_votes_account_suggestion", table_name="votes")
    op.drop_table("votes")
    op.drop_table("suggestion_comments")
    op.drop_table("suggestions")
    op.drop_table("board_categories")
    op.drop_table("boards")
    op.drop_table("audit_events")
    op.drop_table("users")
