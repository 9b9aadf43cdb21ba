"""Initial schema — users, likes, connections, matches, access records.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONDocument = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamp(name: str, nullable: bool = False, default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now() if default else None,
        nullable=nullable,
    )


def upgrade() -> None:
    # ── 1. users ────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String, nullable=False),
        sa.Column("role", sa.String, server_default="user", nullable=False),
        sa.Column("status", sa.String, server_default="invited", nullable=False),
        sa.Column("is_approved", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("gender", sa.String, nullable=True),
        sa.Column("birth_date", sa.Date, nullable=True),
        sa.Column(
            "profile",
            JSONDocument,
            nullable=True,
            comment="Validated ProfileData document",
        ),
        sa.Column("profile_completeness", sa.Integer, server_default="0", nullable=False),
        _timestamp("created_at", default=True),
        _timestamp("updated_at", nullable=True),
        _timestamp("last_login_at", nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ── 2. connections (one row per unordered pair) ─────────────────
    op.create_table(
        "connections",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "user_low_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_high_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String, nullable=False),
        sa.Column("type", sa.String, nullable=False),
        sa.Column("initiated_by", sa.Uuid, nullable=False),
        _timestamp("initiated_at"),
        _timestamp("responded_at", nullable=True),
        _timestamp("last_activity_at"),
        sa.Column("compatibility_score", sa.Float, nullable=True),
        sa.Column("toast_seen_low", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("toast_seen_high", sa.Boolean, server_default=sa.false(), nullable=False),
        _timestamp("created_at", default=True),
        sa.UniqueConstraint("user_low_id", "user_high_id", name="uq_connection_pair"),
    )
    op.create_index("ix_connections_user_low_id", "connections", ["user_low_id"])
    op.create_index("ix_connections_user_high_id", "connections", ["user_high_id"])

    # ── 3. daily_likes (directed swipe edges) ───────────────────────
    op.create_table(
        "daily_likes",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "liked_user_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String, nullable=False, comment="like / super_like / pass"),
        _timestamp("like_date"),
        sa.Column("is_mutual_match", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column(
            "connection_id",
            sa.Uuid,
            sa.ForeignKey("connections.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("created_at", default=True),
        _timestamp("updated_at", nullable=True),
        sa.UniqueConstraint("user_id", "liked_user_id", name="uq_daily_like_pair"),
    )
    op.create_index("ix_daily_likes_liked_user_id", "daily_likes", ["liked_user_id"])
    op.create_index("ix_daily_likes_user_date", "daily_likes", ["user_id", "like_date"])

    # ── 4. matches (directed copies of a mutual match) ──────────────
    op.create_table(
        "matches",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "user_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "liked_user_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "connection_id",
            sa.Uuid,
            sa.ForeignKey("connections.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("action", sa.String, nullable=False),
        sa.Column("is_match", sa.Boolean, server_default=sa.false(), nullable=False),
        _timestamp("matched_at", nullable=True),
        sa.Column("compatibility_score", sa.Float, nullable=True),
        _timestamp("created_at", default=True),
        sa.UniqueConstraint("user_id", "liked_user_id", name="uq_match_direction"),
    )
    op.create_index("ix_matches_user_id", "matches", ["user_id"])

    # ── 5. toast_acks (acknowledgements ahead of their connection) ──
    op.create_table(
        "toast_acks",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("connection_id", sa.Uuid, nullable=False),
        sa.Column("user_id", sa.Uuid, nullable=False),
        _timestamp("created_at", default=True),
        sa.UniqueConstraint("connection_id", "user_id", name="uq_toast_ack"),
    )

    # ── 6. preapproved_emails ───────────────────────────────────────
    op.create_table(
        "preapproved_emails",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String, nullable=False),
        sa.Column("user_uuid", sa.Uuid, unique=True, nullable=False),
        sa.Column("approved_by_admin", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("status", sa.String, server_default="active", nullable=False),
        sa.Column("is_first_login", sa.Boolean, server_default=sa.true(), nullable=False),
        _timestamp("last_login_at", nullable=True),
        sa.Column(
            "added_by",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("notes", sa.String(500), nullable=True),
        _timestamp("created_at", default=True),
    )
    op.create_index(
        "ix_preapproved_emails_email", "preapproved_emails", ["email"], unique=True
    )

    # ── 7. invitations ──────────────────────────────────────────────
    op.create_table(
        "invitations",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("email", sa.String, nullable=False),
        sa.Column("code", sa.String(12), unique=True, nullable=False),
        sa.Column("status", sa.String, server_default="pending", nullable=False),
        sa.Column("type", sa.String, server_default="email", nullable=False),
        sa.Column(
            "sent_by_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _timestamp("expires_at"),
        sa.Column("attempts", sa.Integer, server_default="0", nullable=False),
        _timestamp("last_attempt_at", nullable=True),
        sa.Column("failure_reason", sa.String, nullable=True),
        _timestamp("sent_at", nullable=True),
        _timestamp("delivered_at", nullable=True),
        _timestamp("opened_at", nullable=True),
        _timestamp("accepted_at", nullable=True),
        _timestamp("created_at", default=True),
    )
    op.create_index("ix_invitations_email", "invitations", ["email"])
    op.create_index("ix_invitations_status_expires", "invitations", ["status", "expires_at"])


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_invitations_status_expires", table_name="invitations")
    op.drop_index("ix_invitations_email", table_name="invitations")
    op.drop_table("invitations")

    op.drop_index("ix_preapproved_emails_email", table_name="preapproved_emails")
    op.drop_table("preapproved_emails")

    op.drop_table("toast_acks")

    op.drop_index("ix_matches_user_id", table_name="matches")
    op.drop_table("matches")

    op.drop_index("ix_daily_likes_user_date", table_name="daily_likes")
    op.drop_index("ix_daily_likes_liked_user_id", table_name="daily_likes")
    op.drop_table("daily_likes")

    op.drop_index("ix_connections_user_high_id", table_name="connections")
    op.drop_index("ix_connections_user_low_id", table_name="connections")
    op.drop_table("connections")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
