"""Create auth tables

Revision ID: create_auth_tables
Revises:
Create Date: 2026-10-19

This migration adds:
1. users table with two-factor state and token key
2. single_use_codes table (email confirmation, password reset, email change)
3. auth_tokens table for refresh and login tokens
4. recovery_codes table
5. rate_limit_markers table for per-email cooldowns
6. security_audit_logs table
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "create_auth_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _user_fk(ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(
        "user_id",
        sa.String(36),
        sa.ForeignKey("users.id", ondelete=ondelete),
        nullable=nullable,
        index=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("email_confirmed", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("two_factor_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("otp_secret_encrypted", sa.String(255), nullable=True),
        sa.Column("pending_otp_secret_encrypted", sa.String(255), nullable=True),
        sa.Column("token_key", sa.String(64), nullable=False),
        sa.Column("profile_picture_id", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "single_use_codes",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("payload", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("user_id", "kind", name="uq_single_use_codes_user_kind"),
    )

    op.create_table(
        "auth_tokens",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("kind", sa.String(10), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True, index=True),
        sa.Column("family_id", sa.String(36), nullable=False, index=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "recovery_codes",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "rate_limit_markers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("last_sent", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("kind", "email", name="uq_rate_limit_markers_kind_email"),
    )

    op.create_table(
        "security_audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        _user_fk(ondelete="SET NULL", nullable=True),
        sa.Column("event_type", sa.String(50), nullable=False, index=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
            index=True,
        ),
    )


def downgrade() -> None:
    op.drop_table("security_audit_logs")
    op.drop_table("rate_limit_markers")
    op.drop_table("recovery_codes")
    op.drop_table("auth_tokens")
    op.drop_table("single_use_codes")
    op.drop_table("users")
