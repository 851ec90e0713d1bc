"""Create users, secrets and access_logs tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Create secrets table
    op.create_table(
        "secrets",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=True),
        sa.Column("is_one_time_access", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("has_been_accessed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "owner_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_secrets_slug", "secrets", ["slug"], unique=True)
    op.create_index("ix_secrets_expires_at", "secrets", ["expires_at"])
    op.create_index("ix_secrets_owner_id", "secrets", ["owner_id"])

    # Create access_logs table
    op.create_table(
        "access_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "secret_id",
            sa.String(36),
            sa.ForeignKey("secrets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("accessed_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_access_logs_secret_id", "access_logs", ["secret_id"])


def downgrade() -> None:
    op.drop_index("ix_access_logs_secret_id", table_name="access_logs")
    op.drop_table("access_logs")

    op.drop_index("ix_secrets_owner_id", table_name="secrets")
    op.drop_index("ix_secrets_expires_at", table_name="secrets")
    op.drop_index("ix_secrets_slug", table_name="secrets")
    op.drop_table("secrets")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
