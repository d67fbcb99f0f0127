"""Create number_sequences

Revision ID: 1f2a3b4c5d6e
Revises:
Create Date: 2026-10-19 10:12:41.118204

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "1f2a3b4c5d6e"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "number_sequences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=40), nullable=False),
        sa.Column("prefix", sa.String(length=10), nullable=False),
        sa.Column("current_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("padding", sa.Integer(), nullable=False, server_default=sa.text("4")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index(
        "ix_number_sequences_name", "number_sequences", ["name"], unique=True,
    )


def downgrade() -> None:
    op.drop_index("ix_number_sequences_name", table_name="number_sequences")
    op.drop_table("number_sequences")
