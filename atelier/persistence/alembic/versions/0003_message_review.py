"""add message review columns

Revision ID: 0003_message_review
Revises: 0002_content_and_activity
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0003_message_review"
down_revision = "0002_content_and_activity"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("messages", sa.Column("flagged_reason", sa.Text(), nullable=True))
    op.add_column("messages", sa.Column("reviewed_by", sa.String(), nullable=True))
    op.add_column("messages", sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("messages", "reviewed_at")
    op.drop_column("messages", "reviewed_by")
    op.drop_column("messages", "flagged_reason")
