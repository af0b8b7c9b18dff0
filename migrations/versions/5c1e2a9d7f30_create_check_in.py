"""create check_in table

Revision ID: 5c1e2a9d7f30
Revises:
Create Date: 2026-10-19 09:12:41.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d7f30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create storage for admitted check-ins."""
    op.create_table(
        "check_in",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("emotion", sa.String(length=16), nullable=False),
        sa.Column("intensity", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("region", sa.String(length=16), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_check_in_emotion", "check_in", ["emotion"])
    op.create_index("ix_check_in_region", "check_in", ["region"])


def downgrade() -> None:
    """Drop check-in storage."""
    op.drop_index("ix_check_in_region", table_name="check_in")
    op.drop_index("ix_check_in_emotion", table_name="check_in")
    op.drop_table("check_in")
