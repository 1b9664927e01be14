"""Create ordeals table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `ordeals` table: one row per created page.
How:   Generic column types only, so the same revision applies to
       PostgreSQL and SQLite.

`path` is indexed but deliberately not unique; readers resolve duplicates
to the lowest id.

Rollback: downgrade() drops the table (all ordeals lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ordeals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "path",
            sa.Text(),
            nullable=False,
            comment="Normalized key (slashes stripped)",
        ),
        sa.Column(
            "image_name",
            sa.String(512),
            nullable=False,
            comment="Processed image file name, relative to the uploads directory",
        ),
        sa.Column(
            "hits",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Number of views since creation",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Lookup by key on every page view
    op.create_index("idx_ordeals_path", "ordeals", ["path"])

    # Leaderboard: ORDER BY hits DESC
    op.create_index("idx_ordeals_hits", "ordeals", [sa.text("hits DESC")])


def downgrade() -> None:
    """Drop the ordeals table. Destructive: every ordeal row is lost."""
    op.drop_index("idx_ordeals_hits", table_name="ordeals")
    op.drop_index("idx_ordeals_path", table_name="ordeals")
    op.drop_table("ordeals")
