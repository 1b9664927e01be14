"""
Everything Is An Ordeal: Ordeal SQLAlchemy Model
===================================================

What:  ORM model for the `ordeals` table.
Who:   Used by SqlOrdealStore for CRUD and by Alembic for schema management.

Table Design:
    - id: surrogate integer key; insertion order, used to resolve duplicates
    - path: normalized key, indexed but NOT unique (duplicates are possible)
    - image_name: file name of the processed image, relative to uploads dir
    - hits: view counter, starts at 0
    - created_at: UTC creation time (not exposed by the API)

Generic column types are used so the same model runs on PostgreSQL and SQLite.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from eiao.database import Base


class Ordeal(Base):
    """
    A user-created page identified by its normalized path.

    Lifecycle:
        1. Inserted by a successful create request (hits = 0)
        2. hits rewritten by each view's background increment
        3. Deleted by an explicit delete request (image file removed after)

    Query Patterns:
        - Find by path: WHERE path = :key ORDER BY id LIMIT 1 → idx_ordeals_path
        - Leaderboard:  ORDER BY hits DESC, id LIMIT 10      → idx_ordeals_hits
        - Homepage:     SELECT SUM(hits)
    """

    __tablename__ = "ordeals"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # No length limit on keys; TEXT keeps long paths intact
    path: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Normalized key (slashes stripped)",
    )

    image_name: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        comment="Processed image file name, relative to the uploads directory",
    )

    hits: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Number of views since creation",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_ordeals_path", "path"),
        Index("idx_ordeals_hits", hits.desc()),
    )

    def __repr__(self) -> str:
        return f"<Ordeal(id={self.id}, path='{self.path}', hits={self.hits})>"
