# src/worldvibe/models/check_in.py
"""SQLAlchemy model for recorded check-ins."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from worldvibe.db.session import Base
from worldvibe.db.time import utcnow


class CheckIn(Base):
    """An admitted, sanitized emotional check-in.

    Nothing here links back to the submitting origin: identity keys and tokens
    stay in the ephemeral store.
    """

    __tablename__ = "check_in"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    emotion: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    intensity: Mapped[int] = mapped_column(Integer, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    region: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)
    # When the feeling was observed; defaults to the admission time.
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Rounded to a coarse grid before storage.
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
