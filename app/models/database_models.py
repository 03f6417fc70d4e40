"""
SQLAlchemy ORM models for the VanBan assistant database.
Only the display preferences are persisted; drafts and analyzer sessions
live in process memory.
"""
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from app.database import Base


class Preference(Base):
    """A single display preference stored under a fixed key."""

    __tablename__ = "preferences"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<Preference(key={self.key!r}, value={self.value!r})>"
