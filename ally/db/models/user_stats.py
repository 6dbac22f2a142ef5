"""Check-in XP, level and badge totals, one row per user."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, Integer, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


class UserStats(Base):
    __tablename__ = "user_stats"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_xp = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    current_level = Column(Integer, nullable=False, default=1, server_default=sa_text("1"))
    achievements_unlocked = Column(JSONBCompat, nullable=False, default=list)
    last_check_in_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
