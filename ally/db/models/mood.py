"""Mood check-in and burnout log ORM models."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MoodEntry(Base):
    __tablename__ = "mood_entries"
    __table_args__ = (Index("ix_mood_entries_user_id_created_at", "user_id", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    mood_score = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    advice = Column(Text, nullable=True)
    # 0 (depleted) to 4 (overflowing)
    energy_level = Column(Integer, nullable=True)
    breathing_completed = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    xp_earned = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    achievements_earned = Column(JSONBCompat, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())


BURNOUT_FIELDS = (
    "sleep_quality",
    "energy_level",
    "physical_tension",
    "irritability",
    "overwhelm",
    "motivation",
    "focus_difficulty",
    "forgetfulness",
    "decision_fatigue",
)


class BurnoutLog(Base):
    """A partial burnout self-report; any subset of fields may be filled."""

    __tablename__ = "burnout_logs"
    __table_args__ = (Index("ix_burnout_logs_user_id_created_at", "user_id", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    sleep_quality = Column(Integer, nullable=True)
    energy_level = Column(Integer, nullable=True)
    physical_tension = Column(Integer, nullable=True)
    irritability = Column(Integer, nullable=True)
    overwhelm = Column(Integer, nullable=True)
    motivation = Column(Integer, nullable=True)
    focus_difficulty = Column(Integer, nullable=True)
    forgetfulness = Column(Integer, nullable=True)
    decision_fatigue = Column(Integer, nullable=True)
    battery_level = Column(Integer, nullable=True)
    source = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
