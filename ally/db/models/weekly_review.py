"""Weekly review ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


class WeeklyReview(Base):
    __tablename__ = "weekly_reviews"
    __table_args__ = (
        Index("ix_weekly_reviews_user_week", "user_id", "week_start"),
        UniqueConstraint("user_id", "week_start", name="uq_weekly_reviews_user_week"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    week_start = Column(Date, nullable=False)
    week_end = Column(Date, nullable=False)
    summary_markdown = Column(Text, nullable=False)
    wins = Column(JSONBCompat, nullable=False, default=list)
    gaps = Column(JSONBCompat, nullable=False, default=list)
    patterns = Column(JSONBCompat, nullable=False, default=list)
    suggested_focus = Column(JSONBCompat, nullable=False, default=list)
    tasks_completed = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    tasks_created = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    tasks_parked = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    completion_rate = Column(Float, nullable=False, default=0.0, server_default=sa_text("0"))
    mood_average = Column(Float, nullable=True)
    check_in_days = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    balance_score_avg = Column(Integer, nullable=True)
    # improving | declining | stable
    balance_score_trend = Column(String(20), nullable=True)
    top_category = Column(Text, nullable=True)
    neglected_categories = Column(JSONBCompat, nullable=False, default=list)
    # llm | fallback
    source = Column(String(20), nullable=False, default="fallback", server_default=sa_text("'fallback'"))
    user_reflection = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, server_default=sa_text("false"))
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
