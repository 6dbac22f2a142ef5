"""Weekly planning ORM models."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
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


class WeeklyPlan(Base):
    __tablename__ = "weekly_plans"
    __table_args__ = (
        Index("ix_weekly_plans_user_week", "user_id", "year", "week_number"),
        UniqueConstraint("user_id", "year", "week_number", "version", name="uq_weekly_plans_version"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    week_number = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1, server_default=sa_text("1"))
    # draft | committed | completed | abandoned
    status = Column(String(20), nullable=False, default="draft", server_default=sa_text("'draft'"))
    available_capacity_minutes = Column(Integer, nullable=False, default=480, server_default=sa_text("480"))
    planned_capacity_minutes = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    previous_week_reflection = Column(Text, nullable=True)
    wins = Column(JSONBCompat, nullable=False, default=list)
    learnings = Column(JSONBCompat, nullable=False, default=list)
    summary_markdown = Column(Text, nullable=True)
    committed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class WeeklyPlanOutcome(Base):
    __tablename__ = "weekly_plan_outcomes"
    __table_args__ = (UniqueConstraint("weekly_plan_id", "outcome_id", name="uq_weekly_plan_outcomes"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    weekly_plan_id = Column(UUID(as_uuid=True), ForeignKey("weekly_plans.id", ondelete="CASCADE"), nullable=False)
    outcome_id = Column(UUID(as_uuid=True), ForeignKey("outcomes.id", ondelete="CASCADE"), nullable=False)
    priority_rank = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WeeklyPlanTask(Base):
    __tablename__ = "weekly_plan_tasks"
    __table_args__ = (UniqueConstraint("weekly_plan_id", "task_id", name="uq_weekly_plan_tasks"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    weekly_plan_id = Column(UUID(as_uuid=True), ForeignKey("weekly_plans.id", ondelete="CASCADE"), nullable=False)
    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    # Monday=0 .. Sunday=6, null means flexible.
    scheduled_day = Column(Integer, nullable=True)
    estimated_minutes = Column(Integer, nullable=False, default=30)
    priority_rank = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
