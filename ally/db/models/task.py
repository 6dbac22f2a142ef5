"""Task ORM model."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_id", "user_id"),
        Index("ix_tasks_outcome_id", "outcome_id"),
        Index("ix_tasks_commitment_id", "commitment_id"),
        UniqueConstraint("user_id", "now_slot", name="uq_tasks_user_now_slot"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    outcome_id = Column(UUID(as_uuid=True), ForeignKey("outcomes.id", ondelete="SET NULL"), nullable=True)
    commitment_id = Column(UUID(as_uuid=True), ForeignKey("commitments.id", ondelete="SET NULL"), nullable=True)
    title = Column(Text, nullable=False)
    # active | completed | parked | needs_linking
    status = Column(String(20), nullable=False, default="active", server_default=sa_text("'active'"))
    # today | tomorrow | this_week | no_rush, or an ISO date.
    due_date = Column(String(20), nullable=True)
    estimated_minutes = Column(Integer, nullable=True)
    energy_required = Column(String(10), nullable=True)
    priority = Column(String(10), nullable=True)
    category = Column(Text, nullable=True)
    now_slot = Column(Integer, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Column named "metadata" but attribute renamed to avoid Base.metadata collisions.
    metadata_json = Column("metadata", JSONBCompat, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )
