"""Inbox capture ORM model."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InboxItem(Base):
    __tablename__ = "inbox_items"
    __table_args__ = (Index("ix_inbox_items_user_id_status", "user_id", "status"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    raw_text = Column(Text, nullable=False)
    source = Column(String(20), nullable=False, default="quick_capture", server_default=sa_text("'quick_capture'"))
    status = Column(String(20), nullable=False, default="pending", server_default=sa_text("'pending'"))
    triage_action = Column(String(20), nullable=True)
    triage_metadata = Column(JSONBCompat, nullable=False, default=dict)
    proposed_task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    triaged_at = Column(DateTime(timezone=True), nullable=True)
    converted_at = Column(DateTime(timezone=True), nullable=True)
