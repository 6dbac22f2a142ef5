"""Brain dump ORM model."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BrainDump(Base):
    __tablename__ = "brain_dumps"
    __table_args__ = (Index("ix_brain_dumps_user_id_created_at", "user_id", "created_at"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    raw_text = Column(Text, nullable=False)
    # text | voice
    source = Column(String(10), nullable=False, default="text", server_default=sa_text("'text'"))
    task_count = Column(Integer, nullable=False, default=0, server_default=sa_text("0"))
    signals_extracted = Column(JSONBCompat, nullable=False, default=dict)
    # llm | heuristic
    parser = Column(String(20), nullable=True)
    parse_latency_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
