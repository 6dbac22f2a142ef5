"""Life-domain priority and balance score ORM models."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from ally.db.base import Base
from ally.db.types import JSONBCompat


class UserPriority(Base):
    __tablename__ = "user_priorities"
    __table_args__ = (UniqueConstraint("user_id", "domain", name="uq_user_priorities_user_domain"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    domain = Column(Text, nullable=False)
    rank = Column(Integer, nullable=False)
    importance_score = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BalanceScore(Base):
    __tablename__ = "balance_scores"
    __table_args__ = (
        UniqueConstraint("user_id", "computed_for_date", name="uq_balance_scores_user_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    score = Column(Integer, nullable=False)
    breakdown = Column(JSONBCompat, nullable=False, default=list)
    computed_for_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
