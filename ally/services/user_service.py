"""Helpers for working with users."""
from __future__ import annotations

from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ally.db.models.user import User


def get_or_create_user(db: Session, user_id: Optional[UUID] = None, tz_name: Optional[str] = None) -> User:
    """Fetch or create the user; a given ``tz_name`` replaces the stored timezone."""
    user_id = user_id or uuid4()
    user = db.get(User, user_id)
    if user is None:
        user = User(id=user_id, timezone=tz_name)
        db.add(user)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            user = db.get(User, user_id)
            if user is None:
                raise

    if tz_name and user.timezone != tz_name:
        user.timezone = tz_name
    return user
