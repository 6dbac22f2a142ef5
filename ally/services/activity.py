"""Helpers for writing activity events alongside domain changes."""
from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ally.db.models.activity_event import ActivityEvent


def record_event(
    db: Session,
    *,
    user_id: UUID,
    event_type: str,
    payload: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    undo_available: bool = False,
    request_id: Optional[str] = None,
) -> ActivityEvent:
    """Stage an ActivityEvent on the session; the caller owns the commit."""
    body = dict(payload or {})
    if request_id:
        body.setdefault("request_id", request_id)
    event = ActivityEvent(
        user_id=user_id,
        event_type=event_type,
        payload=body,
        reason=reason,
        undo_available=undo_available,
    )
    db.add(event)
    return event
