"""Bearer token sessions: issue, resolve and revoke."""
from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ally.core.config import settings
from ally.db.models.auth_session import AuthSession
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


@dataclass
class IssuedSession:
    token: str
    session: AuthSession
    user: User


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_session(
    db: Session,
    user_id: Optional[UUID] = None,
    ttl_hours: Optional[int] = None,
    tz_name: Optional[str] = None,
) -> IssuedSession:
    """Create a session for the user (creating the user if needed); caller commits."""
    user = get_or_create_user(db, user_id, tz_name)
    token = secrets.token_urlsafe(TOKEN_BYTES)
    ttl = ttl_hours if ttl_hours is not None else settings.session_ttl_hours
    session = AuthSession(
        user_id=user.id,
        token_hash=hash_token(token),
        expires_at=datetime.now(timezone.utc) + timedelta(hours=ttl),
    )
    db.add(session)
    db.flush()
    return IssuedSession(token=token, session=session, user=user)


def resolve_token(db: Session, token: str) -> Optional[User]:
    """Return the user for an active, unexpired token or None."""
    if not token:
        return None
    session = db.query(AuthSession).filter(AuthSession.token_hash == hash_token(token)).first()
    if not session or session.revoked_at is not None:
        return None

    now = datetime.now(timezone.utc)
    if ensure_utc(session.expires_at) <= now:
        logger.info("Rejected expired session %s", session.id)
        return None

    session.last_used_at = now
    return db.get(User, session.user_id)


def revoke_token(db: Session, token: str) -> bool:
    session = db.query(AuthSession).filter(AuthSession.token_hash == hash_token(token)).first()
    if not session or session.revoked_at is not None:
        return False
    session.revoked_at = datetime.now(timezone.utc)
    return True
