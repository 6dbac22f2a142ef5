"""Bearer-token authentication dependencies."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ally.core.context import user_id_ctx_var
from ally.db.deps import get_db
from ally.db.models.user import User
from ally.services.auth_service import resolve_token

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


def extract_bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Resolve the calling user from the Authorization header or raise 401."""
    token = extract_bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers=_UNAUTHORIZED_HEADERS,
        )

    user = resolve_token(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers=_UNAUTHORIZED_HEADERS,
        )

    db.commit()
    request.state.user_id = str(user.id)
    user_id_ctx_var.set(str(user.id))
    return user
