"""Session issuance and revocation."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from ally.api.schemas.auth import SessionCreateRequest, SessionResponse
from ally.core.security import extract_bearer_token
from ally.db.deps import get_db
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services.activity import record_event
from ally.services.auth_service import issue_session, revoke_token

router = APIRouter()


@router.post("/auth/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED, tags=["auth"])
def create_session(
    http_request: Request,
    payload: Optional[SessionCreateRequest] = None,
    db: Session = Depends(get_db),
) -> SessionResponse:
    """Issue a bearer token, creating the user when the id is new."""
    request_id = getattr(http_request.state, "request_id", None)
    requested_user = payload.user_id if payload else None
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "auth.session.create",
            metadata={"route": "/auth/sessions", "request_id": request_id},
            user_id=str(requested_user) if requested_user else None,
            request_id=request_id,
        ):
            issued = issue_session(db, requested_user, tz_name=payload.timezone if payload else None)
            record_event(
                db,
                user_id=issued.user.id,
                event_type="session_issued",
                payload={"session_id": str(issued.session.id)},
                request_id=request_id,
            )
            db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("auth.session.create.success", 1, metadata={"user_id": str(issued.user.id)})
    log_metric("auth.session.create.latency_ms", latency_ms)

    return SessionResponse(
        token=issued.token,
        user_id=issued.user.id,
        timezone=issued.user.timezone,
        expires_at=ensure_utc(issued.session.expires_at),
        request_id=request_id or "",
    )


@router.delete("/auth/sessions", status_code=status.HTTP_204_NO_CONTENT, tags=["auth"])
def delete_session(http_request: Request, db: Session = Depends(get_db)) -> Response:
    """Revoke the presented bearer token."""
    request_id = getattr(http_request.state, "request_id", None)
    token = extract_bearer_token(http_request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        with trace("auth.session.revoke", metadata={"route": "/auth/sessions"}, request_id=request_id):
            revoked = revoke_token(db, token)
            if not revoked:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid or expired session",
                    headers={"WWW-Authenticate": "Bearer"},
                )
            db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("auth.session.revoke.success", 1)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
