"""Inbox API routes: quick capture, triage and undo."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ally.api.routes.tasks import serialize_task
from ally.api.schemas.inbox import (
    CaptureRequest,
    CaptureResponse,
    EnrichedInboxItem,
    InboxItemResponse,
    InboxListResponse,
    InboxSummaryResponse,
    ParsedTokensResponse,
    TriageRequest,
    TriageResponse,
    UndoRequest,
    UndoResponse,
)
from ally.core.rate_limit import inbox_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.inbox_item import InboxItem
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import inbox as inbox_service
from ally.services.errors import ServiceError

router = APIRouter()


@router.post("/inbox", response_model=CaptureResponse, status_code=status.HTTP_201_CREATED, tags=["inbox"])
def capture(
    payload: CaptureRequest,
    http_request: Request,
    user: User = Depends(rate_limited(inbox_limiter)),
    db: Session = Depends(get_db),
) -> CaptureResponse:
    """Capture a raw thought; tokens like ``@today`` or ``#home`` are parsed on read."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "inbox.capture",
            metadata={"route": "/inbox", "source": payload.source, "length": len(payload.raw_text)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            item = inbox_service.capture(db, user.id, payload.raw_text, payload.source, request_id=request_id)
            db.commit()
            db.refresh(item)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("inbox.capture.success", 1, metadata={"source": item.source})
    log_metric("inbox.capture.latency_ms", latency_ms)

    serialized = serialize_item(item)
    return CaptureResponse(
        inbox_item=serialized,
        parsed_tokens=serialized.parsed_tokens,
        request_id=request_id or "",
    )


@router.get("/inbox", response_model=InboxListResponse, tags=["inbox"])
def list_inbox(
    http_request: Request,
    status_filter: str = Query(default="pending", alias="status"),
    limit: int = Query(default=inbox_service.DEFAULT_LIST_LIMIT, ge=1, le=inbox_service.MAX_LIST_LIMIT),
    user: User = Depends(rate_limited(inbox_limiter)),
    db: Session = Depends(get_db),
) -> InboxListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    now = datetime.now(timezone.utc)

    try:
        with trace(
            "inbox.list",
            metadata={"route": "/inbox", "status": status_filter, "limit": limit},
            user_id=str(user.id),
            request_id=request_id,
        ):
            items = inbox_service.list_items(db, user.id, status=status_filter, limit=limit, now=now)
            summary = inbox_service.build_summary(db, user.id, now, tz_name=user.timezone)
    except ServiceError as exc:
        raise exc.to_http() from exc

    log_metric("inbox.pending_count", summary.pending_count, metadata={"user_id": str(user.id)})

    return InboxListResponse(
        items=[
            EnrichedInboxItem(
                **serialize_item(entry.item).model_dump(),
                age_minutes=entry.age_minutes,
                age_display=entry.age_display,
                inferred_urgency=entry.inferred_urgency,
            )
            for entry in items
        ],
        summary=InboxSummaryResponse(
            pending_count=summary.pending_count,
            oldest_pending_age_minutes=summary.oldest_pending_age_minutes,
            triaged_today_count=summary.triaged_today_count,
            streak_days=summary.streak_days,
        ),
        request_id=request_id or "",
    )


@router.post("/inbox/triage", response_model=TriageResponse, tags=["inbox"])
def triage(
    payload: TriageRequest,
    http_request: Request,
    user: User = Depends(rate_limited(inbox_limiter)),
    db: Session = Depends(get_db),
) -> TriageResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "inbox.triage",
            metadata={"route": "/inbox/triage", "item_id": str(payload.item_id), "action": payload.action},
            user_id=str(user.id),
            request_id=request_id,
        ):
            result = inbox_service.triage(
                db,
                user.id,
                payload.item_id,
                payload.action,
                metadata=payload.metadata,
                outcome_id=payload.outcome_id,
                commitment_id=payload.commitment_id,
                request_id=request_id,
            )
            db.commit()
            db.refresh(result.item)
            if result.task is not None:
                db.refresh(result.task)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("inbox.triage.success", 1, metadata={"action": payload.action})
    return TriageResponse(
        inbox_item=serialize_item(result.item),
        task=serialize_task(result.task) if result.task else None,
        request_id=request_id or "",
    )


@router.post("/inbox/undo", response_model=UndoResponse, tags=["inbox"])
def undo_triage(
    payload: UndoRequest,
    http_request: Request,
    user: User = Depends(rate_limited(inbox_limiter)),
    db: Session = Depends(get_db),
) -> UndoResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "inbox.undo",
            metadata={"route": "/inbox/undo", "item_id": str(payload.item_id)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            item = inbox_service.undo_triage(db, user.id, payload.item_id, request_id=request_id)
            db.commit()
            db.refresh(item)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("inbox.undo.success", 1, metadata={"item_id": str(payload.item_id)})
    return UndoResponse(inbox_item=serialize_item(item), request_id=request_id or "")


def serialize_item(item: InboxItem, tokens: Optional[inbox_service.ParsedTokens] = None) -> InboxItemResponse:
    tokens = tokens or inbox_service.parse_tokens(item.raw_text)
    return InboxItemResponse(
        id=item.id,
        raw_text=item.raw_text,
        source=item.source,
        status=item.status,
        triage_action=item.triage_action,
        triage_metadata=item.triage_metadata or {},
        proposed_task_id=item.proposed_task_id,
        created_at=ensure_utc(item.created_at),
        triaged_at=ensure_utc(item.triaged_at),
        converted_at=ensure_utc(item.converted_at),
        parsed_tokens=ParsedTokensResponse(
            due=tokens.due,
            priority=tokens.priority,
            project=tokens.project,
            tags=list(tokens.tags),
        ),
    )
