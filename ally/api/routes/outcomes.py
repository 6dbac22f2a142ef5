"""Outcome API routes."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from ally.api.routes.commitments import serialize_commitment
from ally.api.schemas.goals import (
    OutcomeCreateRequest,
    OutcomeDetailResponse,
    OutcomeEnvelope,
    OutcomeListResponse,
    OutcomeResponse,
    OutcomeUpdateRequest,
)
from ally.core.rate_limit import outcomes_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.goal import Outcome
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import goals as goal_service
from ally.services.activity import record_event
from ally.services.errors import ServiceError

router = APIRouter()


@router.get("/outcomes", response_model=OutcomeListResponse, tags=["outcomes"])
def list_outcomes(
    http_request: Request,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    horizon: Optional[str] = Query(default=None),
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> OutcomeListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "outcome.list",
        metadata={"route": "/outcomes", "status": status_filter, "horizon": horizon},
        user_id=str(user.id),
        request_id=request_id,
    ):
        outcomes = goal_service.list_outcomes(db, user.id, status=status_filter, horizon=horizon)

    log_metric("outcome.list.count", len(outcomes), metadata={"user_id": str(user.id)})
    return OutcomeListResponse(
        outcomes=[serialize_outcome(outcome) for outcome in outcomes],
        request_id=request_id or "",
    )


@router.post("/outcomes", response_model=OutcomeEnvelope, status_code=status.HTTP_201_CREATED, tags=["outcomes"])
def create_outcome(
    payload: OutcomeCreateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> OutcomeEnvelope:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "outcome.create",
            metadata={"route": "/outcomes", "horizon": payload.horizon},
            user_id=str(user.id),
            request_id=request_id,
        ):
            outcome = goal_service.create_outcome(
                db,
                user.id,
                title=payload.title,
                horizon=payload.horizon,
                description=payload.description,
                priority_rank=payload.priority_rank,
            )
            record_event(
                db,
                user_id=user.id,
                event_type="outcome_created",
                payload={"outcome_id": str(outcome.id), "horizon": outcome.horizon},
                request_id=request_id,
            )
            db.commit()
            db.refresh(outcome)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("outcome.create.success", 1, metadata={"horizon": outcome.horizon})
    return OutcomeEnvelope(outcome=serialize_outcome(outcome), request_id=request_id or "")


@router.get("/outcomes/{outcome_id}", response_model=OutcomeDetailResponse, tags=["outcomes"])
def get_outcome(
    outcome_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> OutcomeDetailResponse:
    """Outcome with its commitments and a per-status task count."""
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("outcome.get", metadata={"route": f"/outcomes/{outcome_id}"}, user_id=str(user.id), request_id=request_id):
            outcome = goal_service.get_owned_outcome(db, user.id, outcome_id)
            commitments = goal_service.list_commitments(db, user.id, outcome_id=outcome.id)
            counts = goal_service.outcome_task_counts(db, outcome)
    except ServiceError as exc:
        raise exc.to_http() from exc

    return OutcomeDetailResponse(
        outcome=serialize_outcome(outcome),
        commitments=[serialize_commitment(item) for item in commitments],
        task_counts=counts,
        request_id=request_id or "",
    )


@router.patch("/outcomes/{outcome_id}", response_model=OutcomeEnvelope, tags=["outcomes"])
def update_outcome(
    outcome_id: UUID,
    payload: OutcomeUpdateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> OutcomeEnvelope:
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)

    try:
        with trace(
            "outcome.update",
            metadata={"route": f"/outcomes/{outcome_id}", "fields": sorted(changes)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            outcome = goal_service.get_owned_outcome(db, user.id, outcome_id)
            goal_service.update_outcome(db, outcome, changes)
            db.commit()
            db.refresh(outcome)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("outcome.update.success", 1, metadata={"outcome_id": str(outcome_id)})
    return OutcomeEnvelope(outcome=serialize_outcome(outcome), request_id=request_id or "")


@router.delete("/outcomes/{outcome_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["outcomes"])
def delete_outcome(
    outcome_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> Response:
    """Delete an outcome; 409 with the blocking tasks while any remain open."""
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace("outcome.delete", metadata={"route": f"/outcomes/{outcome_id}"}, user_id=str(user.id), request_id=request_id):
            outcome = goal_service.get_owned_outcome(db, user.id, outcome_id)
            title = outcome.title
            goal_service.delete_outcome(db, outcome)
            record_event(
                db,
                user_id=user.id,
                event_type="outcome_deleted",
                payload={"outcome_id": str(outcome_id), "title": title},
                request_id=request_id,
            )
            db.commit()
    except ServiceError as exc:
        db.rollback()
        log_metric("outcome.delete.blocked", 1 if exc.status_code == status.HTTP_409_CONFLICT else 0)
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("outcome.delete.success", 1, metadata={"outcome_id": str(outcome_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def serialize_outcome(outcome: Outcome) -> OutcomeResponse:
    return OutcomeResponse(
        id=outcome.id,
        title=outcome.title,
        description=outcome.description,
        horizon=outcome.horizon,
        status=outcome.status,
        priority_rank=outcome.priority_rank,
        created_at=ensure_utc(outcome.created_at),
        updated_at=ensure_utc(outcome.updated_at),
    )
