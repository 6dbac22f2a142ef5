"""Commitment API routes."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from ally.api.routes.tasks import serialize_tasks
from ally.api.schemas.goals import (
    CommitmentCreateRequest,
    CommitmentDetailResponse,
    CommitmentEnvelope,
    CommitmentListResponse,
    CommitmentResponse,
    CommitmentUpdateRequest,
)
from ally.core.rate_limit import outcomes_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.goal import Commitment
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import goals as goal_service
from ally.services.activity import record_event
from ally.services.errors import ServiceError

router = APIRouter()


@router.get("/commitments", response_model=CommitmentListResponse, tags=["commitments"])
def list_commitments(
    http_request: Request,
    outcome_id: Optional[UUID] = Query(default=None),
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> CommitmentListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("commitment.list", metadata={"route": "/commitments"}, user_id=str(user.id), request_id=request_id):
        commitments = goal_service.list_commitments(db, user.id, outcome_id=outcome_id)

    return CommitmentListResponse(
        commitments=[serialize_commitment(item) for item in commitments],
        request_id=request_id or "",
    )


@router.post(
    "/commitments",
    response_model=CommitmentEnvelope,
    status_code=status.HTTP_201_CREATED,
    tags=["commitments"],
)
def create_commitment(
    payload: CommitmentCreateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> CommitmentEnvelope:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace("commitment.create", metadata={"route": "/commitments"}, user_id=str(user.id), request_id=request_id):
            commitment = goal_service.create_commitment(
                db,
                user.id,
                outcome_id=payload.outcome_id,
                title=payload.title,
                description=payload.description,
            )
            record_event(
                db,
                user_id=user.id,
                event_type="commitment_created",
                payload={"commitment_id": str(commitment.id), "outcome_id": str(commitment.outcome_id)},
                request_id=request_id,
            )
            db.commit()
            db.refresh(commitment)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("commitment.create.success", 1, metadata={"user_id": str(user.id)})
    return CommitmentEnvelope(commitment=serialize_commitment(commitment), request_id=request_id or "")


@router.get("/commitments/{commitment_id}", response_model=CommitmentDetailResponse, tags=["commitments"])
def get_commitment(
    commitment_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> CommitmentDetailResponse:
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "commitment.get",
            metadata={"route": f"/commitments/{commitment_id}"},
            user_id=str(user.id),
            request_id=request_id,
        ):
            commitment = goal_service.get_owned_commitment(db, user.id, commitment_id)
            tasks = (
                db.query(Task)
                .filter(Task.user_id == user.id, Task.commitment_id == commitment.id)
                .order_by(Task.created_at.asc())
                .all()
            )
    except ServiceError as exc:
        raise exc.to_http() from exc

    return CommitmentDetailResponse(
        commitment=serialize_commitment(commitment),
        tasks=serialize_tasks(tasks),
        request_id=request_id or "",
    )


@router.patch("/commitments/{commitment_id}", response_model=CommitmentEnvelope, tags=["commitments"])
def update_commitment(
    commitment_id: UUID,
    payload: CommitmentUpdateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> CommitmentEnvelope:
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)

    try:
        with trace(
            "commitment.update",
            metadata={"route": f"/commitments/{commitment_id}", "fields": sorted(changes)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            commitment = goal_service.get_owned_commitment(db, user.id, commitment_id)
            goal_service.update_commitment(db, commitment, changes)
            db.commit()
            db.refresh(commitment)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("commitment.update.success", 1, metadata={"commitment_id": str(commitment_id)})
    return CommitmentEnvelope(commitment=serialize_commitment(commitment), request_id=request_id or "")


@router.delete("/commitments/{commitment_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["commitments"])
def delete_commitment(
    commitment_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(outcomes_limiter)),
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "commitment.delete",
            metadata={"route": f"/commitments/{commitment_id}"},
            user_id=str(user.id),
            request_id=request_id,
        ):
            commitment = goal_service.get_owned_commitment(db, user.id, commitment_id)
            outcome_id = commitment.outcome_id
            goal_service.delete_commitment(db, commitment)
            record_event(
                db,
                user_id=user.id,
                event_type="commitment_deleted",
                payload={"commitment_id": str(commitment_id), "outcome_id": str(outcome_id)},
                request_id=request_id,
            )
            db.commit()
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("commitment.delete.success", 1, metadata={"commitment_id": str(commitment_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def serialize_commitment(commitment: Commitment) -> CommitmentResponse:
    return CommitmentResponse(
        id=commitment.id,
        outcome_id=commitment.outcome_id,
        title=commitment.title,
        description=commitment.description,
        status=commitment.status,
        created_at=ensure_utc(commitment.created_at),
    )
