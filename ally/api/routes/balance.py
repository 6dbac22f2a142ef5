"""Life priorities and balance score API routes."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ally.api.schemas.balance import (
    BalanceComputeResponse,
    BalanceLatestResponse,
    BalanceScoreResponse,
    BalanceTrendPoint,
    BalanceTrendResponse,
    BalanceTrendStats,
    PrioritiesResponse,
    PrioritiesUpdateRequest,
    PriorityResponse,
)
from ally.core.rate_limit import balance_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.balance import BalanceScore, UserPriority
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import balance as balance_service
from ally.services.daily_checkin import local_today
from ally.services.errors import ServiceError

router = APIRouter()


@router.get("/priorities", response_model=PrioritiesResponse, tags=["balance"])
def get_priorities(
    http_request: Request,
    user: User = Depends(rate_limited(balance_limiter)),
    db: Session = Depends(get_db),
) -> PrioritiesResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("priorities.get", metadata={"route": "/priorities"}, user_id=str(user.id), request_id=request_id):
        priorities = balance_service.list_priorities(db, user.id)

    return _priorities_response(priorities, request_id)


@router.put("/priorities", response_model=PrioritiesResponse, tags=["balance"])
def replace_priorities(
    payload: PrioritiesUpdateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(balance_limiter)),
    db: Session = Depends(get_db),
) -> PrioritiesResponse:
    """Replace the whole priority list in one go."""
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "priorities.replace",
            metadata={"route": "/priorities", "count": len(payload.priorities)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            priorities = balance_service.replace_priorities(
                db,
                user.id,
                [item.model_dump() for item in payload.priorities],
                request_id=request_id,
            )
            db.commit()
            for priority in priorities:
                db.refresh(priority)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("priorities.replace.success", 1, metadata={"count": len(priorities)})
    return _priorities_response(priorities, request_id)


@router.post("/balance/compute", response_model=BalanceComputeResponse, tags=["balance"])
def compute_balance(
    http_request: Request,
    user: User = Depends(rate_limited(balance_limiter)),
    db: Session = Depends(get_db),
) -> BalanceComputeResponse:
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace("balance.compute", metadata={"route": "/balance/compute"}, user_id=str(user.id), request_id=request_id):
            row = balance_service.compute_and_save(db, user.id, request_id=request_id)
            db.commit()
            db.refresh(row)
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
    log_metric("balance.score", row.score, metadata={"user_id": str(user.id)})
    log_metric("balance.compute.latency_ms", latency_ms)

    return BalanceComputeResponse(score=serialize_score(row), computed=True, request_id=request_id or "")


@router.get("/balance", response_model=BalanceLatestResponse, tags=["balance"])
def latest_balance(
    http_request: Request,
    user: User = Depends(rate_limited(balance_limiter)),
    db: Session = Depends(get_db),
) -> BalanceLatestResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("balance.latest", metadata={"route": "/balance"}, user_id=str(user.id), request_id=request_id):
        row = balance_service.latest_score(db, user.id)

    return BalanceLatestResponse(score=serialize_score(row) if row else None, request_id=request_id or "")


@router.get("/balance/trend", response_model=BalanceTrendResponse, tags=["balance"])
def balance_trend(
    http_request: Request,
    days: int = Query(default=balance_service.DEFAULT_TREND_DAYS, ge=1, le=365),
    user: User = Depends(rate_limited(balance_limiter)),
    db: Session = Depends(get_db),
) -> BalanceTrendResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "balance.trend",
        metadata={"route": "/balance/trend", "days": days},
        user_id=str(user.id),
        request_id=request_id,
    ):
        trend = balance_service.load_trend(db, user.id, days, today=local_today(user))

    return BalanceTrendResponse(
        trend=[BalanceTrendPoint(date=point.date, score=point.score) for point in trend.points],
        direction=trend.direction,
        stats=BalanceTrendStats(average=trend.average, highest=trend.highest, lowest=trend.lowest),
        weekly_averages=trend.weekly_averages,
        request_id=request_id or "",
    )


def _priorities_response(priorities: list[UserPriority], request_id: str | None) -> PrioritiesResponse:
    return PrioritiesResponse(
        priorities=[
            PriorityResponse(
                id=priority.id,
                domain=priority.domain,
                rank=priority.rank,
                importance_score=priority.importance_score,
            )
            for priority in priorities
        ],
        default_domains=list(balance_service.DEFAULT_DOMAINS),
        request_id=request_id or "",
    )


def serialize_score(row: BalanceScore) -> BalanceScoreResponse:
    return BalanceScoreResponse(
        id=row.id,
        score=row.score,
        breakdown=row.breakdown or [],
        computed_for_date=row.computed_for_date,
        created_at=ensure_utc(row.created_at),
    )
