"""Daily check-in API routes."""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from ally.api.schemas.daily_checkin import (
    CheckinStatusResponse,
    CheckinTrendResponse,
    CheckinUpsertResponse,
    DailyCheckinRequest,
    DailyCheckinResponse,
    TrendPoint,
)
from ally.core.rate_limit import checkin_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.daily_checkin import DailyCheckin
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import daily_checkin as checkin_service
from ally.services.adaptive_engine import compute_adaptive_state, has_checked_in_today
from ally.services.errors import ServiceError

router = APIRouter()


@router.post("/daily-checkin", response_model=CheckinUpsertResponse, status_code=status.HTTP_201_CREATED, tags=["daily-checkin"])
def upsert_checkin(
    payload: DailyCheckinRequest,
    http_request: Request,
    response: Response,
    user: User = Depends(rate_limited(checkin_limiter)),
    db: Session = Depends(get_db),
) -> CheckinUpsertResponse:
    """Create today's check-in or overwrite it; 200 instead of 201 on overwrite."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "daily_checkin.upsert",
            metadata={"route": "/daily-checkin", "date": payload.date.isoformat() if payload.date else None},
            user_id=str(user.id),
            request_id=request_id,
        ):
            result = checkin_service.upsert_checkin(
                db,
                user,
                overwhelm=payload.overwhelm,
                anxiety=payload.anxiety,
                energy=payload.energy,
                clarity=payload.clarity,
                note=payload.note,
                checkin_date=payload.date,
                request_id=request_id,
            )
            db.commit()
            db.refresh(result.checkin)
            state = compute_adaptive_state(result.checkin)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    if not result.is_new:
        response.status_code = status.HTTP_200_OK

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("daily_checkin.upsert.success", 1, metadata={"is_new": result.is_new})
    log_metric("daily_checkin.triggers", len(state.triggers), metadata={"user_id": str(user.id)})
    log_metric("daily_checkin.upsert.latency_ms", latency_ms)

    return CheckinUpsertResponse(
        checkin=serialize_checkin(result.checkin),
        adaptive_state=state.as_dict(),
        is_new=result.is_new,
        request_id=request_id or "",
    )


@router.get("/daily-checkin", response_model=CheckinStatusResponse, tags=["daily-checkin"])
def get_checkin(
    http_request: Request,
    user: User = Depends(rate_limited(checkin_limiter)),
    db: Session = Depends(get_db),
) -> CheckinStatusResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("daily_checkin.get", metadata={"route": "/daily-checkin"}, user_id=str(user.id), request_id=request_id):
        latest = checkin_service.latest_checkin(db, user.id)
        is_today = has_checked_in_today(latest.date if latest else None, checkin_service.local_today(user))
        # Yesterday's answers should not keep steering today's UI.
        state = compute_adaptive_state(latest if is_today else None)

    return CheckinStatusResponse(
        checkin=serialize_checkin(latest) if latest else None,
        adaptive_state=state.as_dict(),
        is_today=is_today,
        needs_checkin_today=not is_today,
        request_id=request_id or "",
    )


@router.get("/daily-checkin/trend", response_model=CheckinTrendResponse, tags=["daily-checkin"])
def get_trend(
    http_request: Request,
    range_name: str = Query(default="week", alias="range", pattern="^(week|month|quarter)$"),
    include_correlations: bool = Query(default=True),
    user: User = Depends(rate_limited(checkin_limiter)),
    db: Session = Depends(get_db),
) -> CheckinTrendResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "daily_checkin.trend",
        metadata={"route": "/daily-checkin/trend", "range": range_name},
        user_id=str(user.id),
        request_id=request_id,
    ):
        trend = checkin_service.build_trend(db, user, range_name, include_correlations=include_correlations)

    log_metric("daily_checkin.trend.points", len(trend.points), metadata={"range": trend.range})

    return CheckinTrendResponse(
        range=trend.range,
        days_in_range=trend.days_in_range,
        days_with_data=len(trend.points),
        points=[
            TrendPoint(
                date=point.date,
                overwhelm=point.overwhelm,
                anxiety=point.anxiety,
                energy=point.energy,
                clarity=point.clarity,
            )
            for point in trend.points
        ],
        summary={metric: asdict(summary) for metric, summary in trend.summary.items()} if trend.summary else None,
        correlations=asdict(trend.correlations) if trend.correlations else None,
        insights=[asdict(insight) for insight in trend.insights],
        request_id=request_id or "",
    )


def serialize_checkin(checkin: DailyCheckin) -> DailyCheckinResponse:
    return DailyCheckinResponse(
        id=checkin.id,
        date=checkin.date,
        overwhelm=checkin.overwhelm,
        anxiety=checkin.anxiety,
        energy=checkin.energy,
        clarity=checkin.clarity,
        note=checkin.note,
        created_at=ensure_utc(checkin.created_at),
    )
