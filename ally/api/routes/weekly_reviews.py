"""Weekly review routes: generate last week's review, browse history, add a reflection."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ally.api.schemas.weekly_review import (
    WeeklyReviewCurrentResponse,
    WeeklyReviewEnvelope,
    WeeklyReviewGenerateResponse,
    WeeklyReviewHistoryResponse,
    WeeklyReviewResponse,
    WeeklyReviewUpdateRequest,
)
from ally.core.rate_limit import rate_limited, weekly_review_limiter
from ally.db.deps import get_db
from ally.db.models.user import User
from ally.db.models.weekly_review import WeeklyReview
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import weekly_review as review_service
from ally.services.daily_checkin import local_today
from ally.services.errors import ServiceError

router = APIRouter()


@router.get("/weekly-reviews", response_model=WeeklyReviewCurrentResponse, tags=["weekly-reviews"])
def get_current_review(
    http_request: Request,
    week: Optional[date] = Query(default=None),
    user: User = Depends(rate_limited(weekly_review_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyReviewCurrentResponse:
    """Last week's review (or the week containing ``week``) and whether one can be generated now."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "weekly_review.current",
        metadata={"route": "/weekly-reviews", "week": week.isoformat() if week else None},
        user_id=str(user.id),
        request_id=request_id,
    ):
        status_info = review_service.review_status(db, user, local_today(user), week=week)

    return WeeklyReviewCurrentResponse(
        review=serialize_review(status_info.review) if status_info.review else None,
        week_start=status_info.week_start,
        can_generate=status_info.can_generate,
        can_generate_reason=status_info.reason,
        can_show_review_prompt=status_info.can_show_prompt,
        request_id=request_id or "",
    )


@router.post("/weekly-reviews/generate", response_model=WeeklyReviewGenerateResponse, tags=["weekly-reviews"])
def generate_review(
    http_request: Request,
    user: User = Depends(rate_limited(weekly_review_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyReviewGenerateResponse:
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "weekly_review.generate",
            metadata={"route": "/weekly-reviews/generate"},
            user_id=str(user.id),
            request_id=request_id,
        ):
            review, cached, is_first = review_service.generate_review(
                db,
                user,
                local_today(user),
                request_id=request_id,
            )
            if not cached:
                db.commit()
                db.refresh(review)
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
    log_metric("weekly_review.generate.success", 1, metadata={"cached": cached, "source": review.source})
    log_metric("weekly_review.generate.latency_ms", latency_ms)

    return WeeklyReviewGenerateResponse(
        review=serialize_review(review),
        cached=cached,
        is_first_review=is_first,
        request_id=request_id or "",
    )


@router.get("/weekly-reviews/history", response_model=WeeklyReviewHistoryResponse, tags=["weekly-reviews"])
def review_history(
    http_request: Request,
    limit: int = Query(default=review_service.DEFAULT_HISTORY_LIMIT, ge=1, le=review_service.MAX_HISTORY_LIMIT),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(rate_limited(weekly_review_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyReviewHistoryResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "weekly_review.history",
        metadata={"route": "/weekly-reviews/history", "limit": limit, "offset": offset},
        user_id=str(user.id),
        request_id=request_id,
    ):
        reviews, total = review_service.list_reviews(db, user.id, limit=limit, offset=offset)

    return WeeklyReviewHistoryResponse(
        reviews=[serialize_review(review) for review in reviews],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
        request_id=request_id or "",
    )


@router.get("/weekly-reviews/{review_id}", response_model=WeeklyReviewEnvelope, tags=["weekly-reviews"])
def get_review(
    review_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_review_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyReviewEnvelope:
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "weekly_review.get",
            metadata={"route": f"/weekly-reviews/{review_id}"},
            user_id=str(user.id),
            request_id=request_id,
        ):
            review = review_service.get_owned_review(db, user.id, review_id)
    except ServiceError as exc:
        raise exc.to_http() from exc

    return WeeklyReviewEnvelope(review=serialize_review(review), request_id=request_id or "")


@router.patch("/weekly-reviews/{review_id}", response_model=WeeklyReviewEnvelope, tags=["weekly-reviews"])
def update_review(
    review_id: UUID,
    payload: WeeklyReviewUpdateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_review_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyReviewEnvelope:
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)

    try:
        with trace(
            "weekly_review.update",
            metadata={"route": f"/weekly-reviews/{review_id}", "fields": sorted(changes)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            review = review_service.get_owned_review(db, user.id, review_id)
            review_service.update_review(review, changes)
            db.commit()
            db.refresh(review)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("weekly_review.update.success", 1, metadata={"fields": sorted(changes)})
    return WeeklyReviewEnvelope(review=serialize_review(review), request_id=request_id or "")


def serialize_review(review: WeeklyReview) -> WeeklyReviewResponse:
    return WeeklyReviewResponse(
        id=review.id,
        week_start=review.week_start,
        week_end=review.week_end,
        summary_markdown=review.summary_markdown,
        wins=list(review.wins or []),
        gaps=list(review.gaps or []),
        patterns=list(review.patterns or []),
        suggested_focus=list(review.suggested_focus or []),
        tasks_completed=review.tasks_completed,
        tasks_created=review.tasks_created,
        tasks_parked=review.tasks_parked,
        completion_rate=review.completion_rate,
        mood_average=review.mood_average,
        check_in_days=review.check_in_days,
        balance_score_avg=review.balance_score_avg,
        balance_score_trend=review.balance_score_trend,
        top_category=review.top_category,
        neglected_categories=list(review.neglected_categories or []),
        source=review.source,
        user_reflection=review.user_reflection,
        is_read=bool(review.is_read),
        read_at=ensure_utc(review.read_at),
        created_at=ensure_utc(review.created_at),
    )
