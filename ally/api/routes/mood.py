"""Mood entry, burnout log and user context routes."""
from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ally.api.schemas.mood import (
    BurnoutLogCreateRequest,
    BadgeResponse,
    BurnoutLogResponse,
    CheckInRewardResponse,
    MoodEntryCreateRequest,
    MoodEntryCreateResponse,
    MoodEntryListResponse,
    MoodEntryResponse,
    UserContextResponse,
    UserStatsResponse,
)
from ally.core.rate_limit import mood_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.mood import BURNOUT_FIELDS, BurnoutLog, MoodEntry
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services.activity import record_event
from ally.services.context_engine import UserContext, build_user_context, generate_contextual_prompt
from ally.services.gamification import Badge, award_check_in, energy_label, load_summary

router = APIRouter()

MAX_LIST_LIMIT = 100


@router.post(
    "/mood-entries",
    response_model=MoodEntryCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["mood"],
)
def create_mood_entry(
    payload: MoodEntryCreateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(mood_limiter)),
    db: Session = Depends(get_db),
) -> MoodEntryCreateResponse:
    """Log a check-in and award XP and any badges it unlocks."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "mood.create",
            metadata={"route": "/mood-entries", "mood_score": payload.mood_score, "has_note": bool(payload.note)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            entry = MoodEntry(
                user_id=user.id,
                mood_score=payload.mood_score,
                note=payload.note,
                energy_level=payload.energy_level,
                breathing_completed=payload.breathing_completed,
            )
            db.add(entry)
            db.flush()
            reward = award_check_in(db, user, entry)
            record_event(
                db,
                user_id=user.id,
                event_type="mood_logged",
                payload={
                    "mood_entry_id": str(entry.id),
                    "mood_score": entry.mood_score,
                    "xp_earned": reward.xp_earned,
                    "badges": [badge.id for badge in reward.badges],
                },
                request_id=request_id,
            )
            db.commit()
            db.refresh(entry)
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("mood.create.success", 1, metadata={"user_id": str(user.id)})
    log_metric("mood.score", entry.mood_score, metadata={"user_id": str(user.id)})
    log_metric("mood.create.latency_ms", latency_ms)
    log_metric("mood.xp_earned", reward.xp_earned, metadata={"user_id": str(user.id)})

    return MoodEntryCreateResponse(
        **serialize_entry(entry).model_dump(),
        reward=CheckInRewardResponse(
            xp_earned=reward.xp_earned,
            total_xp=reward.stats.total_xp,
            level=reward.stats.current_level,
            level_up=reward.level_up,
            streak=reward.streak,
            new_badges=[serialize_badge(badge) for badge in reward.badges],
        ),
    )


@router.get("/user-stats", response_model=UserStatsResponse, tags=["mood"])
def get_user_stats(
    http_request: Request,
    user: User = Depends(rate_limited(mood_limiter)),
    db: Session = Depends(get_db),
) -> UserStatsResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("mood.user_stats", metadata={"route": "/user-stats"}, user_id=str(user.id), request_id=request_id):
        summary = load_summary(db, user)

    return UserStatsResponse(
        total_xp=summary.total_xp,
        level=summary.level,
        xp_for_next_level=summary.xp_for_next_level,
        current_streak=summary.current_streak,
        checked_in_today=summary.checked_in_today,
        progress=summary.progress,
        achievements=[serialize_badge(badge) for badge in summary.achievements],
        request_id=request_id or "",
    )


@router.get("/mood-entries", response_model=MoodEntryListResponse, tags=["mood"])
def list_mood_entries(
    http_request: Request,
    limit: int = Query(default=30, ge=1, le=MAX_LIST_LIMIT),
    user: User = Depends(rate_limited(mood_limiter)),
    db: Session = Depends(get_db),
) -> MoodEntryListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("mood.list", metadata={"route": "/mood-entries", "limit": limit}, user_id=str(user.id), request_id=request_id):
        entries = (
            db.query(MoodEntry)
            .filter(MoodEntry.user_id == user.id)
            .order_by(MoodEntry.created_at.desc())
            .limit(limit)
            .all()
        )

    return MoodEntryListResponse(entries=[serialize_entry(entry) for entry in entries], request_id=request_id or "")


@router.get("/mood-entries/context", response_model=UserContextResponse, tags=["mood"])
def get_user_context(
    http_request: Request,
    mood_score: float = Query(default=5, ge=0, le=10),
    user: User = Depends(rate_limited(mood_limiter)),
    db: Session = Depends(get_db),
) -> UserContextResponse:
    """What the coach knows about the caller, and how it would frame the next prompt."""
    request_id = getattr(http_request.state, "request_id", None)
    with trace("mood.context", metadata={"route": "/mood-entries/context"}, user_id=str(user.id), request_id=request_id):
        ctx = build_user_context(db, user)
        prompt = generate_contextual_prompt(ctx, mood_score, "")

    log_metric("mood.context.total_check_ins", ctx.total_check_ins, metadata={"user_id": str(user.id)})

    return UserContextResponse(
        context=serialize_context(ctx),
        prompt={
            "approach": prompt.approach_key,
            "historical_insights": prompt.historical_insights,
            "suggested_approach": prompt.suggested_approach,
        },
        request_id=request_id or "",
    )


@router.post("/burnout-logs", response_model=BurnoutLogResponse, status_code=status.HTTP_201_CREATED, tags=["mood"])
def create_burnout_log(
    payload: BurnoutLogCreateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(mood_limiter)),
    db: Session = Depends(get_db),
) -> BurnoutLogResponse:
    request_id = getattr(http_request.state, "request_id", None)
    values = payload.model_dump(exclude={"battery_level", "source"})

    try:
        with trace(
            "burnout.create",
            metadata={"route": "/burnout-logs", "fields": [name for name, value in values.items() if value is not None]},
            user_id=str(user.id),
            request_id=request_id,
        ):
            log = BurnoutLog(user_id=user.id, battery_level=payload.battery_level, source=payload.source, **values)
            db.add(log)
            db.commit()
            db.refresh(log)
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("burnout.create.success", 1, metadata={"user_id": str(user.id)})

    return BurnoutLogResponse(
        id=log.id,
        values={name: getattr(log, name) for name in BURNOUT_FIELDS},
        battery_level=log.battery_level,
        source=log.source,
        created_at=ensure_utc(log.created_at),
        request_id=request_id or "",
    )


def serialize_entry(entry: MoodEntry) -> MoodEntryResponse:
    return MoodEntryResponse(
        id=entry.id,
        mood_score=entry.mood_score,
        note=entry.note,
        advice=entry.advice,
        energy_level=entry.energy_level,
        energy_label=energy_label(entry.energy_level),
        breathing_completed=bool(entry.breathing_completed),
        xp_earned=entry.xp_earned or 0,
        achievements_earned=list(entry.achievements_earned or []),
        created_at=ensure_utc(entry.created_at),
    )


def serialize_badge(badge: Badge) -> BadgeResponse:
    return BadgeResponse(
        id=badge.id,
        icon=badge.icon,
        title=badge.title,
        description=badge.description,
        type=badge.type,
    )


def serialize_context(ctx: UserContext) -> Dict[str, Any]:
    last = ctx.last_check_in
    return {
        "total_check_ins": ctx.total_check_ins,
        "average_mood": ctx.average_mood,
        "recent_average_mood": ctx.recent_average_mood,
        "days_since_last_check_in": ctx.days_since_last_check_in,
        "last_check_in": serialize_entry(last).model_dump(mode="json") if last is not None else None,
        "current_pattern": asdict(ctx.current_pattern) if ctx.current_pattern else None,
        "time_patterns": asdict(ctx.time_patterns),
        "recurring_themes": [
            {
                "theme": theme.theme,
                "frequency": theme.frequency,
                "sentiment": theme.sentiment,
                "last_mentioned": ensure_utc(theme.last_mentioned).isoformat() if theme.last_mentioned else None,
            }
            for theme in ctx.recurring_themes
        ],
        "compared_to_baseline": ctx.compared_to_baseline,
        "baseline_difference": ctx.baseline_difference,
        "current_streak": asdict(ctx.current_streak) if ctx.current_streak else None,
        "preferred_coping_strategies": list(ctx.preferred_coping_strategies),
        "triggers_identified": list(ctx.triggers_identified),
        "burnout": asdict(ctx.burnout),
    }
