"""Context-aware coaching endpoint.

Every response from this route carries ``advice``, including rate-limit,
auth, validation and configuration failures, so the client always has
something supportive to show.
"""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ally.core.config import settings
from ally.core.rate_limit import client_ip, coach_limiter
from ally.core.security import require_user
from ally.db.deps import get_db
from ally.db.models.user import User
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services.coach import (
    MAX_NOTE_CHARS,
    CoachConfigurationError,
    coach_check_in,
    generic_advice,
)
from ally.services.context_engine import UserContext, build_user_context

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_MOOD = 5


def _is_valid_mood(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and 0 <= value <= 10


def _error(status_code: int, error: str, mood: float, request_id: Optional[str], headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "advice": generic_advice(mood), "request_id": request_id or ""},
        headers=headers,
    )


def _context_summary(ctx: UserContext) -> Dict[str, Any]:
    streak = ctx.current_streak
    return {
        "totalCheckIns": ctx.total_check_ins,
        "currentStreak": {"type": streak.type, "days": streak.days} if streak else None,
        "pattern": ctx.current_pattern.type if ctx.current_pattern else None,
        "comparedToBaseline": ctx.compared_to_baseline,
    }


@router.post("/coach", tags=["coach"])
async def coach(http_request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    raw_body = await http_request.body()
    try:
        body = json.loads(raw_body) if raw_body else {}
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    mood_score = body.get("moodScore")
    note = body.get("note")
    fallback_mood = mood_score if _is_valid_mood(mood_score) else DEFAULT_MOOD

    ip = client_ip(http_request)
    if settings.rate_limit_enabled and coach_limiter.is_limited(ip):
        log_metric("coach.rate_limited", 1, metadata={"request_id": request_id})
        return _error(
            status.HTTP_429_TOO_MANY_REQUESTS,
            "Too many requests",
            fallback_mood,
            request_id,
            headers={"Retry-After": str(coach_limiter.retry_after(ip))},
        )

    try:
        user = await run_in_threadpool(require_user, http_request, db)
    except HTTPException as exc:
        return _error(exc.status_code, str(exc.detail), fallback_mood, request_id, headers=exc.headers)

    if not _is_valid_mood(mood_score):
        return _error(status.HTTP_400_BAD_REQUEST, "moodScore must be a number between 0 and 10", DEFAULT_MOOD, request_id)

    note_text = note if isinstance(note, str) else ""
    if len(note_text) > MAX_NOTE_CHARS:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            f"Note too long (max {MAX_NOTE_CHARS} chars)",
            mood_score,
            request_id,
        )

    try:
        content = await run_in_threadpool(_advise, db, user, mood_score, note_text, request_id)
    except CoachConfigurationError as exc:
        logger.error("Coach unavailable: %s", exc)
        log_metric("coach.config_error", 1, metadata={"request_id": request_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Coach is not configured", mood_score, request_id)
    except Exception:
        logger.exception("Coach request failed")
        db.rollback()
        log_metric("coach.error", 1, metadata={"request_id": request_id})
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate advice", DEFAULT_MOOD, request_id)

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("coach.success", 1, metadata={"source": content["source"], "user_id": str(user.id)})
    log_metric("coach.latency_ms", latency_ms, metadata={"source": content["source"]})

    content["request_id"] = request_id or ""
    return JSONResponse(status_code=status.HTTP_200_OK, content=content)


def _advise(db: Session, user: User, mood_score: float, note: str, request_id: Optional[str]) -> Dict[str, Any]:
    with trace(
        "coach.check_in",
        metadata={"route": "/coach", "mood_score": mood_score, "note_length": len(note)},
        user_id=str(user.id),
        request_id=request_id,
    ):
        ctx = build_user_context(db, user)
        result = coach_check_in(ctx, mood_score, note, user_id=str(user.id), request_id=request_id)

    return {
        "advice": result.advice,
        "source": result.source,
        "context": _context_summary(ctx),
    }
