"""Now Mode API routes: the three-slot focus list."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ally.api.routes.tasks import serialize_task
from ally.api.schemas.now_mode import (
    NowModePreferencesRequest,
    NowModeSlot,
    NowModeStateResponse,
    PinRequest,
    PinResponse,
    RecommendedResponse,
    RecommendedTask,
    SwapRequest,
    SwapResponse,
    UnpinRequest,
    UnpinResponse,
)
from ally.core.rate_limit import now_mode_limiter, rate_limited
from ally.db.deps import get_db
from ally.db.models.user import User
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import now_mode as now_mode_service
from ally.services.daily_checkin import local_today
from ally.services.errors import ServiceError

router = APIRouter()


@router.get("/now-mode", response_model=NowModeStateResponse, tags=["now-mode"])
def get_now_mode(
    http_request: Request,
    user: User = Depends(rate_limited(now_mode_limiter)),
    db: Session = Depends(get_db),
) -> NowModeStateResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("now_mode.get", metadata={"route": "/now-mode"}, user_id=str(user.id), request_id=request_id):
        state = now_mode_service.get_state(db, user)

    log_metric("now_mode.occupied_slots", state.occupied_count, metadata={"user_id": str(user.id)})
    return _state_response(state, request_id)


@router.patch("/now-mode", response_model=NowModeStateResponse, tags=["now-mode"])
def update_now_mode(
    payload: NowModePreferencesRequest,
    http_request: Request,
    user: User = Depends(rate_limited(now_mode_limiter)),
    db: Session = Depends(get_db),
) -> NowModeStateResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "now_mode.preferences",
            metadata={"route": "/now-mode", "enabled": payload.enabled, "strict_limit": payload.strict_limit},
            user_id=str(user.id),
            request_id=request_id,
        ):
            now_mode_service.update_preferences(
                db,
                user,
                enabled=payload.enabled,
                strict_limit=payload.strict_limit,
                request_id=request_id,
            )
            db.commit()
            db.refresh(user)
            state = now_mode_service.get_state(db, user)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("now_mode.preferences.success", 1, metadata={"user_id": str(user.id)})
    return _state_response(state, request_id)


@router.post("/now-mode/pin", response_model=PinResponse, tags=["now-mode"])
def pin_task(
    payload: PinRequest,
    http_request: Request,
    user: User = Depends(rate_limited(now_mode_limiter)),
    db: Session = Depends(get_db),
) -> PinResponse:
    """Pin a task into a free slot (or the requested one)."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "now_mode.pin",
            metadata={"route": "/now-mode/pin", "task_id": str(payload.task_id), "slot": payload.slot},
            user_id=str(user.id),
            request_id=request_id,
        ):
            result = now_mode_service.pin_task(
                db,
                user,
                payload.task_id,
                slot=payload.slot,
                override_time_warning=payload.override_time_warning,
                request_id=request_id,
            )
            db.commit()
            db.refresh(result.task)
    except ServiceError as exc:
        db.rollback()
        log_metric("now_mode.pin.rejected", 1, metadata={"reason": exc.message})
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("now_mode.pin.success", 1, metadata={"slot": result.slot})
    log_metric("now_mode.pin.latency_ms", latency_ms)

    return PinResponse(
        success=True,
        task=serialize_task(result.task),
        slot=result.slot,
        warning=result.warning,
        request_id=request_id or "",
    )


@router.post("/now-mode/unpin", response_model=UnpinResponse, tags=["now-mode"])
def unpin_task(
    payload: UnpinRequest,
    http_request: Request,
    user: User = Depends(rate_limited(now_mode_limiter)),
    db: Session = Depends(get_db),
) -> UnpinResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "now_mode.unpin",
            metadata={"route": "/now-mode/unpin", "task_id": str(payload.task_id)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            task = now_mode_service.unpin_task(db, user, payload.task_id, request_id=request_id)
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

    log_metric("now_mode.unpin.success", 1, metadata={"task_id": str(task.id)})
    return UnpinResponse(success=True, task_id=task.id, request_id=request_id or "")


@router.post("/now-mode/swap", response_model=SwapResponse, tags=["now-mode"])
def swap_tasks(
    payload: SwapRequest,
    http_request: Request,
    user: User = Depends(rate_limited(now_mode_limiter)),
    db: Session = Depends(get_db),
) -> SwapResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "now_mode.swap",
            metadata={
                "route": "/now-mode/swap",
                "current_task_id": str(payload.current_task_id),
                "new_task_id": str(payload.new_task_id),
            },
            user_id=str(user.id),
            request_id=request_id,
        ):
            result = now_mode_service.swap_tasks(
                db,
                user,
                payload.current_task_id,
                payload.new_task_id,
                request_id=request_id,
            )
            db.commit()
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

    log_metric("now_mode.swap.success", 1, metadata={"slot": result.slot})
    return SwapResponse(
        success=True,
        unpinned_task_id=payload.current_task_id,
        pinned_task=serialize_task(result.task),
        slot=result.slot,
        request_id=request_id or "",
    )


@router.get("/now-mode/recommended", response_model=RecommendedResponse, tags=["now-mode"])
def recommended(
    http_request: Request,
    limit: int = Query(default=10, ge=1, le=now_mode_service.MAX_RECOMMENDED),
    exclude: Optional[str] = Query(default=None, description="Comma-separated task ids to skip"),
    user: User = Depends(rate_limited(now_mode_limiter)),
    db: Session = Depends(get_db),
) -> RecommendedResponse:
    """Unpinned tasks ranked by due date, effort and energy."""
    request_id = getattr(http_request.state, "request_id", None)
    excluded = _parse_ids(exclude)

    with trace(
        "now_mode.recommended",
        metadata={"route": "/now-mode/recommended", "limit": limit, "excluded": len(excluded)},
        user_id=str(user.id),
        request_id=request_id,
    ):
        ranked = now_mode_service.recommended_tasks(
            db, user.id, limit=limit, exclude=excluded, today=local_today(user)
        )

    log_metric("now_mode.recommended.count", len(ranked), metadata={"user_id": str(user.id)})
    return RecommendedResponse(
        tasks=[RecommendedTask(task=serialize_task(item.task), score=item.score) for item in ranked],
        request_id=request_id or "",
    )


def _parse_ids(raw: Optional[str]) -> List[UUID]:
    ids: List[UUID] = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(UUID(part))
        except ValueError:
            continue
    return ids


def _state_response(state: now_mode_service.NowModeState, request_id: Optional[str]) -> NowModeStateResponse:
    return NowModeStateResponse(
        enabled=state.enabled,
        strict_limit=state.strict_limit,
        slots=[
            NowModeSlot(slot=slot.slot, task=serialize_task(slot.task) if slot.task else None)
            for slot in state.slots
        ],
        occupied_count=state.occupied_count,
        all_completed=state.all_completed,
        request_id=request_id or "",
    )
