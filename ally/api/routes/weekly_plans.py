"""Weekly planning API routes."""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from ally.api.schemas.weekly_plan import (
    PlanOutcomeEnvelope,
    PlanOutcomeRequest,
    PlanOutcomeResponse,
    PlanTaskEnvelope,
    PlanTaskRequest,
    PlanTaskResponse,
    WeekInfoResponse,
    WeeklyPlanCreateRequest,
    WeeklyPlanCreateResponse,
    WeeklyPlanCurrentResponse,
    WeeklyPlanDetailResponse,
    WeeklyPlanListResponse,
    WeeklyPlanResponse,
    WeeklyPlanUpdateRequest,
)
from ally.core.rate_limit import rate_limited, weekly_planning_limiter
from ally.db.deps import get_db
from ally.db.models.goal import Outcome
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.models.weekly_plan import WeeklyPlan, WeeklyPlanOutcome, WeeklyPlanTask
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import weekly_planning as planning
from ally.services.daily_checkin import local_today
from ally.services.errors import ServiceError

router = APIRouter()


@router.post(
    "/weekly-plans",
    response_model=WeeklyPlanCreateResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["weekly-plans"],
)
def create_plan(
    http_request: Request,
    response: Response,
    payload: Optional[WeeklyPlanCreateRequest] = None,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyPlanCreateResponse:
    """Start planning a week; an open draft for that week is returned as-is."""
    request_id = getattr(http_request.state, "request_id", None)
    payload = payload or WeeklyPlanCreateRequest()

    try:
        with trace(
            "weekly_plan.create",
            metadata={"route": "/weekly-plans", "week_number": payload.week_number, "year": payload.year},
            user_id=str(user.id),
            request_id=request_id,
        ):
            result = planning.create_plan(
                db,
                user.id,
                week_number=payload.week_number,
                year=payload.year,
                available_capacity_minutes=payload.available_capacity_minutes,
                today=local_today(user),
                request_id=request_id,
            )
            db.commit()
            db.refresh(result.plan)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    if not result.created:
        response.status_code = status.HTTP_200_OK
    log_metric("weekly_plan.create.success", 1, metadata={"created": result.created})

    return WeeklyPlanCreateResponse(
        plan=serialize_plan(result.plan),
        created=result.created,
        request_id=request_id or "",
    )


@router.get("/weekly-plans", response_model=WeeklyPlanListResponse, tags=["weekly-plans"])
def list_plans(
    http_request: Request,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    year: Optional[int] = Query(default=None),
    week_number: Optional[int] = Query(default=None, ge=1, le=53),
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyPlanListResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace(
        "weekly_plan.list",
        metadata={"route": "/weekly-plans", "status": status_filter, "year": year, "week_number": week_number},
        user_id=str(user.id),
        request_id=request_id,
    ):
        plans = planning.list_plans(db, user.id, status=status_filter, year=year, week_number=week_number)

    return WeeklyPlanListResponse(
        plans=[serialize_plan(plan) for plan in plans],
        current_week=_week_response(planning.iso_week_info(local_today(user))),
        request_id=request_id or "",
    )


@router.get("/weekly-plans/current", response_model=WeeklyPlanCurrentResponse, tags=["weekly-plans"])
def get_current_plan(
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyPlanCurrentResponse:
    request_id = getattr(http_request.state, "request_id", None)
    with trace("weekly_plan.current", metadata={"route": "/weekly-plans/current"}, user_id=str(user.id), request_id=request_id):
        plan = planning.current_plan(db, user.id, today=local_today(user))

    return WeeklyPlanCurrentResponse(
        plan=serialize_plan(plan) if plan else None,
        current_week=_week_response(planning.iso_week_info(local_today(user))),
        request_id=request_id or "",
    )


@router.get("/weekly-plans/{plan_id}", response_model=WeeklyPlanDetailResponse, tags=["weekly-plans"])
def get_plan(
    plan_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyPlanDetailResponse:
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace("weekly_plan.get", metadata={"route": f"/weekly-plans/{plan_id}"}, user_id=str(user.id), request_id=request_id):
            plan = planning.get_owned_plan(db, user.id, plan_id)
            detail = planning.plan_detail(db, plan)
    except ServiceError as exc:
        raise exc.to_http() from exc

    return _detail_response(detail, request_id)


@router.patch("/weekly-plans/{plan_id}", response_model=WeeklyPlanDetailResponse, tags=["weekly-plans"])
def update_plan(
    plan_id: UUID,
    payload: WeeklyPlanUpdateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyPlanDetailResponse:
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)

    try:
        with trace(
            "weekly_plan.update",
            metadata={"route": f"/weekly-plans/{plan_id}", "fields": sorted(changes)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            plan = planning.get_owned_plan(db, user.id, plan_id)
            planning.update_plan(db, plan, changes)
            db.commit()
            db.refresh(plan)
            detail = planning.plan_detail(db, plan)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("weekly_plan.update.success", 1, metadata={"plan_id": str(plan_id)})
    return _detail_response(detail, request_id)


@router.delete("/weekly-plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["weekly-plans"])
def delete_plan(
    plan_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> Response:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace("weekly_plan.delete", metadata={"route": f"/weekly-plans/{plan_id}"}, user_id=str(user.id), request_id=request_id):
            plan = planning.get_owned_plan(db, user.id, plan_id)
            planning.delete_plan(db, plan)
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

    log_metric("weekly_plan.delete.success", 1, metadata={"plan_id": str(plan_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/weekly-plans/{plan_id}/outcomes",
    response_model=PlanOutcomeEnvelope,
    status_code=status.HTTP_201_CREATED,
    tags=["weekly-plans"],
)
def add_plan_outcome(
    plan_id: UUID,
    payload: PlanOutcomeRequest,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> PlanOutcomeEnvelope:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "weekly_plan.add_outcome",
            metadata={"route": f"/weekly-plans/{plan_id}/outcomes", "outcome_id": str(payload.outcome_id)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            plan = planning.get_owned_plan(db, user.id, plan_id)
            link = planning.add_outcome(
                db,
                plan,
                payload.outcome_id,
                priority_rank=payload.priority_rank,
                notes=payload.notes,
            )
            db.commit()
            db.refresh(link)
            outcome = db.get(Outcome, link.outcome_id)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("weekly_plan.add_outcome.success", 1, metadata={"plan_id": str(plan_id)})
    return PlanOutcomeEnvelope(outcome=_outcome_link_response(link, outcome), request_id=request_id or "")


@router.post(
    "/weekly-plans/{plan_id}/tasks",
    response_model=PlanTaskEnvelope,
    status_code=status.HTTP_201_CREATED,
    tags=["weekly-plans"],
)
def add_plan_task(
    plan_id: UUID,
    payload: PlanTaskRequest,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> PlanTaskEnvelope:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "weekly_plan.add_task",
            metadata={
                "route": f"/weekly-plans/{plan_id}/tasks",
                "task_id": str(payload.task_id),
                "scheduled_day": payload.scheduled_day,
            },
            user_id=str(user.id),
            request_id=request_id,
        ):
            plan = planning.get_owned_plan(db, user.id, plan_id)
            link = planning.add_task(
                db,
                plan,
                payload.task_id,
                scheduled_day=payload.scheduled_day,
                estimated_minutes=payload.estimated_minutes,
                priority_rank=payload.priority_rank,
            )
            db.commit()
            db.refresh(link)
            db.refresh(plan)
            task = db.get(Task, link.task_id)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("weekly_plan.planned_minutes", plan.planned_capacity_minutes, metadata={"plan_id": str(plan_id)})
    return PlanTaskEnvelope(
        task=_task_link_response(link, task),
        planned_capacity_minutes=plan.planned_capacity_minutes,
        request_id=request_id or "",
    )


@router.post("/weekly-plans/{plan_id}/commit", response_model=WeeklyPlanDetailResponse, tags=["weekly-plans"])
def commit_plan(
    plan_id: UUID,
    http_request: Request,
    user: User = Depends(rate_limited(weekly_planning_limiter)),
    db: Session = Depends(get_db),
) -> WeeklyPlanDetailResponse:
    """Lock the plan and render its markdown summary."""
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace("weekly_plan.commit", metadata={"route": f"/weekly-plans/{plan_id}/commit"}, user_id=str(user.id), request_id=request_id):
            plan = planning.get_owned_plan(db, user.id, plan_id)
            detail = planning.commit_plan(db, plan, request_id=request_id)
            db.commit()
            db.refresh(plan)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("weekly_plan.commit.success", 1, metadata={"plan_id": str(plan_id)})
    log_metric(
        "weekly_plan.utilization_percent",
        detail.capacity.utilization_percent,
        metadata={"overcommitted": detail.capacity.is_overcommitted},
    )
    return _detail_response(detail, request_id)


def serialize_plan(plan: WeeklyPlan) -> WeeklyPlanResponse:
    return WeeklyPlanResponse(
        id=plan.id,
        week_number=plan.week_number,
        year=plan.year,
        version=plan.version,
        status=plan.status,
        available_capacity_minutes=plan.available_capacity_minutes,
        planned_capacity_minutes=plan.planned_capacity_minutes,
        previous_week_reflection=plan.previous_week_reflection,
        wins=list(plan.wins or []),
        learnings=list(plan.learnings or []),
        summary_markdown=plan.summary_markdown,
        committed_at=ensure_utc(plan.committed_at),
        created_at=ensure_utc(plan.created_at),
    )


def _week_response(info: planning.WeekInfo) -> WeekInfoResponse:
    return WeekInfoResponse(
        week_number=info.week_number,
        year=info.year,
        week_start=info.week_start,
        week_end=info.week_end,
    )


def _outcome_link_response(link: WeeklyPlanOutcome, outcome: Optional[Outcome]) -> PlanOutcomeResponse:
    return PlanOutcomeResponse(
        id=link.id,
        outcome_id=link.outcome_id,
        title=outcome.title if outcome else None,
        priority_rank=link.priority_rank,
        notes=link.notes,
    )


def _task_link_response(link: WeeklyPlanTask, task: Optional[Task]) -> PlanTaskResponse:
    return PlanTaskResponse(
        id=link.id,
        task_id=link.task_id,
        title=task.title if task else None,
        scheduled_day=link.scheduled_day,
        estimated_minutes=link.estimated_minutes,
        priority_rank=link.priority_rank,
    )


def _capacity_dict(capacity: planning.CapacityAnalysis) -> Dict[str, Any]:
    data = asdict(capacity)
    for day in data["day_breakdown"]:
        day["task_ids"] = [str(task_id) for task_id in day["task_ids"]]
    return data


def _detail_response(detail: planning.PlanDetail, request_id: Optional[str]) -> WeeklyPlanDetailResponse:
    return WeeklyPlanDetailResponse(
        plan=serialize_plan(detail.plan),
        outcomes=[_outcome_link_response(link, outcome) for link, outcome in detail.outcomes],
        tasks=[_task_link_response(link, task) for link, task in detail.tasks],
        capacity=_capacity_dict(detail.capacity),
        request_id=request_id or "",
    )
