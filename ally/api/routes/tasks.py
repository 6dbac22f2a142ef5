"""Task API routes: CRUD, completion and linking to goals."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ally.api.schemas.task import (
    BulkRelinkRequest,
    BulkRelinkResponse,
    TaskCompleteRequest,
    TaskCreateRequest,
    TaskEnvelope,
    TaskLinkRequest,
    TaskLinkResponse,
    TaskListResponse,
    TaskResponse,
    TaskUpdateRequest,
)
from ally.core.rate_limit import rate_limited, tasks_limiter
from ally.db.deps import get_db
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.observability.metrics import log_metric
from ally.observability.tracing import trace
from ally.services import goals as goal_service
from ally.services.activity import record_event
from ally.services.errors import ServiceError

router = APIRouter()


@router.get("/tasks", response_model=TaskListResponse, tags=["tasks"])
def list_tasks(
    http_request: Request,
    status_filter: Optional[str] = Query(default=None, alias="status", pattern="^(active|completed|parked|needs_linking)$"),
    outcome_id: Optional[UUID] = Query(default=None),
    user: User = Depends(rate_limited(tasks_limiter)),
    db: Session = Depends(get_db),
) -> TaskListResponse:
    """List the caller's tasks, newest first."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": "/tasks",
        "status": status_filter,
        "outcome_id": str(outcome_id) if outcome_id else None,
        "request_id": request_id,
    }

    with trace("task.list", metadata=metadata, user_id=str(user.id), request_id=request_id):
        query = db.query(Task).filter(Task.user_id == user.id)
        if status_filter:
            query = query.filter(Task.status == status_filter)
        if outcome_id:
            query = query.filter(Task.outcome_id == outcome_id)
        tasks = query.order_by(Task.created_at.desc()).all()

    log_metric("task.list.success", 1, metadata={"user_id": str(user.id), "status": status_filter})
    log_metric("task.list.count", len(tasks), metadata={"user_id": str(user.id)})

    return TaskListResponse(tasks=[serialize_task(task) for task in tasks], request_id=request_id or "")


@router.post("/tasks", response_model=TaskEnvelope, status_code=status.HTTP_201_CREATED, tags=["tasks"])
def create_task(
    payload: TaskCreateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(tasks_limiter)),
    db: Session = Depends(get_db),
) -> TaskEnvelope:
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    try:
        with trace("task.create", metadata={"route": "/tasks"}, user_id=str(user.id), request_id=request_id):
            task = goal_service.create_task(
                db,
                user.id,
                title=payload.title,
                due_date=payload.due_date,
                estimated_minutes=payload.estimated_minutes,
                energy_required=payload.energy_required,
                priority=payload.priority,
                category=payload.category,
                outcome_id=payload.outcome_id,
                commitment_id=payload.commitment_id,
                metadata=payload.metadata,
            )
            record_event(
                db,
                user_id=user.id,
                event_type="task_created",
                payload={"task_id": str(task.id), "status": task.status},
                request_id=request_id,
            )
            db.commit()
            db.refresh(task)
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
    log_metric("task.create.success", 1, metadata={"user_id": str(user.id)})
    log_metric("task.create.latency_ms", latency_ms)

    return TaskEnvelope(task=serialize_task(task), request_id=request_id or "")


@router.patch("/tasks/{task_id}", response_model=TaskEnvelope, tags=["tasks"])
def update_task(
    task_id: UUID,
    payload: TaskUpdateRequest,
    http_request: Request,
    user: User = Depends(rate_limited(tasks_limiter)),
    db: Session = Depends(get_db),
) -> TaskEnvelope:
    request_id = getattr(http_request.state, "request_id", None)
    changes = payload.model_dump(exclude_unset=True)

    try:
        with trace(
            "task.update",
            metadata={"route": f"/tasks/{task_id}", "fields": sorted(changes)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            task = goal_service.get_owned_task(db, user.id, task_id)
            goal_service.update_task(task, changes)
            db.commit()
            db.refresh(task)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("task.update.success", 1, metadata={"task_id": str(task_id)})
    return TaskEnvelope(task=serialize_task(task), request_id=request_id or "")


@router.post("/tasks/{task_id}/complete", response_model=TaskEnvelope, tags=["tasks"])
def complete_task(
    task_id: UUID,
    http_request: Request,
    payload: Optional[TaskCompleteRequest] = None,
    user: User = Depends(rate_limited(tasks_limiter)),
    db: Session = Depends(get_db),
) -> TaskEnvelope:
    """Mark a task complete (or reopen it); completing frees its Now Mode slot."""
    request_id = getattr(http_request.state, "request_id", None)
    completed = payload.completed if payload else True
    start_time = datetime.now(timezone.utc)

    try:
        with trace(
            "task.complete",
            metadata={"route": f"/tasks/{task_id}/complete", "completed": completed},
            user_id=str(user.id),
            request_id=request_id,
        ):
            task = goal_service.get_owned_task(db, user.id, task_id)
            previous_slot = task.now_slot
            changed = goal_service.set_task_completed(task, completed)
            if changed:
                record_event(
                    db,
                    user_id=user.id,
                    event_type="task_completed" if completed else "task_uncompleted",
                    payload={"task_id": str(task.id), "freed_slot": previous_slot if completed else None},
                    reason="Task completion toggled",
                    undo_available=True,
                    request_id=request_id,
                )
            db.commit()
            db.refresh(task)
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
    log_metric("task.complete.success", 1, metadata={"task_id": str(task_id)})
    log_metric("task.complete.changed", 1 if changed else 0, metadata={"task_id": str(task_id)})
    log_metric("task.complete.latency_ms", latency_ms)

    return TaskEnvelope(task=serialize_task(task), request_id=request_id or "")


@router.post("/tasks/link", response_model=TaskLinkResponse, tags=["tasks"])
def link_task(
    payload: TaskLinkRequest,
    http_request: Request,
    user: User = Depends(rate_limited(tasks_limiter)),
    db: Session = Depends(get_db),
) -> TaskLinkResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace("task.link", metadata={"route": "/tasks/link"}, user_id=str(user.id), request_id=request_id):
            task = goal_service.get_owned_task(db, user.id, payload.task_id)
            result = goal_service.link_task(
                db,
                task,
                commitment_id=payload.commitment_id,
                outcome_id=payload.outcome_id,
            )
            record_event(
                db,
                user_id=user.id,
                event_type="task_linked",
                payload={
                    "task_id": str(task.id),
                    "linked_to": result.linked_to,
                    "outcome_id": str(task.outcome_id) if task.outcome_id else None,
                    "commitment_id": str(task.commitment_id) if task.commitment_id else None,
                },
                request_id=request_id,
            )
            db.commit()
            db.refresh(task)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("task.link.success", 1, metadata={"linked_to": result.linked_to})
    return TaskLinkResponse(task=serialize_task(task), linked_to=result.linked_to, request_id=request_id or "")


@router.post("/tasks/bulk-relink", response_model=BulkRelinkResponse, tags=["tasks"])
def bulk_relink(
    payload: BulkRelinkRequest,
    http_request: Request,
    user: User = Depends(rate_limited(tasks_limiter)),
    db: Session = Depends(get_db),
) -> BulkRelinkResponse:
    request_id = getattr(http_request.state, "request_id", None)

    try:
        with trace(
            "task.bulk_relink",
            metadata={"route": "/tasks/bulk-relink", "count": len(payload.task_ids)},
            user_id=str(user.id),
            request_id=request_id,
        ):
            tasks = goal_service.bulk_relink(
                db,
                user.id,
                payload.task_ids,
                commitment_id=payload.commitment_id,
                outcome_id=payload.outcome_id,
                request_id=request_id,
            )
            db.commit()
            for task in tasks:
                db.refresh(task)
    except ServiceError as exc:
        db.rollback()
        raise exc.to_http() from exc
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    log_metric("task.bulk_relink.success", 1, metadata={"count": len(tasks)})
    return BulkRelinkResponse(
        updated=len(tasks),
        tasks=[serialize_task(task) for task in tasks],
        request_id=request_id or "",
    )


def serialize_task(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        title=task.title,
        status=task.status,
        due_date=task.due_date,
        estimated_minutes=task.estimated_minutes,
        energy_required=task.energy_required,
        priority=task.priority,
        category=task.category,
        outcome_id=task.outcome_id,
        commitment_id=task.commitment_id,
        now_slot=task.now_slot,
        completed_at=ensure_utc(task.completed_at),
        created_at=ensure_utc(task.created_at),
        updated_at=ensure_utc(task.updated_at),
    )


def serialize_tasks(tasks: List[Task]) -> List[TaskResponse]:
    return [serialize_task(task) for task in tasks]
