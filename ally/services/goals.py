"""Outcomes, commitments and the task links that hang off them."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ally.db.models.goal import Commitment, Outcome
from ally.db.models.task import Task
from ally.services.activity import record_event
from ally.services.errors import ConflictError, GoalError, NotFoundError

logger = logging.getLogger(__name__)

OUTCOME_HORIZONS = ("weekly", "monthly", "quarterly")
GOAL_STATUSES = ("active", "paused", "completed", "archived")
TASK_STATUSES = ("active", "completed", "parked", "needs_linking")
OPEN_TASK_STATUSES = ("active", "needs_linking")
MAX_TITLE_CHARS = 200
MAX_DESCRIPTION_CHARS = 2000


@dataclass
class LinkResult:
    task: Task
    linked_to: str


def sanitize_title(value: Optional[str]) -> str:
    return " ".join((value or "").split())[:MAX_TITLE_CHARS]


def sanitize_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()[:MAX_DESCRIPTION_CHARS]
    return cleaned or None


def get_owned_outcome(db: Session, user_id: UUID, outcome_id: UUID) -> Outcome:
    outcome = db.get(Outcome, outcome_id)
    if not outcome or outcome.user_id != user_id:
        raise NotFoundError("Outcome not found")
    return outcome


def get_owned_commitment(db: Session, user_id: UUID, commitment_id: UUID) -> Commitment:
    commitment = db.get(Commitment, commitment_id)
    if not commitment or commitment.user_id != user_id:
        raise NotFoundError("Commitment not found")
    return commitment


def get_owned_task(db: Session, user_id: UUID, task_id: UUID) -> Task:
    task = db.get(Task, task_id)
    if not task or task.user_id != user_id:
        raise NotFoundError("Task not found")
    return task


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


def list_outcomes(
    db: Session,
    user_id: UUID,
    *,
    status: Optional[str] = None,
    horizon: Optional[str] = None,
) -> List[Outcome]:
    query = db.query(Outcome).filter(Outcome.user_id == user_id)
    if status in GOAL_STATUSES:
        query = query.filter(Outcome.status == status)
    if horizon in OUTCOME_HORIZONS:
        query = query.filter(Outcome.horizon == horizon)
    return query.order_by(Outcome.priority_rank.asc(), Outcome.created_at.asc()).all()


def create_outcome(
    db: Session,
    user_id: UUID,
    *,
    title: str,
    horizon: str,
    description: Optional[str] = None,
    priority_rank: Optional[int] = None,
) -> Outcome:
    clean_title = sanitize_title(title)
    if not clean_title:
        raise GoalError("Title is required")
    if horizon not in OUTCOME_HORIZONS:
        raise GoalError("Invalid horizon. Must be weekly, monthly, or quarterly")

    outcome = Outcome(
        user_id=user_id,
        title=clean_title,
        description=sanitize_description(description),
        horizon=horizon,
        status="active",
        priority_rank=priority_rank if priority_rank is not None else 0,
    )
    db.add(outcome)
    db.flush()
    return outcome


def update_outcome(db: Session, outcome: Outcome, changes: Dict[str, Any]) -> Outcome:
    """Apply the provided fields; raises GoalError when nothing valid was supplied."""
    applied = False
    if "title" in changes:
        title = sanitize_title(changes["title"])
        if not title:
            raise GoalError("Title cannot be empty")
        outcome.title = title
        applied = True
    if "description" in changes:
        outcome.description = sanitize_description(changes["description"])
        applied = True
    if "horizon" in changes:
        if changes["horizon"] not in OUTCOME_HORIZONS:
            raise GoalError("Invalid horizon")
        outcome.horizon = changes["horizon"]
        applied = True
    if "status" in changes:
        if changes["status"] not in GOAL_STATUSES:
            raise GoalError("Invalid status")
        outcome.status = changes["status"]
        applied = True
    if "priority_rank" in changes:
        rank = changes["priority_rank"]
        if not isinstance(rank, int) or rank < 0:
            raise GoalError("Invalid priority_rank")
        outcome.priority_rank = rank
        applied = True

    if not applied:
        raise GoalError("No valid fields to update")
    return outcome


def open_tasks_for_outcome(db: Session, outcome: Outcome) -> List[Task]:
    commitment_ids = [
        row.id for row in db.query(Commitment.id).filter(Commitment.outcome_id == outcome.id).all()
    ]
    link_filter = Task.outcome_id == outcome.id
    if commitment_ids:
        link_filter = or_(link_filter, Task.commitment_id.in_(commitment_ids))
    return (
        db.query(Task)
        .filter(Task.user_id == outcome.user_id, Task.status.in_(OPEN_TASK_STATUSES), link_filter)
        .all()
    )


def delete_outcome(db: Session, outcome: Outcome) -> None:
    """Delete an outcome unless open tasks still point at it (directly or via commitments)."""
    open_tasks = open_tasks_for_outcome(db, outcome)
    if open_tasks:
        raise ConflictError(
            "Cannot delete outcome with active tasks",
            extra={
                "active_tasks": [{"id": str(task.id), "title": task.title} for task in open_tasks],
                "requires_relink": True,
            },
        )
    db.query(Commitment).filter(Commitment.outcome_id == outcome.id).delete(synchronize_session=False)
    db.delete(outcome)


def outcome_task_counts(db: Session, outcome: Outcome) -> Dict[str, int]:
    tasks = db.query(Task).filter(Task.outcome_id == outcome.id).all()
    counts = {status: 0 for status in TASK_STATUSES}
    for task in tasks:
        counts[task.status] = counts.get(task.status, 0) + 1
    counts["total"] = len(tasks)
    return counts


# ---------------------------------------------------------------------------
# Commitments
# ---------------------------------------------------------------------------


def list_commitments(db: Session, user_id: UUID, *, outcome_id: Optional[UUID] = None) -> List[Commitment]:
    query = db.query(Commitment).filter(Commitment.user_id == user_id)
    if outcome_id:
        query = query.filter(Commitment.outcome_id == outcome_id)
    return query.order_by(Commitment.created_at.asc()).all()


def create_commitment(
    db: Session,
    user_id: UUID,
    *,
    outcome_id: UUID,
    title: str,
    description: Optional[str] = None,
) -> Commitment:
    clean_title = sanitize_title(title)
    if not clean_title:
        raise GoalError("Title is required")
    get_owned_outcome(db, user_id, outcome_id)

    commitment = Commitment(
        user_id=user_id,
        outcome_id=outcome_id,
        title=clean_title,
        description=sanitize_description(description),
        status="active",
    )
    db.add(commitment)
    db.flush()
    return commitment


def update_commitment(db: Session, commitment: Commitment, changes: Dict[str, Any]) -> Commitment:
    """Apply changes; moving to another outcome carries the commitment's tasks along."""
    applied = False
    if "title" in changes:
        title = sanitize_title(changes["title"])
        if not title:
            raise GoalError("Title cannot be empty")
        commitment.title = title
        applied = True
    if "description" in changes:
        commitment.description = sanitize_description(changes["description"])
        applied = True
    if "status" in changes:
        if changes["status"] not in GOAL_STATUSES:
            raise GoalError("Invalid status")
        commitment.status = changes["status"]
        applied = True
    if changes.get("outcome_id") is not None:
        target = db.get(Outcome, changes["outcome_id"])
        if not target or target.user_id != commitment.user_id:
            raise NotFoundError("Target outcome not found")
        if target.id != commitment.outcome_id:
            commitment.outcome_id = target.id
            db.query(Task).filter(Task.commitment_id == commitment.id).update(
                {Task.outcome_id: target.id}, synchronize_session=False
            )
        applied = True

    if not applied:
        raise GoalError("No valid fields to update")
    return commitment


def delete_commitment(db: Session, commitment: Commitment) -> None:
    """Delete a commitment; its finished tasks stay linked to the outcome only."""
    open_tasks = (
        db.query(Task)
        .filter(
            Task.user_id == commitment.user_id,
            Task.commitment_id == commitment.id,
            Task.status.in_(OPEN_TASK_STATUSES),
        )
        .all()
    )
    if open_tasks:
        raise ConflictError(
            "Cannot delete commitment with active tasks",
            extra={
                "active_tasks": [{"id": str(task.id), "title": task.title} for task in open_tasks],
                "requires_relink": True,
            },
        )
    db.query(Task).filter(Task.commitment_id == commitment.id).update(
        {Task.commitment_id: None}, synchronize_session=False
    )
    db.delete(commitment)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def create_task(
    db: Session,
    user_id: UUID,
    *,
    title: str,
    due_date: Optional[str] = None,
    estimated_minutes: Optional[int] = None,
    energy_required: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    outcome_id: Optional[UUID] = None,
    commitment_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Task:
    clean_title = sanitize_title(title)
    if not clean_title:
        raise GoalError("Title is required")

    if commitment_id:
        commitment = get_owned_commitment(db, user_id, commitment_id)
        outcome_id = commitment.outcome_id
    elif outcome_id:
        get_owned_outcome(db, user_id, outcome_id)

    task = Task(
        user_id=user_id,
        title=clean_title,
        status="active" if (outcome_id or commitment_id) else "needs_linking",
        due_date=due_date,
        estimated_minutes=estimated_minutes,
        energy_required=energy_required,
        priority=priority,
        category=category,
        outcome_id=outcome_id,
        commitment_id=commitment_id,
        metadata_json=metadata or None,
    )
    db.add(task)
    db.flush()
    return task


def update_task(task: Task, changes: Dict[str, Any]) -> Task:
    """Apply a partial update. Leaving the open statuses releases the Now Mode slot."""
    if not changes:
        raise GoalError("No valid fields to update")

    changes = dict(changes)
    if "title" in changes:
        title = sanitize_title(changes.pop("title"))
        if not title:
            raise GoalError("Title cannot be empty")
        task.title = title

    if "status" in changes:
        new_status = changes.pop("status")
        if new_status not in TASK_STATUSES or new_status == "completed":
            raise GoalError("Invalid status")
        if new_status == "active" and not (task.outcome_id or task.commitment_id):
            new_status = "needs_linking"
        task.status = new_status
        if new_status not in OPEN_TASK_STATUSES:
            task.now_slot = None

    for field, value in changes.items():
        setattr(task, field, value)
    return task


def set_task_completed(task: Task, completed: bool) -> bool:
    """Toggle completion; returns True when the state changed. Completing frees the now slot."""
    if completed and task.status == "completed":
        return False
    if not completed and task.status != "completed":
        return False

    if completed:
        task.status = "completed"
        task.completed_at = datetime.now(timezone.utc)
        task.now_slot = None
    else:
        task.status = "active" if (task.outcome_id or task.commitment_id) else "needs_linking"
        task.completed_at = None
    return True


def link_task(
    db: Session,
    task: Task,
    *,
    commitment_id: Optional[UUID] = None,
    outcome_id: Optional[UUID] = None,
) -> LinkResult:
    """Link a task to a commitment (and its outcome) or directly to an outcome."""
    if commitment_id:
        commitment = get_owned_commitment(db, task.user_id, commitment_id)
        task.commitment_id = commitment.id
        task.outcome_id = commitment.outcome_id
        linked_to = "commitment"
    elif outcome_id:
        outcome = get_owned_outcome(db, task.user_id, outcome_id)
        task.outcome_id = outcome.id
        task.commitment_id = None
        linked_to = "outcome"
    else:
        raise GoalError("Provide commitment_id or outcome_id")

    if task.status == "needs_linking":
        task.status = "active"
    return LinkResult(task=task, linked_to=linked_to)


def bulk_relink(
    db: Session,
    user_id: UUID,
    task_ids: Iterable[UUID],
    *,
    commitment_id: Optional[UUID] = None,
    outcome_id: Optional[UUID] = None,
    request_id: Optional[str] = None,
) -> List[Task]:
    ids = list(dict.fromkeys(task_ids))
    if not ids:
        raise GoalError("task_ids must not be empty")

    tasks = db.query(Task).filter(Task.user_id == user_id, Task.id.in_(ids)).all()
    if len(tasks) != len(ids):
        raise NotFoundError("One or more tasks not found")

    for task in tasks:
        link_task(db, task, commitment_id=commitment_id, outcome_id=outcome_id)

    record_event(
        db,
        user_id=user_id,
        event_type="tasks_relinked",
        payload={
            "task_ids": [str(task.id) for task in tasks],
            "outcome_id": str(outcome_id) if outcome_id else None,
            "commitment_id": str(commitment_id) if commitment_id else None,
        },
        reason="Bulk relink",
        request_id=request_id,
    )
    return tasks
