"""Now Mode: at most three pinned tasks the user is actively working on."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy.orm import Session

from ally.db.models.task import Task
from ally.db.models.user import User
from ally.services.activity import record_event
from ally.services.errors import NotFoundError, NowModeError

logger = logging.getLogger(__name__)

MAX_SLOTS = 3
MAX_MINUTES = 90
SLOT_NUMBERS = (1, 2, 3)
PINNABLE_STATUSES = ("active", "needs_linking")

MAX_RECOMMENDED = 20
RECOMMENDATION_POOL = 50

DUE_SCORES = {"today": 50, "tomorrow": 30, "this_week": 15, "no_rush": 0}
NO_DUE_SCORE = 5


@dataclass
class PinValidation:
    can_pin: bool
    error: Optional[str] = None
    warning: Optional[str] = None


@dataclass
class SlotState:
    slot: int
    task: Optional[Task]


@dataclass
class NowModeState:
    enabled: bool
    strict_limit: bool
    slots: List[SlotState]
    occupied_count: int
    all_completed: bool


@dataclass
class PinResult:
    task: Task
    slot: int
    warning: Optional[str] = None


@dataclass
class ScoredTask:
    task: Task
    score: int


def is_valid_slot(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value in SLOT_NUMBERS


def validate_pin(task: Task, current_count: int, strict: bool) -> PinValidation:
    """Check whether ``task`` may be pinned given how many slots are in use."""
    if task.now_slot is not None:
        return PinValidation(can_pin=False, error="Task is already in Now Mode")

    if current_count >= MAX_SLOTS:
        if strict:
            return PinValidation(
                can_pin=False,
                error="All 3 Now Mode slots are occupied. Complete or unpin a task first.",
            )
        return PinValidation(can_pin=False, warning="All slots occupied - consider completing current tasks")

    if task.outcome_id is None and task.commitment_id is None:
        return PinValidation(
            can_pin=False,
            error="Task must be linked to an Outcome or Commitment before pinning to Now Mode",
        )

    if task.status == "completed":
        return PinValidation(can_pin=False, error="Cannot pin a completed task")

    if task.estimated_minutes and task.estimated_minutes > MAX_MINUTES:
        return PinValidation(
            can_pin=True,
            warning=(
                f"Task estimate ({task.estimated_minutes} min) exceeds {MAX_MINUTES} min. "
                "Consider breaking it down."
            ),
        )

    return PinValidation(can_pin=True)


def pinned_tasks(db: Session, user_id: UUID) -> List[Task]:
    return (
        db.query(Task)
        .filter(
            Task.user_id == user_id,
            Task.now_slot.isnot(None),
            Task.status.in_(PINNABLE_STATUSES),
        )
        .order_by(Task.now_slot.asc())
        .all()
    )


def occupied_slots(db: Session, user_id: UUID) -> Set[int]:
    """Every slot held by a row, whatever its status; the unique index sees them all."""
    rows = db.query(Task.now_slot).filter(Task.user_id == user_id, Task.now_slot.isnot(None)).all()
    return {row.now_slot for row in rows}


def build_state(user: User, tasks: Sequence[Task]) -> NowModeState:
    by_slot: Dict[int, Task] = {task.now_slot: task for task in tasks if task.now_slot in SLOT_NUMBERS}
    slots = [SlotState(slot=number, task=by_slot.get(number)) for number in SLOT_NUMBERS]
    occupied = [slot for slot in slots if slot.task is not None]
    all_completed = bool(occupied) and all(slot.task.status == "completed" for slot in occupied)
    return NowModeState(
        enabled=bool(user.now_mode_enabled),
        strict_limit=bool(user.now_mode_strict_limit),
        slots=slots,
        occupied_count=len(occupied),
        all_completed=all_completed,
    )


def get_state(db: Session, user: User) -> NowModeState:
    tasks = (
        db.query(Task)
        .filter(Task.user_id == user.id, Task.now_slot.isnot(None))
        .order_by(Task.now_slot.asc())
        .all()
    )
    return build_state(user, tasks)


def update_preferences(
    db: Session,
    user: User,
    *,
    enabled: Optional[bool] = None,
    strict_limit: Optional[bool] = None,
    request_id: Optional[str] = None,
) -> User:
    if enabled is None and strict_limit is None:
        raise NowModeError("No valid preferences to update")

    changes: Dict[str, bool] = {}
    if enabled is not None:
        user.now_mode_enabled = enabled
        changes["now_mode_enabled"] = enabled
    if strict_limit is not None:
        user.now_mode_strict_limit = strict_limit
        changes["now_mode_strict_limit"] = strict_limit

    record_event(
        db,
        user_id=user.id,
        event_type="now_mode_preferences_updated",
        payload=changes,
        request_id=request_id,
    )
    return user


def _owned_task(db: Session, user_id: UUID, task_id: UUID) -> Task:
    task = db.get(Task, task_id)
    if not task or task.user_id != user_id:
        raise NotFoundError("Task not found")
    return task


def pin_task(
    db: Session,
    user: User,
    task_id: UUID,
    *,
    slot: Optional[int] = None,
    override_time_warning: bool = False,
    request_id: Optional[str] = None,
) -> PinResult:
    if slot is not None and not is_valid_slot(slot):
        raise NowModeError("Slot must be 1, 2, or 3")

    task = _owned_task(db, user.id, task_id)
    current = pinned_tasks(db, user.id)
    validation = validate_pin(task, len(current), bool(user.now_mode_strict_limit))

    if not validation.can_pin:
        raise NowModeError(validation.error or validation.warning or "Task cannot be pinned")

    if validation.warning and not override_time_warning:
        raise NowModeError(
            "Time estimate exceeds limit",
            extra={"warning": validation.warning, "requires_override": True},
        )

    occupied = occupied_slots(db, user.id)
    if slot is not None:
        if slot in occupied:
            raise NowModeError(f"Slot {slot} is already occupied")
        target = slot
    else:
        free = [number for number in SLOT_NUMBERS if number not in occupied]
        if not free:
            raise NowModeError("All slots are occupied")
        target = free[0]

    task.now_slot = target
    record_event(
        db,
        user_id=user.id,
        event_type="task_pinned",
        payload={
            "task_id": str(task.id),
            "slot": target,
            "time_override": bool(override_time_warning and validation.warning),
        },
        undo_available=True,
        request_id=request_id,
    )
    return PinResult(task=task, slot=target, warning=validation.warning)


def unpin_task(db: Session, user: User, task_id: UUID, *, request_id: Optional[str] = None) -> Task:
    task = _owned_task(db, user.id, task_id)
    if task.now_slot is None:
        raise NowModeError("Task is not in Now Mode")

    previous_slot = task.now_slot
    task.now_slot = None
    record_event(
        db,
        user_id=user.id,
        event_type="task_unpinned",
        payload={"task_id": str(task.id), "slot": previous_slot},
        undo_available=True,
        request_id=request_id,
    )
    return task


def swap_tasks(
    db: Session,
    user: User,
    current_task_id: UUID,
    new_task_id: UUID,
    *,
    request_id: Optional[str] = None,
) -> PinResult:
    """Replace a pinned task with another one in the same slot."""
    if current_task_id == new_task_id:
        raise NowModeError("Cannot swap a task with itself")

    current = _owned_task(db, user.id, current_task_id)
    if current.now_slot is None:
        raise NowModeError("Current task is not in Now Mode")
    replacement = _owned_task(db, user.id, new_task_id)

    validation = validate_pin(replacement, 0, bool(user.now_mode_strict_limit))
    if not validation.can_pin and validation.error != "Task is already in Now Mode":
        raise NowModeError(validation.error or "Task cannot be pinned")
    if replacement.now_slot is not None:
        raise NowModeError("Replacement task is already in Now Mode")

    slot = current.now_slot
    current.now_slot = None
    # Unique (user_id, now_slot): release the slot before reassigning it.
    db.flush()
    replacement.now_slot = slot

    record_event(
        db,
        user_id=user.id,
        event_type="tasks_swapped",
        payload={
            "unpinned_task_id": str(current.id),
            "pinned_task_id": str(replacement.id),
            "slot": slot,
        },
        undo_available=True,
        request_id=request_id,
    )
    return PinResult(task=replacement, slot=slot, warning=validation.warning)


def _due_category(due_date: Optional[str], today: date) -> Optional[str]:
    if not due_date:
        return None
    if due_date in DUE_SCORES:
        return due_date
    try:
        due = datetime.strptime(due_date[:10], "%Y-%m-%d").date()
    except ValueError:
        return None
    if due <= today:
        return "today"
    if due == today + timedelta(days=1):
        return "tomorrow"
    if due <= today + timedelta(days=7):
        return "this_week"
    return "no_rush"


def score_task(task: Task, today: Optional[date] = None) -> int:
    """Rank a task for pinning; -1 means it should not be offered."""
    if task.now_slot is not None:
        return -1
    if task.outcome_id is None and task.commitment_id is None:
        return -1
    if task.status == "completed":
        return -1

    today = today or date.today()
    category = _due_category(task.due_date, today)
    score = DUE_SCORES[category] if category else NO_DUE_SCORE

    minutes = task.estimated_minutes
    if minutes:
        if minutes <= 15:
            score += 25
        elif minutes <= 30:
            score += 20
        elif minutes <= 60:
            score += 15
        elif minutes <= 90:
            score += 10
        else:
            score += 5
    else:
        score += 10

    if task.status == "active":
        score += 10
    return score


def rank_tasks(tasks: Iterable[Task], *, limit: int, today: Optional[date] = None) -> List[ScoredTask]:
    scored = [ScoredTask(task=task, score=score_task(task, today)) for task in tasks]
    eligible = [item for item in scored if item.score >= 0]
    eligible.sort(key=lambda item: item.score, reverse=True)
    return eligible[:limit]


def recommended_tasks(
    db: Session,
    user_id: UUID,
    *,
    limit: int = 10,
    exclude: Sequence[UUID] = (),
    today: Optional[date] = None,
) -> List[ScoredTask]:
    limit = max(1, min(limit, MAX_RECOMMENDED))
    query = db.query(Task).filter(
        Task.user_id == user_id,
        Task.now_slot.is_(None),
        Task.status.in_(PINNABLE_STATUSES),
    )
    if exclude:
        query = query.filter(Task.id.notin_(list(exclude)))
    candidates = query.order_by(Task.created_at.desc()).limit(RECOMMENDATION_POOL).all()
    return rank_tasks(candidates, limit=limit, today=today)
