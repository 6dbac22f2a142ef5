"""Weekly plans: pick up to three outcomes, schedule tasks, check capacity, commit."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ally.db.models.goal import Outcome
from ally.db.models.task import Task
from ally.db.models.weekly_plan import WeeklyPlan, WeeklyPlanOutcome, WeeklyPlanTask
from ally.services.activity import record_event
from ally.services.errors import NotFoundError, PlanningError

logger = logging.getLogger(__name__)

MAX_WEEKLY_OUTCOMES = 3
DEFAULT_CAPACITY_MINUTES = 480
DEFAULT_TASK_MINUTES = 30
OVERCOMMITMENT_THRESHOLD = 1.2
PLAN_STATUSES = ("draft", "committed", "completed", "abandoned")
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MAX_REFLECTION_CHARS = 2000
MAX_LIST_ITEMS = 10
MAX_LIST_ITEM_CHARS = 500
LIST_LIMIT = 20


@dataclass
class WeekInfo:
    week_number: int
    year: int
    week_start: date
    week_end: date


@dataclass
class CapacityWarning:
    type: str
    severity: str
    message: str
    details: str


@dataclass
class DayCapacity:
    day: int
    day_name: str
    total_minutes: int
    task_ids: List[UUID] = field(default_factory=list)


@dataclass
class CapacityAnalysis:
    total_planned_minutes: int
    available_minutes: int
    utilization_percent: int
    is_overcommitted: bool
    day_breakdown: List[DayCapacity]
    warnings: List[CapacityWarning]


@dataclass
class PlanDetail:
    plan: WeeklyPlan
    outcomes: List[tuple]  # (WeeklyPlanOutcome, Outcome)
    tasks: List[tuple]  # (WeeklyPlanTask, Task)
    capacity: CapacityAnalysis


@dataclass
class PlanCreation:
    plan: WeeklyPlan
    created: bool


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def iso_week_info(day: Optional[date] = None) -> WeekInfo:
    day = day or datetime.now(timezone.utc).date()
    if isinstance(day, datetime):
        day = day.date()
    iso_year, iso_week, iso_weekday = day.isocalendar()
    week_start = day - timedelta(days=iso_weekday - 1)
    return WeekInfo(
        week_number=iso_week,
        year=iso_year,
        week_start=week_start,
        week_end=week_start + timedelta(days=6),
    )


def week_info_for(year: int, week_number: int) -> WeekInfo:
    start = date.fromisocalendar(year, week_number, 1)
    return WeekInfo(week_number=week_number, year=year, week_start=start, week_end=start + timedelta(days=6))


def format_week_range(info: WeekInfo) -> str:
    def _fmt(value: date) -> str:
        return f"{value.strftime('%b')} {value.day}"

    return f"{_fmt(info.week_start)} - {_fmt(info.week_end)}"


def capacity_analysis(tasks: Sequence[Any], available_minutes: int) -> CapacityAnalysis:
    """``tasks`` need ``estimated_minutes``, ``scheduled_day`` and ``task_id``."""
    total = sum(task.estimated_minutes for task in tasks)
    utilization = _round_half_up(total / available_minutes * 100) if available_minutes > 0 else 0

    breakdown = []
    for index, name in enumerate(DAY_NAMES):
        day_tasks = [task for task in tasks if task.scheduled_day == index]
        breakdown.append(
            DayCapacity(
                day=index,
                day_name=name,
                total_minutes=sum(task.estimated_minutes for task in day_tasks),
                task_ids=[task.task_id for task in day_tasks],
            )
        )

    warnings: List[CapacityWarning] = []
    if total > available_minutes * OVERCOMMITMENT_THRESHOLD:
        warnings.append(
            CapacityWarning(
                type="overcommitted",
                severity="error",
                message="You are significantly overcommitted",
                details=(
                    f"Planned {_round_half_up(total / 60)}h but only "
                    f"{_round_half_up(available_minutes / 60)}h available"
                ),
            )
        )
    elif total > available_minutes:
        warnings.append(
            CapacityWarning(
                type="overcommitted",
                severity="warning",
                message="Slightly over capacity",
                details=f"Consider reducing by {_round_half_up((total - available_minutes) / 60)}h",
            )
        )

    used_days = [day for day in breakdown if day.total_minutes > 0]
    if used_days:
        average = total / len(used_days)
        busiest = max(breakdown, key=lambda day: day.total_minutes)
        if busiest.total_minutes > average * 2:
            warnings.append(
                CapacityWarning(
                    type="unbalanced",
                    severity="warning",
                    message=f"{busiest.day_name} is heavily loaded",
                    details="Consider spreading tasks more evenly",
                )
            )

    if 95 <= utilization <= 100:
        warnings.append(
            CapacityWarning(
                type="no_buffer",
                severity="warning",
                message="No buffer time",
                details="Consider leaving 10-20% buffer for unexpected tasks",
            )
        )

    return CapacityAnalysis(
        total_planned_minutes=total,
        available_minutes=available_minutes,
        utilization_percent=utilization,
        is_overcommitted=total > available_minutes,
        day_breakdown=breakdown,
        warnings=warnings,
    )


def plan_summary_markdown(
    plan: WeeklyPlan,
    outcomes: Sequence[tuple],
    tasks: Sequence[tuple],
    info: WeekInfo,
) -> str:
    """Render the committed plan as markdown; rows are (link, Outcome) and (link, Task) pairs."""
    links = [link for link, _ in tasks]
    analysis = capacity_analysis(links, plan.available_capacity_minutes)
    titles = {link.task_id: (task.title if task is not None else "Unknown") for link, task in tasks}

    lines = [f"# Week {info.week_number} Plan", "", f"**{format_week_range(info)}**", "", "## Focus Outcomes", ""]
    if not outcomes:
        lines += ["_No outcomes selected_", ""]
    else:
        ordered = sorted(outcomes, key=lambda row: row[0].priority_rank)
        for position, (link, outcome) in enumerate(ordered, start=1):
            line = f"{position}. **{outcome.title if outcome is not None else 'Unknown'}**"
            if link.notes:
                line += f" - {link.notes}"
            lines.append(line)
        lines.append("")

    lines += [
        "## Capacity",
        "",
        f"- Available: {_round_half_up(analysis.available_minutes / 60)}h",
        f"- Planned: {_round_half_up(analysis.total_planned_minutes / 60)}h ({analysis.utilization_percent}%)",
        f"- Tasks: {len(tasks)}",
        "",
        "## Daily Plan",
        "",
    ]

    for day in analysis.day_breakdown:
        if day.total_minutes <= 0:
            continue
        lines.append(f"### {day.day_name}")
        for link in links:
            if link.scheduled_day == day.day:
                lines.append(f"- {titles[link.task_id]} ({link.estimated_minutes}min)")
        lines.append("")

    flexible = [link for link in links if link.scheduled_day is None]
    if flexible:
        lines.append("### Flexible (Unscheduled)")
        for link in flexible:
            lines.append(f"- {titles[link.task_id]} ({link.estimated_minutes}min)")
        lines.append("")

    if analysis.warnings:
        lines += ["## Warnings", ""]
        for warning in analysis.warnings:
            marker = "[!]" if warning.severity == "error" else "[~]"
            lines.append(f"- {marker} {warning.message}")

    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def get_owned_plan(db: Session, user_id: UUID, plan_id: UUID) -> WeeklyPlan:
    plan = db.get(WeeklyPlan, plan_id)
    if not plan or plan.user_id != user_id:
        raise NotFoundError("Plan not found")
    return plan


def create_plan(
    db: Session,
    user_id: UUID,
    *,
    week_number: Optional[int] = None,
    year: Optional[int] = None,
    available_capacity_minutes: Optional[int] = None,
    today: Optional[date] = None,
    request_id: Optional[str] = None,
) -> PlanCreation:
    """Return the open draft for the week, or start a new version of the plan."""
    current = iso_week_info(today)
    week_number = week_number or current.week_number
    year = year or current.year
    try:
        week_info_for(year, week_number)
    except ValueError as exc:
        raise PlanningError("Invalid week_number for year") from exc

    draft = (
        db.query(WeeklyPlan)
        .filter(
            WeeklyPlan.user_id == user_id,
            WeeklyPlan.year == year,
            WeeklyPlan.week_number == week_number,
            WeeklyPlan.status == "draft",
        )
        .order_by(WeeklyPlan.version.desc())
        .first()
    )
    if draft is not None:
        return PlanCreation(plan=draft, created=False)

    latest_version = (
        db.query(func.max(WeeklyPlan.version))
        .filter(
            WeeklyPlan.user_id == user_id,
            WeeklyPlan.year == year,
            WeeklyPlan.week_number == week_number,
        )
        .scalar()
    )
    plan = WeeklyPlan(
        user_id=user_id,
        week_number=week_number,
        year=year,
        version=(latest_version or 0) + 1,
        status="draft",
        available_capacity_minutes=(
            available_capacity_minutes if available_capacity_minutes is not None else DEFAULT_CAPACITY_MINUTES
        ),
        planned_capacity_minutes=0,
        wins=[],
        learnings=[],
    )
    db.add(plan)
    db.flush()

    record_event(
        db,
        user_id=user_id,
        event_type="planning_started",
        payload={"weekly_plan_id": str(plan.id), "week_number": week_number, "year": year, "version": plan.version},
        request_id=request_id,
    )
    return PlanCreation(plan=plan, created=True)


def list_plans(
    db: Session,
    user_id: UUID,
    *,
    status: Optional[str] = None,
    year: Optional[int] = None,
    week_number: Optional[int] = None,
) -> List[WeeklyPlan]:
    query = db.query(WeeklyPlan).filter(WeeklyPlan.user_id == user_id)
    if status in PLAN_STATUSES:
        query = query.filter(WeeklyPlan.status == status)
    if year:
        query = query.filter(WeeklyPlan.year == year)
    if week_number:
        query = query.filter(WeeklyPlan.week_number == week_number)
    return (
        query.order_by(WeeklyPlan.year.desc(), WeeklyPlan.week_number.desc(), WeeklyPlan.version.desc())
        .limit(LIST_LIMIT)
        .all()
    )


def current_plan(db: Session, user_id: UUID, today: Optional[date] = None) -> Optional[WeeklyPlan]:
    info = iso_week_info(today)
    return (
        db.query(WeeklyPlan)
        .filter(
            WeeklyPlan.user_id == user_id,
            WeeklyPlan.year == info.year,
            WeeklyPlan.week_number == info.week_number,
        )
        .order_by(WeeklyPlan.version.desc())
        .first()
    )


def plan_outcomes(db: Session, plan: WeeklyPlan) -> List[tuple]:
    return (
        db.query(WeeklyPlanOutcome, Outcome)
        .outerjoin(Outcome, Outcome.id == WeeklyPlanOutcome.outcome_id)
        .filter(WeeklyPlanOutcome.weekly_plan_id == plan.id)
        .order_by(WeeklyPlanOutcome.priority_rank.asc())
        .all()
    )


def plan_tasks(db: Session, plan: WeeklyPlan) -> List[tuple]:
    return (
        db.query(WeeklyPlanTask, Task)
        .outerjoin(Task, Task.id == WeeklyPlanTask.task_id)
        .filter(WeeklyPlanTask.weekly_plan_id == plan.id)
        .order_by(WeeklyPlanTask.priority_rank.asc(), WeeklyPlanTask.created_at.asc())
        .all()
    )


def plan_detail(db: Session, plan: WeeklyPlan) -> PlanDetail:
    outcomes = plan_outcomes(db, plan)
    tasks = plan_tasks(db, plan)
    return PlanDetail(
        plan=plan,
        outcomes=outcomes,
        tasks=tasks,
        capacity=capacity_analysis([link for link, _ in tasks], plan.available_capacity_minutes),
    )


def _clean_list(values: Sequence[Any]) -> List[str]:
    return [str(value)[:MAX_LIST_ITEM_CHARS] for value in list(values)[:MAX_LIST_ITEMS]]


def update_plan(db: Session, plan: WeeklyPlan, changes: Dict[str, Any]) -> WeeklyPlan:
    applied = False
    if "previous_week_reflection" in changes:
        reflection = changes["previous_week_reflection"]
        plan.previous_week_reflection = reflection[:MAX_REFLECTION_CHARS] if reflection else None
        applied = True
    if changes.get("wins") is not None:
        plan.wins = _clean_list(changes["wins"])
        applied = True
    if changes.get("learnings") is not None:
        plan.learnings = _clean_list(changes["learnings"])
        applied = True
    if changes.get("available_capacity_minutes") is not None:
        minutes = changes["available_capacity_minutes"]
        if minutes < 0:
            raise PlanningError("available_capacity_minutes must be positive")
        plan.available_capacity_minutes = minutes
        applied = True
    if changes.get("status") is not None:
        if changes["status"] not in PLAN_STATUSES:
            raise PlanningError("Invalid status")
        plan.status = changes["status"]
        applied = True

    if not applied:
        raise PlanningError("No valid fields to update")
    return plan


def delete_plan(db: Session, plan: WeeklyPlan) -> None:
    if plan.status != "draft":
        raise PlanningError("Cannot delete committed or completed plans")
    db.query(WeeklyPlanOutcome).filter(WeeklyPlanOutcome.weekly_plan_id == plan.id).delete(synchronize_session=False)
    db.query(WeeklyPlanTask).filter(WeeklyPlanTask.weekly_plan_id == plan.id).delete(synchronize_session=False)
    db.delete(plan)


def _require_editable(plan: WeeklyPlan) -> None:
    if plan.status != "draft":
        raise PlanningError("Cannot modify committed plan")


def add_outcome(
    db: Session,
    plan: WeeklyPlan,
    outcome_id: UUID,
    *,
    priority_rank: Optional[int] = None,
    notes: Optional[str] = None,
) -> WeeklyPlanOutcome:
    _require_editable(plan)

    outcome = db.get(Outcome, outcome_id)
    if not outcome or outcome.user_id != plan.user_id:
        raise NotFoundError("Outcome not found")

    existing = db.query(WeeklyPlanOutcome).filter(WeeklyPlanOutcome.weekly_plan_id == plan.id).all()
    if len(existing) >= MAX_WEEKLY_OUTCOMES:
        raise PlanningError(f"Maximum {MAX_WEEKLY_OUTCOMES} outcomes allowed per plan")
    if any(link.outcome_id == outcome_id for link in existing):
        raise PlanningError("Outcome already added to this plan")

    link = WeeklyPlanOutcome(
        weekly_plan_id=plan.id,
        outcome_id=outcome_id,
        priority_rank=priority_rank if priority_rank is not None else len(existing) + 1,
        notes=notes.strip()[:MAX_LIST_ITEM_CHARS] if notes else None,
    )
    db.add(link)
    db.flush()
    return link


def _refresh_planned_minutes(db: Session, plan: WeeklyPlan) -> int:
    total = (
        db.query(func.coalesce(func.sum(WeeklyPlanTask.estimated_minutes), 0))
        .filter(WeeklyPlanTask.weekly_plan_id == plan.id)
        .scalar()
    )
    plan.planned_capacity_minutes = int(total or 0)
    return plan.planned_capacity_minutes


def add_task(
    db: Session,
    plan: WeeklyPlan,
    task_id: UUID,
    *,
    scheduled_day: Optional[int] = None,
    estimated_minutes: Optional[int] = None,
    priority_rank: Optional[int] = None,
) -> WeeklyPlanTask:
    _require_editable(plan)
    if scheduled_day is not None and not 0 <= scheduled_day <= 6:
        raise PlanningError("scheduled_day must be 0 (Monday) to 6 (Sunday)")

    task = db.get(Task, task_id)
    if not task or task.user_id != plan.user_id:
        raise NotFoundError("Task not found")

    duplicate = (
        db.query(WeeklyPlanTask)
        .filter(WeeklyPlanTask.weekly_plan_id == plan.id, WeeklyPlanTask.task_id == task_id)
        .first()
    )
    if duplicate is not None:
        raise PlanningError("Task already added to this plan")

    if estimated_minutes is None:
        estimated_minutes = task.estimated_minutes or DEFAULT_TASK_MINUTES
    link = WeeklyPlanTask(
        weekly_plan_id=plan.id,
        task_id=task_id,
        scheduled_day=scheduled_day,
        estimated_minutes=estimated_minutes,
        priority_rank=priority_rank or 0,
    )
    db.add(link)
    db.flush()
    _refresh_planned_minutes(db, plan)
    return link


def commit_plan(
    db: Session,
    plan: WeeklyPlan,
    *,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> PlanDetail:
    if plan.status != "draft":
        raise PlanningError("Only draft plans can be committed")

    detail = plan_detail(db, plan)
    if not detail.outcomes:
        raise PlanningError("Select at least one outcome before committing")
    if not detail.tasks:
        raise PlanningError("Add at least one task before committing")

    info = week_info_for(plan.year, plan.week_number)
    plan.status = "committed"
    plan.committed_at = now or datetime.now(timezone.utc)
    plan.planned_capacity_minutes = detail.capacity.total_planned_minutes
    plan.summary_markdown = plan_summary_markdown(plan, detail.outcomes, detail.tasks, info)

    record_event(
        db,
        user_id=plan.user_id,
        event_type="plan_committed",
        payload={
            "weekly_plan_id": str(plan.id),
            "outcomes": len(detail.outcomes),
            "tasks": len(detail.tasks),
            "utilization_percent": detail.capacity.utilization_percent,
            "overcommitted": detail.capacity.is_overcommitted,
        },
        request_id=request_id,
    )
    return detail
