"""Daily wellbeing check-ins and their trends."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from ally.db.models.daily_checkin import DailyCheckin
from ally.db.models.inbox_item import InboxItem
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.services.activity import record_event
from ally.services.adaptive_engine import (
    CorrelationInsight,
    correlation_insights,
    sparkline_trend,
)
from ally.services.context_engine import resolve_zone

logger = logging.getLogger(__name__)

METRICS = ("overwhelm", "anxiety", "energy", "clarity")
RANGE_DAYS = {"week": 7, "month": 30, "quarter": 90}
MAX_NOTE_CHARS = 500
HIGH_SCALE = 4
LOW_SCALE = 2


@dataclass
class UpsertResult:
    checkin: DailyCheckin
    is_new: bool


@dataclass
class MetricSummary:
    average: float
    min: int
    max: int
    trend: str


@dataclass
class Correlations:
    high_overwhelm_avg_untriaged: Optional[float]
    low_overwhelm_avg_untriaged: Optional[float]
    high_energy_tasks_completed: Optional[float]
    low_energy_tasks_completed: Optional[float]
    total_checkins: int


@dataclass
class CheckinTrend:
    range: str
    days_in_range: int
    points: List[DailyCheckin]
    summary: Optional[Dict[str, MetricSummary]]
    correlations: Optional[Correlations]
    insights: List[CorrelationInsight]


def local_today(user: User, now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return ensure_utc(now).astimezone(resolve_zone(user.timezone)).date()


def upsert_checkin(
    db: Session,
    user: User,
    *,
    overwhelm: int,
    anxiety: int,
    energy: int,
    clarity: int,
    note: Optional[str] = None,
    checkin_date: Optional[date] = None,
    request_id: Optional[str] = None,
) -> UpsertResult:
    """Create or replace the user's check-in for ``checkin_date`` (default: local today)."""
    target = checkin_date or local_today(user)
    clean_note = note.strip()[:MAX_NOTE_CHARS] if note else None

    existing = (
        db.query(DailyCheckin)
        .filter(DailyCheckin.user_id == user.id, DailyCheckin.date == target)
        .one_or_none()
    )
    is_new = existing is None
    checkin = existing or DailyCheckin(user_id=user.id, date=target)
    checkin.overwhelm = overwhelm
    checkin.anxiety = anxiety
    checkin.energy = energy
    checkin.clarity = clarity
    checkin.note = clean_note or None
    if is_new:
        db.add(checkin)
    db.flush()

    record_event(
        db,
        user_id=user.id,
        event_type="daily_checkin_created" if is_new else "daily_checkin_updated",
        payload={
            "date": target.isoformat(),
            "overwhelm": overwhelm,
            "anxiety": anxiety,
            "energy": energy,
            "clarity": clarity,
        },
        request_id=request_id,
    )
    return UpsertResult(checkin=checkin, is_new=is_new)


def latest_checkin(db: Session, user_id: UUID) -> Optional[DailyCheckin]:
    return (
        db.query(DailyCheckin)
        .filter(DailyCheckin.user_id == user_id)
        .order_by(DailyCheckin.date.desc())
        .first()
    )


def checkins_since(db: Session, user_id: UUID, start: date) -> List[DailyCheckin]:
    return (
        db.query(DailyCheckin)
        .filter(DailyCheckin.user_id == user_id, DailyCheckin.date >= start)
        .order_by(DailyCheckin.date.asc())
        .all()
    )


def summarize_metrics(points: Sequence[DailyCheckin]) -> Optional[Dict[str, MetricSummary]]:
    if not points:
        return None
    summary: Dict[str, MetricSummary] = {}
    for metric in METRICS:
        values = [getattr(point, metric) for point in points]
        summary[metric] = MetricSummary(
            average=round(sum(values) / len(values), 1),
            min=min(values),
            max=max(values),
            trend=sparkline_trend(values),
        )
    return summary


def _average(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _day_end(day: date, zone: tzinfo = timezone.utc) -> datetime:
    return datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)


def untriaged_on_day(
    captures: Sequence[Tuple[datetime, Optional[datetime]]],
    day: date,
    zone: tzinfo = timezone.utc,
) -> int:
    """Captures made on local ``day`` that were still pending when that day ended."""
    end = _day_end(day, zone)
    count = 0
    for created_at, triaged_at in captures:
        if ensure_utc(created_at).astimezone(zone).date() != day:
            continue
        if triaged_at is None or ensure_utc(triaged_at) >= end:
            count += 1
    return count


def compute_correlations(
    points: Sequence[DailyCheckin],
    captures: Sequence[Tuple[datetime, Optional[datetime]]],
    completions: Sequence[datetime],
    zone: tzinfo = timezone.utc,
) -> Correlations:
    completed_per_day: Dict[date, int] = {}
    for moment in completions:
        day = ensure_utc(moment).astimezone(zone).date()
        completed_per_day[day] = completed_per_day.get(day, 0) + 1

    high_overwhelm: List[int] = []
    low_overwhelm: List[int] = []
    high_energy: List[int] = []
    low_energy: List[int] = []
    for point in points:
        untriaged = untriaged_on_day(captures, point.date, zone)
        completed = completed_per_day.get(point.date, 0)
        if point.overwhelm >= HIGH_SCALE:
            high_overwhelm.append(untriaged)
        elif point.overwhelm <= LOW_SCALE:
            low_overwhelm.append(untriaged)
        if point.energy >= HIGH_SCALE:
            high_energy.append(completed)
        elif point.energy <= LOW_SCALE:
            low_energy.append(completed)

    return Correlations(
        high_overwhelm_avg_untriaged=_average(high_overwhelm),
        low_overwhelm_avg_untriaged=_average(low_overwhelm),
        high_energy_tasks_completed=_average(high_energy),
        low_energy_tasks_completed=_average(low_energy),
        total_checkins=len(points),
    )


def build_trend(
    db: Session,
    user: User,
    range_name: str = "week",
    *,
    include_correlations: bool = True,
    today: Optional[date] = None,
) -> CheckinTrend:
    if range_name not in RANGE_DAYS:
        range_name = "week"
    days = RANGE_DAYS[range_name]
    today = today or local_today(user)
    start = today - timedelta(days=days)
    points = checkins_since(db, user.id, start)

    correlations = None
    if include_correlations and len(points) >= 5:
        zone = resolve_zone(user.timezone)
        window_start = datetime.combine(start, time.min, tzinfo=zone).astimezone(timezone.utc)
        captures = [
            (row.created_at, row.triaged_at)
            for row in db.query(InboxItem.created_at, InboxItem.triaged_at)
            .filter(InboxItem.user_id == user.id, InboxItem.created_at >= window_start)
            .all()
        ]
        completions = [
            row.completed_at
            for row in db.query(Task.completed_at)
            .filter(Task.user_id == user.id, Task.completed_at.isnot(None), Task.completed_at >= window_start)
            .all()
        ]
        correlations = compute_correlations(points, captures, completions, zone)

    if correlations is not None:
        insights = correlation_insights(
            high_overwhelm_avg_untriaged=correlations.high_overwhelm_avg_untriaged,
            low_overwhelm_avg_untriaged=correlations.low_overwhelm_avg_untriaged,
            high_energy_tasks_completed=correlations.high_energy_tasks_completed,
            low_energy_tasks_completed=correlations.low_energy_tasks_completed,
            total_checkins=correlations.total_checkins,
        )
    else:
        insights = correlation_insights(
            high_overwhelm_avg_untriaged=None,
            low_overwhelm_avg_untriaged=None,
            high_energy_tasks_completed=None,
            low_energy_tasks_completed=None,
            total_checkins=len(points),
        )

    return CheckinTrend(
        range=range_name,
        days_in_range=days,
        points=points,
        summary=summarize_metrics(points),
        correlations=correlations,
        insights=insights,
    )
