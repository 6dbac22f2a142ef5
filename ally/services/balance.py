"""Life balance scoring across the user's priority domains."""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from ally.db.models.balance import BalanceScore, UserPriority
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.services.activity import record_event
from ally.services.context_engine import resolve_zone
from ally.services.errors import BalanceError

logger = logging.getLogger(__name__)

DEFAULT_DOMAINS = (
    "Work",
    "Health",
    "Home",
    "Finance",
    "Social",
    "Personal Growth",
    "Admin",
    "Family",
)
MAX_PRIORITIES = 8
STATS_WINDOW_DAYS = 14
DEFAULT_TREND_DAYS = 30
NEGLECTED_WEIGHT = 0.15
TREND_DELTA = 3


@dataclass
class CategoryStats:
    category: str
    total: int
    completed: int
    completion_rate: float
    last_completed_days_ago: Optional[int]


@dataclass
class DomainScore:
    domain: str
    score: int
    weight: float
    task_count: int
    completion_rate: float


@dataclass
class BalanceResult:
    score: int
    breakdown: List[DomainScore]

    def breakdown_dicts(self) -> List[Dict[str, Any]]:
        return [asdict(item) for item in self.breakdown]


@dataclass
class TrendPoint:
    date: date
    score: int


@dataclass
class BalanceTrend:
    points: List[TrendPoint]
    direction: str
    average: int
    highest: int
    lowest: int
    weekly_averages: List[Dict[str, int]]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_category_stats(tasks: Sequence[Task], now: Optional[datetime] = None) -> Dict[str, CategoryStats]:
    """Per-category completion figures, keyed by lower-cased category name."""
    now = now or datetime.now(timezone.utc)
    totals: Dict[str, Dict[str, Any]] = {}
    for task in tasks:
        if not task.category:
            continue
        key = task.category.strip().lower()
        if not key:
            continue
        entry = totals.setdefault(key, {"name": task.category.strip(), "total": 0, "completed": 0, "last": None})
        entry["total"] += 1
        if task.status == "completed" and task.completed_at is not None:
            entry["completed"] += 1
            completed_at = ensure_utc(task.completed_at)
            if entry["last"] is None or completed_at > entry["last"]:
                entry["last"] = completed_at

    stats: Dict[str, CategoryStats] = {}
    for key, entry in totals.items():
        last = entry["last"]
        stats[key] = CategoryStats(
            category=entry["name"],
            total=entry["total"],
            completed=entry["completed"],
            completion_rate=entry["completed"] / entry["total"] if entry["total"] else 0.0,
            last_completed_days_ago=(now - last).days if last is not None else None,
        )
    return stats


def _recency_points(days_ago: Optional[int]) -> int:
    if days_ago is None:
        return 0
    if days_ago <= 3:
        return 10
    if days_ago <= 7:
        return 5
    return 0


def compute_balance_score(
    priorities: Sequence[UserPriority],
    stats: Dict[str, CategoryStats],
    previous_score: Optional[int] = None,
) -> BalanceResult:
    """Weighted 0-100 score; importance sets each domain's weight."""
    total_importance = sum(priority.importance_score for priority in priorities)
    breakdown: List[DomainScore] = []
    for priority in priorities:
        if total_importance > 0:
            weight = priority.importance_score / total_importance
        else:
            weight = 1 / len(priorities)

        domain_stats = stats.get(priority.domain.strip().lower())
        if domain_stats is None or domain_stats.total == 0:
            # Neglected heavy domains drag the score down hard.
            breakdown.append(
                DomainScore(
                    domain=priority.domain,
                    score=10 if weight > NEGLECTED_WEIGHT else 50,
                    weight=weight,
                    task_count=0,
                    completion_rate=0.0,
                )
            )
            continue

        completion = domain_stats.completion_rate * 70
        volume = min(domain_stats.total / 3, 1) * 20
        recency = _recency_points(domain_stats.last_completed_days_ago)
        breakdown.append(
            DomainScore(
                domain=priority.domain,
                score=_round_half_up(completion + volume + recency),
                weight=weight,
                task_count=domain_stats.total,
                completion_rate=domain_stats.completion_rate,
            )
        )

    overall = _round_half_up(sum(item.score * item.weight for item in breakdown))
    if sum(item.task_count for item in breakdown) == 0 and previous_score is not None:
        return BalanceResult(score=previous_score, breakdown=breakdown)
    return BalanceResult(score=min(100, max(0, overall)), breakdown=breakdown)


def list_priorities(db: Session, user_id: UUID) -> List[UserPriority]:
    return (
        db.query(UserPriority)
        .filter(UserPriority.user_id == user_id)
        .order_by(UserPriority.rank.asc())
        .all()
    )


def replace_priorities(
    db: Session,
    user_id: UUID,
    items: Sequence[Dict[str, Any]],
    *,
    request_id: Optional[str] = None,
) -> List[UserPriority]:
    """Swap the user's priorities for ``items`` ({domain, rank, importance_score})."""
    if not items:
        raise BalanceError("At least one priority is required")
    if len(items) > MAX_PRIORITIES:
        raise BalanceError(f"At most {MAX_PRIORITIES} priorities are allowed")

    seen = set()
    for item in items:
        key = item["domain"].strip().lower()
        if not key:
            raise BalanceError("Domain is required")
        if key in seen:
            raise BalanceError(f"Duplicate domain: {item['domain']}")
        seen.add(key)

    db.query(UserPriority).filter(UserPriority.user_id == user_id).delete(synchronize_session=False)
    db.flush()
    created = []
    for item in items:
        priority = UserPriority(
            user_id=user_id,
            domain=item["domain"].strip(),
            rank=item["rank"],
            importance_score=item["importance_score"],
        )
        db.add(priority)
        created.append(priority)
    db.flush()

    record_event(
        db,
        user_id=user_id,
        event_type="priorities_updated",
        payload={"domains": [priority.domain for priority in created]},
        request_id=request_id,
    )
    return sorted(created, key=lambda priority: priority.rank)


def latest_score(db: Session, user_id: UUID) -> Optional[BalanceScore]:
    return (
        db.query(BalanceScore)
        .filter(BalanceScore.user_id == user_id)
        .order_by(BalanceScore.computed_for_date.desc())
        .first()
    )


def recent_tasks(db: Session, user_id: UUID, now: datetime, days: int = STATS_WINDOW_DAYS) -> List[Task]:
    cutoff = now - timedelta(days=days)
    return (
        db.query(Task)
        .filter(Task.user_id == user_id, Task.created_at >= cutoff)
        .order_by(Task.created_at.asc())
        .all()
    )


def compute_and_save(
    db: Session,
    user_id: UUID,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
    request_id: Optional[str] = None,
) -> BalanceScore:
    """Score the last two weeks of tasks and upsert the row for the user's local today."""
    now = now or datetime.now(timezone.utc)
    priorities = list_priorities(db, user_id)
    if not priorities:
        raise BalanceError(
            "No priorities set",
            extra={"hint": "Please set your life priorities first to see your balance score."},
        )

    stats = compute_category_stats(recent_tasks(db, user_id, now), now)
    previous = latest_score(db, user_id)
    result = compute_balance_score(priorities, stats, previous.score if previous else None)

    if today is None:
        user = db.get(User, user_id)
        today = ensure_utc(now).astimezone(resolve_zone(user.timezone if user else None)).date()
    row = (
        db.query(BalanceScore)
        .filter(BalanceScore.user_id == user_id, BalanceScore.computed_for_date == today)
        .one_or_none()
    )
    if row is None:
        row = BalanceScore(user_id=user_id, computed_for_date=today)
        db.add(row)
    row.score = result.score
    row.breakdown = result.breakdown_dicts()
    db.flush()

    record_event(
        db,
        user_id=user_id,
        event_type="balance_computed",
        payload={"score": result.score, "date": today.isoformat()},
        request_id=request_id,
    )
    return row


def trend_direction(scores: Sequence[int]) -> str:
    if len(scores) < 2:
        return "flat"

    recent = scores[-7:]
    previous = scores[-14:-7]
    if not previous:
        midpoint = len(scores) // 2
        first, second = scores[:midpoint], scores[midpoint:]
        if not first or not second:
            return "flat"
        diff = sum(second) / len(second) - sum(first) / len(first)
    else:
        diff = sum(recent) / len(recent) - sum(previous) / len(previous)

    if diff > TREND_DELTA:
        return "up"
    if diff < -TREND_DELTA:
        return "down"
    return "flat"


def weekly_averages(scores: Sequence[int], weeks: int = 4) -> List[Dict[str, int]]:
    """Averages of trailing 7-point windows, oldest first; ``week`` 1 is the most recent."""
    result: List[Dict[str, int]] = []
    for week in range(weeks):
        end = len(scores) - 7 * week
        start = max(0, len(scores) - 7 * (week + 1))
        window = scores[start:end] if end > 0 else []
        if window:
            result.insert(0, {"week": week + 1, "average": _round_half_up(sum(window) / len(window))})
    return result


def summarize_trend(points: Sequence[TrendPoint]) -> BalanceTrend:
    scores = [point.score for point in points]
    if not scores:
        return BalanceTrend(points=[], direction="flat", average=0, highest=0, lowest=0, weekly_averages=[])
    return BalanceTrend(
        points=list(points),
        direction=trend_direction(scores),
        average=_round_half_up(sum(scores) / len(scores)),
        highest=max(scores),
        lowest=min(scores),
        weekly_averages=weekly_averages(scores),
    )


def load_trend(db: Session, user_id: UUID, days: int = DEFAULT_TREND_DAYS, today: Optional[date] = None) -> BalanceTrend:
    today = today or datetime.now(timezone.utc).date()
    cutoff = today - timedelta(days=days)
    rows = (
        db.query(BalanceScore)
        .filter(BalanceScore.user_id == user_id, BalanceScore.computed_for_date >= cutoff)
        .order_by(BalanceScore.computed_for_date.asc())
        .all()
    )
    return summarize_trend([TrendPoint(date=row.computed_for_date, score=row.score) for row in rows])
