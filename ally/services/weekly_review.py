"""Weekly reviews: look back at last week's tasks, moods and balance, then write it up."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import openai
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ally.core.config import settings
from ally.db.models.balance import BalanceScore
from ally.db.models.daily_checkin import DailyCheckin
from ally.db.models.mood import MoodEntry
from ally.db.models.task import Task
from ally.db.models.user import User
from ally.db.models.weekly_review import WeeklyReview
from ally.db.types import ensure_utc
from ally.observability.tracing import trace
from ally.services.activity import record_event
from ally.services.balance import list_priorities
from ally.services.context_engine import resolve_zone
from ally.services.errors import NotFoundError, ReviewError

logger = logging.getLogger(__name__)

GENERATION_WEEKDAYS = (0, 1, 2)
GENERATION_DAY_REASON = "Weekly reviews can be generated on Monday-Wednesday"
MIN_TASKS_FOR_PROMPT = 5
MIN_ACCOUNT_AGE_DAYS = 7
NEGLECT_RANK_CUTOFF = 3
NEGLECT_MIN_COMPLETED = 2
TREND_DELTA = 3
DEFAULT_HISTORY_LIMIT = 10
MAX_HISTORY_LIMIT = 50
MAX_ITEMS = 5
MAX_ITEM_CHARS = 300


@dataclass
class CategoryActivity:
    name: str
    created: int = 0
    completed: int = 0


@dataclass
class WeekStats:
    created: int = 0
    completed: int = 0
    parked: int = 0
    completion_rate: float = 0.0
    by_category: Dict[str, CategoryActivity] = field(default_factory=dict)
    top_category: Optional[str] = None
    neglected_categories: List[str] = field(default_factory=list)
    mood_average: Optional[float] = None
    check_in_days: int = 0


@dataclass
class ReviewContent:
    summary_markdown: str
    wins: List[str]
    gaps: List[str]
    patterns: List[str]
    suggested_focus: List[str]
    source: str  # llm | fallback


@dataclass
class ReviewStatus:
    review: Optional[WeeklyReview]
    week_start: date
    can_generate: bool
    reason: str
    can_show_prompt: bool


def week_start_for(day: date) -> date:
    return day - timedelta(days=day.weekday())


def last_week_range(today: date) -> Tuple[date, date]:
    start = week_start_for(today) - timedelta(days=7)
    return start, start + timedelta(days=6)


def can_generate(today: date) -> Tuple[bool, str]:
    if today.weekday() in GENERATION_WEEKDAYS:
        return True, ""
    return False, GENERATION_DAY_REASON


def _local_date(moment: Optional[datetime], zone: tzinfo) -> Optional[date]:
    if moment is None:
        return None
    return ensure_utc(moment).astimezone(zone).date()


def _in_week(moment: Optional[datetime], start: date, end: date, zone: tzinfo) -> bool:
    day = _local_date(moment, zone)
    return day is not None and start <= day <= end


def compute_week_stats(
    tasks: Sequence[Any],
    start: date,
    end: date,
    priorities: Sequence[Any] = (),
    moods: Sequence[Any] = (),
    check_in_dates: Sequence[date] = (),
    zone: tzinfo = timezone.utc,
) -> WeekStats:
    stats = WeekStats()
    for task in tasks:
        created = _in_week(task.created_at, start, end, zone)
        completed = task.status == "completed" and _in_week(task.completed_at, start, end, zone)
        if created:
            stats.created += 1
        if completed:
            stats.completed += 1
        if task.status == "parked" and _in_week(task.updated_at, start, end, zone):
            stats.parked += 1

        category = (task.category or "").strip()
        if not category:
            continue
        key = category.lower()
        activity = stats.by_category.setdefault(key, CategoryActivity(name=category))
        activity.created += int(created)
        activity.completed += int(completed)

    stats.completion_rate = round(stats.completed / stats.created, 2) if stats.created else 0.0

    best = 0
    for activity in stats.by_category.values():
        if activity.completed > best:
            best = activity.completed
            stats.top_category = activity.name

    for priority in priorities:
        if priority.rank > NEGLECT_RANK_CUTOFF:
            continue
        activity = stats.by_category.get(priority.domain.lower())
        if activity is None or activity.completed < NEGLECT_MIN_COMPLETED:
            stats.neglected_categories.append(priority.domain)

    week_moods = [entry.mood_score for entry in moods if _in_week(entry.created_at, start, end, zone)]
    if week_moods:
        stats.mood_average = round(sum(week_moods) / len(week_moods), 1)
    days = {_local_date(entry.created_at, zone) for entry in moods if _in_week(entry.created_at, start, end, zone)}
    days.update(day for day in check_in_dates if start <= day <= end)
    stats.check_in_days = len(days)
    return stats


def balance_trend(scores: Sequence[int]) -> Tuple[Optional[int], Optional[str]]:
    """Average score and improving/declining/stable, comparing the two halves of the week."""
    if not scores:
        return None, None
    average = int(round(sum(scores) / len(scores)))
    if len(scores) < 2:
        return average, "stable"
    midpoint = len(scores) // 2
    first, second = scores[:midpoint], scores[midpoint:]
    diff = sum(second) / len(second) - sum(first) / len(first)
    if diff > TREND_DELTA:
        return average, "improving"
    if diff < -TREND_DELTA:
        return average, "declining"
    return average, "stable"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def fallback_review(stats: WeekStats, week_start: date) -> ReviewContent:
    wins: List[str] = []
    gaps: List[str] = []
    patterns: List[str] = []
    focus: List[str] = []

    if stats.completed:
        wins.append(f"You completed {_plural(stats.completed, 'task')} this week!")
    if stats.parked:
        wins.append(f"You made {_plural(stats.parked, 'intentional decision')} to park tasks that weren't serving you.")
    if stats.check_in_days >= 3:
        wins.append(f"You checked in on {stats.check_in_days} different days.")
    if not wins:
        wins.append("You showed up this week. That counts.")

    if stats.neglected_categories:
        first = stats.neglected_categories[0]
        gaps.append(f"{first} could use some attention. Is that intentional?")
        focus.append(f"Complete 1-2 {first} tasks")
    if stats.top_category:
        patterns.append(f"You were most active in {stats.top_category} this week.")
    if stats.mood_average is not None:
        patterns.append(f"Your average mood was {stats.mood_average}/10.")
    focus.append("Pick your top priority task for Monday")

    sections = [f"## Week of {week_start.isoformat()}", "**Wins:**\n" + "\n".join(f"- {win}" for win in wins)]
    if gaps:
        sections.append("**Areas to explore:**\n" + "\n".join(f"- {gap}" for gap in gaps))
    if patterns:
        sections.append("**Patterns:**\n" + "\n".join(f"- {pattern}" for pattern in patterns))
    sections.append("Keep going! Every week is a fresh start.")

    return ReviewContent(
        summary_markdown="\n\n".join(sections),
        wins=wins,
        gaps=gaps,
        patterns=patterns,
        suggested_focus=focus,
        source="fallback",
    )


def build_review_prompt(
    start: date,
    end: date,
    stats: WeekStats,
    balance_avg: Optional[int],
    trend: Optional[str],
    priorities: Sequence[Any],
    is_first_review: bool,
) -> str:
    category_lines = "\n".join(
        f"- {activity.name}: {activity.created} created, {activity.completed} completed"
        for activity in sorted(stats.by_category.values(), key=lambda item: -item.completed)
    ) or "No categorized tasks this week"
    priority_lines = "\n".join(
        f"{priority.rank}. {priority.domain} (importance: {priority.importance_score}/10)" for priority in priorities
    ) or "No priorities set"
    balance_line = (
        f"Average {balance_avg}/100 this week, trend: {trend}" if balance_avg is not None else "Not available"
    )
    mood_line = "No mood check-ins"
    if stats.mood_average is not None:
        mood_line = f"{stats.mood_average}/10 across {stats.check_in_days} check-in days"
    neglected = ", ".join(stats.neglected_categories) or "None"
    first_note = (
        "\nThis is the user's FIRST weekly review. Add extra encouragement and welcome them to the habit of reflection.\n"
        if is_first_review
        else ""
    )

    return f"""You are an ADHD-friendly weekly review coach. Write a warm, encouraging weekly review from this data.

WEEK: {start.isoformat()} to {end.isoformat()}

TASK STATS:
- Created: {stats.created}
- Completed: {stats.completed} ({round(stats.completion_rate * 100)}% completion rate)
- Parked: {stats.parked} (intentional decisions, not failures)

ACTIVITY BY CATEGORY:
{category_lines}

PRIORITIES:
{priority_lines}

BALANCE SCORE: {balance_line}
MOOD: {mood_line}
NEGLECTED HIGH-PRIORITY CATEGORIES: {neglected}
{first_note}
Respond with a JSON object:
{{"summary_markdown": string (under 300 words, wins first), "wins": [2-5 strings], "gaps": [1-3 strings],
  "patterns": [1-3 strings], "suggested_focus": [2-4 specific strings]}}

Lead with wins. Frame gaps with curiosity, never guilt. Suggested focus must be specific ("Complete 2 Health tasks")."""


def _clean_items(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [str(item).strip()[:MAX_ITEM_CHARS] for item in value if isinstance(item, (str, int, float))]
    return [item for item in items if item][:MAX_ITEMS]


def request_review(
    prompt: str,
    *,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Optional[ReviewContent]:
    """Ask the model for a review; None when it is not configured or the reply is unusable."""
    if not settings.openai_api_key:
        return None

    with trace(
        "weekly_review.llm",
        metadata={"model": settings.openai_model, "prompt_length": len(prompt)},
        user_id=user_id,
        request_id=request_id,
    ):
        try:
            client = openai.OpenAI(api_key=settings.openai_api_key)
            completion = client.chat.completions.create(
                model=settings.openai_model,
                temperature=0.7,
                max_tokens=settings.review_max_tokens,
                response_format={"type": "json_object"},
                messages=[{"role": "user", "content": prompt}],
            )
            payload = json.loads(completion.choices[0].message.content or "")
        except Exception as exc:
            logger.warning("Weekly review completion failed: %s", exc)
            return None

    if not isinstance(payload, dict):
        return None
    summary = payload.get("summary_markdown")
    return ReviewContent(
        summary_markdown=summary.strip() if isinstance(summary, str) and summary.strip() else "Review generated.",
        wins=_clean_items(payload.get("wins")),
        gaps=_clean_items(payload.get("gaps")),
        patterns=_clean_items(payload.get("patterns")),
        suggested_focus=_clean_items(payload.get("suggested_focus")),
        source="llm",
    )


def _utc_bounds(start: date, end: date, zone: tzinfo) -> Tuple[datetime, datetime]:
    lower = datetime.combine(start, time.min, tzinfo=zone).astimezone(timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=zone).astimezone(timezone.utc)
    return lower, upper


def gather_week_stats(db: Session, user: User, start: date, end: date) -> WeekStats:
    zone = resolve_zone(user.timezone)
    lower, upper = _utc_bounds(start, end, zone)
    tasks = (
        db.query(Task)
        .filter(
            Task.user_id == user.id,
            Task.created_at < upper,
            or_(Task.created_at >= lower, Task.updated_at >= lower, Task.completed_at >= lower),
        )
        .all()
    )
    moods = (
        db.query(MoodEntry)
        .filter(MoodEntry.user_id == user.id, MoodEntry.created_at >= lower, MoodEntry.created_at < upper)
        .all()
    )
    check_in_dates = [
        row[0]
        for row in db.query(DailyCheckin.date)
        .filter(DailyCheckin.user_id == user.id, DailyCheckin.date >= start, DailyCheckin.date <= end)
        .all()
    ]
    return compute_week_stats(
        tasks,
        start,
        end,
        priorities=list_priorities(db, user.id),
        moods=moods,
        check_in_dates=check_in_dates,
        zone=zone,
    )


def get_review_for_week(db: Session, user_id: UUID, week_start: date) -> Optional[WeeklyReview]:
    return (
        db.query(WeeklyReview)
        .filter(WeeklyReview.user_id == user_id, WeeklyReview.week_start == week_start)
        .one_or_none()
    )


def get_owned_review(db: Session, user_id: UUID, review_id: UUID) -> WeeklyReview:
    review = db.query(WeeklyReview).filter(WeeklyReview.id == review_id, WeeklyReview.user_id == user_id).one_or_none()
    if review is None:
        raise NotFoundError("Review not found")
    return review


def review_status(db: Session, user: User, today: date, week: Optional[date] = None) -> ReviewStatus:
    """The review for ``week`` (default: last week) plus whether the UI should nudge the user."""
    week_start = week_start_for(week) if week else last_week_range(today)[0]
    review = get_review_for_week(db, user.id, week_start)
    allowed, reason = can_generate(today)

    task_count = db.query(Task).filter(Task.user_id == user.id).count()
    first_task = db.query(Task.created_at).filter(Task.user_id == user.id).order_by(Task.created_at.asc()).first()
    account_old_enough = False
    if first_task is not None:
        first_day = _local_date(first_task[0], resolve_zone(user.timezone))
        account_old_enough = (today - first_day).days >= MIN_ACCOUNT_AGE_DAYS

    return ReviewStatus(
        review=review,
        week_start=week_start,
        can_generate=allowed,
        reason=reason,
        can_show_prompt=task_count >= MIN_TASKS_FOR_PROMPT and account_old_enough and allowed,
    )


def generate_review(
    db: Session,
    user: User,
    today: date,
    *,
    request_id: Optional[str] = None,
) -> Tuple[WeeklyReview, bool, bool]:
    """Return ``(review, cached, is_first_review)`` for last week, writing it on first request."""
    allowed, _ = can_generate(today)
    if not allowed:
        raise ReviewError(
            "Weekly reviews are generated on Monday-Wednesday only",
            extra={"hint": "Come back on Monday for your weekly review!"},
        )

    start, end = last_week_range(today)
    existing = get_review_for_week(db, user.id, start)
    if existing is not None:
        return existing, True, False

    is_first = db.query(WeeklyReview).filter(WeeklyReview.user_id == user.id).count() == 0
    stats = gather_week_stats(db, user, start, end)
    scores = [
        row[0]
        for row in db.query(BalanceScore.score)
        .filter(
            BalanceScore.user_id == user.id,
            BalanceScore.computed_for_date >= start,
            BalanceScore.computed_for_date <= end,
        )
        .order_by(BalanceScore.computed_for_date.asc())
        .all()
    ]
    balance_avg, trend = balance_trend(scores)

    prompt = build_review_prompt(start, end, stats, balance_avg, trend, list_priorities(db, user.id), is_first)
    content = request_review(prompt, user_id=str(user.id), request_id=request_id) or fallback_review(stats, start)

    review = WeeklyReview(
        user_id=user.id,
        week_start=start,
        week_end=end,
        summary_markdown=content.summary_markdown,
        wins=content.wins,
        gaps=content.gaps,
        patterns=content.patterns,
        suggested_focus=content.suggested_focus,
        tasks_completed=stats.completed,
        tasks_created=stats.created,
        tasks_parked=stats.parked,
        completion_rate=stats.completion_rate,
        mood_average=stats.mood_average,
        check_in_days=stats.check_in_days,
        balance_score_avg=balance_avg,
        balance_score_trend=trend,
        top_category=stats.top_category,
        neglected_categories=stats.neglected_categories,
        source=content.source,
    )
    db.add(review)
    try:
        db.flush()
    except IntegrityError:
        # Another request wrote this week's review first.
        db.rollback()
        existing = get_review_for_week(db, user.id, start)
        if existing is None:
            raise
        return existing, True, False

    record_event(
        db,
        user_id=user.id,
        event_type="weekly_review_generated",
        payload={"review_id": str(review.id), "week_start": start.isoformat(), "source": content.source},
        request_id=request_id,
    )
    return review, False, is_first


def list_reviews(
    db: Session,
    user_id: UUID,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
    offset: int = 0,
) -> Tuple[List[WeeklyReview], int]:
    query = db.query(WeeklyReview).filter(WeeklyReview.user_id == user_id)
    total = query.count()
    reviews = query.order_by(WeeklyReview.week_start.desc()).offset(offset).limit(limit).all()
    return reviews, total


def update_review(review: WeeklyReview, changes: Dict[str, Any], now: Optional[datetime] = None) -> WeeklyReview:
    if not changes:
        raise ReviewError("No updates provided")
    if "user_reflection" in changes:
        reflection = changes["user_reflection"]
        if isinstance(reflection, str):
            reflection = reflection.strip() or None
        review.user_reflection = reflection
    if "is_read" in changes:
        is_read = changes["is_read"]
        if is_read is None:
            raise ReviewError("is_read must be true or false")
        review.is_read = is_read
        if is_read:
            review.read_at = now or datetime.now(timezone.utc)
    return review
