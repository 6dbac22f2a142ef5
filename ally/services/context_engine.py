"""Context engine: turns recent mood history into coaching context and prompt sections."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ally.db.models.mood import BURNOUT_FIELDS, BurnoutLog, MoodEntry
from ally.db.models.user import User
from ally.db.types import ensure_utc
from ally.services.text_signals import RecurringTheme, extract_keywords, extract_recurring_themes, safe_snippet

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 30
RECENT_WINDOW = 7
LOW_MOOD_MAX = 4
HIGH_MOOD_MIN = 7
BASELINE_DELTA = 0.5
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class MoodPattern:
    type: str
    description: str
    severity: str
    days_affected: int


@dataclass
class TimePattern:
    best_time_of_day: Optional[str] = None
    worst_time_of_day: Optional[str] = None
    best_day_of_week: Optional[str] = None
    worst_day_of_week: Optional[str] = None


@dataclass
class Streak:
    type: str
    days: int


@dataclass
class BurnoutSnapshot:
    values: Dict[str, Optional[int]] = field(default_factory=lambda: {name: None for name in BURNOUT_FIELDS})
    battery_level: Optional[int] = None
    completeness: int = 0


@dataclass
class UserContext:
    total_check_ins: int = 0
    average_mood: float = 0.0
    recent_average_mood: float = 0.0
    last_check_in: Optional[MoodEntry] = None
    days_since_last_check_in: int = -1
    current_pattern: Optional[MoodPattern] = None
    time_patterns: TimePattern = field(default_factory=TimePattern)
    recurring_themes: List[RecurringTheme] = field(default_factory=list)
    compared_to_baseline: str = "same"
    baseline_difference: float = 0.0
    current_streak: Optional[Streak] = None
    preferred_coping_strategies: List[str] = field(default_factory=list)
    triggers_identified: List[str] = field(default_factory=list)
    burnout: BurnoutSnapshot = field(default_factory=BurnoutSnapshot)


@dataclass
class ContextualPrompt:
    system_context: str
    historical_insights: str
    current_situation: str
    suggested_approach: str
    approach_key: str


APPROACH_INSTRUCTIONS = {
    "standard": "Connect the current mood to their recent history. Look for correlations.",
    "onboarding": "Focus on a low-pressure welcome. Do not overwhelm with questions.",
    "gentle_support": (
        "Validate the difficulty of the streak. Do NOT suggest big tasks. "
        "Suggest one sensory reset (e.g., drink water, step outside)."
    ),
    "celebrate_maintain": "Help them bank this feeling. Ask them to name ONE driver they can repeat later.",
    "proactive_check": (
        "Mood is trending down. Gently acknowledge the pattern without being alarmist. "
        "Offer concrete, tiny support."
    ),
}


def resolve_zone(tz_name: Optional[str]) -> timezone | ZoneInfo:
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone %r; falling back to UTC", tz_name)
        return timezone.utc


def _local(moment: datetime, zone) -> datetime:
    return ensure_utc(moment).astimezone(zone)


def _count_leading(scores: Sequence[int], predicate) -> int:
    count = 0
    for score in scores:
        if not predicate(score):
            break
        count += 1
    return count


def _variance(scores: Sequence[float]) -> float:
    mean = sum(scores) / len(scores)
    return sum((score - mean) ** 2 for score in scores) / len(scores)


def analyze_mood_patterns(entries: Sequence[MoodEntry]) -> Optional[MoodPattern]:
    """Detect the dominant pattern in the latest scores (entries newest first)."""
    if len(entries) < 3:
        return None

    recent = [entry.mood_score for entry in entries[:RECENT_WINDOW]]
    recent_avg = sum(recent) / len(recent)

    low_streak = _count_leading(recent, lambda s: s <= LOW_MOOD_MAX)
    if low_streak >= 3:
        severity = "significant" if low_streak >= 5 else "moderate" if low_streak >= 4 else "mild"
        return MoodPattern(
            type="streak_low",
            description=f"{low_streak} consecutive days with mood at {LOW_MOOD_MAX} or below",
            severity=severity,
            days_affected=low_streak,
        )

    high_streak = _count_leading(recent, lambda s: s >= HIGH_MOOD_MIN)
    if high_streak >= 3:
        return MoodPattern(
            type="streak_high",
            description=f"{high_streak} consecutive days with mood at {HIGH_MOOD_MIN} or above",
            severity="mild",
            days_affected=high_streak,
        )

    s0, s1, s2 = recent[0], recent[1], recent[2]
    if s0 < s1 < s2 and s0 <= 5:
        return MoodPattern(
            type="declining",
            description="Mood has been declining over the past few days",
            severity="significant" if s0 <= 3 else "moderate",
            days_affected=3,
        )
    if s0 > s1 > s2:
        return MoodPattern(
            type="improving",
            description="Mood has been improving over the past few days",
            severity="mild",
            days_affected=3,
        )

    variance = _variance(recent)
    if variance > 4:
        return MoodPattern(
            type="volatile",
            description="Mood has been fluctuating significantly",
            severity="significant" if variance > 6 else "moderate",
            days_affected=len(recent),
        )
    if variance < 2:
        return MoodPattern(
            type="stable",
            description=f"Mood has been consistently around {_round_half_up(recent_avg)}",
            severity="mild",
            days_affected=len(recent),
        )
    return None


def _time_of_day(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def _best_and_worst(buckets: Dict[str, List[int]]) -> tuple[Optional[str], Optional[str]]:
    averages = [
        (name, sum(scores) / len(scores))
        for name, scores in buckets.items()
        if len(scores) >= 2
    ]
    if not averages:
        return None, None
    averages.sort(key=lambda item: item[1], reverse=True)
    return averages[0][0], averages[-1][0]


def analyze_time_patterns(entries: Sequence[MoodEntry], tz_name: Optional[str] = None) -> TimePattern:
    """Best/worst time of day and weekday, once there are at least a week of entries."""
    if len(entries) < 7:
        return TimePattern()

    zone = resolve_zone(tz_name)
    by_time: Dict[str, List[int]] = {"morning": [], "afternoon": [], "evening": [], "night": []}
    by_day: Dict[str, List[int]] = {day: [] for day in WEEKDAYS}
    for entry in entries:
        local = _local(entry.created_at, zone)
        by_time[_time_of_day(local.hour)].append(entry.mood_score)
        by_day[WEEKDAYS[local.weekday()]].append(entry.mood_score)

    best_time, worst_time = _best_and_worst(by_time)
    best_day, worst_day = _best_and_worst(by_day)
    return TimePattern(
        best_time_of_day=best_time,
        worst_time_of_day=worst_time,
        best_day_of_week=best_day,
        worst_day_of_week=worst_day,
    )


def calculate_streak(entries: Sequence[MoodEntry], tz_name: Optional[str] = None) -> Optional[Streak]:
    """Most significant current streak: low mood, then high mood, then check-in days."""
    if len(entries) < 2:
        return None

    zone = resolve_zone(tz_name)
    check_in_streak = 1
    for newer, older in zip(entries, entries[1:]):
        gap = (_local(newer.created_at, zone).date() - _local(older.created_at, zone).date()).days
        if gap == 1:
            check_in_streak += 1
        elif gap > 1:
            break

    scores = [entry.mood_score for entry in entries]
    low_streak = _count_leading(scores, lambda s: s <= LOW_MOOD_MAX)
    high_streak = _count_leading(scores, lambda s: s >= HIGH_MOOD_MIN)

    if low_streak >= 3:
        return Streak(type="low_mood", days=low_streak)
    if high_streak >= 3:
        return Streak(type="high_mood", days=high_streak)
    if check_in_streak >= 3:
        return Streak(type="checking_in", days=check_in_streak)
    return None


def aggregate_burnout_snapshot(logs: Sequence[BurnoutLog]) -> BurnoutSnapshot:
    """Latest non-null value per burnout field (logs newest first)."""
    snapshot = BurnoutSnapshot()
    if not logs:
        return snapshot

    for name in BURNOUT_FIELDS:
        for log in logs:
            value = getattr(log, name)
            if value is not None:
                snapshot.values[name] = value
                break

    for log in logs:
        if log.battery_level is not None:
            snapshot.battery_level = log.battery_level
            break

    filled = sum(1 for value in snapshot.values.values() if value is not None)
    snapshot.completeness = _round_half_up(filled / len(BURNOUT_FIELDS) * 100)
    return snapshot


def fetch_mood_history(db: Session, user_id: UUID, limit: int = HISTORY_LIMIT) -> List[MoodEntry]:
    return (
        db.query(MoodEntry)
        .filter(MoodEntry.user_id == user_id)
        .order_by(MoodEntry.created_at.desc())
        .limit(limit)
        .all()
    )


def fetch_recent_burnout_logs(db: Session, user_id: UUID, now: Optional[datetime] = None) -> List[BurnoutLog]:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=24)
    return (
        db.query(BurnoutLog)
        .filter(BurnoutLog.user_id == user_id, BurnoutLog.created_at >= cutoff)
        .order_by(BurnoutLog.created_at.desc())
        .all()
    )


def build_context_from_entries(
    entries: Sequence[MoodEntry],
    *,
    tz_name: Optional[str] = None,
    burnout_logs: Sequence[BurnoutLog] = (),
    now: Optional[datetime] = None,
) -> UserContext:
    """Pure assembly of the user context from history (newest first)."""
    burnout = aggregate_burnout_snapshot(burnout_logs)
    if not entries:
        return UserContext(burnout=burnout)

    now = now or datetime.now(timezone.utc)
    last = entries[0]
    all_scores = [entry.mood_score for entry in entries]
    recent_scores = all_scores[:RECENT_WINDOW]
    average = sum(all_scores) / len(all_scores)
    recent_average = sum(recent_scores) / len(recent_scores)
    difference = recent_average - average

    if difference > BASELINE_DELTA:
        compared = "better"
    elif difference < -BASELINE_DELTA:
        compared = "worse"
    else:
        compared = "same"

    low_notes = [entry.note for entry in entries if entry.mood_score <= LOW_MOOD_MAX and entry.note]
    high_notes = [entry.note for entry in entries if entry.mood_score >= HIGH_MOOD_MIN and entry.note]

    return UserContext(
        total_check_ins=len(entries),
        average_mood=round(average, 1),
        recent_average_mood=round(recent_average, 1),
        last_check_in=last,
        days_since_last_check_in=int((now - ensure_utc(last.created_at)).total_seconds() // 86400),
        current_pattern=analyze_mood_patterns(entries),
        time_patterns=analyze_time_patterns(entries, tz_name),
        recurring_themes=extract_recurring_themes(entries),
        compared_to_baseline=compared,
        baseline_difference=round(difference, 1),
        current_streak=calculate_streak(entries, tz_name),
        preferred_coping_strategies=extract_keywords(high_notes),
        triggers_identified=extract_keywords(low_notes),
        burnout=burnout,
    )


def build_user_context(db: Session, user: User, now: Optional[datetime] = None) -> UserContext:
    """Load the latest history for ``user`` and build their coaching context."""
    entries = fetch_mood_history(db, user.id)
    logs = fetch_recent_burnout_logs(db, user.id, now=now)
    return build_context_from_entries(entries, tz_name=user.timezone, burnout_logs=logs, now=now)


def format_time_ago(moment: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    hours = int((now - ensure_utc(moment)).total_seconds() // 3600)
    days = hours // 24
    if hours < 1:
        return "just now"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days ago"
    weeks = days // 7
    return f"{weeks} week{'s' if days >= 14 else ''} ago"


def _historical_insights(ctx: UserContext, now: Optional[datetime]) -> tuple[List[str], str]:
    insights: List[str] = []
    approach = "standard"

    if ctx.total_check_ins == 0:
        insights.append("This is the user's first check-in. Welcome them warmly.")
        return insights, "onboarding"

    streak = ctx.current_streak
    if streak:
        if streak.type == "low_mood" and streak.days >= 3:
            insights.append(f"IMPORTANT: User has marked low mood (<=4) for {streak.days} consecutive days.")
            approach = "gentle_support"
        elif streak.type == "high_mood":
            insights.append(f"User has been feeling good (>=7) for {streak.days} consecutive days.")
            approach = "celebrate_maintain"
        elif streak.type == "checking_in":
            insights.append(f"Consistency win: {streak.days}-day check-in streak.")

    pattern = ctx.current_pattern
    if pattern:
        if pattern.type == "streak_low":
            insights.append(f"Pattern detected: {pattern.description}. Approach with extra care.")
        elif pattern.type == "declining":
            insights.append(f"Trend alert: {pattern.description}. May need proactive support.")
            approach = "proactive_check"
        elif pattern.type == "improving":
            insights.append(f"Positive trend: {pattern.description}. Reinforce what's working.")
        elif pattern.type == "volatile":
            insights.append(f"Volatility noted: {pattern.description}. Focus on stability strategies.")

    if ctx.compared_to_baseline != "same":
        direction = "above" if ctx.compared_to_baseline == "better" else "below"
        insights.append(
            f"Recent mood is {abs(ctx.baseline_difference)} points {direction} "
            f"their usual baseline of {ctx.average_mood}."
        )

    negative = [theme.theme for theme in ctx.recurring_themes if theme.sentiment == "negative"][:2]
    if negative:
        insights.append(f"Recurring challenges: {' and '.join(negative)}.")

    if ctx.time_patterns.worst_time_of_day:
        insights.append(f"They tend to struggle more in the {ctx.time_patterns.worst_time_of_day}.")

    if ctx.days_since_last_check_in > 3:
        insights.append(f"It's been {ctx.days_since_last_check_in} days since their last check-in.")

    if ctx.burnout.completeness >= 50:
        filled = {k: v for k, v in ctx.burnout.values.items() if v is not None}
        readable = ", ".join(f"{name.replace('_', ' ')} {value}/10" for name, value in filled.items())
        insights.append(f"Burnout signals from the last 24h: {readable}.")

    last = ctx.last_check_in
    if last is not None and last.note and len(last.note.strip()) > 5:
        snippet = safe_snippet(last.note, 100)
        ellipsis = "..." if len(last.note.strip()) > 100 else ""
        insights.append(
            f'Last check-in ({format_time_ago(last.created_at, now)}): "{snippet}{ellipsis}" '
            f"(mood: {last.mood_score}/10)"
        )

    return insights, approach


def generate_contextual_prompt(
    ctx: UserContext,
    mood_score: float,
    note: str,
    now: Optional[datetime] = None,
) -> ContextualPrompt:
    """Assemble the prompt sections used by the coaching call."""
    insights, approach = _historical_insights(ctx, now)

    system_lines = [
        'ROLE: You are an expert ADHD coach who acts as an "External Executive Function" for the user. '
        "You know this person's history and prioritise pattern recognition over generic cheerleading.",
        "",
        "USER PROFILE:",
        f"- History: {ctx.total_check_ins} check-ins logged",
        f"- Baseline mood: {ctx.average_mood}/10",
        f"- Recent average (7 entries): {ctx.recent_average_mood}/10",
    ]
    system_lines.extend(f"- {insight}" for insight in insights)

    last = ctx.last_check_in
    delta = mood_score - last.mood_score if last is not None else 0
    note_text = safe_snippet(note, 220) if note and note.strip() else "(no note provided)"
    situation_lines = [
        "CURRENT INPUT:",
        f"- Score: {_format_score(mood_score)}/10",
        f'- Raw text: "{note_text}"',
    ]
    if last is not None:
        situation_lines.append(f"- Delta: {'+' if delta > 0 else ''}{_format_score(delta)} points from last entry")
    if mood_score <= 3:
        situation_lines.append("- ALERT: High dysregulation risk. Reduce friction.")
    if mood_score >= 8:
        situation_lines.append("- HIGH MOOD: Celebrate and help them capture what's working.")

    return ContextualPrompt(
        system_context="\n".join(system_lines),
        historical_insights=" ".join(insights),
        current_situation="\n".join(situation_lines),
        suggested_approach=APPROACH_INSTRUCTIONS.get(approach, APPROACH_INSTRUCTIONS["standard"]),
        approach_key=approach,
    )


def _format_score(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)
