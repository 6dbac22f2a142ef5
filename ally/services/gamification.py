"""XP, levels and badges earned through mood check-ins."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.orm import Session

from ally.db.models.mood import MoodEntry
from ally.db.models.user import User
from ally.db.models.user_stats import UserStats
from ally.db.types import ensure_utc
from ally.services.context_engine import resolve_zone

logger = logging.getLogger(__name__)

BASE_XP = 10
NOTE_BONUS_XP = 5
NOTE_BONUS_MIN_CHARS = 10
BREATHING_BONUS_XP = 3
CONSISTENCY_BONUS_XP = 10
MOOD_HISTORY_SIZE = 30
STREAK_LOOKBACK_DAYS = 400
ENERGY_LABELS = ("Depleted", "Low", "Moderate", "High", "Overflowing")


@dataclass(frozen=True)
class Badge:
    id: str
    icon: str
    title: str
    description: str
    type: str  # streak | mood | engagement


BADGES: Dict[str, Badge] = {
    badge.id: badge
    for badge in (
        Badge("fire_starter", "🔥", "Fire Starter", "3-day check-in streak!", "streak"),
        Badge("burning_bright", "🔥🔥", "Burning Bright", "7-day streak! You're on fire!", "streak"),
        Badge("unstoppable", "🔥🔥🔥", "Unstoppable", "14-day streak! Nothing can stop you!", "streak"),
        Badge("month_champion", "🏆", "Month Champion", "30-day streak! You're a legend!", "streak"),
        Badge("climbing_up", "📈", "Climbing Up", "Your mood is improving!", "mood"),
        Badge("mood_master", "🌈", "Mood Master", "5 check-ins at 8+ mood!", "mood"),
        Badge("resilient", "💪", "Resilient", "You showed up even when it was hard", "mood"),
        Badge("storyteller", "📝", "Storyteller", "10 notes written!", "engagement"),
        Badge("zen_master", "🧘", "Zen Master", "10 breathing exercises completed!", "engagement"),
        Badge("consistency_king", "⏰", "Consistency King", "Same time for 7 days!", "engagement"),
    )
}

STREAK_BADGES = {3: "fire_starter", 7: "burning_bright", 14: "unstoppable", 30: "month_champion"}


@dataclass
class AchievementStats:
    """Snapshot used for badge checks. ``mood_history`` is newest first and includes the current check-in."""

    current_streak: int
    mood_history: Sequence[MoodEntry]
    notes_written: int
    breathing_completed: int
    zone: tzinfo = timezone.utc


@dataclass
class CheckInReward:
    xp_earned: int
    badges: List[Badge]
    stats: UserStats
    streak: int
    level_up: bool


@dataclass
class StatsSummary:
    total_xp: int
    level: int
    xp_for_next_level: int
    achievements: List[Badge]
    current_streak: int
    checked_in_today: bool
    progress: Dict[str, float] = field(default_factory=dict)


def calculate_xp(
    *,
    note: Optional[str],
    breathing_completed: bool,
    streak_days: int,
    check_in_at: datetime,
    last_check_in_at: Optional[datetime] = None,
    zone: tzinfo = timezone.utc,
) -> int:
    xp = BASE_XP
    if note and len(note) > NOTE_BONUS_MIN_CHARS:
        xp += NOTE_BONUS_XP
    if breathing_completed:
        xp += BREATHING_BONUS_XP

    if streak_days >= 7:
        xp = xp * 2
    elif streak_days >= 3:
        xp = math.floor(xp * 1.5)

    if last_check_in_at is not None:
        last_hour = ensure_utc(last_check_in_at).astimezone(zone).hour
        current_hour = ensure_utc(check_in_at).astimezone(zone).hour
        if abs(current_hour - last_hour) <= 1:
            xp += CONSISTENCY_BONUS_XP
    return xp


def calculate_level(total_xp: int) -> int:
    if total_xp < 500:
        return total_xp // 100 + 1
    if total_xp < 1500:
        return (total_xp - 500) // 200 + 6
    if total_xp < 5000:
        return (total_xp - 1500) // 350 + 11
    return (total_xp - 5000) // 500 + 21


def xp_for_next_level(level: int) -> int:
    if level < 5:
        return (level + 1) * 100
    if level < 10:
        return 500 + (level - 5 + 1) * 200
    if level < 20:
        return 1500 + (level - 10 + 1) * 350
    return 5000 + (level - 20 + 1) * 500


def xp_at_level_start(level: int) -> int:
    if level <= 5:
        return (level - 1) * 100
    if level <= 10:
        return 500 + (level - 6) * 200
    if level <= 20:
        return 1500 + (level - 11) * 350
    return 5000 + (level - 21) * 500


def check_in_streak(days: Iterable[date], today: date) -> int:
    """Consecutive check-in days ending today, or ending yesterday when today is still open."""
    day_set: Set[date] = set(days)
    cursor = today if today in day_set else today - timedelta(days=1)
    streak = 0
    while cursor in day_set:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def check_achievements(stats: AchievementStats, existing: Iterable[str]) -> List[Badge]:
    """Return badges newly earned by this check-in, skipping ones already unlocked."""
    unlocked = set(existing)
    earned: List[str] = []

    streak_badge = STREAK_BADGES.get(stats.current_streak)
    if streak_badge:
        earned.append(streak_badge)

    scores = [entry.mood_score for entry in stats.mood_history]
    if len(scores) >= 3 and scores[2] < scores[1] < scores[0]:
        earned.append("climbing_up")
    if sum(1 for score in scores if score >= 8) >= 5:
        earned.append("mood_master")
    if sum(1 for score in scores if score <= 4) >= 3:
        earned.append("resilient")

    if stats.notes_written >= 10:
        earned.append("storyteller")
    if stats.breathing_completed >= 10:
        earned.append("zen_master")

    if stats.current_streak >= 7:
        hours = [ensure_utc(entry.created_at).astimezone(stats.zone).hour for entry in stats.mood_history[:7]]
        if hours and max(hours) - min(hours) <= 2:
            earned.append("consistency_king")

    return [BADGES[badge_id] for badge_id in earned if badge_id not in unlocked]


def progress_rings(total_xp: int, level: int, streak: int, checked_in_today: bool) -> Dict[str, float]:
    level_start = xp_at_level_start(level)
    needed = xp_for_next_level(level) - level_start
    xp_progress = min((total_xp - level_start) / needed * 100, 100.0) if needed > 0 else 100.0
    return {
        "daily": 100.0 if checked_in_today else 0.0,
        "weekly_streak": round(min(streak / 7 * 100, 100.0), 1),
        "xp": round(max(xp_progress, 0.0), 1),
    }


def energy_label(level: Optional[int]) -> Optional[str]:
    if level is None or not 0 <= level < len(ENERGY_LABELS):
        return None
    return ENERGY_LABELS[level]


def get_or_create_stats(db: Session, user_id) -> UserStats:
    stats = db.get(UserStats, user_id)
    if stats is None:
        stats = UserStats(user_id=user_id, total_xp=0, current_level=1, achievements_unlocked=[])
        db.add(stats)
        db.flush()
    return stats


def _check_in_days(db: Session, user: User, zone: tzinfo, now: datetime, exclude_id=None) -> Set[date]:
    since = now - timedelta(days=STREAK_LOOKBACK_DAYS)
    query = db.query(MoodEntry.created_at).filter(MoodEntry.user_id == user.id, MoodEntry.created_at >= since)
    if exclude_id is not None:
        query = query.filter(MoodEntry.id != exclude_id)
    return {ensure_utc(row[0]).astimezone(zone).date() for row in query.all()}


def award_check_in(db: Session, user: User, entry: MoodEntry, now: Optional[datetime] = None) -> CheckInReward:
    """Score a freshly flushed mood entry and roll it into the user's totals."""
    zone = resolve_zone(user.timezone)
    check_in_at = ensure_utc(entry.created_at) or ensure_utc(now) or datetime.now(timezone.utc)
    today = check_in_at.astimezone(zone).date()

    previous_days = _check_in_days(db, user, zone, check_in_at, exclude_id=entry.id)
    prior_streak = check_in_streak(previous_days, today)
    streak = check_in_streak(previous_days | {today}, today)

    stats = get_or_create_stats(db, user.id)
    xp = calculate_xp(
        note=entry.note,
        breathing_completed=bool(entry.breathing_completed),
        streak_days=prior_streak,
        check_in_at=check_in_at,
        last_check_in_at=stats.last_check_in_at,
        zone=zone,
    )

    history = (
        db.query(MoodEntry)
        .filter(MoodEntry.user_id == user.id)
        .order_by(MoodEntry.created_at.desc())
        .limit(MOOD_HISTORY_SIZE)
        .all()
    )
    notes_written = (
        db.query(MoodEntry).filter(MoodEntry.user_id == user.id, MoodEntry.note.isnot(None)).count()
    )
    breathing_done = (
        db.query(MoodEntry)
        .filter(MoodEntry.user_id == user.id, MoodEntry.breathing_completed.is_(True))
        .count()
    )
    badges = check_achievements(
        AchievementStats(
            current_streak=streak,
            mood_history=history,
            notes_written=notes_written,
            breathing_completed=breathing_done,
            zone=zone,
        ),
        stats.achievements_unlocked or [],
    )

    previous_level = stats.current_level or 1
    stats.total_xp = (stats.total_xp or 0) + xp
    stats.current_level = calculate_level(stats.total_xp)
    stats.achievements_unlocked = list(stats.achievements_unlocked or []) + [badge.id for badge in badges]
    stats.last_check_in_at = check_in_at

    entry.xp_earned = xp
    entry.achievements_earned = [badge.id for badge in badges]

    if badges:
        logger.info("User %s unlocked %s", user.id, ", ".join(badge.id for badge in badges))

    return CheckInReward(
        xp_earned=xp,
        badges=badges,
        stats=stats,
        streak=streak,
        level_up=stats.current_level > previous_level,
    )


def load_summary(db: Session, user: User, now: Optional[datetime] = None) -> StatsSummary:
    zone = resolve_zone(user.timezone)
    now = ensure_utc(now) or datetime.now(timezone.utc)
    today = now.astimezone(zone).date()
    stats = db.get(UserStats, user.id)
    total_xp = stats.total_xp if stats else 0
    level = stats.current_level if stats else 1
    unlocked = list(stats.achievements_unlocked or []) if stats else []

    days = _check_in_days(db, user, zone, now)
    streak = check_in_streak(days, today)
    checked_in_today = today in days

    return StatsSummary(
        total_xp=total_xp,
        level=level,
        xp_for_next_level=xp_for_next_level(level),
        achievements=[BADGES[badge_id] for badge_id in unlocked if badge_id in BADGES],
        current_streak=streak,
        checked_in_today=checked_in_today,
        progress=progress_rings(total_xp, level, streak, checked_in_today),
    )
