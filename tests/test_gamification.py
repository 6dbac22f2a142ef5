from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

from ally.db.models.mood import MoodEntry
from ally.db.models.user_stats import UserStats
from ally.services.gamification import (
    AchievementStats,
    award_check_in,
    calculate_level,
    calculate_xp,
    check_achievements,
    check_in_streak,
    progress_rings,
    xp_for_next_level,
)
from ally.services.user_service import get_or_create_user

NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)


def _history(scores, hours=None):
    """Entries newest first, one per day going back from NOW."""
    hours = hours or [NOW.hour] * len(scores)
    return [
        SimpleNamespace(mood_score=score, created_at=(NOW - timedelta(days=index)).replace(hour=hour))
        for index, (score, hour) in enumerate(zip(scores, hours))
    ]


def test_xp_bonuses_and_streak_multiplier():
    assert calculate_xp(note=None, breathing_completed=False, streak_days=0, check_in_at=NOW) == 10
    assert calculate_xp(note="short", breathing_completed=False, streak_days=0, check_in_at=NOW) == 10
    assert calculate_xp(note="a longer note here", breathing_completed=True, streak_days=0, check_in_at=NOW) == 18
    assert calculate_xp(note="a longer note here", breathing_completed=True, streak_days=3, check_in_at=NOW) == 27
    assert calculate_xp(note="a longer note here", breathing_completed=True, streak_days=7, check_in_at=NOW) == 36


def test_consistency_bonus_compares_local_hours():
    last = datetime(2026, 3, 9, 23, 30, tzinfo=timezone.utc)
    current = datetime(2026, 3, 10, 0, 10, tzinfo=timezone.utc)

    utc_xp = calculate_xp(note=None, breathing_completed=False, streak_days=0, check_in_at=current, last_check_in_at=last)
    tokyo_xp = calculate_xp(
        note=None,
        breathing_completed=False,
        streak_days=0,
        check_in_at=current,
        last_check_in_at=last,
        zone=ZoneInfo("Asia/Tokyo"),
    )

    assert utc_xp == 10
    assert tokyo_xp == 20


def test_level_tiers():
    assert [calculate_level(xp) for xp in (0, 99, 100, 499)] == [1, 1, 2, 5]
    assert [calculate_level(xp) for xp in (500, 1499, 1500, 4999, 5000)] == [6, 10, 11, 20, 21]
    assert xp_for_next_level(1) == 200
    assert xp_for_next_level(6) == 900
    assert xp_for_next_level(12) == 2550
    assert xp_for_next_level(20) == 5500


def test_progress_rings():
    rings = progress_rings(50, 1, 3, True)
    assert rings == {"daily": 100.0, "weekly_streak": 42.9, "xp": 25.0}
    assert progress_rings(0, 1, 10, False)["weekly_streak"] == 100.0
    assert progress_rings(0, 1, 0, False)["daily"] == 0.0


def test_streak_counts_back_from_today_or_yesterday():
    days = {date(2026, 3, 8), date(2026, 3, 9), date(2026, 3, 10)}
    assert check_in_streak(days, date(2026, 3, 10)) == 3
    assert check_in_streak(days, date(2026, 3, 11)) == 3
    assert check_in_streak(days, date(2026, 3, 12)) == 0
    assert check_in_streak(set(), date(2026, 3, 12)) == 0


def test_streak_and_trend_badges_skip_existing():
    stats = AchievementStats(current_streak=3, mood_history=_history([7, 5, 3]), notes_written=0, breathing_completed=0)

    assert [badge.id for badge in check_achievements(stats, [])] == ["fire_starter", "climbing_up"]
    assert [badge.id for badge in check_achievements(stats, ["climbing_up"])] == ["fire_starter"]


def test_streak_badges_fire_only_on_exact_day():
    stats = AchievementStats(current_streak=4, mood_history=_history([5]), notes_written=0, breathing_completed=0)
    assert check_achievements(stats, []) == []


def test_mood_and_engagement_badges():
    stats = AchievementStats(
        current_streak=1,
        mood_history=_history([8, 9, 2, 8, 3, 8, 4, 8]),
        notes_written=10,
        breathing_completed=10,
    )
    ids = {badge.id for badge in check_achievements(stats, [])}
    assert ids == {"mood_master", "resilient", "storyteller", "zen_master"}


def test_consistency_king_needs_a_tight_window():
    steady = AchievementStats(
        current_streak=7,
        mood_history=_history([5] * 7, hours=[9, 10, 11, 9, 10, 9, 11]),
        notes_written=0,
        breathing_completed=0,
    )
    scattered = AchievementStats(
        current_streak=8,
        mood_history=_history([5] * 7, hours=[9, 10, 15, 9, 10, 9, 11]),
        notes_written=0,
        breathing_completed=0,
    )

    assert {badge.id for badge in check_achievements(steady, [])} == {"burning_bright", "consistency_king"}
    assert check_achievements(scattered, []) == []


def test_award_check_in_rolls_up_totals(db):
    user = get_or_create_user(db)
    for days_ago, score in ((2, 4), (1, 5)):
        db.add(MoodEntry(user_id=user.id, mood_score=score, created_at=NOW - timedelta(days=days_ago, minutes=30)))
    db.flush()

    entry = MoodEntry(user_id=user.id, mood_score=6, note="slept well and went for a walk", created_at=NOW)
    db.add(entry)
    db.flush()

    reward = award_check_in(db, user, entry)
    db.commit()

    assert reward.xp_earned == 15
    assert reward.streak == 3
    assert [badge.id for badge in reward.badges] == ["fire_starter", "climbing_up"]
    assert entry.xp_earned == 15
    assert entry.achievements_earned == ["fire_starter", "climbing_up"]

    stats = db.get(UserStats, user.id)
    assert stats.total_xp == 15
    assert stats.current_level == 1
    assert stats.achievements_unlocked == ["fire_starter", "climbing_up"]
