from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from ally.services.context_engine import (
    BurnoutSnapshot,
    aggregate_burnout_snapshot,
    analyze_mood_patterns,
    analyze_time_patterns,
    build_context_from_entries,
    calculate_streak,
    format_time_ago,
    generate_contextual_prompt,
    resolve_zone,
)
from ally.services.text_signals import extract_keywords, extract_recurring_themes, safe_snippet

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _entries(scores, notes=None, step=timedelta(days=1)):
    """Entries newest first, one per ``step`` going back from NOW."""
    notes = notes or [None] * len(scores)
    return [
        SimpleNamespace(mood_score=score, note=note, created_at=NOW - step * index)
        for index, (score, note) in enumerate(zip(scores, notes))
    ]


def test_pattern_needs_three_entries():
    assert analyze_mood_patterns(_entries([2, 2])) is None


def test_low_streak_pattern_severity():
    pattern = analyze_mood_patterns(_entries([2, 3, 4]))
    assert pattern.type == "streak_low"
    assert pattern.severity == "mild"
    assert pattern.days_affected == 3

    pattern = analyze_mood_patterns(_entries([1, 2, 3, 4, 2, 8]))
    assert pattern.severity == "significant"
    assert pattern.days_affected == 5


def test_high_streak_pattern():
    pattern = analyze_mood_patterns(_entries([8, 7, 9]))
    assert pattern.type == "streak_high"


def test_declining_and_improving_patterns():
    declining = analyze_mood_patterns(_entries([4, 5, 6]))
    assert declining.type == "declining"
    assert declining.severity == "moderate"

    improving = analyze_mood_patterns(_entries([6, 5, 3]))
    assert improving.type == "improving"


def test_volatile_and_stable_patterns():
    volatile = analyze_mood_patterns(_entries([1, 9, 2, 8]))
    assert volatile.type == "volatile"
    assert volatile.severity == "significant"

    stable = analyze_mood_patterns(_entries([5, 5, 6]))
    assert stable.type == "stable"
    assert "around 5" in stable.description


def test_streak_prefers_low_mood_over_check_ins():
    assert calculate_streak(_entries([3])) is None
    streak = calculate_streak(_entries([3, 2, 4, 6]))
    assert (streak.type, streak.days) == ("low_mood", 3)


def test_streak_counts_consecutive_check_in_days():
    streak = calculate_streak(_entries([5, 6, 5, 6]))
    assert (streak.type, streak.days) == ("checking_in", 4)


def test_streak_breaks_on_gap():
    entries = _entries([5, 6, 5, 6], step=timedelta(days=2))
    assert calculate_streak(entries) is None


def test_time_patterns_need_a_week_of_entries():
    assert analyze_time_patterns(_entries([5] * 6)).best_time_of_day is None


def test_time_patterns_pick_best_and_worst_buckets():
    mornings = [
        SimpleNamespace(mood_score=8, note=None, created_at=NOW.replace(hour=8) - timedelta(days=day))
        for day in range(4)
    ]
    evenings = [
        SimpleNamespace(mood_score=3, note=None, created_at=NOW.replace(hour=19) - timedelta(days=day))
        for day in range(4)
    ]
    pattern = analyze_time_patterns(mornings + evenings)
    assert pattern.best_time_of_day == "morning"
    assert pattern.worst_time_of_day == "evening"


def test_resolve_zone_falls_back_to_utc():
    assert resolve_zone(None) is timezone.utc
    assert resolve_zone("Not/AZone") is timezone.utc
    assert str(resolve_zone("Europe/London")) == "Europe/London"


def test_burnout_snapshot_takes_latest_non_null_values():
    fields = dict.fromkeys(
        (
            "sleep_quality",
            "energy_level",
            "physical_tension",
            "irritability",
            "overwhelm",
            "motivation",
            "focus_difficulty",
            "forgetfulness",
            "decision_fatigue",
        )
    )
    newest = SimpleNamespace(**{**fields, "sleep_quality": 3, "battery_level": None})
    older = SimpleNamespace(**{**fields, "sleep_quality": 8, "overwhelm": 6, "battery_level": 40})

    snapshot = aggregate_burnout_snapshot([newest, older])

    assert snapshot.values["sleep_quality"] == 3
    assert snapshot.values["overwhelm"] == 6
    assert snapshot.battery_level == 40
    assert snapshot.completeness == 22
    assert aggregate_burnout_snapshot([]) == BurnoutSnapshot()


def test_format_time_ago():
    assert format_time_ago(NOW - timedelta(minutes=30), NOW) == "just now"
    assert format_time_ago(NOW - timedelta(hours=5), NOW) == "5h ago"
    assert format_time_ago(NOW - timedelta(hours=30), NOW) == "yesterday"
    assert format_time_ago(NOW - timedelta(days=3), NOW) == "3 days ago"
    assert format_time_ago(NOW - timedelta(days=8), NOW) == "1 week ago"
    assert format_time_ago(NOW - timedelta(days=15), NOW) == "2 weeks ago"


def test_context_compares_recent_mood_to_baseline():
    ctx = build_context_from_entries(_entries([3] * 7 + [8] * 7), now=NOW)
    assert ctx.total_check_ins == 14
    assert ctx.average_mood == 5.5
    assert ctx.recent_average_mood == 3.0
    assert ctx.compared_to_baseline == "worse"
    assert ctx.baseline_difference == -2.5
    assert ctx.days_since_last_check_in == 0


def test_empty_history_prompt_is_onboarding():
    ctx = build_context_from_entries([], now=NOW)
    prompt = generate_contextual_prompt(ctx, 6, "", now=NOW)
    assert prompt.approach_key == "onboarding"
    assert "first check-in" in prompt.historical_insights
    assert "(no note provided)" in prompt.current_situation


def test_low_streak_prompt_uses_gentle_support():
    ctx = build_context_from_entries(_entries([2, 3, 2, 6]), now=NOW)
    prompt = generate_contextual_prompt(ctx, 2, "rough day", now=NOW)
    assert prompt.approach_key == "gentle_support"
    assert "IMPORTANT" in prompt.historical_insights
    assert "ALERT" in prompt.current_situation
    assert "Delta: 0 points" in prompt.current_situation


def test_declining_prompt_uses_proactive_check():
    ctx = build_context_from_entries(_entries([5, 6, 7]), now=NOW)
    prompt = generate_contextual_prompt(ctx, 5, "meh", now=NOW)
    assert prompt.approach_key == "proactive_check"


def test_prompt_quotes_last_note():
    notes = ["work deadline again and the boss is pushing", None]
    ctx = build_context_from_entries(_entries([5, 6], notes=notes), now=NOW + timedelta(hours=2))
    prompt = generate_contextual_prompt(ctx, 8, "better now", now=NOW + timedelta(hours=2))
    assert '"work deadline again and the boss is pushing"' in prompt.historical_insights
    assert "(2h ago)" in prompt.historical_insights
    assert "HIGH MOOD" in prompt.current_situation
    assert "Delta: +3 points" in prompt.current_situation


def test_recurring_themes_need_repeated_mentions():
    notes = ["work was stressful", "big work deadline", "went for a walk", None]
    themes = extract_recurring_themes(_entries([4, 4, 7, 5], notes=notes))
    names = {theme.theme for theme in themes}
    assert "work stress" in names
    assert "physical activity" not in names

    assert extract_recurring_themes(_entries([4, 4], notes=["work", "work"])) == []


def test_extract_keywords_skips_stop_words():
    notes = ["really tired today", "tired again really", "coffee coffee"]
    assert extract_keywords(notes) == ["tired", "coffee"]


def test_safe_snippet_collapses_whitespace():
    assert safe_snippet("  a \n\n b\tc  ", 10) == "a b c"
    assert safe_snippet("abcdefgh", 3) == "abc"
