from ally.db.base import Base
from ally.db import models  # noqa: F401  ensure models are loaded


def test_metadata_contains_core_tables() -> None:
    table_names = set(Base.metadata.tables.keys())
    expected = {
        "users",
        "auth_sessions",
        "mood_entries",
        "burnout_logs",
        "outcomes",
        "commitments",
        "tasks",
        "inbox_items",
        "daily_checkins",
        "user_priorities",
        "balance_scores",
        "weekly_plans",
        "weekly_plan_outcomes",
        "weekly_plan_tasks",
        "activity_events",
        "user_stats",
        "brain_dumps",
        "weekly_reviews",
    }

    assert expected.issubset(table_names)


def test_task_metadata_column_keeps_its_sql_name() -> None:
    tasks = Base.metadata.tables["tasks"]

    assert "metadata" in tasks.columns
    assert "metadata_json" not in tasks.columns
