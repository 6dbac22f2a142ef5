"""Initial Ally schema."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202601150900"
down_revision = None
branch_labels = None
depends_on = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _jsonb() -> postgresql.JSONB:
    return postgresql.JSONB(astext_type=sa.Text())


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("timezone", sa.Text(), nullable=True),
        sa.Column("now_mode_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("now_mode_strict_limit", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(updated=False),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("token_hash", sa.Text(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_auth_sessions_token_hash", "auth_sessions", ["token_hash"], unique=True)
    op.create_index("ix_auth_sessions_user_id", "auth_sessions", ["user_id"], unique=False)

    op.create_table(
        "mood_entries",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("mood_score", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("advice", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("mood_score BETWEEN 0 AND 10", name="ck_mood_entries_score"),
    )
    op.create_index("ix_mood_entries_user_id_created_at", "mood_entries", ["user_id", "created_at"], unique=False)

    op.create_table(
        "burnout_logs",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("sleep_quality", sa.Integer(), nullable=True),
        sa.Column("energy_level", sa.Integer(), nullable=True),
        sa.Column("physical_tension", sa.Integer(), nullable=True),
        sa.Column("irritability", sa.Integer(), nullable=True),
        sa.Column("overwhelm", sa.Integer(), nullable=True),
        sa.Column("motivation", sa.Integer(), nullable=True),
        sa.Column("focus_difficulty", sa.Integer(), nullable=True),
        sa.Column("forgetfulness", sa.Integer(), nullable=True),
        sa.Column("decision_fatigue", sa.Integer(), nullable=True),
        sa.Column("battery_level", sa.Integer(), nullable=True),
        sa.Column("source", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_burnout_logs_user_id_created_at", "burnout_logs", ["user_id", "created_at"], unique=False)

    op.create_table(
        "outcomes",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("horizon", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("priority_rank", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_outcomes_user_id", "outcomes", ["user_id"], unique=False)

    op.create_table(
        "commitments",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("outcome_id", _uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["outcome_id"], ["outcomes.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_commitments_user_id", "commitments", ["user_id"], unique=False)
    op.create_index("ix_commitments_outcome_id", "commitments", ["outcome_id"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("outcome_id", _uuid(), nullable=True),
        sa.Column("commitment_id", _uuid(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("due_date", sa.String(length=20), nullable=True),
        sa.Column("estimated_minutes", sa.Integer(), nullable=True),
        sa.Column("energy_required", sa.String(length=10), nullable=True),
        sa.Column("priority", sa.String(length=10), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("now_slot", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", _jsonb(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["outcome_id"], ["outcomes.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["commitment_id"], ["commitments.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("user_id", "now_slot", name="uq_tasks_user_now_slot"),
        sa.CheckConstraint("now_slot IS NULL OR now_slot BETWEEN 1 AND 3", name="ck_tasks_now_slot"),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"], unique=False)
    op.create_index("ix_tasks_outcome_id", "tasks", ["outcome_id"], unique=False)
    op.create_index("ix_tasks_commitment_id", "tasks", ["commitment_id"], unique=False)

    op.create_table(
        "inbox_items",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False, server_default=sa.text("'quick_capture'")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("triage_action", sa.String(length=20), nullable=True),
        sa.Column("triage_metadata", _jsonb(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("proposed_task_id", _uuid(), nullable=True),
        *_timestamps(updated=False),
        sa.Column("triaged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["proposed_task_id"], ["tasks.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_inbox_items_user_id_status", "inbox_items", ["user_id", "status"], unique=False)

    op.create_table(
        "daily_checkins",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("overwhelm", sa.Integer(), nullable=False),
        sa.Column("anxiety", sa.Integer(), nullable=False),
        sa.Column("energy", sa.Integer(), nullable=False),
        sa.Column("clarity", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_checkins_user_date"),
    )

    op.create_table(
        "user_priorities",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("domain", sa.Text(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("importance_score", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "domain", name="uq_user_priorities_user_domain"),
    )

    op.create_table(
        "balance_scores",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("breakdown", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("computed_for_date", sa.Date(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "computed_for_date", name="uq_balance_scores_user_date"),
    )

    op.create_table(
        "weekly_plans",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("available_capacity_minutes", sa.Integer(), nullable=False, server_default=sa.text("480")),
        sa.Column("planned_capacity_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("previous_week_reflection", sa.Text(), nullable=True),
        sa.Column("wins", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("learnings", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("summary_markdown", sa.Text(), nullable=True),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "year", "week_number", "version", name="uq_weekly_plans_version"),
    )
    op.create_index("ix_weekly_plans_user_week", "weekly_plans", ["user_id", "year", "week_number"], unique=False)

    op.create_table(
        "weekly_plan_outcomes",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("weekly_plan_id", _uuid(), nullable=False),
        sa.Column("outcome_id", _uuid(), nullable=False),
        sa.Column("priority_rank", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["weekly_plan_id"], ["weekly_plans.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["outcome_id"], ["outcomes.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("weekly_plan_id", "outcome_id", name="uq_weekly_plan_outcomes"),
    )

    op.create_table(
        "weekly_plan_tasks",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("weekly_plan_id", _uuid(), nullable=False),
        sa.Column("task_id", _uuid(), nullable=False),
        sa.Column("scheduled_day", sa.Integer(), nullable=True),
        sa.Column("estimated_minutes", sa.Integer(), nullable=False),
        sa.Column("priority_rank", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["weekly_plan_id"], ["weekly_plans.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("weekly_plan_id", "task_id", name="uq_weekly_plan_tasks"),
        sa.CheckConstraint("scheduled_day IS NULL OR scheduled_day BETWEEN 0 AND 6", name="ck_weekly_plan_tasks_day"),
    )

    op.create_table(
        "activity_events",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("payload", _jsonb(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("undo_available", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_activity_events_user_id", "activity_events", ["user_id"], unique=False)
    op.create_index("ix_activity_events_event_type", "activity_events", ["event_type"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_activity_events_event_type", table_name="activity_events")
    op.drop_index("ix_activity_events_user_id", table_name="activity_events")
    op.drop_table("activity_events")
    op.drop_table("weekly_plan_tasks")
    op.drop_table("weekly_plan_outcomes")
    op.drop_index("ix_weekly_plans_user_week", table_name="weekly_plans")
    op.drop_table("weekly_plans")
    op.drop_table("balance_scores")
    op.drop_table("user_priorities")
    op.drop_table("daily_checkins")
    op.drop_index("ix_inbox_items_user_id_status", table_name="inbox_items")
    op.drop_table("inbox_items")
    op.drop_index("ix_tasks_commitment_id", table_name="tasks")
    op.drop_index("ix_tasks_outcome_id", table_name="tasks")
    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_commitments_outcome_id", table_name="commitments")
    op.drop_index("ix_commitments_user_id", table_name="commitments")
    op.drop_table("commitments")
    op.drop_index("ix_outcomes_user_id", table_name="outcomes")
    op.drop_table("outcomes")
    op.drop_index("ix_burnout_logs_user_id_created_at", table_name="burnout_logs")
    op.drop_table("burnout_logs")
    op.drop_index("ix_mood_entries_user_id_created_at", table_name="mood_entries")
    op.drop_table("mood_entries")
    op.drop_index("ix_auth_sessions_user_id", table_name="auth_sessions")
    op.drop_index("ix_auth_sessions_token_hash", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_table("users")
