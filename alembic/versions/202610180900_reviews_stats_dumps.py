"""Check-in gamification, brain dumps and weekly reviews."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202610180900"
down_revision = "202601150900"
branch_labels = None
depends_on = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _jsonb() -> postgresql.JSONB:
    return postgresql.JSONB(astext_type=sa.Text())


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.add_column("mood_entries", sa.Column("energy_level", sa.Integer(), nullable=True))
    op.add_column(
        "mood_entries",
        sa.Column("breathing_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.add_column("mood_entries", sa.Column("xp_earned", sa.Integer(), nullable=False, server_default=sa.text("0")))
    op.add_column(
        "mood_entries",
        sa.Column("achievements_earned", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
    )
    op.create_check_constraint("ck_mood_entries_energy_level", "mood_entries", "energy_level BETWEEN 0 AND 4")

    op.create_table(
        "user_stats",
        sa.Column("user_id", _uuid(), primary_key=True, nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("achievements_unlocked", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("last_check_in_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "brain_dumps",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("raw_text", sa.Text(), nullable=False),
        sa.Column("source", sa.String(length=10), nullable=False, server_default=sa.text("'text'")),
        sa.Column("task_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("signals_extracted", _jsonb(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("parser", sa.String(length=20), nullable=True),
        sa.Column("parse_latency_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_brain_dumps_user_id_created_at", "brain_dumps", ["user_id", "created_at"], unique=False)

    op.create_table(
        "weekly_reviews",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("week_end", sa.Date(), nullable=False),
        sa.Column("summary_markdown", sa.Text(), nullable=False),
        sa.Column("wins", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("gaps", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("patterns", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("suggested_focus", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("tasks_completed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tasks_created", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tasks_parked", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("completion_rate", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("mood_average", sa.Float(), nullable=True),
        sa.Column("check_in_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_score_avg", sa.Integer(), nullable=True),
        sa.Column("balance_score_trend", sa.String(length=20), nullable=True),
        sa.Column("top_category", sa.Text(), nullable=True),
        sa.Column("neglected_categories", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("source", sa.String(length=20), nullable=False, server_default=sa.text("'fallback'")),
        sa.Column("user_reflection", sa.Text(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "week_start", name="uq_weekly_reviews_user_week"),
        sa.CheckConstraint(
            "balance_score_trend IN ('improving', 'declining', 'stable')",
            name="ck_weekly_reviews_trend",
        ),
    )
    op.create_index("ix_weekly_reviews_user_week", "weekly_reviews", ["user_id", "week_start"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_weekly_reviews_user_week", table_name="weekly_reviews")
    op.drop_table("weekly_reviews")
    op.drop_index("ix_brain_dumps_user_id_created_at", table_name="brain_dumps")
    op.drop_table("brain_dumps")
    op.drop_table("user_stats")
    op.drop_constraint("ck_mood_entries_energy_level", "mood_entries", type_="check")
    op.drop_column("mood_entries", "achievements_earned")
    op.drop_column("mood_entries", "xp_earned")
    op.drop_column("mood_entries", "breathing_completed")
    op.drop_column("mood_entries", "energy_level")
