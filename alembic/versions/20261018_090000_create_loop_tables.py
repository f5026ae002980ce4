"""Create loops, day_ratings and sleep_checkins tables

Revision ID: 3f1c9a7d2b40
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    # =========================================================================
    # loops
    # =========================================================================
    op.create_table(
        "loops",
        sa.Column("loop_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("prompt_text", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("transcript", sa.Text(), nullable=False),
        sa.Column("is_video", sa.Boolean(), nullable=False),
        sa.Column("is_daily_loop", sa.Boolean(), nullable=False),
        sa.Column("is_follow_up", sa.Boolean(), nullable=False),
        sa.Column("mood", sa.String(length=50), nullable=True),
        sa.Column("topic", sa.String(length=100), nullable=True),
        sa.Column("word_count", sa.Integer(), nullable=True),
        sa.Column("speaking_rate_wpm", sa.Float(), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("loop_id"),
    )
    op.create_index("idx_loops_user_recorded", "loops", ["user_id", "recorded_at"])

    # =========================================================================
    # day_ratings / sleep_checkins (one row per user per local day)
    # =========================================================================
    op.create_table(
        "day_ratings",
        sa.Column("rating_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("rating", sa.Float(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("rating_id"),
        sa.UniqueConstraint("user_id", "day", name="uq_day_ratings_user_day"),
    )
    op.create_table(
        "sleep_checkins",
        sa.Column("checkin_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("hours", sa.Float(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("checkin_id"),
        sa.UniqueConstraint("user_id", "day", name="uq_sleep_checkins_user_day"),
    )


def downgrade() -> None:
    op.drop_table("sleep_checkins")
    op.drop_table("day_ratings")
    op.drop_index("idx_loops_user_recorded", table_name="loops")
    op.drop_table("loops")
