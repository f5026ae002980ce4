"""
Loop Models
===========

SQLAlchemy models for recorded loops, day ratings and sleep check-ins.
"""

from datetime import date, datetime
from typing import Any, Optional
import uuid

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from loop.db.base import Base, TimestampMixin


class LoopRecord(Base, TimestampMixin):
    """
    A recorded reflection ("loop").

    Rows are never hard-deleted; ``deleted_at`` marks a soft delete and
    such rows are excluded from every read.
    """

    __tablename__ = "loops"

    # Client-generated id, stable across the pending cache and the DB
    loop_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    prompt_text: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    category: Mapped[str] = mapped_column(
        String(100),
        default="",
        nullable=False,
    )
    transcript: Mapped[str] = mapped_column(
        Text,
        default="",
        nullable=False,
    )
    is_video: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    is_daily_loop: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    is_follow_up: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Analysis fields
    mood: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    topic: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )
    word_count: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    speaking_rate_wpm: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
    )
    duration_seconds: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("idx_loops_user_recorded", "user_id", "recorded_at"),
    )

    def to_payload(self) -> dict[str, Any]:
        """Field mapping onto ``loop.schemas.loop.JournalEntry``."""
        return {
            "id": self.loop_id,
            "timestamp": self.recorded_at,
            "prompt_text": self.prompt_text,
            "category": self.category,
            "transcript": self.transcript,
            "is_video": self.is_video,
            "is_daily_loop": self.is_daily_loop,
            "is_follow_up": self.is_follow_up,
            "mood": self.mood,
            "topic": self.topic,
            "word_count": self.word_count,
            "speaking_rate_wpm": self.speaking_rate_wpm,
            "duration": self.duration_seconds,
        }

    def __repr__(self) -> str:
        return f"<LoopRecord(loop_id={self.loop_id}, user_id={self.user_id})>"


class DayRating(Base, TimestampMixin):
    """Self-reported mood (0-10) for one local calendar day."""

    __tablename__ = "day_ratings"

    rating_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    day: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    rating: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_day_ratings_user_day"),
    )

    def __repr__(self) -> str:
        return f"<DayRating(user_id={self.user_id}, day={self.day}, rating={self.rating})>"


class SleepCheckin(Base, TimestampMixin):
    """Hours slept the night before one local calendar day."""

    __tablename__ = "sleep_checkins"

    checkin_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    day: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    hours: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_sleep_checkins_user_day"),
    )
