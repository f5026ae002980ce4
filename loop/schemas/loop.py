"""
Loop Schemas
============

Typed journal entries ("loops"), the derived per-day activity view and
the request bodies for recording loops and daily check-ins.
"""

import logging
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

from loop.core.errors import DecodeError

logger = logging.getLogger(__name__)


class EntryKind(str, Enum):
    """The three mutually exclusive kinds of loop."""

    DAILY = "daily"
    THEMATIC = "thematic"
    FOLLOW_UP = "follow_up"


class JournalEntry(BaseModel):
    """
    One recorded reflection.

    Immutable once created; soft-deleted entries never leave the store.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    timestamp: datetime
    prompt_text: str = ""
    category: str = ""
    transcript: str = ""
    is_video: bool = False
    is_daily_loop: bool = False
    is_follow_up: bool = False
    mood: Optional[str] = None
    topic: Optional[str] = None
    word_count: Optional[int] = Field(default=None, ge=0)
    speaking_rate_wpm: Optional[float] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0, description="Seconds")

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Naive timestamps are treated as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @field_validator("is_follow_up")
    @classmethod
    def check_kind(cls, v: bool, info: ValidationInfo) -> bool:
        if v and info.data.get("is_daily_loop"):
            raise ValueError("an entry cannot be both a daily loop and a follow-up")
        return v

    @property
    def kind(self) -> EntryKind:
        if self.is_follow_up:
            return EntryKind.FOLLOW_UP
        if not self.is_daily_loop:
            return EntryKind.THEMATIC
        return EntryKind.DAILY

    @property
    def effective_word_count(self) -> Optional[int]:
        """Stored word count, falling back to counting the transcript."""
        if self.word_count is not None:
            return self.word_count
        if self.transcript.strip():
            return len(self.transcript.split())
        return None

    @property
    def effective_wpm(self) -> Optional[float]:
        """Stored speaking rate, falling back to words per minute of duration."""
        if self.speaking_rate_wpm is not None:
            return self.speaking_rate_wpm
        words = self.effective_word_count
        if words is None or not self.duration:
            return None
        return words / (self.duration / 60.0)

    def local_date(self, tz: tzinfo) -> date:
        """Calendar day of the entry in *tz*."""
        return self.timestamp.astimezone(tz).date()


class DayActivity(BaseModel):
    """Entries of a single day partitioned by kind, plus the day's rating."""

    day: Optional[date] = None
    daily_loops: list[JournalEntry] = Field(default_factory=list)
    thematic_loops: list[JournalEntry] = Field(default_factory=list)
    follow_up_loops: list[JournalEntry] = Field(default_factory=list)
    rating: Optional[float] = None

    @property
    def entry_count(self) -> int:
        return len(self.daily_loops) + len(self.thematic_loops) + len(self.follow_up_loops)

    @property
    def is_empty(self) -> bool:
        """No entries and no rating ("no entries found")."""
        return self.entry_count == 0 and self.rating is None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class LoopCreate(BaseModel):
    """Request for POST /users/{user_id}/loops."""

    id: Optional[str] = Field(default=None, description="Client generated id; generated when absent.")
    timestamp: Optional[datetime] = Field(default=None, description="Recording time; defaults to now.")
    prompt_text: str = ""
    category: str = ""
    transcript: str = ""
    is_video: bool = False
    is_daily_loop: bool = False
    is_follow_up: bool = False
    mood: Optional[str] = None
    topic: Optional[str] = None
    word_count: Optional[int] = Field(default=None, ge=0)
    speaking_rate_wpm: Optional[float] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0)


class RatingUpdate(BaseModel):
    """Request for PUT /users/{user_id}/ratings/{day}."""

    rating: float = Field(..., ge=0, le=10)


class SleepUpdate(BaseModel):
    """Request for PUT /users/{user_id}/sleep/{day}."""

    hours: float = Field(..., ge=0, le=24)


def decode_entry(payload: Union[Mapping[str, Any], str], source: str) -> JournalEntry:
    """
    Validate a raw stored record (mapping or JSON text) into a ``JournalEntry``.

    Raises ``DecodeError`` instead of letting a malformed record through
    with missing fields.
    """
    try:
        if isinstance(payload, str):
            return JournalEntry.model_validate_json(payload)
        return JournalEntry.model_validate(payload)
    except PydanticValidationError as exc:
        entry_id = payload.get("id") if isinstance(payload, Mapping) else None
        logger.error("Undecodable loop %s from %s: %s", entry_id, source, exc)
        raise DecodeError(source=source, entry_id=entry_id) from exc
