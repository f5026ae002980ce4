"""
Trends Schemas
==============

Time windows and the derived trend results (frequencies, speaking
highlights, correlations, calendar cells).
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from loop.core.errors import InvalidWindowError

# Bounds used for the unbounded "all" timeframe.  Chosen well inside the
# datetime range so astimezone() never overflows.
WINDOW_MIN = datetime(1970, 1, 1, tzinfo=timezone.utc)
WINDOW_MAX = datetime(9999, 1, 1, tzinfo=timezone.utc)

# Outermost accepted bounds.  One day of slack on each side keeps
# astimezone() inside the datetime range for any UTC offset.
WINDOW_FLOOR = datetime(1, 1, 2, tzinfo=timezone.utc)
WINDOW_CEILING = datetime(9999, 12, 31, tzinfo=timezone.utc)


class Timeframe(str, Enum):
    """Named trend windows offered to the UI."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    ALL = "all"

    def window(self, now: datetime, tz: tzinfo) -> "TimeWindow":
        """
        Build the window ending with the local day containing *now*.

        week  -> the last 7 calendar days including today
        month -> from the same day last month
        year  -> from the same day last year
        all   -> unbounded
        """
        if self is Timeframe.ALL:
            return TimeWindow(start=WINDOW_MIN, end=WINDOW_MAX)

        today = now.astimezone(tz).date()
        if self is Timeframe.WEEK:
            first = today - timedelta(days=6)
        elif self is Timeframe.MONTH:
            first = _shift_months(today, -1)
        else:
            first = _shift_months(today, -12)

        return TimeWindow(
            start=local_midnight(first, tz),
            end=local_midnight(today + timedelta(days=1), tz),
        )


def _shift_months(day: date, months: int) -> date:
    """Move *day* by whole months, clamping to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def local_midnight(day: date, tz: tzinfo) -> datetime:
    """Start of *day* in *tz* as an aware datetime."""
    return datetime.combine(day, time.min, tzinfo=tz)


class TimeWindow(BaseModel):
    """
    Half-open ``[start, end)`` interval of aware datetimes.

    An end before the start is a programmer error and is rejected
    eagerly with ``InvalidWindowError`` rather than clamped, as are
    bounds within a day of the datetime range limits.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if self.start < WINDOW_FLOOR:
            raise InvalidWindowError(
                message="Window start is too early",
                field="start",
                start=self.start.isoformat(),
            )
        if self.end > WINDOW_CEILING:
            raise InvalidWindowError(
                message="Window end is too late",
                end=self.end.isoformat(),
            )
        if self.end < self.start:
            raise InvalidWindowError(
                start=self.start.isoformat(),
                end=self.end.isoformat(),
            )
        return self

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def contains_day(self, day: date, tz: tzinfo) -> bool:
        """True when the local midnight of *day* falls inside the window."""
        return self.contains(local_midnight(day, tz))

    def date_bounds(self, tz: tzinfo) -> tuple[date, date]:
        """
        Inclusive/exclusive calendar-day bounds ``(first, stop)``.

        A day ``d`` is in the window when ``first <= d < stop``; this
        matches ``contains_day`` for windows aligned on local midnight.
        """
        first = self.start.astimezone(tz).date()
        if local_midnight(first, tz) < self.start:
            first += timedelta(days=1)
        last = self.end.astimezone(tz).date()
        if local_midnight(last, tz) < self.end:
            last += timedelta(days=1)
        return first, last

    def previous(self) -> Optional["TimeWindow"]:
        """
        Window of the same length ending where this one starts.

        ``None`` when that window would start before ``WINDOW_FLOOR``.
        """
        span = self.end - self.start
        if self.start - WINDOW_FLOOR < span:
            return None
        return TimeWindow(start=self.start - span, end=self.start)


class CorrelationCategory(str, Enum):
    """Dimensions along which mood effects are computed."""

    TOPIC = "topic"
    SLEEP = "sleep"
    TIME_OF_DAY = "time_of_day"
    WORD_COUNT = "word_count"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class FrequencyResult(BaseModel):
    """Occurrences of one label within a window."""

    value: str
    count: int
    percentage: float = Field(..., ge=0, le=1)


class SpeakingHighlight(BaseModel):
    """An extremal entry (fastest, longest, wordiest) within a window."""

    entry_id: str
    date: datetime
    wpm: Optional[float] = None
    emotion: Optional[str] = None
    word_count: Optional[int] = None
    duration: Optional[float] = None


class SpeakingHighlights(BaseModel):
    fastest: Optional[SpeakingHighlight] = None
    longest: Optional[SpeakingHighlight] = None
    most_words: Optional[SpeakingHighlight] = None


class CategoryEffect(BaseModel):
    """Signed deviation of a bucket's mean rating from the overall mean."""

    name: str
    effect: float
    color: str
    support: int
    average_rating: float


class MoodSummary(BaseModel):
    average: float
    label: str
    color: str
    days: int


class EntryCompletionInsight(BaseModel):
    """Loops per rated day on days rated above the threshold versus the rest."""

    threshold: float
    above_average: float
    below_average: float
    above_days: int
    below_days: int
    ratio: Optional[float] = Field(default=None, description="above / below; null when below is 0")


class ComparisonDirection(str, Enum):
    HIGHER = "higher"
    LOWER = "lower"
    EQUAL = "equal"


class MetricComparison(BaseModel):
    """One speaking metric in the current period against the previous one."""

    metric: str
    current: Optional[float] = None
    previous: Optional[float] = None
    percentage_diff: Optional[float] = None
    direction: Optional[ComparisonDirection] = None
    is_significant: bool = False


class PeriodComparison(BaseModel):
    current: TimeWindow
    previous: Optional[TimeWindow] = None
    metrics: list[MetricComparison] = Field(default_factory=list)


class DayCell(BaseModel):
    """A calendar slot annotated with its rating, if any."""

    date: date
    rating: Optional[float] = None
    color: Optional[str] = None


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class EmotionFrequency(FrequencyResult):
    """FrequencyResult plus the label's display color."""

    color: str


class TrendsSummary(BaseModel):
    window: TimeWindow
    top_emotions: list[EmotionFrequency] = Field(default_factory=list)
    speaking: SpeakingHighlights = Field(default_factory=SpeakingHighlights)
    average_mood: Optional[MoodSummary] = None
    correlations: dict[CorrelationCategory, list[CategoryEffect]] = Field(default_factory=dict)
    entry_completion: Optional[EntryCompletionInsight] = None
    comparison: Optional[PeriodComparison] = None
