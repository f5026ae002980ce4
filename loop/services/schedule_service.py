"""
Schedule Service
================

Business logic behind the schedule screens: recording and deleting
loops, the per-day activity view, day check-ins and the annotated
month/week calendars.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from loop.core.errors import ValidationError
from loop.schemas.loop import DayActivity, JournalEntry, LoopCreate
from loop.schemas.trends import DayCell, TimeWindow, local_midnight
from loop.services.daily_aggregator import DailyAggregator
from loop.services.emotion_colors import EmotionColorAssigner
from loop.services.entry_store import EntryStore
from loop.services.rating_store import RatingStore
from loop.services.schedule_grid import MAX_STREAK_DAYS, ScheduleGrid

logger = logging.getLogger(__name__)


def day_window(first: date, stop: date, tz: tzinfo) -> TimeWindow:
    """Window covering local days ``first <= d < stop``."""
    return TimeWindow(start=local_midnight(first, tz), end=local_midnight(stop, tz))


class ScheduleService:
    """Service for schedule operations."""

    def __init__(
        self,
        entries: EntryStore,
        ratings: RatingStore,
        assigner: EmotionColorAssigner,
        tz: tzinfo,
        first_weekday: int,
    ):
        self.entries = entries
        self.ratings = ratings
        self.assigner = assigner
        self.tz = tz
        self.grid = ScheduleGrid(tz, first_weekday)
        self.aggregator = DailyAggregator(tz)

    def today(self) -> date:
        return datetime.now(timezone.utc).astimezone(self.tz).date()

    # ---- loops -----------------------------------------------------------

    async def record_loop(self, user_id: str, data: LoopCreate) -> JournalEntry:
        """Build a ``JournalEntry`` from the request and persist it."""
        payload = data.model_dump()
        payload["id"] = data.id or str(uuid.uuid4())
        payload["timestamp"] = data.timestamp or datetime.now(timezone.utc)
        try:
            entry = JournalEntry.model_validate(payload)
        except PydanticValidationError as exc:
            error = exc.errors()[0]
            raise ValidationError(
                message=error.get("msg", "Invalid loop"),
                field=".".join(str(loc) for loc in error.get("loc", ())) or None,
            ) from exc

        saved = await self.entries.save_entry(user_id, entry)
        logger.info("Recorded %s loop %s for user %s", entry.kind.value, entry.id, user_id)
        return saved

    async def delete_loop(self, user_id: str, loop_id: str) -> None:
        await self.entries.delete_entry(user_id, loop_id)
        logger.info("Deleted loop %s for user %s", loop_id, user_id)

    async def day_activity(
        self,
        user_id: str,
        day: date,
        newest_first: bool = False,
    ) -> DayActivity:
        """Entries of *day* partitioned by kind, plus the day's rating."""
        window = day_window(day, day + timedelta(days=1), self.tz)
        entries = await self.entries.fetch_entries(user_id, window)
        rating = await self.ratings.fetch_rating(user_id, day)
        return self.aggregator.categorize(entries, rating=rating, day=day, newest_first=newest_first)

    # ---- check-ins -------------------------------------------------------

    async def save_rating(self, user_id: str, day: date, rating: float) -> DayCell:
        await self.ratings.save_rating(user_id, day, rating)
        return DayCell(date=day, rating=rating, color=self.assigner.color_for_rating(rating))

    async def save_sleep_hours(self, user_id: str, day: date, hours: float) -> None:
        await self.ratings.save_sleep_hours(user_id, day, hours)

    # ---- calendars -------------------------------------------------------

    async def month(self, user_id: str, year: int, month: int) -> list[Optional[DayCell]]:
        """Month grid annotated with the user's ratings."""
        days = self.grid.month_grid(year, month)
        present = [d for d in days if d is not None]
        window = day_window(present[0], present[-1] + timedelta(days=1), self.tz)
        ratings = await self.ratings.fetch_ratings(user_id, window)
        return self.grid.annotate(days, ratings, self.assigner)

    async def week(
        self,
        user_id: str,
        reference: Optional[Union[date, datetime]] = None,
    ) -> list[Optional[DayCell]]:
        """The 7 days ending at *reference* (default today), annotated."""
        days = self.grid.week_dates(reference or self.today())
        window = day_window(days[0], days[-1] + timedelta(days=1), self.tz)
        ratings = await self.ratings.fetch_ratings(user_id, window)
        return self.grid.annotate(days, ratings, self.assigner)

    async def streak(self, user_id: str, today: Optional[date] = None) -> int:
        """
        Current streak: consecutive days before today with a loop or a rating.
        """
        today = today or self.today()
        window = day_window(today - timedelta(days=MAX_STREAK_DAYS), today, self.tz)
        entries = await self.entries.fetch_entries(user_id, window)
        ratings = await self.ratings.fetch_ratings(user_id, window)

        active = {e.local_date(self.tz) for e in entries}
        active.update(ratings)
        return self.grid.current_streak(active, today)
