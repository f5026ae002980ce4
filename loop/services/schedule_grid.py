"""
Schedule Grid
=============

Calendar-shape generation for the schedule screens.  Produces padded
month grids and trailing week ranges; callers annotate the slots with
ratings via ``annotate``.
"""

import calendar
from datetime import date, datetime, timedelta, tzinfo
from typing import Collection, Mapping, Optional, Sequence, Union

from loop.core.errors import ValidationError
from loop.schemas.trends import DayCell
from loop.services.emotion_colors import EmotionColorAssigner

DAYS_PER_WEEK = 7
MAX_STREAK_DAYS = 365


class ScheduleGrid:
    """
    Month and week date layouts.

    ``first_weekday`` follows ``datetime.weekday()`` numbering
    (0 = Monday ... 6 = Sunday).
    """

    def __init__(self, tz: tzinfo, first_weekday: int = calendar.SUNDAY):
        if not 0 <= first_weekday <= 6:
            raise ValueError("first_weekday must be between 0 and 6")
        self.tz = tz
        self.first_weekday = first_weekday

    def month_grid(self, year: int, month: int) -> list[Optional[date]]:
        """
        Days of *month* padded with ``None`` to whole weeks.

        Leading slots align day 1 under ``first_weekday``; trailing
        slots fill the final week so the length is a multiple of 7.
        """
        if not 1 <= month <= 12:
            raise ValidationError(message="month must be between 1 and 12", field="month")
        if not 1 <= year <= 9999:
            raise ValidationError(message="year out of range", field="year")

        first = date(year, month, 1)
        days_in_month = calendar.monthrange(year, month)[1]
        leading = (first.weekday() - self.first_weekday) % DAYS_PER_WEEK

        grid: list[Optional[date]] = [None] * leading
        grid.extend(first + timedelta(days=offset) for offset in range(days_in_month))

        while len(grid) % DAYS_PER_WEEK:
            grid.append(None)
        return grid

    def week_dates(self, reference: Union[date, datetime]) -> list[date]:
        """The 7 consecutive days ending on *reference*'s calendar day, oldest first."""
        end = self._to_local_date(reference)
        if end < date.min + timedelta(days=DAYS_PER_WEEK - 1):
            raise ValidationError(message="reference is too early for a full week", field="reference")
        return [end - timedelta(days=offset) for offset in range(DAYS_PER_WEEK - 1, -1, -1)]

    def _to_local_date(self, value: Union[date, datetime]) -> date:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.date()
            return value.astimezone(self.tz).date()
        return value

    @staticmethod
    def annotate(
        days: Sequence[Optional[date]],
        ratings: Mapping[date, float],
        assigner: EmotionColorAssigner,
    ) -> list[Optional[DayCell]]:
        """Attach rating and rating color to each slot; padding stays ``None``."""
        cells: list[Optional[DayCell]] = []
        for day in days:
            if day is None:
                cells.append(None)
                continue
            rating = ratings.get(day)
            cells.append(
                DayCell(
                    date=day,
                    rating=rating,
                    color=assigner.color_for_rating(rating) if rating is not None else None,
                )
            )
        return cells

    @staticmethod
    def current_streak(
        active_days: Collection[date],
        today: date,
        max_days: int = MAX_STREAK_DAYS,
    ) -> int:
        """
        Consecutive active days counting back from yesterday.

        Today is not counted so an unfinished day never breaks the streak.
        """
        count = 0
        for offset in range(1, max_days + 1):
            if today - timedelta(days=offset) in active_days:
                count += 1
            else:
                break
        return count
