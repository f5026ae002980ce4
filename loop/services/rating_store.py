"""
Rating Store
============

Day ratings and sleep check-ins, at most one of each per user and
local calendar day.  Writes are upserts.
"""

import logging
from datetime import date, tzinfo
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from loop.models.loop import DayRating, SleepCheckin
from loop.schemas.trends import TimeWindow
from loop.services.entry_store import source_errors

logger = logging.getLogger(__name__)


class RatingStore:
    """Interface shared by rating sources."""

    async def fetch_rating(self, user_id: str, day: date) -> Optional[float]:
        raise NotImplementedError

    async def fetch_ratings(self, user_id: str, window: TimeWindow) -> dict[date, float]:
        raise NotImplementedError

    async def fetch_sleep_hours(self, user_id: str, window: TimeWindow) -> dict[date, float]:
        raise NotImplementedError

    async def save_rating(self, user_id: str, day: date, rating: float) -> None:
        raise NotImplementedError

    async def save_sleep_hours(self, user_id: str, day: date, hours: float) -> None:
        raise NotImplementedError


class SqlRatingStore(RatingStore):
    """Ratings and sleep check-ins in PostgreSQL."""

    source = "ratings"

    def __init__(self, db: AsyncSession, tz: tzinfo):
        self.db = db
        self.tz = tz

    async def fetch_rating(self, user_id: str, day: date) -> Optional[float]:
        stmt = select(DayRating.rating).where(
            DayRating.user_id == user_id,
            DayRating.day == day,
        )
        with source_errors(self.source):
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

    async def fetch_ratings(self, user_id: str, window: TimeWindow) -> dict[date, float]:
        first, stop = window.date_bounds(self.tz)
        stmt = select(DayRating.day, DayRating.rating).where(
            DayRating.user_id == user_id,
            DayRating.day >= first,
            DayRating.day < stop,
        )
        with source_errors(self.source):
            result = await self.db.execute(stmt)
            return {row.day: row.rating for row in result.all()}

    async def fetch_sleep_hours(self, user_id: str, window: TimeWindow) -> dict[date, float]:
        first, stop = window.date_bounds(self.tz)
        stmt = select(SleepCheckin.day, SleepCheckin.hours).where(
            SleepCheckin.user_id == user_id,
            SleepCheckin.day >= first,
            SleepCheckin.day < stop,
        )
        with source_errors("sleep_checkins"):
            result = await self.db.execute(stmt)
            return {row.day: row.hours for row in result.all()}

    async def save_rating(self, user_id: str, day: date, rating: float) -> None:
        stmt = pg_insert(DayRating).values(user_id=user_id, day=day, rating=rating)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "day"],
            set_={"rating": stmt.excluded.rating, "updated_at": func.now()},
        )
        with source_errors(self.source):
            await self.db.execute(stmt)
        logger.info("Saved rating %.1f for user %s on %s", rating, user_id, day)

    async def save_sleep_hours(self, user_id: str, day: date, hours: float) -> None:
        stmt = pg_insert(SleepCheckin).values(user_id=user_id, day=day, hours=hours)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "day"],
            set_={"hours": stmt.excluded.hours, "updated_at": func.now()},
        )
        with source_errors("sleep_checkins"):
            await self.db.execute(stmt)


class InMemoryRatingStore(RatingStore):
    """Process-local ratings for previews and tests."""

    def __init__(
        self,
        tz: tzinfo,
        ratings: Optional[dict[str, dict[date, float]]] = None,
        sleep: Optional[dict[str, dict[date, float]]] = None,
    ):
        self.tz = tz
        self._ratings = {user: dict(days) for user, days in (ratings or {}).items()}
        self._sleep = {user: dict(days) for user, days in (sleep or {}).items()}

    def _in_window(self, days: dict[date, float], window: TimeWindow) -> dict[date, float]:
        first, stop = window.date_bounds(self.tz)
        return {d: v for d, v in days.items() if first <= d < stop}

    async def fetch_rating(self, user_id: str, day: date) -> Optional[float]:
        return self._ratings.get(user_id, {}).get(day)

    async def fetch_ratings(self, user_id: str, window: TimeWindow) -> dict[date, float]:
        return self._in_window(self._ratings.get(user_id, {}), window)

    async def fetch_sleep_hours(self, user_id: str, window: TimeWindow) -> dict[date, float]:
        return self._in_window(self._sleep.get(user_id, {}), window)

    async def save_rating(self, user_id: str, day: date, rating: float) -> None:
        self._ratings.setdefault(user_id, {})[day] = rating

    async def save_sleep_hours(self, user_id: str, day: date, hours: float) -> None:
        self._sleep.setdefault(user_id, {})[day] = hours
