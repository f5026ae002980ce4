"""
Trends Service
==============

Fetches a user's snapshot (loops, ratings, sleep) for a window and runs
the pure ``TrendsEngine`` over it.

``summary`` computes every trend for one snapshot concurrently in
worker threads; the engine holds no state so the calls are independent.
"""

import asyncio
import logging
from datetime import date, tzinfo
from typing import Optional

from loop.schemas.loop import JournalEntry
from loop.schemas.trends import (
    CategoryEffect,
    CorrelationCategory,
    EmotionFrequency,
    EntryCompletionInsight,
    FrequencyResult,
    MoodSummary,
    PeriodComparison,
    SpeakingHighlights,
    TimeWindow,
    TrendsSummary,
)
from loop.services.emotion_colors import EmotionColorAssigner
from loop.services.entry_store import EntryStore
from loop.services.rating_store import RatingStore
from loop.services.trends_engine import TrendsEngine

logger = logging.getLogger(__name__)


def _with_previous(window: TimeWindow) -> TimeWindow:
    """*window* extended back over its preceding period, when there is one."""
    previous = window.previous()
    if previous is None:
        return window
    return TimeWindow(start=previous.start, end=window.end)


class TrendsService:
    """Service for trend queries."""

    def __init__(
        self,
        entries: EntryStore,
        ratings: RatingStore,
        assigner: EmotionColorAssigner,
        engine: TrendsEngine,
    ):
        self.entries = entries
        self.ratings = ratings
        self.assigner = assigner
        self.engine = engine

    @property
    def tz(self) -> tzinfo:
        return self.engine.tz

    def _with_colors(self, frequencies: list[FrequencyResult]) -> list[EmotionFrequency]:
        return [
            EmotionFrequency(**f.model_dump(), color=self.assigner.color_for(f.value))
            for f in frequencies
        ]

    async def top_emotions(self, user_id: str, window: TimeWindow) -> list[EmotionFrequency]:
        entries = await self.entries.fetch_entries(user_id, window)
        return self._with_colors(self.engine.top_emotions(entries, window))

    async def speaking_highlights(self, user_id: str, window: TimeWindow) -> SpeakingHighlights:
        entries = await self.entries.fetch_entries(user_id, window)
        return self.engine.speaking_highlights(entries, window)

    async def correlations(
        self,
        user_id: str,
        window: TimeWindow,
        category: CorrelationCategory,
    ) -> list[CategoryEffect]:
        entries = await self.entries.fetch_entries(user_id, window)
        ratings = await self.ratings.fetch_ratings(user_id, window)
        sleep = None
        if category is CorrelationCategory.SLEEP:
            sleep = await self.ratings.fetch_sleep_hours(user_id, window)
        return self.engine.correlations(entries, ratings, window, category, sleep)

    async def _snapshot(
        self,
        user_id: str,
        window: TimeWindow,
    ) -> tuple[tuple[JournalEntry, ...], dict[date, float], dict[date, float]]:
        # Stores may share one DB session, which does not allow
        # concurrent statements.
        # Loops also cover the preceding period for the comparison.
        entries = await self.entries.fetch_entries(user_id, _with_previous(window))
        ratings = await self.ratings.fetch_ratings(user_id, window)
        sleep = await self.ratings.fetch_sleep_hours(user_id, window)
        return entries, ratings, sleep

    async def summary(self, user_id: str, window: TimeWindow) -> TrendsSummary:
        """Every trend for one snapshot, computed concurrently."""
        entries, ratings, sleep = await self._snapshot(user_id, window)
        categories = list(CorrelationCategory)

        top, speaking, mood, completion, comparison, *effects = await asyncio.gather(
            asyncio.to_thread(self.engine.top_emotions, entries, window),
            asyncio.to_thread(self.engine.speaking_highlights, entries, window),
            asyncio.to_thread(self.engine.average_mood, ratings, window),
            asyncio.to_thread(self.engine.entry_completion, entries, ratings, window),
            asyncio.to_thread(self.engine.period_comparison, entries, window),
            *(
                asyncio.to_thread(self.engine.correlations, entries, ratings, window, category, sleep)
                for category in categories
            ),
        )

        logger.debug(
            "Trends summary for user %s: %d entries, %d rated days",
            user_id,
            len(entries),
            len(ratings),
        )
        return TrendsSummary(
            window=window,
            top_emotions=self._with_colors(top),
            speaking=speaking,
            average_mood=mood,
            correlations=dict(zip(categories, effects)),
            entry_completion=completion,
            comparison=comparison,
        )

    async def average_mood(self, user_id: str, window: TimeWindow) -> Optional[MoodSummary]:
        ratings = await self.ratings.fetch_ratings(user_id, window)
        return self.engine.average_mood(ratings, window)

    async def entry_completion(self, user_id: str, window: TimeWindow) -> Optional[EntryCompletionInsight]:
        entries = await self.entries.fetch_entries(user_id, window)
        ratings = await self.ratings.fetch_ratings(user_id, window)
        return self.engine.entry_completion(entries, ratings, window)

    async def period_comparison(self, user_id: str, window: TimeWindow) -> PeriodComparison:
        entries = await self.entries.fetch_entries(user_id, _with_previous(window))
        return self.engine.period_comparison(entries, window)
