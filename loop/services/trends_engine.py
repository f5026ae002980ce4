"""
Trends Engine
=============

Pure trend computations over an immutable snapshot of loops, day
ratings and sleep check-ins:

- top emotions (label frequency distribution)
- speaking highlights (fastest / longest / wordiest entry)
- category correlations (bucket mean rating minus overall mean)
- average mood summary
- entry completion (loops per day on good versus other days)
- speaking metrics against the preceding period of equal length

Identical inputs always produce identical outputs; the engine holds no
mutable state.
"""

from collections import Counter, defaultdict
from datetime import date, tzinfo
from typing import Callable, Iterable, Mapping, Optional

from loop.schemas.loop import JournalEntry
from loop.schemas.trends import (
    CategoryEffect,
    ComparisonDirection,
    CorrelationCategory,
    EntryCompletionInsight,
    FrequencyResult,
    MetricComparison,
    MoodSummary,
    PeriodComparison,
    SpeakingHighlight,
    SpeakingHighlights,
    TimeWindow,
)
from loop.services.emotion_colors import mood_scale_color, normalize_label

DEFAULT_TOP_N = 4
DEFAULT_MIN_SUPPORT = 2

# Fewer rated days than this and an average is not worth reporting.
MIN_MOOD_DATA_POINTS = 3

# Days rated above this count as good days
MOOD_THRESHOLD = 6.0

# Percent changes below EQUAL read as unchanged, at or above SIGNIFICANT as notable
EQUAL_CHANGE_PERCENT = 1.0
SIGNIFICANT_CHANGE_PERCENT = 15.0


def time_of_day_bucket(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


def sleep_bucket(hours: float) -> str:
    if hours < 6:
        return "under_6h"
    if hours <= 8:
        return "6_to_8h"
    return "over_8h"


def word_count_bucket(words: int) -> str:
    if words < 50:
        return "short"
    if words <= 150:
        return "medium"
    return "long"


def mood_description(rating: float) -> str:
    # Bucket edges are inclusive on the upper end
    if rating <= 3:
        return "feeling down"
    if rating <= 4:
        return "not great"
    if rating <= 6:
        return "okay"
    if rating <= 8:
        return "pretty good"
    return "feeling great"


class TrendsEngine:
    """Stateless trend calculator configured with display limits."""

    def __init__(
        self,
        tz: tzinfo,
        top_n: int = DEFAULT_TOP_N,
        min_support: int = DEFAULT_MIN_SUPPORT,
    ):
        if top_n < 1:
            raise ValueError("top_n must be >= 1")
        if min_support < 1:
            raise ValueError("min_support must be >= 1")
        self.tz = tz
        self.top_n = top_n
        self.min_support = min_support

    # ---- helpers ---------------------------------------------------------

    @staticmethod
    def _in_window(entries: Iterable[JournalEntry], window: TimeWindow) -> list[JournalEntry]:
        return [e for e in entries if window.contains(e.timestamp)]

    def _rated_days(
        self,
        ratings: Mapping[date, float],
        window: TimeWindow,
    ) -> dict[date, float]:
        return {d: r for d, r in ratings.items() if window.contains_day(d, self.tz)}

    # ---- top emotions ----------------------------------------------------

    def top_emotions(
        self,
        entries: Iterable[JournalEntry],
        window: TimeWindow,
    ) -> list[FrequencyResult]:
        """
        Most frequent mood labels in *window*.

        Entries without a mood label are excluded from both numerator
        and denominator.  Ordered by count desc, then label; truncated
        to ``top_n``.
        """
        counts: Counter[str] = Counter()
        spellings: dict[str, Counter[str]] = defaultdict(Counter)

        for entry in self._in_window(entries, window):
            if entry.mood is None:
                continue
            key = normalize_label(entry.mood)
            if not key:
                continue
            counts[key] += 1
            spellings[key][entry.mood.strip()] += 1

        total = sum(counts.values())
        if total == 0:
            return []

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        results = []
        for key, count in ranked[: self.top_n]:
            # Most common spelling, ties broken lexically
            display = min(spellings[key].items(), key=lambda s: (-s[1], s[0]))[0]
            results.append(
                FrequencyResult(value=display, count=count, percentage=count / total)
            )
        return results

    # ---- speaking highlights --------------------------------------------

    @staticmethod
    def _extremal(
        entries: list[JournalEntry],
        metric: Callable[[JournalEntry], Optional[float]],
    ) -> Optional[SpeakingHighlight]:
        best: Optional[JournalEntry] = None
        best_value: Optional[float] = None
        for entry in entries:
            value = metric(entry)
            if value is None:
                continue
            if (
                best is None
                or value > best_value
                or (value == best_value and (entry.timestamp, entry.id) < (best.timestamp, best.id))
            ):
                best, best_value = entry, value

        if best is None:
            return None
        return SpeakingHighlight(
            entry_id=best.id,
            date=best.timestamp,
            wpm=best.effective_wpm,
            emotion=best.mood,
            word_count=best.effective_word_count,
            duration=best.duration,
        )

    def speaking_highlights(
        self,
        entries: Iterable[JournalEntry],
        window: TimeWindow,
    ) -> SpeakingHighlights:
        """Fastest, longest and wordiest in-window entries (``None`` when no metric)."""
        scoped = self._in_window(entries, window)
        return SpeakingHighlights(
            fastest=self._extremal(scoped, lambda e: e.effective_wpm),
            longest=self._extremal(scoped, lambda e: e.duration),
            most_words=self._extremal(scoped, lambda e: e.effective_word_count),
        )

    # ---- correlations ----------------------------------------------------

    def _entry_tag(self, entry: JournalEntry, category: CorrelationCategory) -> Optional[str]:
        if category is CorrelationCategory.TOPIC:
            topic = (entry.topic or entry.category or "").strip()
            return topic or None
        if category is CorrelationCategory.TIME_OF_DAY:
            return time_of_day_bucket(entry.timestamp.astimezone(self.tz).hour)
        if category is CorrelationCategory.WORD_COUNT:
            words = entry.effective_word_count
            return word_count_bucket(words) if words is not None else None
        return None

    def _bucket_days(
        self,
        entries: list[JournalEntry],
        rated: Mapping[date, float],
        category: CorrelationCategory,
        sleep_hours: Mapping[date, float],
    ) -> dict[str, set[date]]:
        buckets: dict[str, set[date]] = defaultdict(set)

        if category is CorrelationCategory.SLEEP:
            for day, hours in sleep_hours.items():
                if day in rated:
                    buckets[sleep_bucket(hours)].add(day)
            return buckets

        for entry in entries:
            day = entry.local_date(self.tz)
            if day not in rated:
                continue
            tag = self._entry_tag(entry, category)
            if tag is not None:
                buckets[tag].add(day)
        return buckets

    def correlations(
        self,
        entries: Iterable[JournalEntry],
        ratings: Mapping[date, float],
        window: TimeWindow,
        category: CorrelationCategory,
        sleep_hours: Optional[Mapping[date, float]] = None,
    ) -> list[CategoryEffect]:
        """
        Mood effect per bucket of *category* within *window*.

        A bucket's effect is the mean rating of the rated days tagged
        with it minus the mean over all rated days in the window.
        Buckets supported by fewer than ``min_support`` days are dropped.
        """
        category = CorrelationCategory(category)
        rated = self._rated_days(ratings, window)
        if not rated:
            return []

        overall = sum(rated.values()) / len(rated)
        buckets = self._bucket_days(
            self._in_window(entries, window),
            rated,
            category,
            sleep_hours or {},
        )

        effects = []
        for name, days in buckets.items():
            if len(days) < self.min_support:
                continue
            average = sum(rated[d] for d in days) / len(days)
            effects.append(
                CategoryEffect(
                    name=name,
                    effect=average - overall,
                    color=mood_scale_color(average),
                    support=len(days),
                    average_rating=average,
                )
            )

        effects.sort(key=lambda e: (-e.effect, e.name))
        return effects

    # ---- average mood ----------------------------------------------------

    def average_mood(
        self,
        ratings: Mapping[date, float],
        window: TimeWindow,
    ) -> Optional[MoodSummary]:
        """Average rating in *window*, or ``None`` below the data-point minimum."""
        rated = self._rated_days(ratings, window)
        if len(rated) < MIN_MOOD_DATA_POINTS:
            return None
        average = sum(rated.values()) / len(rated)
        return MoodSummary(
            average=average,
            label=mood_description(average),
            color=mood_scale_color(average),
            days=len(rated),
        )

    # ---- entry completion ------------------------------------------------

    def entry_completion(
        self,
        entries: Iterable[JournalEntry],
        ratings: Mapping[date, float],
        window: TimeWindow,
    ) -> Optional[EntryCompletionInsight]:
        """
        Mean loops per rated day, above ``MOOD_THRESHOLD`` versus at or below it.

        ``None`` unless both sides have at least ``MIN_MOOD_DATA_POINTS``
        rated days.  Rated days without loops count as zero.
        """
        rated = self._rated_days(ratings, window)
        if len(rated) < MIN_MOOD_DATA_POINTS:
            return None

        per_day = Counter(e.local_date(self.tz) for e in self._in_window(entries, window))
        above = [per_day[d] for d, r in rated.items() if r > MOOD_THRESHOLD]
        below = [per_day[d] for d, r in rated.items() if r <= MOOD_THRESHOLD]
        if len(above) < MIN_MOOD_DATA_POINTS or len(below) < MIN_MOOD_DATA_POINTS:
            return None

        above_average = sum(above) / len(above)
        below_average = sum(below) / len(below)
        return EntryCompletionInsight(
            threshold=MOOD_THRESHOLD,
            above_average=above_average,
            below_average=below_average,
            above_days=len(above),
            below_days=len(below),
            ratio=above_average / below_average if below_average else None,
        )

    # ---- period comparison -----------------------------------------------

    def _daily_average(
        self,
        entries: Iterable[JournalEntry],
        window: TimeWindow,
        metric: Callable[[JournalEntry], Optional[float]],
    ) -> Optional[float]:
        # Mean of the per-day means, so busy days do not dominate
        per_day: dict[date, list[float]] = defaultdict(list)
        for entry in self._in_window(entries, window):
            value = metric(entry)
            if value is not None:
                per_day[entry.local_date(self.tz)].append(value)
        if not per_day:
            return None
        return sum(sum(v) / len(v) for v in per_day.values()) / len(per_day)

    @staticmethod
    def _compare(name: str, current: Optional[float], previous: Optional[float]) -> MetricComparison:
        if current is None or previous is None or previous == 0:
            return MetricComparison(metric=name, current=current, previous=previous)

        diff = (current - previous) / previous * 100
        if abs(diff) < EQUAL_CHANGE_PERCENT:
            direction = ComparisonDirection.EQUAL
        elif diff > 0:
            direction = ComparisonDirection.HIGHER
        else:
            direction = ComparisonDirection.LOWER
        return MetricComparison(
            metric=name,
            current=current,
            previous=previous,
            percentage_diff=diff,
            direction=direction,
            is_significant=abs(diff) >= SIGNIFICANT_CHANGE_PERCENT,
        )

    def period_comparison(
        self,
        entries: Iterable[JournalEntry],
        window: TimeWindow,
    ) -> PeriodComparison:
        """
        Average wpm, duration and word count in *window* against the
        window of equal length right before it.

        *entries* must cover both windows.  A metric missing on either
        side, or zero in the previous window, gets no percentage.
        """
        entries = list(entries)
        previous = window.previous()
        metrics = (
            ("wpm", lambda e: e.effective_wpm),
            ("duration", lambda e: e.duration),
            ("word_count", lambda e: e.effective_word_count),
        )

        comparisons = []
        for name, metric in metrics:
            current = self._daily_average(entries, window, metric)
            before = self._daily_average(entries, previous, metric) if previous else None
            comparisons.append(self._compare(name, current, before))

        return PeriodComparison(current=window, previous=previous, metrics=comparisons)
