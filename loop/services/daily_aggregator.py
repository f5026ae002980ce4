"""
Daily Aggregator
================

Partitions a day's loops into daily / thematic / follow-up buckets and
attaches the day's self-reported rating.
"""

from datetime import date, tzinfo
from typing import Iterable, Optional

from loop.schemas.loop import DayActivity, EntryKind, JournalEntry


def dedupe_by_id(entries: Iterable[JournalEntry]) -> list[JournalEntry]:
    """Drop repeated ids, keeping the first occurrence in input order."""
    seen: set[str] = set()
    unique: list[JournalEntry] = []
    for entry in entries:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        unique.append(entry)
    return unique


class DailyAggregator:
    """Builds ``DayActivity`` views from one day's entries."""

    def __init__(self, tz: tzinfo):
        self.tz = tz

    def categorize(
        self,
        entries: Iterable[JournalEntry],
        rating: Optional[float] = None,
        day: Optional[date] = None,
        newest_first: bool = False,
    ) -> DayActivity:
        """
        Partition *entries* (all from one calendar day) by kind.

        Each bucket is ordered by timestamp ascending (ties by id), or
        descending when *newest_first* is set.  An empty input with no
        rating yields an empty ``DayActivity``.
        """
        unique = dedupe_by_id(entries)

        buckets: dict[EntryKind, list[JournalEntry]] = {kind: [] for kind in EntryKind}
        for entry in unique:
            buckets[entry.kind].append(entry)

        for bucket in buckets.values():
            bucket.sort(key=lambda e: (e.timestamp, e.id), reverse=newest_first)

        if day is None and unique:
            day = min(unique, key=lambda e: e.timestamp).local_date(self.tz)

        return DayActivity(
            day=day,
            daily_loops=buckets[EntryKind.DAILY],
            thematic_loops=buckets[EntryKind.THEMATIC],
            follow_up_loops=buckets[EntryKind.FOLLOW_UP],
            rating=rating,
        )
