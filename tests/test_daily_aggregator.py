"""
Daily Aggregator Tests
======================

Partitioning of a day's loops into daily / thematic / follow-up buckets.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import make_entry
from loop.services.daily_aggregator import DailyAggregator, dedupe_by_id

BASE = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def aggregator() -> DailyAggregator:
    return DailyAggregator(timezone.utc)


def _ids(entries) -> list[str]:
    return [e.id for e in entries]


class TestCategorize:
    def test_partitions_by_kind_and_keeps_rating(self, aggregator):
        entries = [
            make_entry("a", BASE, is_daily_loop=True),
            make_entry("b", BASE + timedelta(minutes=1), is_follow_up=True),
            make_entry("c", BASE + timedelta(minutes=2)),
        ]

        activity = aggregator.categorize(entries, rating=7.5)

        assert _ids(activity.daily_loops) == ["a"]
        assert _ids(activity.follow_up_loops) == ["b"]
        assert _ids(activity.thematic_loops) == ["c"]
        assert activity.rating == 7.5
        assert activity.day == date(2026, 3, 10)

    def test_empty_day_is_empty_not_an_error(self, aggregator):
        activity = aggregator.categorize([])

        assert activity.daily_loops == []
        assert activity.thematic_loops == []
        assert activity.follow_up_loops == []
        assert activity.rating is None
        assert activity.day is None
        assert activity.is_empty

    def test_rating_only_day_is_not_empty(self, aggregator):
        activity = aggregator.categorize([], rating=4.0, day=date(2026, 3, 10))

        assert not activity.is_empty
        assert activity.entry_count == 0

    def test_buckets_are_disjoint_and_cover_unique_input(self, aggregator):
        entries = [
            make_entry(f"e{i}", BASE + timedelta(minutes=i), is_daily_loop=i % 3 == 0, is_follow_up=i % 3 == 1)
            for i in range(9)
        ]
        entries.append(entries[4])

        activity = aggregator.categorize(entries)
        buckets = [
            set(_ids(activity.daily_loops)),
            set(_ids(activity.thematic_loops)),
            set(_ids(activity.follow_up_loops)),
        ]

        assert set().union(*buckets) == {e.id for e in entries}
        assert sum(len(b) for b in buckets) == 9
        assert not (buckets[0] & buckets[1] or buckets[0] & buckets[2] or buckets[1] & buckets[2])

    def test_follow_up_on_thematic_prompt(self, aggregator):
        # A follow-up on a thematic prompt is still a follow-up
        entry = make_entry("f", BASE, is_follow_up=True, category="Growth")

        activity = aggregator.categorize([entry])

        assert _ids(activity.follow_up_loops) == ["f"]
        assert activity.thematic_loops == []

    def test_orders_by_timestamp_then_id(self, aggregator):
        entries = [
            make_entry("z", BASE + timedelta(hours=2), is_daily_loop=True),
            make_entry("b", BASE, is_daily_loop=True),
            make_entry("a", BASE, is_daily_loop=True),
        ]

        activity = aggregator.categorize(entries)

        assert _ids(activity.daily_loops) == ["a", "b", "z"]

    def test_newest_first_reverses_order(self, aggregator):
        entries = [
            make_entry("early", BASE, is_daily_loop=True),
            make_entry("late", BASE + timedelta(hours=3), is_daily_loop=True),
        ]

        activity = aggregator.categorize(entries, newest_first=True)

        assert _ids(activity.daily_loops) == ["late", "early"]

    def test_day_follows_local_timezone(self):
        tz = timezone(timedelta(hours=-5))
        late_utc = datetime(2026, 3, 11, 2, 0, tzinfo=timezone.utc)

        activity = DailyAggregator(tz).categorize([make_entry("x", late_utc)])

        assert activity.day == date(2026, 3, 10)


class TestDedupe:
    def test_first_occurrence_wins(self):
        first = make_entry("same", BASE, mood="Calm")
        second = make_entry("same", BASE, mood="Tense")

        assert dedupe_by_id([first, second]) == [first]
