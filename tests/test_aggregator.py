from datetime import datetime
from zoneinfo import ZoneInfo

from presence_tracker.aggregator import Aggregator
from presence_tracker.db import Database
from presence_tracker.models import MANUAL_CHANNEL, SOURCE_AUTO, SOURCE_MANUAL, BreakWindow, Schedule
from presence_tracker.timeutils import HOUR_MS, MINUTE_MS

LIMA = ZoneInfo("America/Lima")


def at(day: int, hour: int, minute: int = 0) -> int:
    return int(datetime(2026, 3, day, hour, minute, tzinfo=LIMA).timestamp() * 1000)


def make_aggregator(now: int) -> tuple[Database, Aggregator]:
    db = Database(":memory:")
    db.initialize()
    return db, Aggregator(db=db, tz=LIMA, clock=lambda: now)


def closed_session(db: Database, user_id: str, channel_id: str | None, start: int, end: int) -> None:
    session_id = db.start_session("g", user_id, channel_id, start, SOURCE_AUTO if channel_id else SOURCE_MANUAL)
    db.end_session(session_id, end)


def test_totals_are_consistent_across_dimensions() -> None:
    db, aggregator = make_aggregator(now=at(9, 0))
    db.upsert_schedule("g", "1", Schedule(540, 1080))
    db.upsert_break("g", "1", BreakWindow(780, 840))
    closed_session(db, "1", "100", at(5, 8), at(5, 12))
    closed_session(db, "1", "200", at(5, 12), at(6, 10))
    closed_session(db, "1", None, at(6, 15), at(6, 16))
    closed_session(db, "2", "100", at(6, 23), at(7, 1))

    result = aggregator.aggregate("g", at(1, 0), at(9, 0))

    assert list(result) == ["1", "2"]
    for data in result.values():
        assert data.total_ms == sum(data.per_day.values())
        assert data.total_ms == sum(data.per_channel.values())
        assert data.total_ms == sum(data.per_day_channel.values())
        assert data.total_ms == sum(interval.ms for interval in data.intervals)

    first = result["1"]
    assert first.per_channel == {"100": 3 * HOUR_MS, "200": 6 * HOUR_MS, MANUAL_CHANNEL: HOUR_MS}
    assert first.per_day == {at(5, 0): 8 * HOUR_MS, at(6, 0): 2 * HOUR_MS}
    assert first.per_day_channel[(at(6, 0), "200")] == HOUR_MS
    assert result["2"].total_ms == 2 * HOUR_MS


def test_sessions_are_clipped_to_range() -> None:
    db, aggregator = make_aggregator(now=at(9, 0))
    closed_session(db, "1", "100", at(5, 8), at(5, 12))

    result = aggregator.aggregate("g", at(5, 10), at(5, 11))

    assert result["1"].total_ms == HOUR_MS
    assert (result["1"].intervals[0].start, result["1"].intervals[0].end) == (at(5, 10), at(5, 11))


def test_open_session_runs_until_clock() -> None:
    db, aggregator = make_aggregator(now=at(5, 10, 30))
    db.start_session("g", "1", "100", at(5, 9), SOURCE_AUTO)

    result = aggregator.aggregate("g", at(5, 0), at(6, 0))

    assert result["1"].total_ms == HOUR_MS + 30 * MINUTE_MS


def test_open_session_starting_after_now_is_skipped() -> None:
    db, aggregator = make_aggregator(now=at(5, 9))
    db.start_session("g", "1", "100", at(5, 10), SOURCE_AUTO)

    assert aggregator.aggregate("g", at(5, 0), at(6, 0)) == {}


def test_user_with_only_non_billable_time_is_absent() -> None:
    db, aggregator = make_aggregator(now=at(9, 0))
    db.upsert_schedule("g", "1", Schedule(540, 1080))
    closed_session(db, "1", "100", at(5, 19), at(5, 22))
    closed_session(db, "2", "100", at(5, 19), at(5, 22))

    result = aggregator.aggregate("g", at(5, 0), at(6, 0))

    assert list(result) == ["2"]


def test_filter_by_user() -> None:
    db, aggregator = make_aggregator(now=at(9, 0))
    closed_session(db, "1", "100", at(5, 8), at(5, 9))
    closed_session(db, "2", "100", at(5, 8), at(5, 9))

    assert list(aggregator.aggregate("g", at(5, 0), at(6, 0), "2")) == ["2"]


def test_storage_failure_renders_as_no_data() -> None:
    db, aggregator = make_aggregator(now=at(9, 0))
    closed_session(db, "1", "100", at(5, 8), at(5, 9))
    db.close()

    assert aggregator.aggregate("g", at(5, 0), at(6, 0)) == {}


def test_presentation_orderings() -> None:
    db, aggregator = make_aggregator(now=at(9, 0))
    closed_session(db, "1", "300", at(6, 8), at(6, 9))
    closed_session(db, "1", "100", at(5, 8), at(5, 11))
    closed_session(db, "1", "200", at(5, 12), at(5, 13))

    data = aggregator.aggregate("g", at(1, 0), at(9, 0))["1"]

    assert [day for day, _ in data.sorted_days()] == [at(5, 0), at(6, 0)]
    assert [channel for channel, _ in data.sorted_channels()] == ["100", "200", "300"]
    assert [interval.channel_id for interval in data.intervals_for_day(at(5, 0))] == ["100", "200"]
