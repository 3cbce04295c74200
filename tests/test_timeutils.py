from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from presence_tracker.models import InvalidInputError
from presence_tracker.timeutils import (
    DAY_MS,
    HOUR_MS,
    MINUTE_MS,
    day_start,
    format_duration,
    format_local,
    minutes_to_hhmm,
    next_day_start,
    overlap,
    parse_date_or_relative,
    parse_minutes,
    resolve_report_range,
)

LIMA = ZoneInfo("America/Lima")


def ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def test_overlap_is_symmetric_and_never_negative() -> None:
    assert overlap(0, 10, 5, 20) == 5
    assert overlap(5, 20, 0, 10) == 5
    assert overlap(0, 10, 10, 20) == 0
    assert overlap(0, 10, 30, 40) == 0
    assert overlap(30, 40, 0, 10) == 0
    assert overlap(0, 100, 10, 20) == 10


def test_day_start_uses_configured_timezone() -> None:
    # 02:00 UTC on the 2nd is still the 1st in Lima (UTC-5).
    instant = ms(datetime(2026, 3, 2, 2, 0, tzinfo=ZoneInfo("UTC")))

    assert day_start(instant, LIMA) == ms(datetime(2026, 3, 1, tzinfo=LIMA))
    assert day_start(instant, ZoneInfo("UTC")) == ms(datetime(2026, 3, 2, tzinfo=ZoneInfo("UTC")))


def test_next_day_start_follows_dst_change() -> None:
    tz = ZoneInfo("America/New_York")
    # 2026-11-01 has 25 hours in New York.
    midnight = ms(datetime(2026, 11, 1, tzinfo=tz))

    assert next_day_start(midnight, tz) - midnight == 25 * HOUR_MS
    assert next_day_start(midnight + HOUR_MS, LIMA) - day_start(midnight + HOUR_MS, LIMA) == DAY_MS


def test_format_duration_hh_mm_ss() -> None:
    assert format_duration(0) == "00:00:00"
    assert format_duration(3661 * 1000) == "01:01:01"
    assert format_duration(30 * HOUR_MS + 999) == "30:00:00"
    assert format_duration(-5) == "00:00:00"


def test_parse_minutes() -> None:
    assert parse_minutes("09:00") == 540
    assert parse_minutes("9:05") == 545
    assert parse_minutes("23:59") == 1439
    assert parse_minutes("00:00") == 0
    assert parse_minutes("24:00") is None
    assert parse_minutes("12:60") is None
    assert parse_minutes("12:5") is None
    assert parse_minutes("noon") is None
    assert parse_minutes(None) is None


def test_minutes_to_hhmm() -> None:
    assert minutes_to_hhmm(540) == "09:00"
    assert minutes_to_hhmm(1440) == "24:00"


def test_parse_relative_offsets_are_case_insensitive() -> None:
    now = ms(datetime(2026, 3, 10, 12, 0, tzinfo=LIMA))

    assert parse_date_or_relative("-7d", LIMA, now) == now - 7 * DAY_MS
    assert parse_date_or_relative("-12H", LIMA, now) == now - 12 * HOUR_MS
    assert parse_date_or_relative("-30m", LIMA, now) == now - 30 * MINUTE_MS


def test_parse_day_month_year_as_start_and_end() -> None:
    now = ms(datetime(2026, 3, 10, 12, 0, tzinfo=LIMA))
    midnight = ms(datetime(2026, 3, 5, tzinfo=LIMA))

    assert parse_date_or_relative("05/03/2026", LIMA, now) == midnight
    assert parse_date_or_relative("5-3-2026", LIMA, now) == midnight
    assert parse_date_or_relative("05/03/2026", LIMA, now, as_end=True) == midnight + DAY_MS


def test_parse_absolute_timestamps() -> None:
    now = 0
    assert parse_date_or_relative("2026-03-05T10:00:00+00:00", LIMA, now) == ms(
        datetime(2026, 3, 5, 10, 0, tzinfo=ZoneInfo("UTC"))
    )
    # Naive timestamps are read in the configured zone.
    assert parse_date_or_relative("2026-03-05T10:00:00", LIMA, now) == ms(datetime(2026, 3, 5, 10, 0, tzinfo=LIMA))


def test_parse_falls_back_on_garbage() -> None:
    assert parse_date_or_relative("yesterday-ish", LIMA, 0, fallback=42) == 42
    assert parse_date_or_relative("31/02/2026", LIMA, 0, fallback=7) == 7
    assert parse_date_or_relative("", LIMA, 0) is None
    assert parse_date_or_relative(None, LIMA, 0, fallback=1) == 1


def test_resolve_report_range_presets() -> None:
    now = ms(datetime(2026, 3, 10, 15, 30, tzinfo=LIMA))
    today = ms(datetime(2026, 3, 10, tzinfo=LIMA))

    assert resolve_report_range("today", None, None, LIMA, now) == (today, today + DAY_MS)
    assert resolve_report_range("yesterday", None, None, LIMA, now) == (today - DAY_MS, today)
    assert resolve_report_range("week", None, None, LIMA, now) == (now - 7 * DAY_MS, now)


def test_resolve_report_range_defaults_and_explicit_bounds_win() -> None:
    now = ms(datetime(2026, 3, 10, 15, 30, tzinfo=LIMA))

    assert resolve_report_range(None, None, None, LIMA, now) == (now - DAY_MS, now)
    # Explicit bounds override the preset.
    assert resolve_report_range("today", "-2h", None, LIMA, now) == (now - 2 * HOUR_MS, now)


def test_resolve_report_range_rejects_inverted_range() -> None:
    now = ms(datetime(2026, 3, 10, 15, 30, tzinfo=LIMA))

    with pytest.raises(InvalidInputError):
        resolve_report_range(None, "10/03/2026", "-1d", LIMA, now)


def test_format_local() -> None:
    instant = ms(datetime(2026, 3, 5, 9, 7, 3, tzinfo=LIMA))
    assert format_local(instant, LIMA) == "05/03/2026 09:07:03"
