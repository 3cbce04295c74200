from __future__ import annotations

from zoneinfo import ZoneInfo

from .models import BillableSegment, BreakWindow, Schedule
from .timeutils import MINUTE_MS, day_start, next_day_start, overlap


def split_billable_by_day(
    seg_start: int,
    seg_end: int,
    tz: ZoneInfo,
    schedule: Schedule | None = None,
    break_window: BreakWindow | None = None,
) -> list[BillableSegment]:
    """Split ``[seg_start, seg_end)`` at local midnights and bill each day.

    Without a schedule the whole day counts; without a break nothing is
    deducted. Work and break windows are offsets from each local midnight,
    so every day is clipped against its own windows. Days that end up with
    no billable time are left out.
    """
    segments: list[BillableSegment] = []
    cursor = seg_start

    while cursor < seg_end:
        day = day_start(cursor, tz)
        day_end = next_day_start(cursor, tz)
        start = max(cursor, day)
        end = min(seg_end, day_end)

        if schedule is not None:
            work_start = day + schedule.work_start_min * MINUTE_MS
            work_end = day + schedule.work_end_min * MINUTE_MS
            billable = overlap(start, end, work_start, work_end)
        else:
            billable = end - start

        if break_window is not None and billable > 0:
            break_start = day + break_window.break_start_min * MINUTE_MS
            break_end = day + break_window.break_end_min * MINUTE_MS
            billable = max(0, billable - overlap(start, end, break_start, break_end))

        if billable > 0:
            segments.append(BillableSegment(day=day, start=start, end=end, ms=billable))

        cursor = end

    return segments
