from __future__ import annotations

import re
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .models import InvalidInputError

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_RELATIVE_RE = re.compile(r"^-(\d+)([dhm])$", re.IGNORECASE)
_DMY_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_RELATIVE_UNITS = {"d": DAY_MS, "h": HOUR_MS, "m": MINUTE_MS}


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def to_local(ms: int, tz: ZoneInfo) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(tz)


def _to_ms(value: datetime) -> int:
    return round(value.timestamp() * 1000)


def day_start(ms: int, tz: ZoneInfo) -> int:
    """Return the local midnight at or before ``ms`` in ``tz``."""
    local_day = to_local(ms, tz).date()
    return _to_ms(datetime.combine(local_day, time.min, tzinfo=tz))


def next_day_start(ms: int, tz: ZoneInfo) -> int:
    """Return the local midnight that ends the day containing ``ms``.

    Equal to ``day_start(ms) + DAY_MS`` except across DST changes.
    """
    local_day = to_local(ms, tz).date()
    return _to_ms(datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz))


def overlap(a1: int, a2: int, b1: int, b2: int) -> int:
    return max(0, min(a2, b2) - max(a1, b1))


def format_duration(ms: int) -> str:
    """Render a duration as HH:MM:SS; hours are not wrapped at 24."""
    total_seconds = max(0, int(ms)) // SECOND_MS
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def parse_minutes(text: str | None) -> int | None:
    """Parse ``H:MM``/``HH:MM`` into a minute of day, or None when invalid."""
    match = _HHMM_RE.match((text or "").strip())
    if match is None:
        return None

    hours, minutes = int(match.group(1)), int(match.group(2))
    if not 0 <= hours <= 23 or not 0 <= minutes <= 59:
        return None
    return hours * 60 + minutes


def minutes_to_hhmm(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours:02}:{mins:02}"


def parse_date_or_relative(
    text: str | None,
    tz: ZoneInfo,
    now: int,
    *,
    as_end: bool = False,
    fallback: int | None = None,
) -> int | None:
    """Parse ``-7d``/``-12h``/``-30m``, ``DD/MM/YYYY`` or an ISO timestamp.

    A ``DD/MM/YYYY`` date resolves to local midnight; with ``as_end`` the
    whole day is included. Anything unparseable returns ``fallback``.
    """
    if not text:
        return fallback
    value = text.strip()

    relative = _RELATIVE_RE.match(value)
    if relative:
        return now - int(relative.group(1)) * _RELATIVE_UNITS[relative.group(2).lower()]

    dmy = _DMY_RE.match(value)
    if dmy:
        day, month, year = (int(part) for part in dmy.groups())
        try:
            midnight = _to_ms(datetime(year, month, day, tzinfo=tz))
        except ValueError:
            return fallback
        return midnight + DAY_MS if as_end else midnight

    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return _to_ms(parsed)


def resolve_report_range(
    preset: str | None,
    since: str | None,
    until: str | None,
    tz: ZoneInfo,
    now: int,
) -> tuple[int, int]:
    start = parse_date_or_relative(since, tz, now)
    end = parse_date_or_relative(until, tz, now, as_end=True)

    if start is None and end is None and preset:
        today = day_start(now, tz)
        if preset == "today":
            start, end = today, next_day_start(today, tz)
        elif preset == "yesterday":
            start, end = day_start(today - 1, tz), today
        elif preset == "week":
            start, end = now - 7 * DAY_MS, now

    if start is None:
        start = now - DAY_MS
    if end is None:
        end = now

    if end <= start:
        raise InvalidInputError("Invalid range: the end must be after the start.")
    return start, end


def format_local(ms: int, tz: ZoneInfo) -> str:
    return to_local(ms, tz).strftime("%d/%m/%Y %H:%M:%S")


def format_local_date(ms: int, tz: ZoneInfo) -> str:
    return to_local(ms, tz).strftime("%d/%m/%Y")


def format_local_time(ms: int, tz: ZoneInfo) -> str:
    return to_local(ms, tz).strftime("%H:%M")
