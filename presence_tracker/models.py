from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field

SOURCE_AUTO = "auto"
SOURCE_MANUAL = "manual"

# Channel key used for sessions that are not tied to a voice channel.
MANUAL_CHANNEL = "manual"


class InvalidInputError(ValueError):
    """Raised for user input that must be rejected before touching storage."""


@dataclass(frozen=True, slots=True)
class Session:
    id: int
    guild_id: str
    user_id: str
    channel_id: str | None
    started_at: int
    ended_at: int | None
    source: str

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


@dataclass(frozen=True, slots=True)
class SessionQuery:
    """Outcome of a range query: rows on success, the storage error otherwise."""

    sessions: list[Session]
    error: sqlite3.Error | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class Schedule:
    work_start_min: int
    work_end_min: int


@dataclass(frozen=True, slots=True)
class BreakWindow:
    break_start_min: int
    break_end_min: int


@dataclass(frozen=True, slots=True)
class BillableSegment:
    day: int
    start: int
    end: int
    ms: int


@dataclass(frozen=True, slots=True)
class BillableInterval:
    day: int
    channel_id: str
    start: int
    end: int
    ms: int


@dataclass(slots=True)
class UserAggregate:
    total_ms: int = 0
    per_channel: dict[str, int] = field(default_factory=dict)
    per_day: dict[int, int] = field(default_factory=dict)
    per_day_channel: dict[tuple[int, str], int] = field(default_factory=dict)
    intervals: list[BillableInterval] = field(default_factory=list)

    def add(self, segment: BillableSegment, channel_id: str) -> None:
        self.total_ms += segment.ms
        self.per_channel[channel_id] = self.per_channel.get(channel_id, 0) + segment.ms
        self.per_day[segment.day] = self.per_day.get(segment.day, 0) + segment.ms
        key = (segment.day, channel_id)
        self.per_day_channel[key] = self.per_day_channel.get(key, 0) + segment.ms
        self.intervals.append(
            BillableInterval(
                day=segment.day,
                channel_id=channel_id,
                start=segment.start,
                end=segment.end,
                ms=segment.ms,
            )
        )

    def sorted_days(self) -> list[tuple[int, int]]:
        return sorted(self.per_day.items())

    def sorted_channels(self) -> list[tuple[str, int]]:
        return sorted(self.per_channel.items(), key=lambda item: (-item[1], item[0]))

    def intervals_for_day(self, day: int) -> list[BillableInterval]:
        return sorted(
            (interval for interval in self.intervals if interval.day == day),
            key=lambda interval: interval.start,
        )


@dataclass(frozen=True, slots=True)
class ReportRow:
    user_id: str
    display_name: str
    top_role: str
    aggregate: UserAggregate
