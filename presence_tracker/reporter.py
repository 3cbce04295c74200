from __future__ import annotations

import csv
import io
from typing import Protocol
from zoneinfo import ZoneInfo

from .aggregator import Aggregator
from .db import Database
from .models import MANUAL_CHANNEL, ReportRow
from .timeutils import (
    DAY_MS,
    day_start,
    format_duration,
    format_local,
    format_local_date,
    format_local_time,
    minutes_to_hhmm,
)

# Discord rejects messages longer than this.
MESSAGE_LIMIT = 2000

CSV_HEADER = [
    "date",
    "name",
    "role",
    "schedule_start",
    "schedule_end",
    "break_start",
    "break_end",
    "channel_id",
    "channel_name",
    "hh:mm:ss",
    "interval_start",
    "interval_end",
    "from",
    "to",
]


class GuildLike(Protocol):
    def get_member(self, user_id: int): ...

    def get_channel(self, channel_id: int): ...


class Reporter:
    def __init__(self, db: Database, aggregator: Aggregator, tz: ZoneInfo) -> None:
        self.db = db
        self.aggregator = aggregator
        self.tz = tz

    def build_rows(
        self,
        guild: GuildLike,
        guild_id: str,
        start: int,
        end: int,
        user_id: str | None = None,
    ) -> list[ReportRow]:
        # Totals arrive already adjusted for schedule and break; only names are added here.
        aggregates = self.aggregator.aggregate(guild_id, start, end, user_id)

        rows: list[ReportRow] = []
        for uid, aggregate in aggregates.items():
            member = guild.get_member(int(uid))
            # Fall back to the raw ID when a member is no longer present in guild cache.
            display_name = member.display_name if member else f"User {uid}"
            top_role = getattr(getattr(member, "top_role", None), "name", None) or "-"
            rows.append(ReportRow(user_id=uid, display_name=display_name, top_role=top_role, aggregate=aggregate))

        rows.sort(key=lambda item: (-item.aggregate.total_ms, item.display_name.lower()))
        return rows

    def channel_label(self, guild: GuildLike, channel_id: str) -> str:
        if channel_id == MANUAL_CHANNEL:
            return "Manual"
        channel = guild.get_channel(int(channel_id))
        return channel.name if channel else f"Channel {channel_id}"

    def period_label(self, start: int, end: int) -> str:
        if day_start(start, self.tz) == start and start + DAY_MS == end:
            return format_local_date(start, self.tz)
        return f"{format_local(start, self.tz)} -> {format_local(end, self.tz)}"

    def _windows(self, guild_id: str, user_id: str) -> tuple[str, str, str, str]:
        schedule = self.db.get_schedule(guild_id, user_id)
        break_window = self.db.get_break(guild_id, user_id)
        return (
            minutes_to_hhmm(schedule.work_start_min) if schedule else "",
            minutes_to_hhmm(schedule.work_end_min) if schedule else "",
            minutes_to_hhmm(break_window.break_start_min) if break_window else "",
            minutes_to_hhmm(break_window.break_end_min) if break_window else "",
        )

    def build_report_content(
        self,
        guild: GuildLike,
        guild_id: str,
        start: int,
        end: int,
        rows: list[ReportRow],
    ) -> str:
        header = f"**Presence report**\nPeriod: {self.period_label(start, end)}\n"
        if not rows:
            return f"{header}\nNo data for the selected period."

        lines = [header]
        for row in rows:
            data = row.aggregate
            lines.append(f"**{row.display_name}** (role: *{row.top_role}*) - Total: `{format_duration(data.total_ms)}`")

            work_start, work_end, break_start, break_end = self._windows(guild_id, row.user_id)
            schedule_text = f"{work_start}-{work_end}" if work_start else "Not configured"
            break_text = f"{break_start}-{break_end}" if break_start else "-"
            lines.append(f"Schedule: **{schedule_text}** | Break: **{break_text}**")

            for channel_id, ms in data.sorted_channels():
                lines.append(f"- {self.channel_label(guild, channel_id)}: `{format_duration(ms)}`")

            days = data.sorted_days()
            if days:
                lines.append("*By day:*")
            for day, ms in days:
                lines.append(f"- {format_local_date(day, self.tz)}: `{format_duration(ms)}`")
                for interval in data.intervals_for_day(day):
                    lines.append(
                        f"  - {format_local_time(interval.start, self.tz)}-{format_local_time(interval.end, self.tz)}"
                        f" ({self.channel_label(guild, interval.channel_id)})"
                    )
            lines.append("")

        content = "\n".join(lines).rstrip()
        if len(content) > MESSAGE_LIMIT:
            content = content[: MESSAGE_LIMIT - 1] + "…"
        return content

    def build_csv(
        self,
        guild: GuildLike,
        guild_id: str,
        start: int,
        end: int,
        rows: list[ReportRow],
    ) -> bytes:
        """Render per-day totals then billable intervals as ``;``-separated CSV."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
        writer.writerow(CSV_HEADER)

        range_from = format_local(start, self.tz)
        range_to = format_local(end, self.tz)

        for row in rows:
            data = row.aggregate
            windows = list(self._windows(guild_id, row.user_id))

            for day, ms in data.sorted_days():
                writer.writerow(
                    [format_local_date(day, self.tz), row.display_name, row.top_role, *windows]
                    + ["", "", format_duration(ms), "", "", range_from, range_to]
                )

            for interval in data.intervals:
                writer.writerow(
                    [format_local_date(interval.day, self.tz), row.display_name, row.top_role, *windows]
                    + [
                        interval.channel_id,
                        self.channel_label(guild, interval.channel_id),
                        format_duration(interval.ms),
                        format_local(interval.start, self.tz),
                        format_local(interval.end, self.tz),
                        range_from,
                        range_to,
                    ]
                )

        # BOM so spreadsheet tools detect UTF-8.
        return buffer.getvalue().encode("utf-8-sig")

    def csv_filename(self, start: int) -> str:
        return f"report_{format_local_date(start, self.tz).replace('/', '-')}.csv"
