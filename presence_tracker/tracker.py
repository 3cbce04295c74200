from __future__ import annotations

import logging

from .db import Database
from .models import SOURCE_AUTO, SOURCE_MANUAL, BreakWindow, InvalidInputError, Schedule
from .timeutils import MINUTES_PER_DAY, now_ms, parse_minutes


class PresenceTracker:
    """Opens and closes presence sessions and stores per-user billing windows."""

    def __init__(self, db: Database, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    def check_in(
        self,
        guild_id: str,
        user_id: str,
        channel_id: str | None = None,
        started_at: int | None = None,
    ) -> int:
        started = started_at if started_at is not None else now_ms()
        session_id = self.db.start_session(guild_id, user_id, channel_id, started, SOURCE_MANUAL)
        self.logger.info("Manual check-in: guild=%s user=%s channel=%s", guild_id, user_id, channel_id)
        return session_id

    def check_out(self, guild_id: str, user_id: str, ended_at: int | None = None) -> int:
        ended = ended_at if ended_at is not None else now_ms()
        closed = self.db.end_open_sessions(guild_id, user_id, ended)
        if closed:
            self.logger.info("Closed %d open sessions: guild=%s user=%s", closed, guild_id, user_id)
        else:
            self.logger.debug("No open sessions to close: guild=%s user=%s", guild_id, user_id)
        return closed

    def switch_channel(
        self,
        guild_id: str,
        user_id: str,
        previous_channel_id: str,
        new_channel_id: str,
        at: int,
    ) -> bool:
        # An unmatched previous channel is tolerated: nothing is closed.
        closed = self.db.end_latest_open_on_channel(guild_id, user_id, previous_channel_id, at)
        if not closed:
            self.logger.debug(
                "No open session on channel %s for user=%s; opening new session only",
                previous_channel_id,
                user_id,
            )
        self.db.start_session(guild_id, user_id, new_channel_id, at, SOURCE_AUTO)
        self.logger.info(
            "Channel switch: guild=%s user=%s %s -> %s", guild_id, user_id, previous_channel_id, new_channel_id
        )
        return closed

    def handle_voice_transition(
        self,
        guild_id: str,
        user_id: str,
        before_channel_id: str | None,
        after_channel_id: str | None,
        at: int | None = None,
    ) -> None:
        now = at if at is not None else now_ms()

        # Join => open an automatic session on the new channel.
        if before_channel_id is None and after_channel_id is not None:
            self.db.start_session(guild_id, user_id, after_channel_id, now, SOURCE_AUTO)
            self.logger.info("Session started: guild=%s user=%s channel=%s", guild_id, user_id, after_channel_id)
            return

        # Move between channels => close the previous channel's session, open the new one.
        if before_channel_id is not None and after_channel_id is not None:
            if before_channel_id != after_channel_id:
                self.switch_channel(guild_id, user_id, before_channel_id, after_channel_id, now)
            return

        # Leave voice => close everything still open for the user.
        if before_channel_id is not None and after_channel_id is None:
            closed = self.db.end_open_sessions(guild_id, user_id, now)
            self.logger.info("Session ended: guild=%s user=%s closed=%d", guild_id, user_id, closed)

    def set_schedule(self, guild_id: str, user_id: str, start_text: str, end_text: str) -> Schedule:
        start = parse_minutes(start_text)
        end = parse_minutes(end_text)
        if start is None or end is None:
            raise InvalidInputError("Invalid format. Use HH:MM (24h).")
        if end <= start:
            raise InvalidInputError("The end time must be after the start time.")

        schedule = Schedule(work_start_min=start, work_end_min=end)
        self.db.upsert_schedule(guild_id, user_id, schedule)
        return schedule

    def set_break(self, guild_id: str, user_id: str, start_text: str, duration_min: int) -> BreakWindow:
        start = parse_minutes(start_text)
        if start is None or duration_min <= 0:
            raise InvalidInputError("Use HH:MM and a duration in minutes (> 0).")
        end = start + duration_min
        if end > MINUTES_PER_DAY:
            raise InvalidInputError("The break cannot extend past midnight.")

        break_window = BreakWindow(break_start_min=start, break_end_min=end)
        self.db.upsert_break(guild_id, user_id, break_window)
        return break_window
