from __future__ import annotations

import logging
from collections.abc import Callable
from zoneinfo import ZoneInfo

from .billing import split_billable_by_day
from .db import Database
from .models import MANUAL_CHANNEL, BillableSegment, UserAggregate
from .timeutils import now_ms


class Aggregator:
    """Rolls raw sessions up into billable time per user, channel and day."""

    def __init__(
        self,
        db: Database,
        tz: ZoneInfo,
        clock: Callable[[], int] = now_ms,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.tz = tz
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def billable_by_day(
        self,
        guild_id: str,
        user_id: str,
        seg_start: int,
        seg_end: int,
    ) -> list[BillableSegment]:
        schedule = self.db.get_schedule(guild_id, user_id)
        break_window = self.db.get_break(guild_id, user_id)
        return split_billable_by_day(seg_start, seg_end, self.tz, schedule, break_window)

    def aggregate(
        self,
        guild_id: str,
        start: int,
        end: int,
        user_id: str | None = None,
    ) -> dict[str, UserAggregate]:
        query = self.db.list_sessions_in_range(guild_id, start, end, user_id)
        if query.ok:
            sessions = query.sessions
        else:
            # A failed read renders as an empty report instead of an error.
            self.logger.error("Session range query failed for guild=%s: %s", guild_id, query.error)
            sessions = []

        now = self.clock()
        per_user: dict[str, UserAggregate] = {}

        for session in sessions:
            seg_start = max(session.started_at, start)
            seg_end = min(session.ended_at if session.ended_at is not None else now, end)
            if seg_end <= seg_start:
                continue

            segments = self.billable_by_day(guild_id, session.user_id, seg_start, seg_end)
            if not segments:
                continue

            channel_key = session.channel_id or MANUAL_CHANNEL
            aggregate = per_user.setdefault(session.user_id, UserAggregate())
            for segment in segments:
                aggregate.add(segment, channel_key)

        self.logger.debug(
            "Aggregated %d sessions into %d users for guild=%s", len(sessions), len(per_user), guild_id
        )
        return per_user
