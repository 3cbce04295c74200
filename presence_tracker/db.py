from __future__ import annotations

import sqlite3
from pathlib import Path

from .models import BreakWindow, Schedule, Session, SessionQuery


class Database:
    """Thin SQLite access layer for presence sessions and per-user settings."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # sessions: append-only presence log, ended_at NULL while open.
        # schedules/breaks: minute-of-day windows keyed by guild and user.
        # viewers: users allowed to read reports about others.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS sessions (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              guild_id TEXT NOT NULL,
              user_id TEXT NOT NULL,
              channel_id TEXT,
              started_at INTEGER NOT NULL,
              ended_at INTEGER,
              source TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id, guild_id, started_at);

            CREATE TABLE IF NOT EXISTS schedules (
              guild_id TEXT NOT NULL,
              user_id TEXT NOT NULL,
              work_start_min INTEGER NOT NULL,
              work_end_min INTEGER NOT NULL,
              PRIMARY KEY (guild_id, user_id)
            );

            CREATE TABLE IF NOT EXISTS breaks (
              guild_id TEXT NOT NULL,
              user_id TEXT NOT NULL,
              break_start_min INTEGER NOT NULL,
              break_end_min INTEGER NOT NULL,
              PRIMARY KEY (guild_id, user_id)
            );

            CREATE TABLE IF NOT EXISTS viewers (
              guild_id TEXT NOT NULL,
              user_id TEXT NOT NULL,
              PRIMARY KEY (guild_id, user_id)
            );
            """
        )
        self._conn.commit()

    def start_session(
        self,
        guild_id: str,
        user_id: str,
        channel_id: str | None,
        started_at: int,
        source: str,
    ) -> int:
        cursor = self._conn.execute(
            """
            INSERT INTO sessions (guild_id, user_id, channel_id, started_at, source)
            VALUES (?, ?, ?, ?, ?)
            """,
            (guild_id, user_id, channel_id, started_at, source),
        )
        self._conn.commit()
        return int(cursor.lastrowid)

    def end_open_sessions(self, guild_id: str, user_id: str, ended_at: int) -> int:
        cursor = self._conn.execute(
            """
            UPDATE sessions SET ended_at = ?
            WHERE guild_id = ? AND user_id = ? AND ended_at IS NULL
            """,
            (ended_at, guild_id, user_id),
        )
        self._conn.commit()
        return cursor.rowcount

    def end_session(self, session_id: int, ended_at: int) -> bool:
        cursor = self._conn.execute(
            "UPDATE sessions SET ended_at = ? WHERE id = ? AND ended_at IS NULL",
            (ended_at, session_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def list_open_sessions(self, guild_id: str, user_id: str) -> list[Session]:
        rows = self._conn.execute(
            """
            SELECT * FROM sessions
            WHERE guild_id = ? AND user_id = ? AND ended_at IS NULL
            ORDER BY started_at ASC, id ASC
            """,
            (guild_id, user_id),
        ).fetchall()
        return [_row_to_session(row) for row in rows]

    def end_latest_open_on_channel(
        self,
        guild_id: str,
        user_id: str,
        channel_id: str,
        ended_at: int,
    ) -> bool:
        """Close the most recently started open session on ``channel_id``.

        Returns False when no open session matches; nothing is closed then.
        """
        for session in reversed(self.list_open_sessions(guild_id, user_id)):
            if session.channel_id == channel_id:
                return self.end_session(session.id, ended_at)
        return False

    def list_sessions_in_range(
        self,
        guild_id: str,
        start: int,
        end: int,
        user_id: str | None = None,
    ) -> SessionQuery:
        # Open sessions (ended_at NULL) overlap any range they started before.
        try:
            rows = self._conn.execute(
                """
                SELECT * FROM sessions
                WHERE guild_id = ?
                  AND started_at < ?
                  AND (ended_at IS NULL OR ended_at > ?)
                  AND (? IS NULL OR user_id = ?)
                ORDER BY user_id, started_at
                """,
                (guild_id, end, start, user_id, user_id),
            ).fetchall()
        except sqlite3.Error as exc:
            return SessionQuery(sessions=[], error=exc)

        return SessionQuery(sessions=[_row_to_session(row) for row in rows])

    def upsert_schedule(self, guild_id: str, user_id: str, schedule: Schedule) -> None:
        self._conn.execute(
            """
            INSERT INTO schedules (guild_id, user_id, work_start_min, work_end_min)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id, user_id)
            DO UPDATE SET work_start_min=excluded.work_start_min,
                          work_end_min=excluded.work_end_min
            """,
            (guild_id, user_id, schedule.work_start_min, schedule.work_end_min),
        )
        self._conn.commit()

    def get_schedule(self, guild_id: str, user_id: str) -> Schedule | None:
        row = self._conn.execute(
            "SELECT work_start_min, work_end_min FROM schedules WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id),
        ).fetchone()
        if row is None:
            return None
        return Schedule(work_start_min=row["work_start_min"], work_end_min=row["work_end_min"])

    def upsert_break(self, guild_id: str, user_id: str, break_window: BreakWindow) -> None:
        self._conn.execute(
            """
            INSERT INTO breaks (guild_id, user_id, break_start_min, break_end_min)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(guild_id, user_id)
            DO UPDATE SET break_start_min=excluded.break_start_min,
                          break_end_min=excluded.break_end_min
            """,
            (guild_id, user_id, break_window.break_start_min, break_window.break_end_min),
        )
        self._conn.commit()

    def get_break(self, guild_id: str, user_id: str) -> BreakWindow | None:
        row = self._conn.execute(
            "SELECT break_start_min, break_end_min FROM breaks WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id),
        ).fetchone()
        if row is None:
            return None
        return BreakWindow(break_start_min=row["break_start_min"], break_end_min=row["break_end_min"])

    def add_viewer(self, guild_id: str, user_id: str) -> None:
        self._conn.execute(
            "INSERT OR IGNORE INTO viewers (guild_id, user_id) VALUES (?, ?)",
            (guild_id, user_id),
        )
        self._conn.commit()

    def remove_viewer(self, guild_id: str, user_id: str) -> bool:
        cursor = self._conn.execute(
            "DELETE FROM viewers WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def list_viewers(self, guild_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT user_id FROM viewers WHERE guild_id = ? ORDER BY rowid",
            (guild_id,),
        ).fetchall()
        return [str(row["user_id"]) for row in rows]

    def is_viewer(self, guild_id: str, user_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM viewers WHERE guild_id = ? AND user_id = ?",
            (guild_id, user_id),
        ).fetchone()
        return row is not None


def _row_to_session(row: sqlite3.Row) -> Session:
    ended_at = row["ended_at"]
    channel_id = row["channel_id"]
    return Session(
        id=int(row["id"]),
        guild_id=str(row["guild_id"]),
        user_id=str(row["user_id"]),
        channel_id=str(channel_id) if channel_id is not None else None,
        started_at=int(row["started_at"]),
        ended_at=int(ended_at) if ended_at is not None else None,
        source=str(row["source"]),
    )
