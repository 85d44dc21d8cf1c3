from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

from .clock import parse_iso_utc, to_utc
from .models import DayBucket, Session, User


class Database:
    """Thin SQLite access layer for users, sessions and weekly state."""

    def __init__(self, db_path: str | Path, timeout: float = 5.0) -> None:
        # Autocommit mode; multi-statement work goes through transaction().
        self._conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # users: profile plus optional rate and timezone overrides.
        # user_endpoints: channels a user talked to the bot from (rollover delivery targets).
        # sessions: one row per clock-in; ended_at_utc is NULL while open.
        # daily_totals: closed seconds per local day and user.
        # rollover_locks: per-week markers that expire on their own.
        # meta: small key/value store for scheduler markers.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
              user_id TEXT PRIMARY KEY,
              display_name TEXT,
              hourly_rate TEXT,
              timezone TEXT
            );

            CREATE TABLE IF NOT EXISTS user_endpoints (
              user_id TEXT NOT NULL,
              endpoint_id TEXT NOT NULL,
              PRIMARY KEY (user_id, endpoint_id)
            );

            CREATE TABLE IF NOT EXISTS sessions (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id TEXT NOT NULL,
              day_local TEXT NOT NULL,
              started_at_utc TEXT NOT NULL,
              ended_at_utc TEXT
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_open
              ON sessions (user_id) WHERE ended_at_utc IS NULL;

            CREATE INDEX IF NOT EXISTS idx_sessions_user_day
              ON sessions (user_id, day_local);

            CREATE TABLE IF NOT EXISTS daily_totals (
              day_local TEXT NOT NULL,
              user_id TEXT NOT NULL,
              seconds INTEGER NOT NULL DEFAULT 0,
              PRIMARY KEY (day_local, user_id)
            );

            CREATE TABLE IF NOT EXISTS rollover_locks (
              lock_key TEXT PRIMARY KEY,
              expires_at_utc TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS meta (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize a read-modify-write against other writers of the same file."""
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    # Users and endpoints

    def upsert_user(self, user_id: str, display_name: str | None = None) -> None:
        self._conn.execute(
            """
            INSERT INTO users (user_id, display_name)
            VALUES (?, ?)
            ON CONFLICT(user_id)
            DO UPDATE SET display_name=COALESCE(excluded.display_name, users.display_name)
            """,
            (user_id, display_name),
        )

    def get_user(self, user_id: str) -> User | None:
        row = self._conn.execute(
            "SELECT user_id, display_name, hourly_rate, timezone FROM users WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return User.from_row(row)

    def list_users(self) -> list[User]:
        rows = self._conn.execute(
            """
            SELECT user_id, display_name, hourly_rate, timezone
            FROM users
            ORDER BY COALESCE(display_name, user_id)
            """
        ).fetchall()
        return [User.from_row(row) for row in rows]

    def set_user_rate(self, user_id: str, rate: Decimal | None) -> None:
        self.upsert_user(user_id)
        value = None if rate is None else str(rate)
        self._conn.execute("UPDATE users SET hourly_rate = ? WHERE user_id = ?", (value, user_id))

    def set_user_timezone(self, user_id: str, tz_name: str | None) -> None:
        self.upsert_user(user_id)
        self._conn.execute("UPDATE users SET timezone = ? WHERE user_id = ?", (tz_name, user_id))

    def add_endpoint(self, user_id: str, endpoint_id: str) -> bool:
        cursor = self._conn.execute(
            "INSERT OR IGNORE INTO user_endpoints (user_id, endpoint_id) VALUES (?, ?)",
            (user_id, endpoint_id),
        )
        return cursor.rowcount == 1

    def list_endpoints(self, user_id: str) -> list[str]:
        rows = self._conn.execute(
            "SELECT endpoint_id FROM user_endpoints WHERE user_id = ? ORDER BY rowid",
            (user_id,),
        ).fetchall()
        return [str(row["endpoint_id"]) for row in rows]

    # Sessions

    def insert_open_session(self, user_id: str, day_local: str, started_at_utc: datetime) -> Session:
        started = to_utc(started_at_utc)
        # The partial unique index rejects a second open row for the same user.
        cursor = self._conn.execute(
            """
            INSERT INTO sessions (user_id, day_local, started_at_utc, ended_at_utc)
            VALUES (?, ?, ?, NULL)
            """,
            (user_id, day_local, started.isoformat()),
        )
        return Session(id=int(cursor.lastrowid), user_id=user_id, day_key=day_local, started_at_utc=started)

    def get_open_session(self, user_id: str) -> Session | None:
        row = self._conn.execute(
            """
            SELECT id, user_id, day_local, started_at_utc, ended_at_utc
            FROM sessions
            WHERE user_id = ? AND ended_at_utc IS NULL
            """,
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return Session.from_row(row)

    def count_open_sessions(self, user_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) AS n FROM sessions WHERE user_id = ? AND ended_at_utc IS NULL",
            (user_id,),
        ).fetchone()
        return int(row["n"])

    def close_open_session(self, user_id: str, ended_at_utc: datetime) -> Session | None:
        ended = to_utc(ended_at_utc).isoformat()
        rows = self._conn.execute(
            """
            UPDATE sessions SET ended_at_utc = ?
            WHERE user_id = ? AND ended_at_utc IS NULL
            RETURNING id, user_id, day_local, started_at_utc, ended_at_utc
            """,
            (ended, user_id),
        ).fetchall()
        if not rows:
            return None
        return Session.from_row(rows[0])

    def iter_sessions(self, user_id: str, first_day: str, last_day: str) -> Iterator[Session]:
        cursor = self._conn.execute(
            """
            SELECT id, user_id, day_local, started_at_utc, ended_at_utc
            FROM sessions
            WHERE user_id = ? AND day_local BETWEEN ? AND ?
            ORDER BY started_at_utc ASC, id ASC
            """,
            (user_id, first_day, last_day),
        )
        for row in cursor:
            yield Session.from_row(row)

    def delete_sessions(self, user_id: str, first_day: str, last_day: str) -> int:
        cursor = self._conn.execute(
            "DELETE FROM sessions WHERE user_id = ? AND day_local BETWEEN ? AND ?",
            (user_id, first_day, last_day),
        )
        self._conn.execute(
            "DELETE FROM daily_totals WHERE user_id = ? AND day_local BETWEEN ? AND ?",
            (user_id, first_day, last_day),
        )
        return cursor.rowcount

    def delete_session(self, session_id: int) -> int:
        cursor = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        return cursor.rowcount

    # Day buckets

    def add_daily_seconds(self, day_local: str, user_id: str, seconds: int) -> None:
        # Ignore empty or negative spans so callers can pass raw calculations safely.
        if seconds <= 0:
            return

        self._conn.execute(
            """
            INSERT INTO daily_totals (day_local, user_id, seconds)
            VALUES (?, ?, ?)
            ON CONFLICT(day_local, user_id)
            DO UPDATE SET seconds = seconds + excluded.seconds
            """,
            (day_local, user_id, seconds),
        )

    def get_day_buckets(self, user_id: str, first_day: str, last_day: str) -> dict[str, DayBucket]:
        totals = self._conn.execute(
            """
            SELECT day_local, seconds FROM daily_totals
            WHERE user_id = ? AND day_local BETWEEN ? AND ?
            """,
            (user_id, first_day, last_day),
        ).fetchall()
        counts = self._conn.execute(
            """
            SELECT day_local, COUNT(*) AS sessions FROM sessions
            WHERE user_id = ? AND day_local BETWEEN ? AND ?
            GROUP BY day_local
            """,
            (user_id, first_day, last_day),
        ).fetchall()

        seconds_by_day = {row["day_local"]: int(row["seconds"]) for row in totals}
        count_by_day = {row["day_local"]: int(row["sessions"]) for row in counts}
        return {
            day: DayBucket(
                user_id=user_id,
                day_key=day,
                seconds=seconds_by_day.get(day, 0),
                session_count=count_by_day.get(day, 0),
            )
            for day in sorted(set(seconds_by_day) | set(count_by_day))
        }

    # Locks and meta

    def acquire_lock(self, lock_key: str, now_utc: datetime, ttl_seconds: int) -> bool:
        now = to_utc(now_utc)
        with self.transaction():
            row = self._conn.execute(
                "SELECT expires_at_utc FROM rollover_locks WHERE lock_key = ?",
                (lock_key,),
            ).fetchone()
            if row is not None and parse_iso_utc(row["expires_at_utc"]) > now:
                return False

            expires = now + timedelta(seconds=ttl_seconds)
            self._conn.execute(
                """
                INSERT INTO rollover_locks (lock_key, expires_at_utc)
                VALUES (?, ?)
                ON CONFLICT(lock_key)
                DO UPDATE SET expires_at_utc=excluded.expires_at_utc
                """,
                (lock_key, expires.isoformat()),
            )
        return True

    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO meta (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
