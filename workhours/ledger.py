from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import datetime

from .calendar_keys import Calendar
from .db import Database
from .errors import AlreadyOpen, NoOpenSession
from .models import DayBucket, Session


class SessionLedger:
    """Per-user record of the open session and of closed sessions grouped by day."""

    def __init__(self, db: Database, calendar: Calendar, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.calendar = calendar
        self.logger = logger or logging.getLogger(__name__)

    def clock_in(self, user_id: str, now_utc: datetime) -> Session:
        """Open a session filed under the local day of ``now_utc``.

        Raises AlreadyOpen, leaving the running session untouched, when one exists.
        """
        with self.db.transaction():
            existing = self.db.get_open_session(user_id)
            if existing is not None:
                self.logger.debug("Ignoring duplicate clock-in for user %s", user_id)
                raise AlreadyOpen(user_id, existing.started_at_utc)
            return self.db.insert_open_session(user_id, self.calendar.day_key(now_utc), now_utc)

    def clock_out(self, user_id: str, now_utc: datetime) -> tuple[Session, int]:
        """Close the open session and credit its duration to the day it was filed under."""
        with self.db.transaction():
            session = self.db.close_open_session(user_id, now_utc)
            if session is None:
                self.logger.debug("Ignoring clock-out for missing session user=%s", user_id)
                raise NoOpenSession(user_id)
            # Clamped at zero when the clock moved backwards.
            tracked = session.seconds
            self.db.add_daily_seconds(session.day_key, user_id, tracked)
        return session, tracked

    def open_session(self, user_id: str) -> Session | None:
        return self.db.get_open_session(user_id)

    def list_week(self, user_id: str, week_key: str) -> Iterator[Session]:
        days = self.calendar.week_days(week_key)
        return self.db.iter_sessions(user_id, days[0], days[-1])

    def day_buckets(self, user_id: str, day_keys: list[str]) -> dict[str, DayBucket]:
        if not day_keys:
            return {}
        found = self.db.get_day_buckets(user_id, min(day_keys), max(day_keys))
        return {day: found.get(day, DayBucket(user_id=user_id, day_key=day)) for day in day_keys}

    def _drop_open_session_before(self, user_id: str, window_end_utc: datetime) -> int:
        # An open session is credited to any window it started before, wherever it was filed.
        session = self.db.get_open_session(user_id)
        if session is None or session.started_at_utc >= window_end_utc:
            return 0
        return self.db.delete_session(session.id)

    def reset_day(self, user_id: str, day_key: str) -> int:
        _, day_end = self.calendar.day_window(day_key)
        with self.db.transaction():
            removed = self._drop_open_session_before(user_id, day_end)
            return removed + self.db.delete_sessions(user_id, day_key, day_key)

    def reset_week(self, user_id: str, week_key: str) -> int:
        window = self.calendar.week_window(week_key)
        days = self.calendar.week_days(week_key)
        with self.db.transaction():
            removed = self._drop_open_session_before(user_id, window.end_utc)
            return removed + self.db.delete_sessions(user_id, days[0], days[-1])

    def carry_open_session(self, user_id: str, boundary_utc: datetime) -> Session | None:
        """Split a session still running at a week boundary.

        The part before the boundary is closed into its own week; a fresh open
        session starts at the boundary under the new week's first day.
        """
        with self.db.transaction():
            session = self.db.get_open_session(user_id)
            if session is None or session.started_at_utc >= boundary_utc:
                return None
            closed = self.db.close_open_session(user_id, boundary_utc)
            self.db.add_daily_seconds(closed.day_key, user_id, closed.seconds)
            carried = self.db.insert_open_session(user_id, self.calendar.day_key(boundary_utc), boundary_utc)
        self.logger.info("Carried open session over week boundary: user=%s", user_id)
        return carried
