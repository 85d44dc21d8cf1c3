from __future__ import annotations

import enum
from datetime import datetime

from .ledger import SessionLedger


class Window(enum.Enum):
    DAY = "day"
    WEEK = "week"


def open_session_credit(started_at_utc: datetime, now_utc: datetime, window_end_utc: datetime) -> int:
    """Seconds an open session contributes to a window ending at ``window_end_utc``."""
    if started_at_utc > window_end_utc:
        return 0
    until = min(now_utc, window_end_utc)
    return max(0, int((until - started_at_utc).total_seconds()))


class AccrualCalculator:
    """Folds closed day totals with the live open session.

    An open session contributes its whole elapsed time to the window it is
    queried in, even when it started before that window; sessions are never
    split at local midnight.
    """

    def __init__(self, ledger: SessionLedger) -> None:
        self.ledger = ledger
        self.calendar = ledger.calendar

    def seconds_for_days(
        self,
        user_id: str,
        day_keys: list[str],
        window_end_utc: datetime,
        now_utc: datetime,
    ) -> int:
        buckets = self.ledger.day_buckets(user_id, day_keys)
        total = sum(bucket.seconds for bucket in buckets.values())

        session = self.ledger.open_session(user_id)
        if session is not None:
            total += open_session_credit(session.started_at_utc, now_utc, window_end_utc)
        return total

    def seconds_in_day(self, user_id: str, day_key: str, now_utc: datetime) -> int:
        _, day_end = self.calendar.day_window(day_key)
        return self.seconds_for_days(user_id, [day_key], day_end, now_utc)

    def seconds_in_week(self, user_id: str, week_key: str, now_utc: datetime) -> int:
        window = self.calendar.week_window(week_key)
        return self.seconds_for_days(user_id, self.calendar.week_days(week_key), window.end_utc, now_utc)

    def seconds_as_of(self, user_id: str, now_utc: datetime, window: Window) -> int:
        if window is Window.DAY:
            return self.seconds_in_day(user_id, self.calendar.day_key(now_utc), now_utc)
        return self.seconds_in_week(user_id, self.calendar.week_key(now_utc), now_utc)
