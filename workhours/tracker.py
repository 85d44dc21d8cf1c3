from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from . import rates, reporter
from .accrual import AccrualCalculator, Window, open_session_credit
from .calendar_keys import Calendar
from .clock import utc_now
from .db import Database
from .errors import AlreadyOpen, InvalidRate, InvalidTimezone, NoOpenSession
from .ledger import SessionLedger
from .models import ClockResult, RolloverReport, UserTotal, WeekExport
from .rates import RateResolver
from .reporter import ExportFormat
from .rollover import Notifier, WeeklyRollover


class WorkTracker:
    """Entry point for every clock, query, export and reset operation.

    Validation failures come back as values (a failed ClockResult, an
    InvalidRate instance) so the caller can always render a reply.
    """

    def __init__(
        self,
        db: Database,
        calendar: Calendar,
        default_rate: Decimal,
        export_format: ExportFormat = ExportFormat.DAYS,
        notifier: Notifier | None = None,
        lock_ttl_seconds: int = 3 * 3600,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.calendar = calendar
        self.export_format = export_format
        self.logger = logger or logging.getLogger(__name__)
        self.ledger = SessionLedger(db, calendar, logger=self.logger)
        self.accrual = AccrualCalculator(self.ledger)
        self.rates = RateResolver(db, default_rate)
        self.rollover: WeeklyRollover | None = None
        if notifier is not None:
            self.rollover = WeeklyRollover(self, notifier, lock_ttl_seconds=lock_ttl_seconds)

    def register(self, user_id: str, display_name: str | None = None, endpoint_id: str | None = None) -> None:
        self.db.upsert_user(user_id, display_name)
        if endpoint_id is not None and self.db.add_endpoint(user_id, endpoint_id):
            self.logger.info("Registered endpoint %s for user %s", endpoint_id, user_id)

    def display_zone(self, user_id: str) -> ZoneInfo:
        # Only affects how clock times are shown; day and week keys use the deployment calendar.
        user = self.db.get_user(user_id)
        if user is None or not user.timezone:
            return self.calendar.tz
        try:
            return ZoneInfo(user.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            self.logger.warning("Stored timezone %s for user %s is unknown; using default", user.timezone, user_id)
            return self.calendar.tz

    def _local_clock(self, user_id: str, instant: datetime) -> str:
        return instant.astimezone(self.display_zone(user_id)).strftime("%H:%M")

    # Clocking

    def clock_in(self, user_id: str, now_utc: datetime | None = None) -> ClockResult:
        now = now_utc or utc_now()
        try:
            self.ledger.clock_in(user_id, now)
        except AlreadyOpen as exc:
            since = self._local_clock(user_id, exc.started_at_utc)
            return ClockResult(ok=False, message=f"You are already clocked IN since {since}. Use /out to clock out.")

        self.logger.info("Session started: user=%s", user_id)
        return ClockResult(ok=True, message=f"Clocked IN at {self._local_clock(user_id, now)}.")

    def clock_out(self, user_id: str, now_utc: datetime | None = None) -> ClockResult:
        now = now_utc or utc_now()
        try:
            _, tracked = self.ledger.clock_out(user_id, now)
        except NoOpenSession:
            return ClockResult(ok=False, message="You are not clocked IN. Use /in to start.")

        self.logger.info("Session ended: user=%s tracked=%ss", user_id, tracked)
        lines = [
            f"Clocked OUT at {self._local_clock(user_id, now)}.",
            f"Session: {reporter.format_duration(tracked)}",
            f"Today so far: {reporter.format_duration(self.hours_today(user_id, now))}",
        ]
        return ClockResult(ok=True, message="\n".join(lines), seconds=tracked)

    # Queries

    def hours_today(self, user_id: str, now_utc: datetime | None = None) -> int:
        return self.accrual.seconds_as_of(user_id, now_utc or utc_now(), Window.DAY)

    def hours_this_week(self, user_id: str, now_utc: datetime | None = None) -> tuple[int, str]:
        now = now_utc or utc_now()
        return self.accrual.seconds_as_of(user_id, now, Window.WEEK), self.calendar.week_key(now)

    def week_breakdown(self, user_id: str, now_utc: datetime | None = None) -> list[tuple[str, int]]:
        """Per-day seconds for the current week; a running session counts toward today only."""
        now = now_utc or utc_now()
        today = self.calendar.day_key(now)
        days = self.calendar.week_days(self.calendar.week_key(now))
        buckets = self.ledger.day_buckets(user_id, days)

        live = 0
        session = self.ledger.open_session(user_id)
        if session is not None:
            _, today_end = self.calendar.day_window(today)
            live = open_session_credit(session.started_at_utc, now, today_end)
        return [(day, buckets[day].seconds + (live if day == today else 0)) for day in days]

    def rate_for(self, user_id: str) -> Decimal:
        return self.rates.rate_for(user_id)

    @staticmethod
    def pay(seconds: int, rate: Decimal) -> Decimal:
        return rates.pay(seconds, rate)

    def all_users_week(self, now_utc: datetime | None = None) -> list[UserTotal]:
        now = now_utc or utc_now()
        totals: list[UserTotal] = []
        for user in self.db.list_users():
            seconds, _ = self.hours_this_week(user.user_id, now)
            rate = self.rate_for(user.user_id)
            totals.append(UserTotal(user=user, seconds=seconds, rate=rate, amount=self.pay(seconds, rate)))
        return totals

    # Exports

    def build_week_export(self, user_id: str, week_key: str, now_utc: datetime) -> WeekExport:
        """Totals and CSV for one week, counting a running session up to ``now_utc``."""
        window = self.calendar.week_window(week_key)
        days = self.calendar.week_days(week_key)
        buckets = self.ledger.day_buckets(user_id, days)

        running = 0
        session = self.ledger.open_session(user_id)
        if session is not None:
            running = open_session_credit(session.started_at_utc, now_utc, window.end_utc)
        seconds = sum(bucket.seconds for bucket in buckets.values()) + running

        if self.export_format is ExportFormat.SESSIONS:
            sessions = self.ledger.list_week(user_id, week_key)
            csv_text = reporter.render_sessions_csv(sessions, self.display_zone(user_id))
        else:
            csv_text = reporter.render_days_csv([buckets[day] for day in days], running_seconds=running)

        rate = self.rate_for(user_id)
        return WeekExport(
            user_id=user_id,
            week_key=week_key,
            seconds=seconds,
            running_seconds=running,
            session_count=sum(bucket.session_count for bucket in buckets.values()),
            rate=rate,
            amount=self.pay(seconds, rate),
            csv_text=csv_text,
        )

    def export_week(self, user_id: str, now_utc: datetime | None = None) -> tuple[str, str]:
        now = now_utc or utc_now()
        week_key = self.calendar.week_key(now)
        return week_key, self.build_week_export(user_id, week_key, now).csv_text

    # Resets

    def reset_day(self, user_id: str, now_utc: datetime | None = None) -> int:
        now = now_utc or utc_now()
        removed = self.ledger.reset_day(user_id, self.calendar.day_key(now))
        self.logger.info("Reset day: user=%s removed=%d", user_id, removed)
        return removed

    def reset_week(self, user_id: str, now_utc: datetime | None = None) -> int:
        now = now_utc or utc_now()
        removed = self.ledger.reset_week(user_id, self.calendar.week_key(now))
        self.logger.info("Reset week: user=%s removed=%d", user_id, removed)
        return removed

    # Profile

    def set_rate(self, user_id: str, value: object) -> Decimal | InvalidRate:
        try:
            rate = self.rates.set_rate(user_id, value)
        except InvalidRate as exc:
            return exc
        self.logger.info("Rate updated: user=%s rate=%s", user_id, rate)
        return rate

    def clear_rate(self, user_id: str) -> Decimal:
        self.rates.clear_rate(user_id)
        return self.rates.default_rate

    def set_timezone(self, user_id: str, tz_name: str | None) -> str | InvalidTimezone:
        if not tz_name or not tz_name.strip():
            self.db.set_user_timezone(user_id, None)
            return self.calendar.tz.key

        name = tz_name.strip()
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            return InvalidTimezone(name)
        self.db.set_user_timezone(user_id, name)
        return name

    # Rollover

    async def run_weekly_rollover(self, now_utc: datetime | None = None, week_key: str | None = None) -> RolloverReport:
        if self.rollover is None:
            raise RuntimeError("Weekly rollover requires a notifier")
        return await self.rollover.run(now_utc or utc_now(), week_key=week_key)
