from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from . import reporter
from .calendar_keys import Calendar, parse_day_key
from .errors import DeliveryFailed, DuplicateRollover
from .models import DeliveryResult, RolloverReport

if TYPE_CHECKING:
    from .tracker import WorkTracker

LAST_ROLLOVER_META_KEY = "last_rollover_week"


class Notifier(Protocol):
    async def send_text(self, endpoint_id: str, content: str) -> None: ...

    async def send_file(self, endpoint_id: str, filename: str, payload: bytes, caption: str | None = None) -> None: ...


def lock_key(week_key: str) -> str:
    return f"rollover:{week_key}"


def weeks_due(calendar: Calendar, last_rolled: str | None, now_utc: datetime) -> list[str]:
    """Completed weeks still waiting for a rollover, oldest first.

    Without a stored marker only the most recent completed week is due.
    """
    target = calendar.previous_week_key(now_utc)
    if last_rolled is None:
        return [target]

    due: list[str] = []
    week_start = calendar.week_start_date(parse_day_key(last_rolled)) + timedelta(days=7)
    while week_start.isoformat() <= target:
        due.append(week_start.isoformat())
        week_start += timedelta(days=7)
    return due


class WeeklyRollover:
    """Summarize, export and reset a completed week for every known user.

    Runs are serialized per week through an expiring lock, so the scheduler
    and the admin trigger can both call ``run`` safely.
    """

    def __init__(
        self,
        tracker: WorkTracker,
        notifier: Notifier,
        *,
        lock_ttl_seconds: int = 3 * 3600,
        logger: logging.Logger | None = None,
    ) -> None:
        self.tracker = tracker
        self.notifier = notifier
        self.lock_ttl_seconds = lock_ttl_seconds
        self.logger = logger or logging.getLogger(__name__)

    def _acquire(self, week_key: str, now_utc: datetime) -> None:
        if not self.tracker.db.acquire_lock(lock_key(week_key), now_utc, self.lock_ttl_seconds):
            raise DuplicateRollover(week_key)

    async def run(self, now_utc: datetime, week_key: str | None = None) -> RolloverReport:
        calendar = self.tracker.calendar
        target = week_key or calendar.previous_week_key(now_utc)
        window = calendar.week_window(target)
        if window.end_utc > now_utc:
            raise ValueError(f"Week {target} has not ended yet")

        try:
            self._acquire(target, now_utc)
        except DuplicateRollover:
            self.logger.info("Rollover for week %s already in progress or done; skipping", target)
            return RolloverReport(week_key=target, skipped=True)

        self.logger.info("Running weekly rollover for %s", target)
        report = RolloverReport(week_key=target)
        for user in self.tracker.db.list_users():
            try:
                was_reset = await self._roll_user(user.user_id, target, window.end_utc, report)
            except Exception as exc:
                # One user's failure must not stop the rest of the run.
                self.logger.exception("Rollover failed for user %s", user.user_id)
                report.results.append(DeliveryResult(user_id=user.user_id, endpoint_id=None, ok=False, error=str(exc)))
                continue
            if was_reset:
                report.reset_users.append(user.user_id)

        self.tracker.db.set_meta(LAST_ROLLOVER_META_KEY, target)
        self.logger.info(
            "Weekly rollover for %s done: delivered=%d failed=%d reset=%d",
            target,
            report.delivered,
            report.failed,
            len(report.reset_users),
        )
        return report

    async def _roll_user(self, user_id: str, week_key: str, boundary_utc: datetime, report: RolloverReport) -> bool:
        endpoints = self.tracker.db.list_endpoints(user_id)
        if not endpoints:
            return False

        # Split a running session at the boundary before anything is awaited, so a
        # clock-out during delivery lands in the new week and survives the reset.
        self.tracker.ledger.carry_open_session(user_id, boundary_utc)
        export = self.tracker.build_week_export(user_id, week_key, boundary_utc)
        if export.is_empty:
            return False

        summary = reporter.build_weekly_summary(week_key, export.seconds, export.rate, export.amount)
        filename = reporter.export_filename(week_key)
        payload = export.csv_text.encode("utf-8")
        caption = f"Export for {reporter.friendly_week_label(week_key)}"

        delivered_all = True
        for endpoint_id in endpoints:
            try:
                await self.notifier.send_text(endpoint_id, summary)
                await self.notifier.send_file(endpoint_id, filename, payload, caption=caption)
            except DeliveryFailed as exc:
                self.logger.warning("Weekly summary for user %s not delivered: %s", user_id, exc)
                report.results.append(DeliveryResult(user_id=user_id, endpoint_id=endpoint_id, ok=False, error=str(exc)))
                delivered_all = False
                continue
            report.results.append(DeliveryResult(user_id=user_id, endpoint_id=endpoint_id, ok=True))

        if not delivered_all:
            # Keep the week intact so a later run can deliver it again.
            return False

        removed = self.tracker.ledger.reset_week(user_id, week_key)
        self.logger.info("Reset week %s for user %s: removed=%d", week_key, user_id, removed)
        return True
