from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from . import reporter
from .errors import InvalidRate, InvalidTimezone
from .rollover import LAST_ROLLOVER_META_KEY
from .tracker import WorkTracker


class CommandKind(enum.Enum):
    HELP = "help"
    CLOCK_IN = "in"
    CLOCK_OUT = "out"
    TODAY = "today"
    WEEK = "week"
    PAY = "pay"
    EXPORT = "export"
    RESET_DAY = "resetday"
    RESET_WEEK = "resetweek"
    SET_RATE = "setrate"
    CLEAR_RATE = "clearrate"
    SET_TIMEZONE = "timezone"
    ALL_HOURS = "allhours"
    ALL_PAY = "allpay"
    ROLLOVER = "rollover"
    STATUS = "status"


ADMIN_KINDS = frozenset(
    {
        CommandKind.SET_RATE,
        CommandKind.CLEAR_RATE,
        CommandKind.ALL_HOURS,
        CommandKind.ALL_PAY,
        CommandKind.ROLLOVER,
    }
)


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    user_id: str
    now_utc: datetime
    is_admin: bool = False
    argument: str | None = None
    target_user_id: str | None = None
    target_name: str | None = None


@dataclass(frozen=True, slots=True)
class Attachment:
    filename: str
    payload: bytes
    caption: str | None = None


@dataclass(frozen=True, slots=True)
class Reply:
    text: str
    ok: bool = True
    attachment: Attachment | None = None


def help_text(tracker: WorkTracker) -> str:
    week_start = tracker.calendar.week_start.name.title()
    default_rate = reporter.format_rate(tracker.rates.default_rate)
    return "\n".join(
        [
            "Work Hours Bot",
            "/in - clock in",
            "/out - clock out",
            "/today - show today's total",
            "/week - show this week's total (hours + minutes + pay)",
            "/pay - show this week's pay",
            "/export - export this week as CSV",
            "/resetday - clear today's entries",
            "/resetweek - clear this week's entries",
            "/timezone - set the timezone used to show your clock times",
            f"/help - show this help (default rate: {default_rate})",
            f"Auto: {week_start} 00:00 {tracker.calendar.tz.key} sends last week's pay + CSV, then resets it.",
        ]
    )


def _help(tracker: WorkTracker, command: Command) -> Reply:
    return Reply(help_text(tracker))


def _clock_in(tracker: WorkTracker, command: Command) -> Reply:
    result = tracker.clock_in(command.user_id, command.now_utc)
    return Reply(result.message, ok=result.ok)


def _clock_out(tracker: WorkTracker, command: Command) -> Reply:
    result = tracker.clock_out(command.user_id, command.now_utc)
    return Reply(result.message, ok=result.ok)


def _week_header(week_key: str) -> str:
    return f"Week {reporter.friendly_week_label(week_key)}"


def _today(tracker: WorkTracker, command: Command) -> Reply:
    seconds = tracker.hours_today(command.user_id, command.now_utc)
    return Reply(reporter.build_duration_line("Today", seconds))


def _week(tracker: WorkTracker, command: Command) -> Reply:
    seconds, week_key = tracker.hours_this_week(command.user_id, command.now_utc)
    rate = tracker.rate_for(command.user_id)
    lines = [_week_header(week_key), reporter.build_duration_line("This week", seconds)]
    lines.append(f"Pay @ {reporter.format_rate(rate)}: {reporter.format_money(tracker.pay(seconds, rate))}")
    lines.extend(
        f"{day}: {reporter.format_duration(day_seconds)}"
        for day, day_seconds in tracker.week_breakdown(command.user_id, command.now_utc)
    )
    return Reply("\n".join(lines))


def _pay(tracker: WorkTracker, command: Command) -> Reply:
    seconds, week_key = tracker.hours_this_week(command.user_id, command.now_utc)
    rate = tracker.rate_for(command.user_id)
    lines = [_week_header(week_key)]
    lines.extend(reporter.build_pay_lines(seconds, rate, tracker.pay(seconds, rate)))
    return Reply("\n".join(lines))


def _export(tracker: WorkTracker, command: Command) -> Reply:
    week_key, csv_text = tracker.export_week(command.user_id, command.now_utc)
    attachment = Attachment(
        filename=reporter.export_filename(week_key),
        payload=csv_text.encode("utf-8"),
        caption=f"Export for {reporter.friendly_week_label(week_key)}",
    )
    return Reply(attachment.caption, attachment=attachment)


def _reset_day(tracker: WorkTracker, command: Command) -> Reply:
    removed = tracker.reset_day(command.user_id, command.now_utc)
    return Reply(f"Deleted {removed} entries for today.")


def _reset_week(tracker: WorkTracker, command: Command) -> Reply:
    removed = tracker.reset_week(command.user_id, command.now_utc)
    return Reply(f"Deleted {removed} entries for this week.")


def _target(command: Command) -> tuple[str, str]:
    user_id = command.target_user_id or command.user_id
    return user_id, command.target_name or f"User {user_id}"


def _set_rate(tracker: WorkTracker, command: Command) -> Reply:
    user_id, name = _target(command)
    result = tracker.set_rate(user_id, command.argument)
    if isinstance(result, InvalidRate):
        return Reply("Rate must be a positive number, for example 3.00.", ok=False)
    return Reply(f"Rate for {name} set to {reporter.format_rate(result)}.")


def _clear_rate(tracker: WorkTracker, command: Command) -> Reply:
    user_id, name = _target(command)
    default_rate = tracker.clear_rate(user_id)
    return Reply(f"Rate for {name} reset to the default {reporter.format_rate(default_rate)}.")


def _set_timezone(tracker: WorkTracker, command: Command) -> Reply:
    result = tracker.set_timezone(command.user_id, command.argument)
    if isinstance(result, InvalidTimezone):
        return Reply(f"Unknown timezone `{result.name}`. Use an IANA name such as Europe/Berlin.", ok=False)
    return Reply(f"Clock times will be shown in {result}.")


def _all_hours(tracker: WorkTracker, command: Command) -> Reply:
    totals = tracker.all_users_week(command.now_utc)
    if not totals:
        return Reply("No users found.")
    lines = ["Weekly Hours (All Users):", ""]
    lines.extend(f"{item.user.label}: {reporter.format_duration(item.seconds)}" for item in totals)
    return Reply("\n".join(lines))


def _all_pay(tracker: WorkTracker, command: Command) -> Reply:
    totals = tracker.all_users_week(command.now_utc)
    if not totals:
        return Reply("No users found.")
    lines = ["Weekly Pay (All Users):", ""]
    lines.extend(
        f"{item.user.label}: {reporter.format_money(item.amount)} ({reporter.format_duration(item.seconds)})"
        for item in totals
    )
    return Reply("\n".join(lines))


def _status(tracker: WorkTracker, command: Command) -> Reply:
    now_local = command.now_utc.astimezone(tracker.calendar.tz)
    last_rollover = tracker.db.get_meta(LAST_ROLLOVER_META_KEY) or "never"
    lines = [
        "Work hours tracker status: online",
        f"Timezone: `{tracker.calendar.tz.key}`",
        f"Week starts on: `{tracker.calendar.week_start.name.title()}`",
        f"Current local time: `{now_local.isoformat()}`",
        f"Current week: `{tracker.calendar.week_key(command.now_utc)}`",
        f"Last rollover week: `{last_rollover}`",
        f"Default rate: `{reporter.format_rate(tracker.rates.default_rate)}`",
    ]
    return Reply("\n".join(lines))


_HANDLERS = {
    CommandKind.HELP: _help,
    CommandKind.CLOCK_IN: _clock_in,
    CommandKind.CLOCK_OUT: _clock_out,
    CommandKind.TODAY: _today,
    CommandKind.WEEK: _week,
    CommandKind.PAY: _pay,
    CommandKind.EXPORT: _export,
    CommandKind.RESET_DAY: _reset_day,
    CommandKind.RESET_WEEK: _reset_week,
    CommandKind.SET_RATE: _set_rate,
    CommandKind.CLEAR_RATE: _clear_rate,
    CommandKind.SET_TIMEZONE: _set_timezone,
    CommandKind.ALL_HOURS: _all_hours,
    CommandKind.ALL_PAY: _all_pay,
    CommandKind.STATUS: _status,
}


async def _rollover(tracker: WorkTracker, command: Command) -> Reply:
    try:
        report = await tracker.run_weekly_rollover(command.now_utc)
    except ValueError as exc:
        return Reply(str(exc), ok=False)

    label = reporter.friendly_week_label(report.week_key)
    if report.skipped:
        return Reply(f"Weekly rollover for {label} was already handled.")
    return Reply(
        f"Weekly rollover for {label}: {report.delivered} delivered, {report.failed} failed, "
        f"{len(report.reset_users)} users reset."
    )


async def dispatch(tracker: WorkTracker, command: Command) -> Reply:
    """Run one command and render its reply; every command gets an answer."""
    if command.kind in ADMIN_KINDS and not command.is_admin:
        return Reply("This command is only available to the bot owner.", ok=False)

    if command.kind is CommandKind.ROLLOVER:
        return await _rollover(tracker, command)
    return _HANDLERS[command.kind](tracker, command)
