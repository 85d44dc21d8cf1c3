from __future__ import annotations

import csv
import enum
import io
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from .models import DayBucket, Session

SESSION_CSV_HEADER = ["id", "day", "start", "end", "hours"]
DAY_CSV_HEADER = ["Date", "Sessions", "Total (h:m)", "Minutes"]
RUNNING_SUFFIX = " (+running)"


class ExportFormat(enum.Enum):
    SESSIONS = "sessions"
    DAYS = "days"


def parse_export_format(value: str) -> ExportFormat:
    try:
        return ExportFormat(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Export format must be 'sessions' or 'days' (got {value!r})") from exc


def format_duration(total_seconds: int) -> str:
    """Render a duration as ``8h 30m``; seconds are truncated."""
    safe_seconds = max(0, int(total_seconds))
    hours, remainder = divmod(safe_seconds, 3600)
    return f"{hours}h {remainder // 60}m"


def format_minutes(total_seconds: int) -> int:
    return max(0, int(total_seconds)) // 60


def format_hours(total_seconds: int) -> str:
    return f"{max(0, int(total_seconds)) / 3600:.2f}h"


def format_money(amount: Decimal) -> str:
    return f"${amount:.2f}"


def format_rate(rate: Decimal) -> str:
    return f"{format_money(rate)}/hr"


def friendly_week_label(week_key: str) -> str:
    start = date.fromisoformat(week_key)
    end = start + timedelta(days=6)
    return f"{start:%b} {start.day} – {end:%b} {end.day}, {end.year}"


def build_duration_line(label: str, seconds: int) -> str:
    return f"{label}: {format_duration(seconds)} ({format_minutes(seconds)} mins)"


def build_pay_lines(seconds: int, rate: Decimal, amount: Decimal) -> list[str]:
    return [
        build_duration_line("Total", seconds),
        f"Pay @ {format_rate(rate)}: {format_money(amount)}",
    ]


def build_weekly_summary(week_key: str, seconds: int, rate: Decimal, amount: Decimal) -> str:
    lines = [f"Weekly summary ({friendly_week_label(week_key)})"]
    lines.extend(build_pay_lines(seconds, rate, amount))
    lines.append("")
    lines.append("This week resets once the summary is delivered.")
    return "\n".join(lines)


def export_filename(week_key: str) -> str:
    return f"workweek_{week_key}.csv"


def _write_csv(rows: Iterable[list[str]]) -> str:
    # csv quotes any field holding a comma or quote; every row ends with a bare newline.
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerows(rows)
    return output.getvalue()


def render_sessions_csv(sessions: Iterable[Session], tz: ZoneInfo) -> str:
    def local(instant) -> str:
        return instant.astimezone(tz).strftime("%Y-%m-%d %H:%M")

    rows = [SESSION_CSV_HEADER]
    for session in sessions:
        end = local(session.ended_at_utc) if session.ended_at_utc is not None else ""
        rows.append(
            [
                str(session.id),
                session.day_key,
                local(session.started_at_utc),
                end,
                f"{session.seconds / 3600:.2f}",
            ]
        )
    return _write_csv(rows)


def render_days_csv(buckets: list[DayBucket], running_seconds: int = 0) -> str:
    """One row per day; open-session credit is noted on the last row only."""
    rows = [DAY_CSV_HEADER]
    for bucket in buckets:
        rows.append(
            [
                bucket.day_key,
                str(bucket.session_count),
                format_duration(bucket.seconds),
                str(format_minutes(bucket.seconds)),
            ]
        )
    if running_seconds > 0 and len(rows) > 1:
        rows[-1][2] += RUNNING_SUFFIX
    return _write_csv(rows)
