from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from workhours.calendar_keys import Calendar, WeekStart, parse_week_start


def test_monday_and_sunday_week_keys() -> None:
    friday = datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)

    assert Calendar(ZoneInfo("UTC"), WeekStart.MONDAY).week_key(friday) == "2026-10-12"
    assert Calendar(ZoneInfo("UTC"), WeekStart.SUNDAY).week_key(friday) == "2026-10-11"


def test_week_key_stable_across_year_boundary() -> None:
    monday_weeks = Calendar(ZoneInfo("UTC"), WeekStart.MONDAY)
    sunday_weeks = Calendar(ZoneInfo("UTC"), WeekStart.SUNDAY)
    new_year = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)
    old_year = datetime(2025, 12, 30, 8, 0, tzinfo=timezone.utc)

    assert monday_weeks.week_key(new_year) == monday_weeks.week_key(old_year) == "2025-12-29"
    assert sunday_weeks.week_key(new_year) == "2025-12-28"


def test_week_key_same_for_whole_window_and_differs_before_it() -> None:
    cal = Calendar(ZoneInfo("UTC"), WeekStart.MONDAY)
    start = datetime(2026, 10, 12, 0, 0, tzinfo=timezone.utc)

    keys = {cal.week_key(start + timedelta(hours=hours)) for hours in range(0, 7 * 24)}
    keys.add(cal.week_key(start + timedelta(days=7) - timedelta(seconds=1)))

    assert keys == {"2026-10-12"}
    assert cal.week_key(start - timedelta(days=1)) == "2026-10-05"


def test_day_key_uses_configured_timezone() -> None:
    cal = Calendar(ZoneInfo("America/New_York"), WeekStart.MONDAY)
    # 03:00 UTC Monday is still 23:00 Sunday in New York.
    instant = datetime(2026, 10, 12, 3, 0, tzinfo=timezone.utc)

    assert cal.day_key(instant) == "2026-10-11"
    assert cal.week_key(instant) == "2026-10-05"


def test_week_window_spans_dst_change() -> None:
    cal = Calendar(ZoneInfo("America/New_York"), WeekStart.MONDAY)

    window = cal.week_window("2026-10-26")

    assert window.start_utc == datetime(2026, 10, 26, 4, 0, tzinfo=timezone.utc)
    assert window.end_utc == datetime(2026, 11, 2, 5, 0, tzinfo=timezone.utc)
    assert window.contains(datetime(2026, 11, 2, 4, 30, tzinfo=timezone.utc))
    assert not window.contains(window.end_utc)


def test_week_window_rejects_non_start_day() -> None:
    cal = Calendar(ZoneInfo("UTC"), WeekStart.MONDAY)

    with pytest.raises(ValueError):
        cal.week_window("2026-10-13")


def test_week_days_and_day_window() -> None:
    cal = Calendar(ZoneInfo("UTC"), WeekStart.SUNDAY)

    days = cal.week_days("2026-10-11")
    start, end = cal.day_window("2026-10-11")

    assert days[0] == "2026-10-11"
    assert days[-1] == "2026-10-17"
    assert len(days) == 7
    assert end - start == timedelta(days=1)


def test_previous_week_key() -> None:
    cal = Calendar(ZoneInfo("UTC"), WeekStart.MONDAY)

    assert cal.previous_week_key(datetime(2026, 10, 19, 0, 0, 30, tzinfo=timezone.utc)) == "2026-10-12"
    assert cal.previous_week_key(datetime(2026, 10, 16, 12, 0, tzinfo=timezone.utc)) == "2026-10-05"

def test_parse_week_start() -> None:
    assert parse_week_start("Monday") is WeekStart.MONDAY
    assert parse_week_start(" sun ") is WeekStart.SUNDAY
    with pytest.raises(ValueError):
        parse_week_start("friday")


def test_naive_instant_rejected() -> None:
    cal = Calendar(ZoneInfo("UTC"))

    with pytest.raises(ValueError):
        cal.day_key(datetime(2026, 10, 16, 12, 0))
