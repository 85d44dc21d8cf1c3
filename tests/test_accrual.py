from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from workhours.accrual import AccrualCalculator, Window, open_session_credit
from workhours.calendar_keys import Calendar, WeekStart
from workhours.ledger import SessionLedger


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def test_open_session_credit_is_capped_at_window_end() -> None:
    assert open_session_credit(at(12, 9), at(12, 10), at(13, 0)) == 3600
    assert open_session_credit(at(12, 23), at(13, 2), at(13, 0)) == 3600
    assert open_session_credit(at(13, 1), at(13, 2), at(13, 0)) == 0
    assert open_session_credit(at(12, 9), at(12, 8), at(13, 0)) == 0


def test_today_right_after_clock_in_is_elapsed_time(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    accrual = AccrualCalculator(ledger)
    ledger.clock_in("100", at(12, 9))

    assert accrual.seconds_as_of("100", at(12, 9, 25), Window.DAY) == 25 * 60


def test_week_combines_closed_days_and_running_session(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    accrual = AccrualCalculator(ledger)
    ledger.clock_in("100", at(12, 9))
    ledger.clock_out("100", at(12, 17, 30))
    ledger.clock_in("100", at(13, 9))

    assert accrual.seconds_in_week("100", "2026-10-12", at(13, 10)) == 8 * 3600 + 30 * 60 + 3600
    assert accrual.seconds_in_day("100", "2026-10-12", at(13, 10)) == 8 * 3600 + 30 * 60


def test_running_session_counts_toward_today_without_midnight_split(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    accrual = AccrualCalculator(ledger)
    ledger.clock_in("100", at(13, 23))

    # Whole elapsed time shows up on the new day while the session is still open.
    assert accrual.seconds_as_of("100", at(14, 1), Window.DAY) == 7200


def test_previous_week_running_session_is_capped_at_week_end(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    accrual = AccrualCalculator(ledger)
    ledger.clock_in("100", at(18, 22))

    assert accrual.seconds_in_week("100", "2026-10-12", at(19, 3)) == 7200


def test_sunday_week_start_saturday_night_session_stays_in_old_week(db) -> None:
    calendar = Calendar(ZoneInfo("UTC"), WeekStart.SUNDAY)
    ledger = SessionLedger(db, calendar)
    accrual = AccrualCalculator(ledger)
    saturday_night = datetime(2026, 10, 17, 23, 0, tzinfo=timezone.utc)
    sunday_morning = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)

    ledger.clock_in("100", saturday_night)
    ledger.clock_out("100", sunday_morning)

    assert accrual.seconds_in_week("100", "2026-10-11", sunday_morning) == 7200
    assert accrual.seconds_in_week("100", "2026-10-18", sunday_morning) == 0
