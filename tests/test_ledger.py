import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from workhours.errors import AlreadyOpen, NoOpenSession
from workhours.ledger import SessionLedger


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


def test_clock_in_twice_keeps_first_start(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(12, 9))

    with pytest.raises(AlreadyOpen) as excinfo:
        ledger.clock_in("100", at(12, 10))

    assert excinfo.value.started_at_utc == at(12, 9)
    assert ledger.open_session("100").started_at_utc == at(12, 9)
    assert db.count_open_sessions("100") == 1


def test_clock_out_without_open_session_changes_nothing(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)

    with pytest.raises(NoOpenSession):
        ledger.clock_out("100", at(12, 17))

    assert list(ledger.list_week("100", "2026-10-12")) == []
    assert ledger.day_buckets("100", ["2026-10-12"])["2026-10-12"].seconds == 0


def test_clock_out_credits_the_day_the_session_was_filed_under(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(13, 23))

    session, tracked = ledger.clock_out("100", at(14, 1))

    assert tracked == 7200
    assert session.day_key == "2026-10-13"
    buckets = ledger.day_buckets("100", ["2026-10-13", "2026-10-14"])
    assert buckets["2026-10-13"].seconds == 7200
    assert buckets["2026-10-14"].seconds == 0


def test_clock_out_before_start_is_clamped_to_zero(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(12, 9))

    _, tracked = ledger.clock_out("100", at(12, 8, 59))

    assert tracked == 0
    assert ledger.open_session("100") is None
    assert ledger.day_buckets("100", ["2026-10-12"])["2026-10-12"].seconds == 0


def test_at_most_one_open_session_after_any_sequence(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    now = at(12, 8)

    for action in ["in", "in", "out", "out", "in", "out", "in", "in", "out", "in"]:
        now += timedelta(minutes=15)
        try:
            if action == "in":
                ledger.clock_in("100", now)
            else:
                ledger.clock_out("100", now)
        except (AlreadyOpen, NoOpenSession):
            pass
        assert db.count_open_sessions("100") in (0, 1)


def test_open_session_index_rejects_second_open_row(db) -> None:
    db.insert_open_session("100", "2026-10-12", at(12, 9))

    with pytest.raises(sqlite3.IntegrityError):
        db.insert_open_session("100", "2026-10-12", at(12, 10))


def test_list_week_is_ordered_and_bounded(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    for day in (11, 14, 12):
        ledger.clock_in("100", at(day, 9))
        ledger.clock_out("100", at(day, 10))
    ledger.clock_in("100", at(16, 9))

    sessions = list(ledger.list_week("100", "2026-10-12"))

    assert [session.day_key for session in sessions] == ["2026-10-12", "2026-10-14", "2026-10-16"]
    assert sessions[-1].is_open
    assert sessions[0].seconds == 3600


def test_day_buckets_count_open_and_closed_sessions(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(12, 9))
    ledger.clock_out("100", at(12, 10))
    ledger.clock_in("100", at(12, 11))

    bucket = ledger.day_buckets("100", ["2026-10-12"])["2026-10-12"]

    assert bucket.seconds == 3600
    assert bucket.session_count == 2


def test_reset_day_and_week_return_removed_counts(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    for day in (12, 13, 13):
        ledger.clock_in("100", at(day, 9))
        ledger.clock_out("100", at(day, 9, 30))
    ledger.clock_in("100", at(14, 9))

    assert ledger.reset_day("100", "2026-10-13") == 2
    assert ledger.reset_week("100", "2026-10-12") == 2
    assert ledger.open_session("100") is None
    assert ledger.day_buckets("100", ["2026-10-12"])["2026-10-12"].seconds == 0


def test_reset_leaves_other_users_alone(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(12, 9))
    ledger.clock_in("200", at(12, 9))

    ledger.reset_week("100", "2026-10-12")

    assert ledger.open_session("100") is None
    assert ledger.open_session("200") is not None


def test_carry_open_session_splits_at_boundary(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(18, 23))
    boundary = at(19, 0)

    carried = ledger.carry_open_session("100", boundary)

    assert carried.started_at_utc == boundary
    assert carried.day_key == "2026-10-19"
    assert ledger.day_buckets("100", ["2026-10-18"])["2026-10-18"].seconds == 3600
    assert db.count_open_sessions("100") == 1


def test_carry_ignores_sessions_started_after_boundary(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(19, 0, 5))

    assert ledger.carry_open_session("100", at(19, 0)) is None
    assert ledger.open_session("100").started_at_utc == at(19, 0, 5)


def test_reset_week_drops_open_session_started_in_earlier_week(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(18, 22))

    assert ledger.reset_week("100", "2026-10-19") == 1
    assert ledger.open_session("100") is None


def test_reset_day_drops_open_session_started_the_day_before(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(13, 23))

    assert ledger.reset_day("100", "2026-10-14") == 1
    assert db.count_open_sessions("100") == 0


def test_reset_keeps_open_session_started_after_window(db, calendar) -> None:
    ledger = SessionLedger(db, calendar)
    ledger.clock_in("100", at(19, 9))

    assert ledger.reset_week("100", "2026-10-12") == 0
    assert ledger.reset_day("100", "2026-10-18") == 0
    assert ledger.open_session("100") is not None
