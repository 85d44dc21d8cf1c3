from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from .models import WeekMeta


class WeekStart(enum.Enum):
    MONDAY = 0
    SUNDAY = 6


def parse_week_start(value: str) -> WeekStart:
    normalized = value.strip().lower()
    if normalized in ("monday", "mon"):
        return WeekStart.MONDAY
    if normalized in ("sunday", "sun"):
        return WeekStart.SUNDAY
    raise ValueError(f"Week start must be 'monday' or 'sunday' (got {value!r})")


def parse_day_key(day_key: str) -> date:
    try:
        return date.fromisoformat(day_key)
    except ValueError as exc:
        raise ValueError(f"Invalid day key: {day_key!r}") from exc


@dataclass(frozen=True, slots=True)
class Calendar:
    """Derives day and week keys from instants under a fixed timezone."""

    tz: ZoneInfo
    week_start: WeekStart = WeekStart.MONDAY

    def local_date(self, instant: datetime) -> date:
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        return instant.astimezone(self.tz).date()

    def day_key(self, instant: datetime) -> str:
        return self.local_date(instant).isoformat()

    def week_start_date(self, day_value: date) -> date:
        offset = (day_value.weekday() - self.week_start.value) % 7
        return day_value - timedelta(days=offset)

    def week_key(self, instant: datetime) -> str:
        return self.week_start_date(self.local_date(instant)).isoformat()

    def midnight_utc(self, day_value: date) -> datetime:
        # Each local midnight is converted separately so DST shifts stay correct.
        midnight_local = datetime.combine(day_value, time.min, tzinfo=self.tz)
        return midnight_local.astimezone(timezone.utc)

    def day_window(self, day_key: str) -> tuple[datetime, datetime]:
        day_value = parse_day_key(day_key)
        return self.midnight_utc(day_value), self.midnight_utc(day_value + timedelta(days=1))

    def week_window(self, week_key: str) -> WeekMeta:
        start_day = parse_day_key(week_key)
        if self.week_start_date(start_day) != start_day:
            raise ValueError(f"{week_key} is not a {self.week_start.name.lower()} week start")
        return WeekMeta(
            week_key=week_key,
            start_utc=self.midnight_utc(start_day),
            end_utc=self.midnight_utc(start_day + timedelta(days=7)),
        )

    def week_days(self, week_key: str) -> list[str]:
        start_day = parse_day_key(week_key)
        return [(start_day + timedelta(days=offset)).isoformat() for offset in range(7)]

    def previous_week_key(self, instant: datetime) -> str:
        """Key of the most recently completed week before the one containing instant."""
        current = self.week_start_date(self.local_date(instant))
        return (current - timedelta(days=7)).isoformat()
