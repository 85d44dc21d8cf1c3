from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .clock import parse_iso_utc
from .errors import StoredDataError


def _decode_instant(value: str | None, column: str) -> datetime | None:
    try:
        return parse_iso_utc(value)
    except (TypeError, ValueError) as exc:
        raise StoredDataError(f"Invalid timestamp in {column}: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class User:
    user_id: str
    display_name: str | None = None
    hourly_rate: Decimal | None = None
    timezone: str | None = None

    @classmethod
    def from_row(cls, row) -> User:
        rate = None
        if row["hourly_rate"] is not None:
            try:
                rate = Decimal(str(row["hourly_rate"]))
            except InvalidOperation as exc:
                raise StoredDataError(f"Invalid stored rate for user {row['user_id']}: {row['hourly_rate']!r}") from exc
            if not rate.is_finite() or rate <= 0:
                raise StoredDataError(f"Invalid stored rate for user {row['user_id']}: {rate}")
        return cls(
            user_id=str(row["user_id"]),
            display_name=row["display_name"],
            hourly_rate=rate,
            timezone=row["timezone"],
        )

    @property
    def label(self) -> str:
        return self.display_name or f"User {self.user_id}"


@dataclass(frozen=True, slots=True)
class Session:
    id: int
    user_id: str
    day_key: str
    started_at_utc: datetime
    ended_at_utc: datetime | None = None

    def __post_init__(self) -> None:
        if self.started_at_utc.tzinfo is None:
            raise StoredDataError(f"Session {self.id} has a naive start time")
        if self.ended_at_utc is not None and self.ended_at_utc.tzinfo is None:
            raise StoredDataError(f"Session {self.id} has a naive end time")

    @classmethod
    def from_row(cls, row) -> Session:
        started = _decode_instant(row["started_at_utc"], "started_at_utc")
        if started is None:
            raise StoredDataError(f"Session {row['id']} is missing its start time")
        return cls(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            day_key=str(row["day_local"]),
            started_at_utc=started,
            ended_at_utc=_decode_instant(row["ended_at_utc"], "ended_at_utc"),
        )

    @property
    def is_open(self) -> bool:
        return self.ended_at_utc is None

    @property
    def seconds(self) -> int:
        if self.ended_at_utc is None:
            return 0
        return max(0, int((self.ended_at_utc - self.started_at_utc).total_seconds()))


@dataclass(frozen=True, slots=True)
class DayBucket:
    user_id: str
    day_key: str
    seconds: int = 0
    session_count: int = 0

    def __post_init__(self) -> None:
        if self.seconds < 0 or self.session_count < 0:
            raise StoredDataError(f"Negative totals for user {self.user_id} on {self.day_key}")


@dataclass(frozen=True, slots=True)
class WeekMeta:
    week_key: str
    start_utc: datetime
    end_utc: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start_utc <= instant < self.end_utc


@dataclass(frozen=True, slots=True)
class ClockResult:
    ok: bool
    message: str
    seconds: int = 0


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    user_id: str
    endpoint_id: str | None
    ok: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class RolloverReport:
    week_key: str
    skipped: bool = False
    results: list[DeliveryResult] = field(default_factory=list)
    reset_users: list[str] = field(default_factory=list)

    @property
    def delivered(self) -> int:
        return sum(1 for result in self.results if result.ok)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)


@dataclass(frozen=True, slots=True)
class UserTotal:
    user: User
    seconds: int
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True, slots=True)
class WeekExport:
    user_id: str
    week_key: str
    seconds: int
    running_seconds: int
    session_count: int
    rate: Decimal
    amount: Decimal
    csv_text: str

    @property
    def is_empty(self) -> bool:
        return self.session_count == 0 and self.seconds == 0
