from __future__ import annotations

from datetime import datetime


class WorkHoursError(Exception):
    """Base class for every error raised by the tracking core."""


class AlreadyOpen(WorkHoursError):
    def __init__(self, user_id: str, started_at_utc: datetime) -> None:
        super().__init__(f"User {user_id} already has an open session since {started_at_utc.isoformat()}")
        self.user_id = user_id
        self.started_at_utc = started_at_utc


class NoOpenSession(WorkHoursError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id} has no open session")
        self.user_id = user_id


class InvalidRate(WorkHoursError, ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Hourly rate must be a finite, positive number (got {value!r})")
        self.value = value


class InvalidTimezone(WorkHoursError, ValueError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown timezone: {name}")
        self.name = name


class DeliveryFailed(WorkHoursError):
    def __init__(self, endpoint_id: str, reason: str) -> None:
        super().__init__(f"Delivery to endpoint {endpoint_id} failed: {reason}")
        self.endpoint_id = endpoint_id
        self.reason = reason


class DuplicateRollover(WorkHoursError):
    def __init__(self, week_key: str) -> None:
        super().__init__(f"Rollover for week {week_key} is already running or done")
        self.week_key = week_key


class StoredDataError(WorkHoursError):
    """Raised when a persisted row cannot be decoded into a record."""
