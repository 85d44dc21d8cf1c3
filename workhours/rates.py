from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .db import Database
from .errors import InvalidRate

CENTS = Decimal("0.01")
SECONDS_PER_HOUR = Decimal(3600)


def validate_rate(value: object) -> Decimal:
    """Parse an hourly rate, accepting strings like ``"$3.00"``."""
    if isinstance(value, bool):
        raise InvalidRate(value)

    raw = value.strip().lstrip("$").strip() if isinstance(value, str) else value
    try:
        rate = Decimal(str(raw))
    except InvalidOperation as exc:
        raise InvalidRate(value) from exc

    if not rate.is_finite() or rate <= 0:
        raise InvalidRate(value)
    return rate


def pay(seconds: int, rate: Decimal) -> Decimal:
    hours = Decimal(max(0, int(seconds))) / SECONDS_PER_HOUR
    return (hours * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


class RateResolver:
    def __init__(self, db: Database, default_rate: Decimal) -> None:
        self.db = db
        self.default_rate = validate_rate(default_rate)

    def rate_for(self, user_id: str) -> Decimal:
        user = self.db.get_user(user_id)
        if user is None or user.hourly_rate is None:
            return self.default_rate
        return user.hourly_rate

    def set_rate(self, user_id: str, value: object) -> Decimal:
        rate = validate_rate(value)
        self.db.set_user_rate(user_id, rate)
        return rate

    def clear_rate(self, user_id: str) -> None:
        self.db.set_user_rate(user_id, None)
