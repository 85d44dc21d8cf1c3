from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .calendar_keys import WeekStart, parse_week_start
from .errors import InvalidRate
from .rates import validate_rate
from .reporter import ExportFormat, parse_export_format

DEFAULT_PAY_RATE = "2.50"
DEFAULT_LOCK_SECONDS = 3 * 3600


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    admin_user_id: int
    timezone: ZoneInfo
    week_start: WeekStart
    pay_rate: Decimal
    export_format: ExportFormat
    database_path: Path
    rollover_lock_seconds: int


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _optional_env(name: str, default: str) -> str:
    value = os.getenv(name, "").strip()
    return value or default


def _positive_int(name: str, raw: str) -> int:
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _positive_int(name, _required_env(name))


def _timezone_from_env(name: str, default: str) -> ZoneInfo:
    tz_name = _optional_env(name, default)
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _rate_from_env(name: str, default: str) -> Decimal:
    raw = _optional_env(name, default)
    try:
        return validate_rate(raw)
    except InvalidRate as exc:
        raise ValueError(f"Environment variable {name} must be a positive number") from exc


def load_config() -> Config:
    try:
        week_start = parse_week_start(_optional_env("WEEK_START", "monday"))
        export_format = parse_export_format(_optional_env("EXPORT_FORMAT", ExportFormat.DAYS.value))
    except ValueError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        admin_user_id=_required_int_env("ADMIN_USER_ID"),
        timezone=_timezone_from_env("TIMEZONE", "UTC"),
        week_start=week_start,
        pay_rate=_rate_from_env("PAY_RATE", DEFAULT_PAY_RATE),
        export_format=export_format,
        database_path=Path(_optional_env("DATABASE_PATH", "workhours.db")),
        rollover_lock_seconds=_positive_int(
            "ROLLOVER_LOCK_SECONDS", _optional_env("ROLLOVER_LOCK_SECONDS", str(DEFAULT_LOCK_SECONDS))
        ),
    )
