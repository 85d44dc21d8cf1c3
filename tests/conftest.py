"""Shared fixtures for tests."""

from __future__ import annotations

from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from workhours.calendar_keys import Calendar, WeekStart
from workhours.db import Database
from workhours.errors import DeliveryFailed
from workhours.reporter import ExportFormat
from workhours.tracker import WorkTracker


class FakeNotifier:
    """Records deliveries; endpoints listed in ``failing`` raise DeliveryFailed."""

    def __init__(self, failing: set[str] | None = None, broken: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.broken = broken or set()
        self.texts: list[tuple[str, str]] = []
        self.files: list[tuple[str, str, bytes, str | None]] = []
        # Called with the endpoint id before each text send; lets a test act mid-delivery.
        self.on_text = None

    def _check(self, endpoint_id: str) -> None:
        if endpoint_id in self.failing:
            raise DeliveryFailed(endpoint_id, "channel unavailable")
        if endpoint_id in self.broken:
            raise RuntimeError("unexpected transport error")

    async def send_text(self, endpoint_id: str, content: str) -> None:
        if self.on_text is not None:
            self.on_text(endpoint_id)
        self._check(endpoint_id)
        self.texts.append((endpoint_id, content))

    async def send_file(self, endpoint_id: str, filename: str, payload: bytes, caption: str | None = None) -> None:
        self._check(endpoint_id)
        self.files.append((endpoint_id, filename, payload, caption))

    @property
    def message_count(self) -> int:
        return len(self.texts) + len(self.files)


@pytest.fixture
def db():
    database = Database(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def calendar() -> Calendar:
    return Calendar(tz=ZoneInfo("UTC"), week_start=WeekStart.MONDAY)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def tracker(db: Database, calendar: Calendar, notifier: FakeNotifier) -> WorkTracker:
    return WorkTracker(
        db=db,
        calendar=calendar,
        default_rate=Decimal("2.50"),
        export_format=ExportFormat.DAYS,
        notifier=notifier,
    )
