# backend/saasdb/clock.py
"""
Business-day clock.

Renewal and audit logic is a pure function of "today". Services take `today`
as an argument; routers obtain it from the `get_clock` dependency and jobs
from `local_today()`. Every "today" is anchored to APP_TIMEZONE so that a
renewal due on 2025-06-01 is processed on 2025-06-01 local time, not on the
UTC date.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Chicago")


def app_zone() -> ZoneInfo:
    return ZoneInfo(APP_TIMEZONE)


def local_now(now: Optional[datetime] = None) -> datetime:
    """Return `now` (default: current UTC time) converted to the app timezone."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(app_zone())


def local_today(now: Optional[datetime] = None) -> date:
    return local_now(now).date()


class Clock(ABC):
    """Injectable source of the current business date."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return local_now()


class FixedClock(Clock):
    """Clock pinned to a given instant; used by tests and backfills."""

    def __init__(self, value: date | datetime) -> None:
        if isinstance(value, datetime):
            self._now = value if value.tzinfo else value.replace(tzinfo=app_zone())
        else:
            self._now = datetime(value.year, value.month, value.day, tzinfo=app_zone())

    def now(self) -> datetime:
        return self._now


_system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency; override in tests with `FixedClock`."""
    return _system_clock
