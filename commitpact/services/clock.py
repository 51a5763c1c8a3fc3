from __future__ import annotations
from datetime import datetime, timedelta, timezone as dt_tz
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(dt_tz.utc)


class FixedClock:
    """Settable clock for simulations and tests."""

    def __init__(self, at: datetime):
        self._at = as_utc(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = as_utc(at)

    def advance(self, **delta) -> datetime:
        self._at = self._at + timedelta(**delta)
        return self._at


def as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_tz.utc)
    return dt.astimezone(dt_tz.utc)


system_clock = SystemClock()

def get_clock() -> Clock:
    return system_clock
