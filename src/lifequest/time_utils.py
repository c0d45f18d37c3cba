from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

DEFAULT_TZ = "UTC"
DAILY_REWARD_COOLDOWN = timedelta(hours=24)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def __init__(self, tz_name: str = DEFAULT_TZ) -> None:
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(tz=self.tz)


class FixedClock:
    """Clock pinned to a given instant; tests move it forward explicitly."""

    def __init__(self, dt: datetime) -> None:
        if dt.tzinfo is None:
            raise ValueError("FixedClock requires an aware datetime")
        self._now = dt

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, dt: datetime) -> None:
        self._now = dt


def local_day(dt: datetime, tz_name: str | None = None) -> date:
    if tz_name:
        return dt.astimezone(ZoneInfo(tz_name)).date()
    return dt.date()


def previous_day(day: date) -> date:
    return day - timedelta(days=1)


def reward_cooldown_remaining(last_claim: datetime | None, now: datetime) -> timedelta:
    if last_claim is None:
        return timedelta(0)
    elapsed = now - last_claim
    if elapsed >= DAILY_REWARD_COOLDOWN:
        return timedelta(0)
    return DAILY_REWARD_COOLDOWN - elapsed


def is_fresh_for(day: date | None, today: date) -> bool:
    return day is not None and day == today


def format_remaining(remaining: timedelta) -> str:
    total_minutes = max(0, int(remaining.total_seconds() // 60))
    h, m = divmod(total_minutes, 60)
    if h == 0:
        return f"{m}m"
    if m == 0:
        return f"{h}h"
    return f"{h}h {m}m"
