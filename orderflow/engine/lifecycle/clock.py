"""Time source and deadline arithmetic for the lifecycle engine."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FrozenClock:
    """Manually advanced clock for tests and replays."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = ensure_utc(start) if start is not None else datetime.now(UTC)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = ensure_utc(moment)


def ensure_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalize aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def deadline_after(now: datetime, window: timedelta) -> datetime:
    if window <= timedelta(0):
        raise ValueError("deadline window must be positive.")
    return ensure_utc(now) + window


def time_until(deadline: datetime, now: datetime) -> timedelta:
    """Remaining time until ``deadline``; never negative."""
    remaining = ensure_utc(deadline) - ensure_utc(now)
    return max(remaining, timedelta(0))
