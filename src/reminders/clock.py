"""Clock sources for the reminder subsystem.

Every component takes a zero-argument callable returning an aware UTC
datetime. Production code uses ``utc_now``; tests and the CLI demo drive
a ``SimulatedClock`` forward by hand.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalize aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SimulatedClock:
    """Manually advanced clock.

    Example:
        clock = SimulatedClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
        scheduler = ReminderScheduler(dispatcher, preferences, clock=clock)
        clock.advance(minutes=30)
        await scheduler.run_pending()
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start is not None else utc_now()

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **delta) -> datetime:
        """Move time forward by a ``timedelta(**delta)``."""
        step = timedelta(**delta)
        if step < timedelta(0):
            raise ValueError("SimulatedClock cannot move backwards")
        self._now += step
        return self._now

    def set(self, value: datetime) -> datetime:
        self._now = ensure_utc(value)
        return self._now
