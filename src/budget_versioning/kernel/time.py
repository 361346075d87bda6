"""
Clock injection

Every timestamp the engine writes (created_at, updated_at, event occurred_at)
comes from an injected provider, so replaying a test scenario always yields
the same event log.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TimeProvider(Protocol):
    def now(self) -> datetime:
        """Current time, always timezone-aware UTC"""
        ...


class RealTimeProvider:
    """System clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualTimeProvider:
    """
    Clock that only moves when told to

    Args:
        initial_time: Starting point (Unix epoch when omitted)
    """

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._now = initial_time or EPOCH

    def now(self) -> datetime:
        return self._now

    def advance(self, **delta: float) -> datetime:
        """
        Move the clock forward, e.g. advance(days=30) or advance(minutes=5)

        Returns:
            The new current time
        """
        self._now += timedelta(**delta)
        return self._now
