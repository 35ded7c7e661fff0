"""
Time provider abstraction for deterministic testing

Suppression windows, dispatch timestamps and award times all read the clock
through this seam, so tests can freeze and advance time.

Fun fact: Manufacturing lead times used to be quoted in "working days" that
skipped Sundays and saints' days - ours are plain calendar days in UTC!
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Allows tests to freeze time and advance it explicitly.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        """
        Initialize with optional fixed time

        Args:
            initial_time: Starting time (defaults to Unix epoch)
        """
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    def advance_seconds(self, seconds: int) -> None:
        self._current_time += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current_time += timedelta(days=days)


def week_start(value: datetime | date) -> str:
    """
    Monday of the week containing `value`, as YYYY-MM-DD

    Capacity snapshots and requests are keyed by this string.
    """
    day = value.date() if isinstance(value, datetime) else value
    return (day - timedelta(days=day.weekday())).isoformat()


# Global default time provider
default_time_provider: TimeProvider = RealTimeProvider()
