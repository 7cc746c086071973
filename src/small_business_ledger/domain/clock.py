"""Injectable source of "today" for posting, aging and dashboards.

Services never call ``date.today()`` directly so that reversal dating and
A/R aging can be tested against a fixed calendar.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware UTC time."""

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock(Clock):
    """Clock pinned to one instant; ``advance_to`` moves it explicitly."""

    def __init__(self, current: date | datetime) -> None:
        self._current = self._coerce(current)

    @staticmethod
    def _coerce(value: date | datetime) -> datetime:
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=UTC)
        return datetime(value.year, value.month, value.day, tzinfo=UTC)

    def now(self) -> datetime:
        return self._current

    def advance_to(self, value: date | datetime) -> None:
        self._current = self._coerce(value)
