"""
Clock source - "current period" defaults and timestamps.
"""

from datetime import UTC, date, datetime
from typing import Protocol


class Clock(Protocol):

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:

    def now(self) -> datetime:
        return datetime.now(UTC)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to one instant (tests, batch replays)."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def today(self) -> date:
        return self.instant.date()
