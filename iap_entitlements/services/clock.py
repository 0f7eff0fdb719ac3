"""Clock used for every "now" comparison in the lifecycle rules.

FrozenClock lets tests and local tooling pin or fast-forward time.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from iap_entitlements.logging_config import get_logger

logger = get_logger(__name__)


class Clock:
    """Wall clock returning timezone-aware UTC datetimes."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Manually controlled clock.

    Args:
        start: Initial time (defaults to current UTC time)
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._lock = threading.RLock()
        self._current = start or datetime.now(timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set_time(self, value: datetime) -> None:
        if value.tzinfo is None:
            raise ValueError("Clock time must be timezone-aware")
        with self._lock:
            self._current = value

    def advance(self, days: int = 0, hours: int = 0, minutes: int = 0) -> datetime:
        """Move the clock forward.

        Args:
            days: number of days to advance
            hours: number of hours to advance
            minutes: number of minutes to advance

        Returns:
            The new current time

        Raises:
            ValueError: if any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed.")

        with self._lock:
            old_time = self._current
            self._current = old_time + timedelta(days=days, hours=hours, minutes=minutes)
            logger.debug(
                "clock_advanced",
                old_time=old_time.isoformat(),
                new_time=self._current.isoformat(),
            )
            return self._current
