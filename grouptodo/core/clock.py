"""Time source abstraction.

Token expiry and consumption compare against ``Clock.now()`` rather than the
wall clock so the logic can be exercised deterministically.
"""

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Current time as a timezone-naive UTC datetime."""
        ...


class SystemClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        # Timezone-naive for database compatibility (columns store UTC without tz)
        return datetime.now(UTC).replace(tzinfo=None)
