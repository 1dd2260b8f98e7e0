"""
Wall-clock source for checkpoint timestamps.

All timestamps are UTC, second precision, ``YYYY-MM-DDTHH:MM:SSZ``.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as a UTC checkpoint timestamp."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class UtcClock:
    """System clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> str:
        return format_timestamp(self.now())


@dataclass(frozen=True)
class FixedClock(UtcClock):
    """
    Clock pinned to a given instant.

    In tests: advance manually with tick(), which returns a new instance.
    """
    current: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        """Get current instant without advancing."""
        return self.current

    def tick(self, seconds: int = 1) -> "FixedClock":
        """Advance clock by seconds and return new clock instance."""
        return FixedClock(self.current + timedelta(seconds=seconds))
