"""Half-open time intervals used by availability checks and pricing."""
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class TimeRange:
    """Interval [start, end): includes its start instant, excludes its end instant."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError('End time must be after start time')

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: 'TimeRange') -> bool:
        # Back-to-back ranges do not overlap.
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def __str__(self):
        return f"[{self.start.isoformat()}, {self.end.isoformat()})"
