"""
Time source for lifecycle transitions.

Services accept a ``clock`` callable instead of reading the system time
directly, so tests can pin timestamps.
"""
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
