"""Time utilities for consistent timestamp handling."""

import time
from collections.abc import Callable
from datetime import datetime, timezone

# Clock used for TTLs and windows: seconds, monotonic, injectable in tests
Clock = Callable[[], float]


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def monotonic() -> float:
    """Return a monotonic timestamp in seconds for elapsed-time checks."""
    return time.monotonic()
