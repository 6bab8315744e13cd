"""
Time range resolution.

Turns symbolic windows ("1h", "24h", "all") or explicit intervals into
half-open [start, end) filters over epoch seconds.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from jevons.errors import InvalidRequest

Clock = Callable[[], float]

DEFAULT_RANGE = "24h"
ALL_RANGE = "all"

WINDOWS: Dict[str, int] = {
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "3h": 10800,
    "6h": 21600,
    "12h": 43200,
    "24h": 86400,
    "30h": 108000,
    "48h": 172800,
    "7d": 604800,
    "14d": 1209600,
    "30d": 2592000,
}


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval over epoch seconds; None means unbounded."""
    start: Optional[int]
    end: Optional[int]
    label: str

    def __post_init__(self):
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise InvalidRequest(f"range start {self.start} must be before end {self.end}")

    def contains(self, ts_epoch: int) -> bool:
        if self.start is not None and ts_epoch < self.start:
            return False
        if self.end is not None and ts_epoch >= self.end:
            return False
        return True

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None


def window_seconds(window: str) -> int:
    """Length of a symbolic window in seconds.

    Raises:
        InvalidRequest: If the window is not known
    """
    try:
        return WINDOWS[window]
    except KeyError:
        valid = ", ".join(list(WINDOWS) + [ALL_RANGE])
        raise InvalidRequest(f"unknown range {window!r}; expected one of: {valid}")


def resolve_range(
    window: Optional[str] = DEFAULT_RANGE,
    start: Optional[int] = None,
    end: Optional[int] = None,
    clock: Clock = time.time,
) -> TimeRange:
    """Resolve a query's range parameters into a TimeRange.

    An explicit interval wins over the symbolic window. Symbolic windows are
    resolved relative to ``clock()`` at call time.

    Args:
        window: Symbolic window such as "1h" or "all"
        start: Explicit inclusive start (epoch seconds)
        end: Explicit exclusive end (epoch seconds)
        clock: Source of "now"

    Returns:
        The resolved TimeRange

    Raises:
        InvalidRequest: On an unknown window or an incomplete/inverted interval
    """
    if start is not None or end is not None:
        if start is None or end is None:
            raise InvalidRequest("explicit ranges need both start and end")
        return TimeRange(start=int(start), end=int(end), label=f"{int(start)}-{int(end)}")

    window = (window or DEFAULT_RANGE).strip()
    if window == ALL_RANGE:
        return TimeRange(start=None, end=None, label=ALL_RANGE)

    now = int(clock())
    return TimeRange(start=now - window_seconds(window), end=now, label=window)
