"""
Timestamp conversions between epoch seconds and ISO-8601 strings.
"""

import re
from datetime import datetime, timezone
from typing import Optional

# "2025-01-15T10:30:00.123Z" -> "2025-01-15T10:30:00Z"
_FRACTION_RE = re.compile(r"\.\d+(?=(Z|[+-]\d{2}:?\d{2})?$)")


def epoch_to_iso(epoch: int) -> str:
    """Format epoch seconds as a UTC ISO string with a trailing Z."""
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_to_epoch(value: str) -> Optional[int]:
    """Parse an ISO-8601 timestamp into epoch seconds.

    Fractional seconds are truncated. Naive timestamps are read as UTC.

    Args:
        value: ISO-8601 string such as ``2025-01-15T10:30:00.123Z``

    Returns:
        Epoch seconds, or None when the string cannot be parsed
    """
    if not value:
        return None
    cleaned = _FRACTION_RE.sub("", value.strip())
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())
