"""
Token counting and usage tracking.

Holds the raw token counts of one interaction and the totals derived from them.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported for a single assistant response.

    Contains exact token counts without estimation or model-specific logic.
    """
    input: int
    output: int
    cache_read: int = 0
    cache_create: int = 0

    def __post_init__(self):
        """Validate counts are non-negative integers."""
        for name in ("input", "output", "cache_read", "cache_create"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def billable(self) -> int:
        """Charged tokens (input + output, cache excluded)."""
        return self.input + self.output

    @property
    def cached(self) -> int:
        """Cache tokens (read + create)."""
        return self.cache_read + self.cache_create

    @property
    def total_with_cache(self) -> int:
        """Every token touched by the request."""
        return self.billable + self.cached

    @property
    def signature(self) -> str:
        """Usage tuple used to spot streamed continuations of one response."""
        return f"{self.input}|{self.output}|{self.cache_read}|{self.cache_create}"
