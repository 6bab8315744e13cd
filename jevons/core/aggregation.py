"""
Usage aggregation.

Computes summary cards, bucketed time series, per-project breakdowns and the
live tail over a snapshot of events, filtered by time range and scope.
All sums are exact integers.
"""

from dataclasses import dataclass, field, fields
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from jevons.core.ranges import TimeRange
from jevons.core.scope import ScopeNode, ScopeTree
from jevons.errors import InvalidRequest
from jevons.storage.models import LiveUsageEvent, UsageEvent

FIVE_MINUTES = 300
HOUR = 3600
DAY = 86400
MAX_BUCKETS = 5000

DEFAULT_LIVE_LIMIT = 200
MAX_LIVE_LIMIT = 1000

METRICS: Dict[str, Callable[[UsageEvent], int]] = {
    "billable": lambda e: e.billable,
    "input": lambda e: e.input,
    "output": lambda e: e.output,
    "cache_read": lambda e: e.cache_read,
    "cache_create": lambda e: e.cache_create,
    "cached": lambda e: e.cache_read + e.cache_create,
    "total_with_cache": lambda e: e.total_with_cache,
}

# Graph modes and the metrics they stack. None means "the selected metric".
MODES: Dict[str, Tuple[Optional[str], ...]] = {
    "single": (None,),
    "in_out": ("input", "output"),
    "cache": ("cache_read", "cache_create"),
}

BUCKETS = {"auto": None, "hour": HOUR, "day": DAY}


@dataclass(frozen=True)
class Cards:
    """Summed metrics over every event passing the filters."""
    events: int = 0
    billable: int = 0
    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_create: int = 0
    total_with_cache: int = 0

    @property
    def cached(self) -> int:
        return self.cache_read + self.cache_create

    @property
    def no_data(self) -> bool:
        return self.events == 0

    def __add__(self, other: "Cards") -> "Cards":
        if not isinstance(other, Cards):
            return NotImplemented
        return Cards(**{
            f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)
        })

    def headline(self) -> List[Tuple[str, str, int]]:
        """Card rows in display order as (key, label, value)."""
        return [
            ("billable", "billable (range)", self.billable),
            ("input", "input", self.input),
            ("output", "output", self.output),
            ("cached", "cached", self.cached),
            ("total", "total (with cache)", self.total_with_cache),
        ]

    def to_dict(self) -> Dict[str, int]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["cached"] = self.cached
        return data


@dataclass(frozen=True)
class Series:
    """Contiguous bucketed time series for charting."""
    metric: str
    mode: str
    bucket_seconds: int
    buckets: Tuple[int, ...]
    values: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    events: int = 0

    @property
    def no_data(self) -> bool:
        return self.events == 0


@dataclass(frozen=True)
class ProjectTotals:
    slug: str
    cards: Cards


def _metric(name: str) -> Callable[[UsageEvent], int]:
    try:
        return METRICS[name]
    except KeyError:
        raise InvalidRequest(
            f"unknown metric {name!r}; expected one of: {', '.join(METRICS)}"
        )


def filter_events(
    events: Iterable[UsageEvent],
    time_range: TimeRange,
    tree: ScopeTree,
    scope: Optional[ScopeNode] = None,
) -> List[UsageEvent]:
    """Events inside ``time_range`` whose project belongs to ``scope``."""
    scope = scope or tree.root
    if scope.is_root:
        return [e for e in events if time_range.contains(e.ts_epoch)]
    members = tree.member_slugs(scope)
    return [
        e for e in events
        if e.project_slug in members and time_range.contains(e.ts_epoch)
    ]


def _sum(events: Iterable[UsageEvent]) -> Cards:
    n = billable = input_sum = output = cache_read = cache_create = total = 0
    for e in events:
        n += 1
        billable += e.billable
        input_sum += e.input
        output += e.output
        cache_read += e.cache_read
        cache_create += e.cache_create
        total += e.total_with_cache
    return Cards(
        events=n,
        billable=billable,
        input=input_sum,
        output=output,
        cache_read=cache_read,
        cache_create=cache_create,
        total_with_cache=total,
    )


def compute_cards(
    events: Iterable[UsageEvent],
    time_range: TimeRange,
    tree: ScopeTree,
    scope: Optional[ScopeNode] = None,
) -> Cards:
    """Sum every tracked metric over the events passing both filters.

    The billable card is the sum of per-event billable values.

    Args:
        events: Events to aggregate
        time_range: Half-open time filter
        tree: Scope tree used for membership
        scope: Selected scope node (root when omitted)

    Returns:
        Cards with ``no_data`` set when nothing matched
    """
    return _sum(filter_events(events, time_range, tree, scope))


def compute_breakdown(
    events: Iterable[UsageEvent],
    time_range: TimeRange,
    tree: ScopeTree,
    scope: Optional[ScopeNode] = None,
) -> List[ProjectTotals]:
    """Per-project cards, largest billable first."""
    grouped: Dict[str, List[UsageEvent]] = {}
    for e in filter_events(events, time_range, tree, scope):
        grouped.setdefault(e.project_slug, []).append(e)
    totals = [ProjectTotals(slug=slug, cards=_sum(evs)) for slug, evs in grouped.items()]
    totals.sort(key=lambda t: (-t.cards.billable, t.slug))
    return totals


def choose_bucket_seconds(span_seconds: int) -> int:
    """Bucket width for a span: 5 minutes up to 3h, hourly up to a day, else daily."""
    if span_seconds <= 3 * HOUR:
        return FIVE_MINUTES
    if span_seconds <= DAY:
        return HOUR
    return DAY


def compute_series(
    events: Sequence[UsageEvent],
    time_range: TimeRange,
    tree: ScopeTree,
    now: int,
    scope: Optional[ScopeNode] = None,
    metric: str = "billable",
    mode: str = "single",
    bucket: str = "auto",
) -> Series:
    """Bucket the selected metric(s) over the range.

    Buckets are aligned to multiples of their width in epoch seconds, so
    daily buckets are UTC calendar days. Every bucket between the first and
    the last is emitted, with value 0 when no event fell into it.

    Args:
        events: Events to aggregate
        time_range: Half-open time filter; an unbounded range spans from the
            earliest matching event to ``now``
        tree: Scope tree used for membership
        now: Current epoch seconds
        scope: Selected scope node (root when omitted)
        metric: Metric plotted in "single" mode
        mode: "single", "in_out" or "cache"
        bucket: "auto", "hour" or "day"

    Returns:
        The Series

    Raises:
        InvalidRequest: On an unknown metric, mode or bucket, or a range that
            would produce too many buckets
    """
    _metric(metric)
    if mode not in MODES:
        raise InvalidRequest(f"unknown mode {mode!r}; expected one of: {', '.join(MODES)}")
    if bucket not in BUCKETS:
        raise InvalidRequest(f"unknown bucket {bucket!r}; expected one of: {', '.join(BUCKETS)}")

    names = [metric if m is None else m for m in MODES[mode]]
    selected = filter_events(events, time_range, tree, scope)

    start = time_range.start
    end = time_range.end
    if start is None:
        if not selected:
            return Series(metric=metric, mode=mode, bucket_seconds=BUCKETS[bucket] or DAY,
                          buckets=(), values={name: () for name in names})
        start = min(e.ts_epoch for e in selected)
    if end is None:
        latest = max((e.ts_epoch for e in selected), default=now)
        end = max(now, latest + 1)

    width = BUCKETS[bucket] or choose_bucket_seconds(end - start)
    first = (start // width) * width
    last = ((end - 1) // width) * width
    count = (last - first) // width + 1
    if count > MAX_BUCKETS:
        raise InvalidRequest(f"range would produce {count} buckets (max {MAX_BUCKETS})")

    sums = {name: [0] * count for name in names}
    getters = {name: METRICS[name] for name in names}
    for e in selected:
        index = (e.ts_epoch // width) * width
        position = (index - first) // width
        for name, getter in getters.items():
            sums[name][position] += getter(e)

    return Series(
        metric=metric,
        mode=mode,
        bucket_seconds=width,
        buckets=tuple(range(first, last + 1, width)),
        values={name: tuple(v) for name, v in sums.items()},
        events=len(selected),
    )


def live_window(
    live_events: Iterable[LiveUsageEvent],
    window_seconds: int,
    now: int,
    tree: Optional[ScopeTree] = None,
    scope: Optional[ScopeNode] = None,
    limit: int = DEFAULT_LIVE_LIMIT,
) -> List[LiveUsageEvent]:
    """Live events from the last ``window_seconds``, most recent first.

    Args:
        live_events: Live events to search
        window_seconds: Lookback length
        now: Current epoch seconds (exclusive end of the window)
        tree: Scope tree; required when ``scope`` is given
        scope: Optional scope restriction
        limit: Maximum number of rows returned

    Returns:
        At most ``limit`` events ordered newest first, ties by signature
    """
    if limit < 1 or limit > MAX_LIVE_LIMIT:
        raise InvalidRequest(f"limit must be between 1 and {MAX_LIVE_LIMIT}")

    time_range = TimeRange(start=now - window_seconds, end=now, label="live")
    if tree is not None:
        selected = filter_events(live_events, time_range, tree, scope)
    else:
        selected = [e for e in live_events if time_range.contains(e.ts_epoch)]

    selected.sort(key=lambda e: e.signature)
    selected.sort(key=lambda e: e.ts_epoch, reverse=True)
    return selected[:limit]
