"""
Unit tests for the aggregation engine.

Tests card sums, scope filtering, bucketed series and the live window
against the deterministic demo data set.
"""

import pytest

from jevons.core.aggregation import (
    DAY,
    HOUR,
    FIVE_MINUTES,
    Cards,
    choose_bucket_seconds,
    compute_breakdown,
    compute_cards,
    compute_series,
    live_window,
)
from jevons.core.ranges import TimeRange, resolve_range
from jevons.errors import InvalidRequest
from jevons.storage.models import UsageEvent

from tests.conftest import (
    BILLABLE_BY_SLUG,
    DEV_SCOPE_BILLABLE,
    LAST_24H_BILLABLE,
    NOW,
    TODAY_START,
    TOTAL_BILLABLE,
    fixed_clock,
)


@pytest.fixture
def snapshot(store):
    return store.snapshot


def _range(window):
    return resolve_range(window, clock=fixed_clock)


class TestCards:
    """Test summary cards."""

    def test_all_time_totals(self, snapshot):
        cards = compute_cards(snapshot.events, _range("all"), snapshot.scope_tree)
        assert cards.events == 22
        assert cards.billable == TOTAL_BILLABLE
        assert cards.input == 253_000
        assert cards.output == 126_500
        assert cards.cache_read == 50_600
        assert cards.cache_create == 25_300
        assert cards.cached == 75_900
        assert cards.total_with_cache == TOTAL_BILLABLE + 75_900
        assert not cards.no_data

    def test_last_24h(self, snapshot):
        cards = compute_cards(snapshot.events, _range("24h"), snapshot.scope_tree)
        assert cards.billable == LAST_24H_BILLABLE
        assert cards.events == 5

    def test_empty_window_has_no_data(self, snapshot):
        """The hour before noon holds no events."""
        cards = compute_cards(snapshot.events, _range("1h"), snapshot.scope_tree)
        assert cards == Cards()
        assert cards.no_data

    def test_scope_filter(self, snapshot):
        tree = snapshot.scope_tree
        dev = tree.find("/Users/test/dev")
        cards = compute_cards(snapshot.events, _range("all"), tree, dev)
        assert cards.billable == DEV_SCOPE_BILLABLE

        for slug, billable in BILLABLE_BY_SLUG.items():
            leaf = tree.leaf_for(slug)
            assert compute_cards(snapshot.events, _range("all"), tree, leaf).billable == billable

    def test_disjoint_scopes_add_up(self, snapshot):
        """Sibling scopes sum to their parent."""
        tree = snapshot.scope_tree
        time_range = _range("7d")
        dev = compute_cards(snapshot.events, time_range, tree, tree.find("/Users/test/dev"))
        work = compute_cards(snapshot.events, time_range, tree, tree.find("/Users/test/work"))
        parent = compute_cards(snapshot.events, time_range, tree, tree.find("/Users/test"))
        assert dev + work == parent

    def test_adjacent_ranges_add_up(self, snapshot):
        """Cards over two adjacent half-open ranges sum to cards over their union."""
        tree = snapshot.scope_tree
        split = sorted(e.ts_epoch for e in snapshot.events)[5]
        earlier = compute_cards(snapshot.events, TimeRange(NOW - 7 * DAY, split, "a"), tree)
        later = compute_cards(snapshot.events, TimeRange(split, NOW, "b"), tree)
        union = compute_cards(snapshot.events, TimeRange(NOW - 7 * DAY, NOW, "ab"), tree)
        assert earlier + later == union

        before = compute_cards(snapshot.events, TimeRange(None, split, "before"), tree)
        after = compute_cards(snapshot.events, TimeRange(split, None, "after"), tree)
        assert (before + after).billable == TOTAL_BILLABLE
        assert before.events + after.events == 22

    def test_headline_is_billable(self, snapshot):
        cards = compute_cards(snapshot.events, _range("all"), snapshot.scope_tree)
        key, label, value = cards.headline()[0]
        assert (key, label, value) == ("billable", "billable (range)", TOTAL_BILLABLE)

    def test_range_boundaries(self, snapshot):
        """An event at the start is included; one at the end is not."""
        first = min(e.ts_epoch for e in snapshot.events)
        tree = snapshot.scope_tree
        included = compute_cards(snapshot.events, TimeRange(first, first + 1, "t"), tree)
        excluded = compute_cards(snapshot.events, TimeRange(first - 10, first, "t"), tree)
        assert included.events == 1
        assert excluded.events == 0

    def test_unmapped_slug_counts_only_at_root(self, snapshot):
        orphan = UsageEvent(
            ts_epoch=NOW - 60, ts_iso="", project_slug="proj-orphan", session_id="s",
            input=10, output=5, cache_read=0, cache_create=0, billable=15,
            total_with_cache=15, content_type="text", signature="orphan-1",
        )
        events = list(snapshot.events) + [orphan]
        tree = snapshot.scope_tree
        assert compute_cards(events, _range("all"), tree).billable == TOTAL_BILLABLE + 15
        assert compute_cards(events, _range("all"), tree, tree.find("/Users")).billable == TOTAL_BILLABLE


class TestBreakdown:
    """Test per-project breakdown."""

    def test_sorted_by_billable(self, snapshot):
        totals = compute_breakdown(snapshot.events, _range("all"), snapshot.scope_tree)
        assert [(t.slug, t.cards.billable) for t in totals] == [
            ("proj-alpha", 138_000),
            ("proj-gamma", 126_000),
            ("proj-beta", 115_500),
        ]


class TestSeries:
    """Test bucketed series."""

    def test_auto_bucket_width(self):
        assert choose_bucket_seconds(3 * HOUR) == FIVE_MINUTES
        assert choose_bucket_seconds(3 * HOUR + 1) == HOUR
        assert choose_bucket_seconds(DAY) == HOUR
        assert choose_bucket_seconds(DAY + 1) == DAY

    def test_7d_daily_buckets(self, snapshot):
        """Seven days at noon span eight UTC calendar days."""
        series = compute_series(snapshot.events, _range("7d"), snapshot.scope_tree, now=NOW)
        assert series.bucket_seconds == DAY
        assert len(series.buckets) == 8
        assert series.buckets[0] == TODAY_START - 7 * DAY
        assert series.buckets[-1] == TODAY_START
        values = series.values["billable"]
        assert values[0] == 0
        assert values[1] == 4_500
        assert values[-1] == 64_500
        assert sum(values) == TOTAL_BILLABLE

    def test_24h_hourly_buckets_are_contiguous(self, snapshot):
        series = compute_series(snapshot.events, _range("24h"), snapshot.scope_tree, now=NOW)
        assert series.bucket_seconds == HOUR
        assert len(series.buckets) == 24
        assert all(b - a == HOUR for a, b in zip(series.buckets, series.buckets[1:]))
        assert sum(series.values["billable"]) == LAST_24H_BILLABLE

    def test_short_range_uses_five_minute_buckets(self, snapshot):
        series = compute_series(snapshot.events, _range("3h"), snapshot.scope_tree, now=NOW)
        assert series.bucket_seconds == FIVE_MINUTES
        assert len(series.buckets) == 36
        assert sum(series.values["billable"]) == 33_000

    def test_series_total_matches_cards(self, snapshot):
        tree = snapshot.scope_tree
        scope = tree.find("proj-beta")
        series = compute_series(snapshot.events, _range("all"), tree, now=NOW, scope=scope, bucket="hour")
        cards = compute_cards(snapshot.events, _range("all"), tree, scope)
        assert sum(series.values["billable"]) == cards.billable

    def test_stacked_modes(self, snapshot):
        tree = snapshot.scope_tree
        in_out = compute_series(snapshot.events, _range("all"), tree, now=NOW, mode="in_out")
        assert set(in_out.values) == {"input", "output"}
        assert sum(in_out.values["input"]) == 253_000
        assert sum(in_out.values["output"]) == 126_500

        cache = compute_series(snapshot.events, _range("all"), tree, now=NOW, mode="cache")
        assert set(cache.values) == {"cache_read", "cache_create"}

    def test_metric_selection(self, snapshot):
        series = compute_series(snapshot.events, _range("all"), snapshot.scope_tree, now=NOW, metric="cached")
        assert sum(series.values["cached"]) == 75_900

    def test_all_range_empty(self, snapshot):
        series = compute_series([], _range("all"), snapshot.scope_tree, now=NOW)
        assert series.buckets == ()
        assert series.no_data

    def test_zero_token_events_are_data(self, snapshot):
        """A range holding only zero-token events has data in both cards and series."""
        empty = UsageEvent(
            ts_epoch=NOW - 60, ts_iso="", project_slug="proj-alpha", session_id="s",
            input=0, output=0, cache_read=0, cache_create=0, billable=0,
            total_with_cache=0, content_type="-", signature="zero-1",
        )
        time_range = TimeRange(NOW - 120, NOW, "t")
        cards = compute_cards([empty], time_range, snapshot.scope_tree)
        series = compute_series([empty], time_range, snapshot.scope_tree, now=NOW)
        assert not cards.no_data
        assert not series.no_data
        assert sum(series.values["billable"]) == 0

    @pytest.mark.parametrize("kwargs", [
        {"metric": "cost"},
        {"mode": "stacked"},
        {"bucket": "minute"},
    ])
    def test_unknown_options(self, snapshot, kwargs):
        with pytest.raises(InvalidRequest):
            compute_series(snapshot.events, _range("24h"), snapshot.scope_tree, now=NOW, **kwargs)

    def test_too_many_buckets(self, snapshot):
        with pytest.raises(InvalidRequest, match="buckets"):
            compute_series(
                snapshot.events, TimeRange(0, NOW, "huge"), snapshot.scope_tree, now=NOW, bucket="hour"
            )


class TestLiveWindow:
    """Test the live tail."""

    def test_last_hour(self, snapshot):
        rows = live_window(snapshot.live_events, HOUR, now=NOW)
        assert len(rows) == 6
        assert rows[0].signature == "live-sig-012"
        assert rows[0].prompt_preview == "Fix the linter warnings"
        assert [r.ts_epoch for r in rows] == sorted((r.ts_epoch for r in rows), reverse=True)

    def test_six_hours_returns_every_live_row(self, snapshot):
        rows = live_window(snapshot.live_events, 6 * HOUR, now=NOW)
        assert len(rows) == 12
        assert rows[-1].signature == "live-sig-001"
        assert set(rows[0].to_dict()) == {
            "ts_epoch", "ts_iso", "project_slug", "session_id", "prompt_preview",
            "input", "output", "cache_read", "cache_create", "billable",
            "total_with_cache", "content_type", "signature",
        }
        assert all(r.prompt_preview and r.prompt_preview != "-" for r in rows)

    def test_limit(self, snapshot):
        rows = live_window(snapshot.live_events, 2 * HOUR, now=NOW, limit=3)
        assert [r.signature for r in rows] == ["live-sig-012", "live-sig-011", "live-sig-010"]

    def test_scope(self, snapshot):
        tree = snapshot.scope_tree
        rows = live_window(snapshot.live_events, 2 * HOUR, now=NOW, tree=tree, scope=tree.find("proj-gamma"))
        assert {r.project_slug for r in rows} == {"proj-gamma"}
        assert len(rows) == 4

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_limit_bounds(self, snapshot, limit):
        with pytest.raises(InvalidRequest):
            live_window(snapshot.live_events, HOUR, now=NOW, limit=limit)
