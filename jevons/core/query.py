"""
Query service.

Composes the event store, scope tree and aggregation engine into the
read-only queries served over HTTP and printed by the CLI. Every call reads
the store's snapshot exactly once, so a reload in the middle of a request
never mixes two data sets.
"""

import time
from pathlib import Path
from typing import Any, Dict, Optional

from jevons.core.aggregation import (
    DEFAULT_LIVE_LIMIT,
    compute_breakdown,
    compute_cards,
    compute_series,
    live_window,
)
from jevons.core.ranges import DEFAULT_RANGE, Clock, TimeRange, resolve_range, window_seconds
from jevons.core.scope import ScopeNode, ScopeTree
from jevons.errors import InvalidRequest
from jevons.storage.models import AccountInfo
from jevons.storage.repository import EventStore
from jevons.sync.heartbeat import read_heartbeat

DEFAULT_LIVE_WINDOW = "1h"


def _resolve_scope(tree: ScopeTree, scope: Optional[str]) -> ScopeNode:
    node = tree.find(scope)
    if node is None:
        raise InvalidRequest(f"unknown scope {scope!r}")
    return node


def _range_dict(time_range: TimeRange) -> Dict[str, Any]:
    return {"label": time_range.label, "start": time_range.start, "end": time_range.end}


class QueryService:
    """Stateless query layer over an EventStore."""

    def __init__(
        self,
        store: EventStore,
        clock: Clock = time.time,
        heartbeat_file: Optional[Path] = None,
        live_row_limit: int = DEFAULT_LIVE_LIMIT,
    ):
        self.store = store
        self.clock = clock
        self.heartbeat_file = heartbeat_file
        self.live_row_limit = live_row_limit

    def cards(
        self,
        range: Optional[str] = DEFAULT_RANGE,
        start: Optional[int] = None,
        end: Optional[int] = None,
        scope: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Summary cards for a range and scope.

        Raises:
            InvalidRequest: On an unknown scope or a malformed range
        """
        snapshot = self.store.snapshot
        time_range = resolve_range(range, start, end, clock=self.clock)
        node = _resolve_scope(snapshot.scope_tree, scope)
        cards = compute_cards(snapshot.events, time_range, snapshot.scope_tree, node)
        return {
            "range": _range_dict(time_range),
            "scope": node.key,
            "cards": cards.to_dict(),
            "headline": [
                {"key": key, "label": label, "value": value}
                for key, label, value in cards.headline()
            ],
            "no_data": cards.no_data,
            "skipped_records": snapshot.skipped_records,
        }

    def series(
        self,
        range: Optional[str] = DEFAULT_RANGE,
        start: Optional[int] = None,
        end: Optional[int] = None,
        scope: Optional[str] = None,
        metric: str = "billable",
        mode: str = "single",
        bucket: str = "auto",
    ) -> Dict[str, Any]:
        """Bucketed time series for charting.

        Raises:
            InvalidRequest: On an unknown scope, metric, mode or bucket, or a
                malformed range
        """
        snapshot = self.store.snapshot
        time_range = resolve_range(range, start, end, clock=self.clock)
        node = _resolve_scope(snapshot.scope_tree, scope)
        series = compute_series(
            snapshot.events,
            time_range,
            snapshot.scope_tree,
            now=int(self.clock()),
            scope=node,
            metric=metric,
            mode=mode,
            bucket=bucket,
        )
        return {
            "range": _range_dict(time_range),
            "scope": node.key,
            "metric": series.metric,
            "mode": series.mode,
            "bucket_seconds": series.bucket_seconds,
            "buckets": list(series.buckets),
            "series": {name: list(values) for name, values in series.values.items()},
            "no_data": series.no_data,
            "skipped_records": snapshot.skipped_records,
        }

    def breakdown(
        self,
        range: Optional[str] = DEFAULT_RANGE,
        start: Optional[int] = None,
        end: Optional[int] = None,
        scope: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Per-project cards, largest billable first."""
        snapshot = self.store.snapshot
        time_range = resolve_range(range, start, end, clock=self.clock)
        node = _resolve_scope(snapshot.scope_tree, scope)
        paths = {p.slug: p.path for p in snapshot.projects}
        totals = compute_breakdown(snapshot.events, time_range, snapshot.scope_tree, node)
        return {
            "range": _range_dict(time_range),
            "scope": node.key,
            "projects": [
                {"slug": t.slug, "path": paths.get(t.slug), "cards": t.cards.to_dict()}
                for t in totals
            ],
            "skipped_records": snapshot.skipped_records,
        }

    def scopes(self, search: Optional[str] = None) -> Dict[str, Any]:
        """Scope tree, optionally filtered by a search string."""
        snapshot = self.store.snapshot
        tree = snapshot.scope_tree.filter(search)
        return {
            "search": search or "",
            "leaf_count": tree.leaf_count,
            "tree": tree.to_dict(),
        }

    def live(
        self,
        window: str = DEFAULT_LIVE_WINDOW,
        scope: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Most recent live events inside ``window``.

        Raises:
            InvalidRequest: On an unknown window or scope, or a limit out of range
        """
        snapshot = self.store.snapshot
        seconds = window_seconds(window)
        node = _resolve_scope(snapshot.scope_tree, scope)
        events = live_window(
            snapshot.live_events,
            seconds,
            now=int(self.clock()),
            tree=snapshot.scope_tree,
            scope=node,
            limit=self.live_row_limit if limit is None else limit,
        )
        return {
            "window": window,
            "window_seconds": seconds,
            "scope": node.key,
            "count": len(events),
            "events": [e.to_dict() for e in events],
            "skipped_records": snapshot.skipped_records,
        }

    def account(self) -> Dict[str, Any]:
        account = self.store.snapshot.account
        data = (account or AccountInfo()).to_dict()
        data["available"] = account is not None
        return data

    def sync_status(self) -> Dict[str, Any]:
        """Last sync outcome plus the scheduler heartbeat."""
        snapshot = self.store.snapshot
        heartbeat = None
        if self.heartbeat_file is not None:
            state = read_heartbeat(self.heartbeat_file, now=int(self.clock()))
            if state is not None:
                heartbeat = {
                    "epoch": state.epoch,
                    "interval": state.interval,
                    "pid": state.pid,
                    "status": state.status,
                    "age": state.age,
                    "mode": state.mode,
                }
        return {
            "status": snapshot.sync_status.to_dict() if snapshot.sync_status else None,
            "heartbeat": heartbeat,
            "events_loaded": len(snapshot.events),
            "live_events_loaded": len(snapshot.live_events),
            "skipped_records": snapshot.skipped_records,
        }

    def ui_context(self) -> Dict[str, Any]:
        """The working-directory hint resolved to its deepest scope."""
        snapshot = self.store.snapshot
        cwd = snapshot.ui_context.cwd if snapshot.ui_context else None
        node = snapshot.scope_tree.locate(cwd)
        return {"cwd": cwd, "scope": node.key, "label": node.label}
