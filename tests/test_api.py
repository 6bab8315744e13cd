"""
Tests for the HTTP API.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from jevons.api.app import create_app
from jevons.sync.scheduler import SyncScheduler

from tests.conftest import (
    BILLABLE_BY_SLUG,
    DEV_SCOPE_BILLABLE,
    LAST_24H_BILLABLE,
    TOTAL_BILLABLE,
    fixed_clock,
)


@pytest.fixture
def client(config, store):
    app = create_app(config, store=store, clock=fixed_clock, start_scheduler=False)
    with TestClient(app) as c:
        yield c


class TestCardsEndpoint:
    """Test /api/cards."""

    def test_default_range_is_24h(self, client):
        response = client.get("/api/cards")
        assert response.status_code == 200
        data = response.json()
        assert data["range"]["label"] == "24h"
        assert data["cards"]["billable"] == LAST_24H_BILLABLE
        assert data["headline"][0] == {"key": "billable", "label": "billable (range)", "value": LAST_24H_BILLABLE}
        assert data["no_data"] is False

    def test_all_time(self, client):
        data = client.get("/api/cards", params={"range": "all"}).json()
        assert data["cards"]["billable"] == TOTAL_BILLABLE
        assert data["range"]["start"] is None

    def test_empty_window(self, client):
        data = client.get("/api/cards", params={"range": "1h"}).json()
        assert data["no_data"] is True
        assert data["cards"]["billable"] == 0

    def test_scope_by_path_and_slug(self, client):
        by_path = client.get("/api/cards", params={"range": "all", "scope": "/Users/test/dev"}).json()
        assert by_path["cards"]["billable"] == DEV_SCOPE_BILLABLE
        assert by_path["scope"] == "/Users/test/dev"

        by_slug = client.get("/api/cards", params={"range": "all", "scope": "proj-gamma"}).json()
        assert by_slug["cards"]["billable"] == BILLABLE_BY_SLUG["proj-gamma"]

    def test_explicit_interval(self, client):
        data = client.get("/api/cards", params={"start": 0, "end": 10}).json()
        assert data["no_data"] is True
        assert data["range"]["start"] == 0

    @pytest.mark.parametrize("params", [
        {"scope": "/nowhere"},
        {"range": "2w"},
        {"start": 100},
        {"start": 100, "end": 100},
    ])
    def test_invalid_requests(self, client, params):
        response = client.get("/api/cards", params=params)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        assert response.json()["message"]

    def test_parameter_type_error(self, client):
        assert client.get("/api/cards", params={"start": "yesterday", "end": 5}).status_code == 422


class TestSeriesEndpoint:
    """Test /api/series."""

    def test_daily_series(self, client):
        data = client.get("/api/series", params={"range": "7d", "bucket": "day"}).json()
        assert data["bucket_seconds"] == 86400
        assert len(data["buckets"]) == 8
        assert data["series"]["billable"][0] == 0
        assert sum(data["series"]["billable"]) == TOTAL_BILLABLE

    def test_in_out_mode(self, client):
        data = client.get("/api/series", params={"range": "all", "mode": "in_out"}).json()
        assert sum(data["series"]["input"]) == 253_000
        assert sum(data["series"]["output"]) == 126_500

    def test_unknown_metric(self, client):
        response = client.get("/api/series", params={"metric": "dollars"})
        assert response.status_code == 400


class TestOtherEndpoints:
    """Test breakdown, scopes, live and metadata endpoints."""

    def test_breakdown(self, client):
        data = client.get("/api/breakdown", params={"range": "all"}).json()
        assert [p["slug"] for p in data["projects"]] == ["proj-alpha", "proj-gamma", "proj-beta"]
        assert data["projects"][0]["path"] == "/Users/test/dev/alpha"

    def test_scopes(self, client):
        data = client.get("/api/scopes").json()
        assert data["leaf_count"] == 3
        assert data["tree"]["label"] == "All"

        filtered = client.get("/api/scopes", params={"search": "gamma"}).json()
        assert filtered["leaf_count"] == 1
        work = filtered["tree"]["children"][0]["children"][0]["children"]
        assert [n["label"] for n in work] == ["work"]

    def test_live(self, client):
        data = client.get("/api/live").json()
        assert data["window"] == "1h"
        assert data["count"] == 6
        assert data["events"][0]["signature"] == "live-sig-012"
        assert data["events"][0]["prompt_preview"] == "Fix the linter warnings"

    def test_live_limit(self, client):
        assert client.get("/api/live", params={"limit": 2}).json()["count"] == 2
        assert client.get("/api/live", params={"limit": 0}).status_code == 400
        assert client.get("/api/live", params={"window": "all"}).status_code == 400

    def test_account(self, client):
        data = client.get("/api/account").json()
        assert data == {
            "email": "test@example.com",
            "member_id": "mem_test123",
            "organization": "Test Org",
            "available": True,
        }

    def test_sync_status(self, client):
        data = client.get("/api/sync-status").json()
        assert data["status"]["sessions_synced"] == 22
        assert data["status"]["duration_ms"] == 42
        assert data["heartbeat"]["pid"] == "12345"
        assert data["heartbeat"]["mode"] == "running"
        assert data["events_loaded"] == 22

    def test_ui_context(self, client):
        data = client.get("/api/ui-context").json()
        assert data == {"cwd": "/Users/test/dev/alpha", "scope": "/Users/test/dev/alpha", "label": "alpha"}

    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "ok"
        assert data["events_loaded"] == 22

    def test_sync_without_scheduler(self, client):
        response = client.post("/api/sync")
        assert response.status_code == 202
        assert response.json() == {"accepted": False, "state": "disabled"}


class TestSyncTrigger:
    """Test POST /api/sync with a scheduler."""

    def test_trigger_accepted(self, config, store):
        scheduler = MagicMock(spec=SyncScheduler)
        scheduler.trigger_async.return_value = True
        scheduler.state.value = "syncing"
        scheduler.last_error = None
        app = create_app(config, store=store, scheduler=scheduler, clock=fixed_clock, start_scheduler=False)

        with TestClient(app) as client:
            response = client.post("/api/sync")
            status = client.get("/api/sync-status").json()

        assert response.json() == {"accepted": True, "state": "syncing"}
        scheduler.trigger_async.assert_called_once()
        scheduler.start.assert_not_called()
        assert status["scheduler_state"] == "syncing"

    def test_lifespan_starts_and_stops_scheduler(self, config, store):
        scheduler = MagicMock(spec=SyncScheduler)
        app = create_app(config, store=store, scheduler=scheduler, clock=fixed_clock)

        with TestClient(app):
            scheduler.start.assert_called_once()
        scheduler.stop.assert_called_once()
