"""
Shared fixtures: a fixed clock and the deterministic demo data set.

NOW sits at noon UTC, so the demo schedule (hours 8-20 over the last seven
days) produces known totals for every window.
"""

from pathlib import Path

import pytest

from jevons.config.loader import AppConfig
from jevons.demo.seed_demo_data import seed_demo_data
from jevons.storage.repository import EventStore

DAY = 86400
HOUR = 3600
TODAY_START = 1_700_006_400
NOW = TODAY_START + 12 * HOUR

TOTAL_BILLABLE = 379_500
BILLABLE_BY_SLUG = {
    "proj-alpha": 138_000,
    "proj-beta": 115_500,
    "proj-gamma": 126_000,
}
DEV_SCOPE_BILLABLE = 253_500
LAST_24H_BILLABLE = 150_000


def fixed_clock() -> float:
    return float(NOW)


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def data_dir(tmp_path) -> Path:
    target = tmp_path / "data"
    seed_demo_data(target, now=NOW)
    return target


@pytest.fixture
def store(data_dir) -> EventStore:
    return EventStore(data_dir)


@pytest.fixture
def config(tmp_path, data_dir) -> AppConfig:
    return AppConfig(
        data_dir=data_dir,
        source_dir=tmp_path / "source",
        account_source=None,
        sync_interval=0,
    )
