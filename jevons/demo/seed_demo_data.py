# jevons/demo/seed_demo_data.py

import json
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

from jevons.core.token_counter import TokenUsage
from jevons.storage.models import LiveUsageEvent, UsageEvent
from jevons.storage.repository import (
    ACCOUNT_FILE,
    EVENTS_FILE,
    LIVE_EVENTS_FILE,
    PROJECTS_FILE,
    SYNC_STATUS_FILE,
    UI_CONTEXT_FILE,
)
from jevons.storage.tsv import atomic_write_text, write_events, write_live_events
from jevons.sync.pipeline import ensure_data_dirs
from jevons.utils.timefmt import epoch_to_iso

DAY = 86400
HOUR = 3600

SLUGS = ["proj-alpha", "proj-beta", "proj-gamma"]
PROJECT_PATHS = [
    "/Users/test/dev/alpha",
    "/Users/test/dev/beta",
    "/Users/test/work/gamma",
]

# (days back from today, hours of day) in UTC
SCHEDULE = [
    (6, [9, 14]),
    (5, [10, 15, 17]),
    (4, [8, 11, 16]),
    (3, [9, 12, 14, 18]),
    (2, [10, 13, 16]),
    (1, [9, 11, 14, 17, 20]),
    (0, [8, 10]),
]

PROMPTS = [
    "How do I fix this bug?",
    "Explain the auth flow",
    "Write a test for parser",
    "Refactor the sync module",
    "Add error handling",
    "Create a new endpoint",
    "Review this PR",
    "Debug the failing test",
    "Optimize the query",
    "Update the docs",
    "Add a migration",
    "Fix the linter warnings",
]


def _event_fields(epoch: int, slug: str, session_id: str, usage: TokenUsage, signature: str) -> Dict:
    return dict(
        ts_epoch=epoch,
        ts_iso=epoch_to_iso(epoch),
        project_slug=slug,
        session_id=session_id,
        input=usage.input,
        output=usage.output,
        cache_read=usage.cache_read,
        cache_create=usage.cache_create,
        billable=usage.billable,
        total_with_cache=usage.total_with_cache,
        content_type="text",
        signature=signature,
    )


def demo_events(now: int) -> List[UsageEvent]:
    """Events spread over the last seven UTC days, one project after another."""
    today_start = now - now % DAY
    events = []
    idx = 0
    for days_back, hours in SCHEDULE:
        for hour in hours:
            n = idx + 1
            usage = TokenUsage(input=1000 * n, output=500 * n, cache_read=200 * n, cache_create=100 * n)
            epoch = today_start - days_back * DAY + hour * HOUR
            events.append(UsageEvent(**_event_fields(
                epoch, SLUGS[idx % len(SLUGS)], f"sess-{n:03d}", usage, f"sig-{n:03d}"
            )))
            idx += 1
    return events


def demo_live_events(now: int) -> List[LiveUsageEvent]:
    """Twelve live events ten minutes apart over the last two hours."""
    live = []
    for i, prompt in enumerate(PROMPTS):
        n = i + 1
        usage = TokenUsage(input=800 * n, output=400 * n, cache_read=150 * n, cache_create=50 * n)
        epoch = now - (120 - i * 10) * 60
        live.append(LiveUsageEvent(
            prompt_preview=prompt,
            **_event_fields(epoch, SLUGS[i % len(SLUGS)], f"live-sess-{n:03d}", usage, f"live-sig-{n:03d}"),
        ))
    return live


def _write_json(path: Path, data) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")


def seed_demo_data(data_dir: Union[str, Path], now: Optional[int] = None) -> Dict[str, int]:
    """Write the deterministic demo data set into ``data_dir``.

    Args:
        data_dir: Target data directory (created if needed)
        now: Reference epoch seconds (defaults to the current time)

    Returns:
        Row counts per written log
    """
    data_dir = Path(data_dir)
    now = int(time.time()) if now is None else int(now)
    ensure_data_dirs(data_dir)

    events_written = write_events(data_dir / EVENTS_FILE, demo_events(now))
    live_written = write_live_events(data_dir / LIVE_EVENTS_FILE, demo_live_events(now))
    _write_json(data_dir / PROJECTS_FILE, [
        {"slug": slug, "path": path} for slug, path in zip(SLUGS, PROJECT_PATHS)
    ])
    _write_json(data_dir / SYNC_STATUS_FILE, {
        "last_sync_epoch": now,
        "last_sync_iso": epoch_to_iso(now),
        "sessions_synced": 22,
        "events_written": 22,
        "duration_ms": 42,
    })
    _write_json(data_dir / ACCOUNT_FILE, {
        "email": "test@example.com",
        "member_id": "mem_test123",
        "organization": "Test Org",
    })
    _write_json(data_dir / UI_CONTEXT_FILE, {"cwd": PROJECT_PATHS[0]})
    atomic_write_text(data_dir / "heartbeat" / "sync.txt", f"{now},999,12345,ok\n")

    return {"events": events_written, "live_events": live_written, "projects": len(SLUGS)}


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else "demo-data"
    counts = seed_demo_data(target)
    print(f"Demo usage data written to {target}: {counts}")
