"""
Sync pipeline.

Regenerates the data directory from the session logs in the source
directory. Output files are only written once every session has been read,
each through a temporary file and an atomic rename, with the sync status last.
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jevons.config.loader import AppConfig
from jevons.errors import SyncCancelled, SyncSourceUnavailable
from jevons.storage.models import LiveUsageEvent, Project, SyncStatus, UsageEvent
from jevons.storage.repository import (
    ACCOUNT_FILE,
    EVENTS_FILE,
    LIVE_EVENTS_FILE,
    PROJECTS_FILE,
    SYNC_STATUS_FILE,
)
from jevons.storage.tsv import atomic_write_text, write_events, write_live_events
from jevons.sync.parser import parse_session_file
from jevons.utils.timefmt import epoch_to_iso

logger = logging.getLogger(__name__)

DATA_SUBDIRS = ("pids", "logs", "heartbeat")
UNKNOWN_PATH_PREFIX = "/unknown/"


@dataclass(frozen=True)
class SyncResult:
    """Counts produced by one sync cycle."""
    sessions_synced: int
    events_written: int
    live_events_written: int
    projects_written: int
    duration_ms: int
    status: SyncStatus


def ensure_data_dirs(data_dir: Path) -> None:
    """Create the data directory and its fixed subdirectories."""
    data_dir.mkdir(parents=True, exist_ok=True)
    for sub in DATA_SUBDIRS:
        (data_dir / sub).mkdir(exist_ok=True)


def discover_session_files(source_dir: Path) -> List[Path]:
    """List ``<source_dir>/<slug>/<session>.jsonl`` files in sorted order.

    Raises:
        SyncSourceUnavailable: If the source exists but cannot be listed
    """
    if not source_dir.is_dir():
        raise SyncSourceUnavailable(str(source_dir), "not a directory")
    try:
        with os.scandir(source_dir):
            pass
        return sorted(source_dir.glob("*/*.jsonl"))
    except OSError as e:
        raise SyncSourceUnavailable(str(source_dir), str(e))


def _event_sort_key(e: UsageEvent) -> Tuple[int, str, str, str, str]:
    return (e.ts_epoch, e.ts_iso, e.project_slug, e.session_id, e.signature)


def _dedupe(events: List[UsageEvent]) -> List[UsageEvent]:
    seen = set()
    result = []
    for e in events:
        if e.signature in seen:
            continue
        seen.add(e.signature)
        result.append(e)
    return result


def choose_projects(entries: List[Tuple[str, str]]) -> List[Project]:
    """Collapse (slug, path) pairs into one project per slug.

    A known path wins over an ``/unknown/`` placeholder; projects are
    returned sorted by path.
    """
    grouped: Dict[str, List[str]] = {}
    for slug, path in sorted(entries):
        grouped.setdefault(slug, []).append(path)

    projects = []
    for slug, paths in grouped.items():
        chosen = next((p for p in paths if not p.startswith(UNKNOWN_PATH_PREFIX)), paths[0])
        projects.append(Project(slug=slug, path=chosen))
    projects.sort(key=lambda p: (p.path, p.slug))
    return projects


def read_account_source(path: Optional[Path]) -> Dict[str, Any]:
    """Extract account metadata from the client's configuration file.

    Returns an empty dict when the file is missing, unreadable or has no
    signed-in account.
    """
    if path is None or not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read account source %s: %s", path, e)
        return {}

    oauth = raw.get("oauthAccount") if isinstance(raw, dict) else None
    if not isinstance(oauth, dict):
        return {}
    return {
        "email": oauth.get("emailAddress"),
        "member_id": oauth.get("accountUuid"),
        "organization": oauth.get("organizationName"),
    }


def _write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")


def run_sync(
    config: AppConfig,
    stop_event: Optional[threading.Event] = None,
    clock=time.time,
) -> SyncResult:
    """Run one full sync cycle.

    Args:
        config: Application configuration (data, source and account paths)
        stop_event: Checked between session files; when set, the cycle is
            abandoned before anything is written
        clock: Source of "now" for the live retention cut-off and the status

    Returns:
        SyncResult describing what was written

    Raises:
        SyncSourceUnavailable: If the source directory is unreadable, or
            missing while the data directory already holds synced events
        SyncCancelled: If ``stop_event`` was set during the cycle
    """
    started = time.monotonic()
    data_dir = Path(config.data_dir)
    source_dir = Path(config.source_dir)

    if not source_dir.exists():
        if (data_dir / EVENTS_FILE).exists():
            raise SyncSourceUnavailable(str(source_dir), "directory does not exist")
        logger.info("Source %s does not exist; writing an empty data set", source_dir)
        session_files: List[Path] = []
    else:
        session_files = discover_session_files(source_dir)

    events: List[UsageEvent] = []
    live_events: List[LiveUsageEvent] = []
    project_entries: List[Tuple[str, str]] = []
    sessions_synced = 0

    for session_file in session_files:
        if stop_event is not None and stop_event.is_set():
            raise SyncCancelled("shutdown requested during sync")

        slug = session_file.parent.name
        session_id = session_file.stem
        try:
            parsed = parse_session_file(session_file, slug, session_id)
        except OSError as e:
            logger.warning("Skipping unreadable session file %s: %s", session_file, e)
            continue

        sessions_synced += 1
        project_entries.append((slug, parsed.project_path or f"{UNKNOWN_PATH_PREFIX}{slug}"))
        events.extend(parsed.events)
        live_events.extend(parsed.live_events)

    if stop_event is not None and stop_event.is_set():
        raise SyncCancelled("shutdown requested during sync")

    now = int(clock())
    cutoff = now - config.live_retention
    events = _dedupe(sorted(events, key=_event_sort_key))
    live_events = _dedupe(sorted(
        (e for e in live_events if e.ts_epoch >= cutoff), key=_event_sort_key
    ))
    projects = choose_projects(project_entries)

    ensure_data_dirs(data_dir)
    events_written = write_events(data_dir / EVENTS_FILE, events)
    live_written = write_live_events(data_dir / LIVE_EVENTS_FILE, live_events)
    _write_json(data_dir / PROJECTS_FILE, [{"slug": p.slug, "path": p.path} for p in projects])
    _write_json(data_dir / ACCOUNT_FILE, read_account_source(
        Path(config.account_source) if config.account_source else None
    ))

    duration_ms = int((time.monotonic() - started) * 1000)
    status = SyncStatus(
        last_sync_epoch=now,
        last_sync_iso=epoch_to_iso(now),
        sessions_synced=sessions_synced,
        events_written=events_written,
        duration_ms=duration_ms,
        live_events_written=live_written,
        source_root=str(source_dir),
    )
    _write_json(data_dir / SYNC_STATUS_FILE, status.to_dict())

    logger.info(
        "Synced %d sessions: %d events, %d live events in %dms",
        sessions_synced, events_written, live_written, duration_ms,
    )
    return SyncResult(
        sessions_synced=sessions_synced,
        events_written=events_written,
        live_events_written=live_written,
        projects_written=len(projects),
        duration_ms=duration_ms,
        status=status,
    )
