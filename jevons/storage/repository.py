"""
Event store.

Loads the data directory into an immutable Snapshot and publishes it behind a
single swappable reference. Readers grab ``store.snapshot`` once and keep
using it; a reload never edits a published snapshot.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from jevons.core.scope import ScopeTree, build_scope_tree
from jevons.errors import MalformedLog, MissingFile
from jevons.storage.models import (
    AccountInfo,
    LiveUsageEvent,
    Project,
    SyncStatus,
    UiContext,
    UsageEvent,
)
from jevons.storage.tsv import LogReadResult, read_events, read_live_events

logger = logging.getLogger(__name__)

EVENTS_FILE = "events.tsv"
LIVE_EVENTS_FILE = "live-events.tsv"
PROJECTS_FILE = "projects.json"
SYNC_STATUS_FILE = "sync-status.json"
ACCOUNT_FILE = "account.json"
UI_CONTEXT_FILE = "ui-context.json"


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of everything loaded from the data directory."""
    events: Tuple[UsageEvent, ...] = ()
    live_events: Tuple[LiveUsageEvent, ...] = ()
    projects: Tuple[Project, ...] = ()
    scope_tree: ScopeTree = field(default_factory=lambda: build_scope_tree([]))
    sync_status: Optional[SyncStatus] = None
    account: Optional[AccountInfo] = None
    ui_context: Optional[UiContext] = None
    skipped_records: int = 0
    loaded_at: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.events and not self.live_events


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise MissingFile(str(path))
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_log(path: Path, reader) -> LogReadResult:
    try:
        result = reader(path)
    except MissingFile:
        return LogReadResult()
    except MalformedLog as e:
        logger.warning("%s; treating it as empty", e)
        return LogReadResult()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s; treating it as empty", path, e)
        return LogReadResult()

    if result.skipped:
        logger.warning("Skipped %d invalid records in %s", result.skipped, path)
    if result.duplicates:
        logger.debug("Dropped %d duplicate signatures in %s", result.duplicates, path)
    return result


def load_projects(path: Union[str, Path]) -> List[Project]:
    """Load ``projects.json``; slugs after the first occurrence are dropped."""
    path = Path(path)
    try:
        raw = _read_json(path)
    except MissingFile:
        return []
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s; treating it as empty", path, e)
        return []

    if not isinstance(raw, list):
        logger.warning("%s must hold a list of projects; treating it as empty", path)
        return []

    projects: List[Project] = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("slug"), str):
            logger.warning("Skipping invalid project entry in %s: %r", path, entry)
            continue
        slug = entry["slug"].strip()
        if not slug:
            logger.warning("Skipping project with empty slug in %s", path)
            continue
        if slug in seen:
            logger.warning("Duplicate project slug %r in %s; keeping the first", slug, path)
            continue
        seen.add(slug)
        projects.append(Project(slug=slug, path=str(entry.get("path") or "")))
    return projects


def _optional_int(data: Dict[str, Any], key: str, default: int = 0) -> int:
    value = data.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def load_sync_status(path: Union[str, Path]) -> Optional[SyncStatus]:
    """Load ``sync-status.json``; None when absent or unreadable."""
    path = Path(path)
    try:
        raw = _read_json(path)
    except MissingFile:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return None
    if not isinstance(raw, dict) or "last_sync_epoch" not in raw:
        return None

    return SyncStatus(
        last_sync_epoch=_optional_int(raw, "last_sync_epoch"),
        last_sync_iso=str(raw.get("last_sync_iso") or ""),
        sessions_synced=_optional_int(raw, "sessions_synced"),
        events_written=_optional_int(raw, "events_written"),
        duration_ms=_optional_int(raw, "duration_ms"),
        live_events_written=_optional_int(raw, "live_events_written"),
        source_root=raw.get("source_root"),
    )


def load_account(path: Union[str, Path]) -> Optional[AccountInfo]:
    """Load ``account.json``; None when absent or empty."""
    path = Path(path)
    try:
        raw = _read_json(path)
    except MissingFile:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return None
    if not isinstance(raw, dict) or not raw:
        return None

    def _str(key: str) -> Optional[str]:
        value = raw.get(key)
        return None if value is None else str(value)

    return AccountInfo(
        email=_str("email"),
        member_id=_str("member_id"),
        organization=_str("organization"),
    )


def load_ui_context(path: Union[str, Path]) -> Optional[UiContext]:
    """Load ``ui-context.json``; None when absent."""
    path = Path(path)
    try:
        raw = _read_json(path)
    except MissingFile:
        return None
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return None
    if not isinstance(raw, dict):
        return None
    cwd = raw.get("cwd")
    return UiContext(cwd=str(cwd) if cwd else None)


def load_snapshot(data_dir: Union[str, Path]) -> Snapshot:
    """Load every file of the data directory into a new Snapshot.

    Missing files yield empty collections. A malformed log is replaced by an
    empty collection with a warning; invalid rows are skipped and counted.

    Args:
        data_dir: Directory written by the sync pipeline

    Returns:
        A fully built, immutable Snapshot
    """
    data_dir = Path(data_dir)

    events = _load_log(data_dir / EVENTS_FILE, read_events)
    live_events = _load_log(data_dir / LIVE_EVENTS_FILE, read_live_events)
    projects = load_projects(data_dir / PROJECTS_FILE)

    return Snapshot(
        events=tuple(events.events),
        live_events=tuple(live_events.events),
        projects=tuple(projects),
        scope_tree=build_scope_tree(projects),
        sync_status=load_sync_status(data_dir / SYNC_STATUS_FILE),
        account=load_account(data_dir / ACCOUNT_FILE),
        ui_context=load_ui_context(data_dir / UI_CONTEXT_FILE),
        skipped_records=events.skipped + live_events.skipped,
        loaded_at=time.time(),
    )


class EventStore:
    """Owner of the current Snapshot.

    The snapshot reference is replaced wholesale on reload; in-flight readers
    keep the snapshot they started with.
    """

    def __init__(self, data_dir: Union[str, Path], autoload: bool = True):
        """Initialize the store for a data directory.

        Args:
            data_dir: Directory written by the sync pipeline
            autoload: Load the directory immediately
        """
        self.data_dir = Path(data_dir)
        self._reload_lock = threading.Lock()
        self._swap_lock = threading.Lock()
        self._snapshot = Snapshot()
        if autoload:
            self.reload()

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def reload(self) -> Snapshot:
        """Load the data directory and publish the result.

        The new snapshot is built completely before the swap.

        Returns:
            The newly published snapshot
        """
        with self._reload_lock:
            snapshot = load_snapshot(self.data_dir)
            with self._swap_lock:
                self._snapshot = snapshot
        logger.info(
            "Loaded %d events, %d live events, %d projects from %s",
            len(snapshot.events), len(snapshot.live_events),
            len(snapshot.projects), self.data_dir,
        )
        return snapshot
