"""
Data models for storage layer.

Defines the immutable records loaded from the data directory.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from jevons.core.token_counter import TokenUsage


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one billable interaction.

    Rows are written by the sync pipeline and only ever replaced by a full
    reload of the log file they came from.
    """
    ts_epoch: int
    ts_iso: str
    project_slug: str
    session_id: str
    input: int
    output: int
    cache_read: int
    cache_create: int
    billable: int
    total_with_cache: int
    content_type: str
    signature: str

    @property
    def cached(self) -> int:
        """Cache tokens (read + create)."""
        return self.cache_read + self.cache_create

    @property
    def usage(self) -> TokenUsage:
        return TokenUsage(
            input=self.input,
            output=self.output,
            cache_read=self.cache_read,
            cache_create=self.cache_create,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts_epoch": self.ts_epoch,
            "ts_iso": self.ts_iso,
            "project_slug": self.project_slug,
            "session_id": self.session_id,
            "input": self.input,
            "output": self.output,
            "cache_read": self.cache_read,
            "cache_create": self.cache_create,
            "billable": self.billable,
            "total_with_cache": self.total_with_cache,
            "content_type": self.content_type,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class LiveUsageEvent(UsageEvent):
    """Recent usage event carrying a short preview of the prompt behind it."""
    prompt_preview: str = "-"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["prompt_preview"] = self.prompt_preview
        return data


@dataclass(frozen=True)
class Project:
    """A project scope: stable slug plus the directory it lives in."""
    slug: str
    path: str

    def __post_init__(self):
        if not self.slug or not self.slug.strip():
            raise ValueError("slug is required and cannot be empty")


@dataclass(frozen=True)
class SyncStatus:
    """Outcome of the most recent sync cycle."""
    last_sync_epoch: int
    last_sync_iso: str
    sessions_synced: int
    events_written: int
    duration_ms: int
    live_events_written: int = 0
    source_root: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_sync_epoch": self.last_sync_epoch,
            "last_sync_iso": self.last_sync_iso,
            "sessions_synced": self.sessions_synced,
            "events_written": self.events_written,
            "duration_ms": self.duration_ms,
            "live_events_written": self.live_events_written,
            "source_root": self.source_root,
        }


@dataclass(frozen=True)
class AccountInfo:
    """Account metadata passed through from the local client configuration."""
    email: Optional[str] = None
    member_id: Optional[str] = None
    organization: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "email": self.email,
            "member_id": self.member_id,
            "organization": self.organization,
        }


@dataclass(frozen=True)
class UiContext:
    """Hint written next to the data files to pre-select a scope."""
    cwd: Optional[str] = None


@dataclass(frozen=True)
class HeartbeatState:
    """Parsed heartbeat line plus its derived freshness."""
    epoch: int
    interval: int
    pid: str
    status: str
    age: int
    mode: str  # "running" or "stale"
