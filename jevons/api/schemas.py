from typing import Optional

from pydantic import BaseModel, Field


class RangeInfo(BaseModel):
    label: str
    start: Optional[int] = None
    end: Optional[int] = None


class CardValues(BaseModel):
    events: int
    billable: int
    input: int
    output: int
    cache_read: int
    cache_create: int
    cached: int
    total_with_cache: int


class HeadlineCard(BaseModel):
    key: str
    label: str
    value: int


class CardsResponse(BaseModel):
    range: RangeInfo
    scope: str
    cards: CardValues
    headline: list[HeadlineCard]
    no_data: bool
    skipped_records: int = 0


class SeriesResponse(BaseModel):
    range: RangeInfo
    scope: str
    metric: str
    mode: str
    bucket_seconds: int
    buckets: list[int]
    series: dict[str, list[int]]
    no_data: bool
    skipped_records: int = 0


class ProjectBreakdownItem(BaseModel):
    slug: str
    path: Optional[str] = None
    cards: CardValues


class BreakdownResponse(BaseModel):
    range: RangeInfo
    scope: str
    projects: list[ProjectBreakdownItem]
    skipped_records: int = 0


class ScopeNodeSchema(BaseModel):
    key: str
    label: str
    slugs: list[str] = Field(default_factory=list)
    children: list["ScopeNodeSchema"] = Field(default_factory=list)


class ScopesResponse(BaseModel):
    search: str
    leaf_count: int
    tree: ScopeNodeSchema


class LiveEventItem(BaseModel):
    ts_epoch: int
    ts_iso: str
    project_slug: str
    session_id: str
    prompt_preview: str
    input: int
    output: int
    cache_read: int
    cache_create: int
    billable: int
    total_with_cache: int
    content_type: str
    signature: str


class LiveResponse(BaseModel):
    window: str
    window_seconds: int
    scope: str
    count: int
    events: list[LiveEventItem]
    skipped_records: int = 0


class AccountResponse(BaseModel):
    email: Optional[str] = None
    member_id: Optional[str] = None
    organization: Optional[str] = None
    available: bool


class SyncStatusDetail(BaseModel):
    last_sync_epoch: int
    last_sync_iso: str
    sessions_synced: int
    events_written: int
    duration_ms: int
    live_events_written: int = 0
    source_root: Optional[str] = None


class HeartbeatSchema(BaseModel):
    epoch: int
    interval: int
    pid: str
    status: str
    age: int
    mode: str


class SyncStatusResponse(BaseModel):
    status: Optional[SyncStatusDetail] = None
    heartbeat: Optional[HeartbeatSchema] = None
    events_loaded: int
    live_events_loaded: int
    skipped_records: int = 0
    scheduler_state: Optional[str] = None
    last_error: Optional[str] = None


class UiContextResponse(BaseModel):
    cwd: Optional[str] = None
    scope: str
    label: str


class SyncTriggerResponse(BaseModel):
    accepted: bool
    state: str


class HealthResponse(BaseModel):
    status: str
    events_loaded: int
    loaded_at: float


class ErrorResponse(BaseModel):
    error: str
    message: str


ScopeNodeSchema.model_rebuild()
