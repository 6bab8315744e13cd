from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from jevons.api.schemas import (
    AccountResponse,
    BreakdownResponse,
    CardsResponse,
    ErrorResponse,
    HealthResponse,
    LiveResponse,
    ScopesResponse,
    SeriesResponse,
    SyncStatusResponse,
    SyncTriggerResponse,
    UiContextResponse,
)
from jevons.core.query import DEFAULT_LIVE_WINDOW, QueryService
from jevons.core.ranges import DEFAULT_RANGE
from jevons.sync.scheduler import SyncScheduler

router = APIRouter(tags=["Usage"], prefix="/api", responses={400: {"model": ErrorResponse}})


def get_query_service(request: Request) -> QueryService:
    return request.app.state.query


def get_scheduler(request: Request) -> Optional[SyncScheduler]:
    return request.app.state.scheduler


@router.get("/cards", response_model=CardsResponse)
def cards_endpoint(
    range_: str = Query(DEFAULT_RANGE, alias="range"),
    start: Optional[int] = None,
    end: Optional[int] = None,
    scope: Optional[str] = None,
    query: QueryService = Depends(get_query_service),
):
    return query.cards(range_, start, end, scope)


@router.get("/series", response_model=SeriesResponse)
def series_endpoint(
    range_: str = Query(DEFAULT_RANGE, alias="range"),
    start: Optional[int] = None,
    end: Optional[int] = None,
    scope: Optional[str] = None,
    metric: str = "billable",
    mode: str = "single",
    bucket: str = "auto",
    query: QueryService = Depends(get_query_service),
):
    return query.series(range_, start, end, scope, metric=metric, mode=mode, bucket=bucket)


@router.get("/breakdown", response_model=BreakdownResponse)
def breakdown_endpoint(
    range_: str = Query(DEFAULT_RANGE, alias="range"),
    start: Optional[int] = None,
    end: Optional[int] = None,
    scope: Optional[str] = None,
    query: QueryService = Depends(get_query_service),
):
    return query.breakdown(range_, start, end, scope)


@router.get("/scopes", response_model=ScopesResponse)
def scopes_endpoint(
    search: Optional[str] = None,
    query: QueryService = Depends(get_query_service),
):
    return query.scopes(search)


@router.get("/live", response_model=LiveResponse)
def live_endpoint(
    window: str = DEFAULT_LIVE_WINDOW,
    scope: Optional[str] = None,
    limit: Optional[int] = None,
    query: QueryService = Depends(get_query_service),
):
    return query.live(window, scope, limit)


@router.get("/account", response_model=AccountResponse)
def account_endpoint(query: QueryService = Depends(get_query_service)):
    return query.account()


@router.get("/sync-status", response_model=SyncStatusResponse)
def sync_status_endpoint(
    query: QueryService = Depends(get_query_service),
    scheduler: Optional[SyncScheduler] = Depends(get_scheduler),
):
    data = query.sync_status()
    if scheduler is not None:
        data["scheduler_state"] = scheduler.state.value
        data["last_error"] = scheduler.last_error
    return data


@router.get("/ui-context", response_model=UiContextResponse)
def ui_context_endpoint(query: QueryService = Depends(get_query_service)):
    return query.ui_context()


@router.post("/sync", response_model=SyncTriggerResponse, status_code=202)
def sync_endpoint(scheduler: Optional[SyncScheduler] = Depends(get_scheduler)):
    if scheduler is None:
        return {"accepted": False, "state": "disabled"}
    accepted = scheduler.trigger_async()
    return {"accepted": accepted, "state": scheduler.state.value}


@router.get("/health", response_model=HealthResponse)
def health_endpoint(query: QueryService = Depends(get_query_service)):
    snapshot = query.store.snapshot
    return {"status": "ok", "events_loaded": len(snapshot.events), "loaded_at": snapshot.loaded_at}
