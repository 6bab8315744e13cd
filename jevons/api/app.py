"""
FastAPI application factory.

The server owns one EventStore, a QueryService over it and, unless disabled,
the background SyncScheduler, which is started and stopped with the app.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from jevons.api.router import router as usage_router
from jevons.config.loader import AppConfig
from jevons.core.query import QueryService
from jevons.errors import InvalidRequest
from jevons.storage.repository import EventStore
from jevons.sync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    store: Optional[EventStore] = None,
    scheduler: Optional[SyncScheduler] = None,
    clock: Callable[[], float] = time.time,
    start_scheduler: bool = True,
) -> FastAPI:
    """Build the HTTP application.

    Args:
        config: Application configuration
        store: Event store to serve (loaded from ``config.data_dir`` if omitted)
        scheduler: Sync scheduler; one is created when ``start_scheduler`` is
            set and none is given
        clock: Source of "now" for range resolution
        start_scheduler: Start the scheduler in the app lifespan

    Returns:
        The FastAPI app
    """
    store = store or EventStore(config.data_dir)
    if scheduler is None and start_scheduler:
        scheduler = SyncScheduler(config, store, clock=clock)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if scheduler is not None and start_scheduler:
            scheduler.start()
        logger.info("Serving %s", config.data_dir)
        try:
            yield
        finally:
            if scheduler is not None and start_scheduler:
                scheduler.stop()

    app = FastAPI(title="Jevons Usage API", lifespan=lifespan)
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.query = QueryService(
        store,
        clock=clock,
        heartbeat_file=config.heartbeat_file,
        live_row_limit=config.live_row_limit,
    )

    @app.exception_handler(InvalidRequest)
    async def invalid_request_handler(_request: Request, exc: InvalidRequest):
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_request", "message": str(exc)},
        )

    app.include_router(usage_router)
    return app
