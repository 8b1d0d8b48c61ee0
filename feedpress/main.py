# feedpress/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feedpress.config import get_settings
from feedpress.errors import InvalidStateTransition, RecordNotFound
from feedpress.logging_config import configure_logging
from feedpress.routers import (
    admin_router,
    articles_router,
    automation_router,
    cron_router,
    monitor_router,
    sites_router,
)
from feedpress.services.auto_publisher import SchedulerTicker, run_scheduled_publish


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)

    ticker = None
    if settings.SCHEDULER_ENABLED:
        ticker = SchedulerTicker(run_scheduled_publish, settings.SCHEDULER_INTERVAL_SECONDS)
        ticker.start()
    try:
        yield
    finally:
        if ticker is not None:
            ticker.stop(timeout=5)


app = FastAPI(title="FeedPress API", lifespan=lifespan)

app.include_router(admin_router)
app.include_router(cron_router)
app.include_router(monitor_router)
app.include_router(automation_router)
app.include_router(articles_router)
app.include_router(sites_router)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(RecordNotFound)
async def record_not_found_handler(request: Request, exc: RecordNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStateTransition)
async def invalid_transition_handler(request: Request, exc: InvalidStateTransition) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "detail": str(exc),
            "entity": exc.entity,
            "current": exc.current,
            "target": exc.target,
        },
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "feedpress-api"}
