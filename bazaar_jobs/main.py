from contextlib import asynccontextmanager

import sentry_sdk
import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from bazaar_jobs.admin.routes import router as admin_router
from bazaar_jobs.config import settings
from bazaar_jobs.database import async_session, dispose_engine, get_db
from bazaar_jobs.jobs import InMemoryJobHistory, setup_jobs


def configure_logging() -> None:
    """structlog: JSON in production, console in development."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.is_production:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(0),
    )


configure_logging()
logger = structlog.get_logger()

# Sentry error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.1,
        environment=settings.APP_ENV,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("bazaar_jobs_startup", env=settings.APP_ENV)

    # Registration errors (bad cron, duplicate names) abort startup here
    scheduler = setup_jobs(
        async_session,
        logger,
        uploads_path=settings.UPLOADS_PATH,
        auto_start=settings.SCHEDULER_AUTOSTART,
        disabled_jobs=settings.disabled_jobs_set,
        karma_batch_size=settings.KARMA_BATCH_SIZE,
        karma_batch_pause=settings.KARMA_BATCH_PAUSE_SECONDS,
        history=InMemoryJobHistory(maxlen=settings.JOB_HISTORY_SIZE),
    )
    app.state.job_scheduler = scheduler
    yield
    scheduler.stop()
    await scheduler.wait_for_running()
    await dispose_engine()
    logger.info("bazaar_jobs_shutdown")


app = FastAPI(
    title="Bazaar maintenance jobs",
    description="Scheduled data retention and account deletion jobs",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions and return a safe 500 response in production."""
    logger.exception("unhandled_exception", path=request.url.path)
    if settings.APP_ENV != "development":
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
    raise exc


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(request: Request):
    """Prometheus metrics endpoint (protected by API key)."""
    from prometheus_client import generate_latest
    from starlette.responses import Response as StarletteResponse

    # In production/staging, METRICS_API_KEY is required
    if settings.is_production and not settings.METRICS_API_KEY:
        raise HTTPException(status_code=503, detail="Metrics not available")

    if settings.METRICS_API_KEY:
        api_key = request.headers.get("x-metrics-key", "")
        if api_key != settings.METRICS_API_KEY:
            raise HTTPException(
                status_code=403,
                detail="Invalid metrics API key",
            )

    return StarletteResponse(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


app.include_router(admin_router)


@app.get("/health")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Database connectivity plus a summary of the job scheduler."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("health_database_unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected"},
        )

    result: dict = {"status": "ok", "database": "connected"}
    scheduler = getattr(request.app.state, "job_scheduler", None)
    if scheduler is None:
        result["scheduler"] = "unknown"
        return result

    stats = scheduler.get_status()
    result["scheduler"] = "running" if stats.scheduler_running else "stopped"
    result["jobs"] = {
        "total": stats.total_jobs,
        "enabled": stats.enabled_jobs,
        "running": stats.running_jobs,
        "failing": [
            j.name for j in stats.jobs if j.last_result is not None and not j.last_result.success
        ],
    }
    if settings.is_production and settings.SCHEDULER_AUTOSTART and not stats.scheduler_running:
        result["status"] = "unhealthy"
    return result
