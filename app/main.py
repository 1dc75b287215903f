import asyncio

import httpx
import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

from app.api.v1 import jobs as jobs_routes
from app.core.config import settings
from app.db.session import SessionLocal, init_db
from app.monitoring.tracing.correlation import CorrelationIdMiddleware
from app.services.scheduling import (
    JobLifecycleManager,
    JobRepository,
    SchedulerEngine,
    TriggerFactory,
    restore_scheduled_jobs,
)
from app.utils.error_handler import register_exception_handlers
from app.utils.logger import configure_logging, get_logger

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Schedules timed jobs that each issue one HTTP request",
    version=settings.VERSION,
)

# Initialize Sentry if DSN is provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.APP_ENV,
        traces_sample_rate=0.1,
    )
    app.add_middleware(SentryAsgiMiddleware)
    logger.info(
        "Sentry initialized with SentryAsgiMiddleware", environment=settings.APP_ENV
    )
else:
    logger.info("Sentry not configured (SENTRY_DSN not set)")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_exception_handlers(app)
app.include_router(jobs_routes.router, prefix="/api/v1")

# Initialize Prometheus metrics
instrumentator = Instrumentator(
    should_group_status_codes=False,
    excluded_handlers=["/metrics"],  # Don't monitor the metrics endpoint itself
)
instrumentator.instrument(app).expose(app)


@app.on_event("startup")
async def startup_event():
    """Build the scheduler, start it and restore stored jobs"""
    logger.info(
        "Job scheduler starting up",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        sentry_enabled=bool(settings.SENTRY_DSN),
    )

    if settings.DB_AUTO_CREATE:
        init_db()

    engine = SchedulerEngine()
    client = httpx.AsyncClient(timeout=settings.DISPATCH_TIMEOUT_SECONDS)
    lifecycle = JobLifecycleManager(
        engine=engine,
        repository=JobRepository(SessionLocal),
        trigger_factory=TriggerFactory(settings.SCHEDULER_TIMEZONE),
        client=client,
    )

    app.state.scheduler = engine
    app.state.http_client = client
    app.state.lifecycle = lifecycle

    await engine.start()
    # A stored job that cannot be rescheduled aborts startup
    restored = await asyncio.to_thread(restore_scheduled_jobs, lifecycle)
    logger.info("Job scheduler ready", restored_jobs=restored)


@app.on_event("shutdown")
async def shutdown_event():
    """Drain in-flight firings and release the outbound client"""
    engine: SchedulerEngine = getattr(app.state, "scheduler", None)
    if engine is not None:
        timeout = settings.SCHEDULER_SHUTDOWN_TIMEOUT_SECONDS
        try:
            await asyncio.wait_for(engine.stop(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Scheduler did not drain before shutdown timeout", timeout=timeout
            )

    client: httpx.AsyncClient = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()

    logger.info("Job scheduler shut down")


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint"""
    engine: SchedulerEngine = getattr(request.app.state, "scheduler", None)
    scheduler = engine.get_status() if engine is not None else {"status": "stopped"}
    lifecycle: JobLifecycleManager = getattr(request.app.state, "lifecycle", None)
    database = (
        await asyncio.to_thread(lifecycle.repository.health_check)
        if lifecycle is not None
        else {"healthy": False}
    )
    return {
        "status": "ok" if database["healthy"] else "degraded",
        "scheduler": scheduler,
        "database": database,
    }
