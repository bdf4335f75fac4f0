from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from engagecore_api.core.settings import settings
from engagecore_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .jobs.transaction_sync import build_transaction_sync_job
from .observability.tracing import configure_tracing
from .scheduling import TransactionSyncScheduler


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    job = build_transaction_sync_job(_session_factory)
    scheduler = TransactionSyncScheduler(job)

    app.state.transaction_sync_job = job
    app.state.transaction_sync_scheduler = scheduler

    sync_enabled = settings.transaction_sync_enabled
    if sync_enabled:
        scheduler.start()
        logger.info(
            "Transaction sync scheduler enabled",
            schedule=settings.transaction_sync_schedule,
            timeout_seconds=settings.transaction_sync_timeout_seconds,
        )
    else:
        logger.info(
            "Transaction sync scheduler disabled",
            reason="transaction_sync_enabled is false",
        )

    try:
        yield
    finally:
        if sync_enabled and scheduler.is_running:
            await scheduler.stop()
        await job.feed_client.aclose()


def create_app() -> FastAPI:
    """Application factory for the EngageCore API service."""
    configure_logging(
        service_name="engagecore-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="EngageCore API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="engagecore-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
