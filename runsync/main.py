"""
RunSync API

FastAPI application that keeps running workouts in sync with Strava.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from runsync import __version__
from runsync.config import settings
from runsync.db.session import init_db, AsyncSessionLocal
from runsync.api.v1.router import api_router
from runsync.features.strava import StravaIntegration, WebhookDispatcher
from runsync.features.strava.sync import ReconciliationScheduler


# === Logging Setup ===
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)


# === Lifespan ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Starting RunSync API...")
    await init_db()
    logger.info("Database initialized")

    integration = StravaIntegration.from_settings(settings)
    app.state.strava = integration

    dispatcher = WebhookDispatcher(
        AsyncSessionLocal,
        integration.sync_service,
        queue_size=settings.webhook_queue_size,
        workers=settings.webhook_workers,
    )
    await dispatcher.start()
    app.state.webhook_dispatcher = dispatcher

    scheduler = ReconciliationScheduler(
        AsyncSessionLocal,
        integration.sync_service,
        interval=timedelta(hours=settings.sync_interval_hours),
        lookback=timedelta(hours=settings.sync_lookback_hours),
        initial_delay=settings.sync_initial_delay_seconds,
    )
    app.state.reconciliation_scheduler = scheduler
    if settings.sync_enabled:
        await scheduler.start()
    else:
        logger.info("Reconciliation sweep disabled (SYNC_ENABLED=false)")

    yield

    # Shutdown
    await scheduler.stop()
    await dispatcher.stop()
    logger.info("Shutting down...")


# === App Creation ===
app = FastAPI(
    title="RunSync API",
    description="Strava activity sync for running workouts",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# === Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Routes ===
app.include_router(api_router, prefix="/api/v1")


# === Health Check ===
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
