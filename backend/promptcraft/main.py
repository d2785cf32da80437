"""PromptCraft — FastAPI application entry point.

Mounts the generation API, creates the database on startup and runs the
background job processor for the lifetime of the app.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from promptcraft.api.router import api_router
from promptcraft.config import get_settings
from promptcraft.database import close_db, init_db
from promptcraft.services.generation.service import create_default_service
from promptcraft.services.job_processor import JobProcessor
from promptcraft.services.job_store import JobStore

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB and start the job processor; stop both on shutdown."""
    logger.info("%s starting up...", settings.APP_NAME)
    logger.info("Data directory: %s", settings.DATA_DIR)

    await init_db()

    service = create_default_service()
    store = JobStore()
    processor = JobProcessor(
        store,
        service,
        batch_size=settings.JOB_BATCH_SIZE,
        poll_interval=settings.JOB_POLL_INTERVAL,
    )
    app.state.generation_service = service
    app.state.job_store = store
    app.state.job_processor = processor

    await processor.start()

    yield

    await processor.stop()
    await close_db()
    logger.info("%s shut down", settings.APP_NAME)


app = FastAPI(
    title="PromptCraft API",
    description="Generation providers and background job processing for PromptCraft",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.include_router(api_router)


@app.get("/health")
async def health():
    """Health check."""
    processor = getattr(app.state, "job_processor", None)
    return {
        "status": "healthy",
        "job_processor": bool(processor and processor.running),
    }
