"""
TrackerSync FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trackersync.api.routes import mappings, sync
from trackersync.config import settings
from trackersync.db import close_db, get_db
from trackersync.services.run_lock import close_redis_client, get_redis_client

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting TrackerSync API...")
    if settings.run_lock_backend == "redis":
        try:
            client = await get_redis_client()
            await client.ping()
            logger.info("Redis connection initialized (run lock)")
        except Exception as e:
            logger.warning(f"Redis connection failed (sync runs will be refused): {e}")

    try:
        await get_db()
        logger.info("SQLite database initialized")
    except Exception as e:
        logger.warning(f"SQLite initialization failed: {e}")

    yield

    # Shutdown
    logger.info("Shutting down TrackerSync API...")
    await close_redis_client()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS middleware for the fleet dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify actual frontend origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sync.router)
app.include_router(mappings.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "TrackerSync API",
        "version": settings.api_version,
        "endpoints": {
            "sync": "POST /sync",
            "sync_health": "/sync/health",
            "mappings": "/mappings",
            "mapping_history": "/mappings/{tracker_id}/history",
            "vehicle_location": "/vehicles/{vehicle_id}/location",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
