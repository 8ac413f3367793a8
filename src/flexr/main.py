"""FastAPI application for FLEXR analytics."""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import get_settings
from .api.deps import get_workout_store
from .db.adapters import WorkoutStore
from .api.exception_handlers import register_exception_handlers
from .api.routes import analytics
from .utils.log_sanitizer import configure_logging

settings = get_settings()

# Must run before any logging happens
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting FLEXR API v{__version__}")
    logger.info(f"Database backend: {settings.database_backend}")
    yield
    logger.info("Shutting down FLEXR API")


app = FastAPI(
    title="FLEXR API",
    description="Training progress analytics",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(
    analytics.router,
    prefix=f"/api/{settings.api_version}/analytics",
    tags=["analytics"],
)


@app.get("/health")
def health(store: WorkoutStore = Depends(get_workout_store)):
    """Health check endpoint, including the store."""
    store_health = store.health_check()
    return {
        "status": "healthy" if store_health.get("healthy") else "degraded",
        "version": __version__,
        "database": store_health,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
