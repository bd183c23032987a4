"""Preview Service - dynamic dev server previews for generated projects."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from lpgen_preview import __version__
from lpgen_preview.config import settings
from lpgen_preview.deps import cleanup_manager, init_manager
from lpgen_preview.observability import configure_logging, init_sentry
from lpgen_preview.routes import health_router, preview_router, status_router

SERVICE_NAME = "lpgen-preview"

init_sentry(settings, SERVICE_NAME, release=f"{SERVICE_NAME}@{__version__}")

logger = configure_logging(
    SERVICE_NAME,
    log_level=logging.DEBUG if settings.debug else logging.INFO,
    json_format=settings.environment != "development",
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the preview manager on startup; stop every preview on shutdown."""
    logger.info(
        "Starting preview service",
        environment=settings.environment,
        port_range=settings.port_range_label,
    )
    init_manager()

    yield

    logger.info("Shutting down preview service")
    try:
        await asyncio.wait_for(cleanup_manager(), timeout=settings.shutdown_timeout)
        logger.info("Graceful shutdown completed")
    except TimeoutError:
        logger.warning(
            "Shutdown timed out after %d seconds, forcing exit",
            settings.shutdown_timeout,
        )


app = FastAPI(
    title="Preview Service",
    description="Runs per-project dev servers on dynamically assigned ports",
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

Instrumentator().instrument(app).expose(app)

# Static /preview/* routes must be registered before /preview/{project_id}
app.include_router(health_router)
app.include_router(status_router)
app.include_router(preview_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Service name and version."""
    return {
        "service": SERVICE_NAME,
        "version": __version__,
    }
