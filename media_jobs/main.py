"""Media job workers - FastAPI application.

Run with ``uvicorn media_jobs.main:app --port 8002``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from media_jobs.config import settings
from media_jobs.db.supabase_client import get_supabase
from media_jobs.logging_config import setup_logging
from media_jobs.api.v1.router import v1_router
from media_jobs.api.v1.health import router as health_root_router
from media_jobs.api.v1 import health as health_api
from media_jobs.api.v1 import jobs as jobs_api
from media_jobs.runtime import build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    setup_logging(settings.log_level)
    logger.info("Starting media job workers on port %s", settings.port)

    # Build and verify before taking any work; missing configuration is fatal
    runtime = build_runtime(settings, client=get_supabase())
    runtime.verify()
    await runtime.start()

    # Wire runtime into API endpoints
    health_api.set_runtime(runtime)
    jobs_api.set_runtime(runtime)

    yield

    # Shutdown: in-flight jobs get the grace period, then are cancelled
    logger.info("Shutting down media job workers")
    await runtime.stop()
    health_api.set_runtime(None)
    jobs_api.set_runtime(None)


app = FastAPI(
    title="Media Job Workers",
    description="Background workers for face swap, AI video and slideshow card rendering",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.site_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("media_jobs.main:app", host="0.0.0.0", port=settings.port)
