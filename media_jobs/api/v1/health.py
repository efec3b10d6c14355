"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter

router = APIRouter()

# Set by main.py during lifespan
_runtime = None


def set_runtime(runtime):
    global _runtime
    _runtime = runtime


@router.get("/health")
async def health_check():
    """Service health and per-queue depth / in-flight counts."""
    running = _runtime is not None and _runtime.started
    return {
        "status": "healthy" if running else "starting",
        "queues": _runtime.stats() if _runtime is not None else {},
        "python_version": sys.version,
        "platform": platform.platform(),
    }
