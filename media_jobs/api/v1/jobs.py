"""Job API: enqueue a job of a given kind, read back its status record."""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from media_jobs.errors import PersistenceError
from media_jobs.jobs.models import JobKind

router = APIRouter()

# Set by main.py during lifespan
_runtime = None


def set_runtime(runtime):
    global _runtime
    _runtime = runtime


class JobSubmitResponse(BaseModel):
    job_id: str
    delivery_id: str
    kind: str
    message: str


def _require_runtime():
    if _runtime is None:
        raise HTTPException(status_code=503, detail="Worker runtime not initialized")
    return _runtime


@router.post("/jobs/{kind}", response_model=JobSubmitResponse, status_code=202)
async def submit_job(kind: JobKind, payload: Dict[str, Any]):
    """Queue a job. The caller has already created its status row as ``pending``."""
    runtime = _require_runtime()
    try:
        delivery_id = await runtime.submit(kind, payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    job_id = payload.get("jobId") or payload.get("job_id")
    return JobSubmitResponse(
        job_id=job_id,
        delivery_id=delivery_id,
        kind=kind.value,
        message=f"Job queued. Poll GET /api/v1/jobs/{kind.value}/{job_id} for status.",
    )


@router.get("/jobs/{kind}/{job_id}")
async def get_job_status(kind: JobKind, job_id: str):
    """Current status record of a job."""
    runtime = _require_runtime()
    try:
        record = await runtime.get_job(kind, job_id)
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if record is None:
        raise HTTPException(status_code=404, detail="Job not found")

    return {
        "job_id": job_id,
        "kind": kind.value,
        "status": record.get("status"),
        "error": record.get("error_message"),
        "record": record,
    }
