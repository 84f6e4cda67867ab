"""Job management API: submit OCR jobs, poll status, cancel, clean up."""

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field
from typing import Optional

from app.jobs.manager import JobManager
from app.jobs.models import JobRecord, JobStatus
from app.ocr.providers import OcrProvider
from app.ocr.runner import run_ocr_job

router = APIRouter()

# These will be set by main.py during lifespan
_job_manager: Optional[JobManager] = None
_ocr_provider: Optional[OcrProvider] = None


def set_job_manager(manager: JobManager):
    global _job_manager
    _job_manager = manager


def set_ocr_provider(provider: Optional[OcrProvider]):
    global _ocr_provider
    _ocr_provider = provider


def _manager() -> JobManager:
    if _job_manager is None:
        raise HTTPException(status_code=503, detail="Job manager not initialized")
    return _job_manager


class JobSubmitRequest(BaseModel):
    source_reference: str = Field(min_length=1)


class JobSubmitResponse(BaseModel):
    job_id: str
    status: str
    message: str


def serialize_job(job: JobRecord) -> dict:
    response = {
        "job_id": job.id,
        "status": job.status.value,
        "progress": job.progress,
        "source_reference": job.source_reference,
        "created_at": job.created_at.isoformat(),
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }
    if job.status == JobStatus.DONE:
        response["text"] = job.result_text
    if job.status == JobStatus.FAILED:
        response["error"] = job.error or "Processing failed"
    return response


@router.post("/jobs", response_model=JobSubmitResponse)
async def submit_job(request: JobSubmitRequest, background_tasks: BackgroundTasks):
    """Create an OCR job for an uploaded document and start processing it."""
    manager = _manager()
    job_id = manager.create_job(request.source_reference)
    background_tasks.add_task(run_ocr_job, manager, job_id, _ocr_provider)
    return JobSubmitResponse(
        job_id=job_id,
        status=JobStatus.QUEUED.value,
        message="Job submitted successfully. Poll GET /api/v1/jobs/{id} for status.",
    )


@router.get("/jobs")
async def list_jobs():
    """All tracked jobs plus per-status counts."""
    manager = _manager()
    return {
        "jobs": [serialize_job(job) for job in manager.list_jobs()],
        "counts": manager.get_job_counts().model_dump(),
    }


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str):
    """Get the current status and extracted text of a job."""
    job = _manager().get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_job(job)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str):
    manager = _manager()
    job = manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if not manager.cancel_job(job_id):
        raise HTTPException(status_code=409, detail=f"Job already {job.status.value}")
    return serialize_job(manager.get_job(job_id))


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str):
    """Drop a finished job immediately instead of waiting for auto cleanup."""
    manager = _manager()
    job = manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if not manager.cleanup_job(job_id):
        raise HTTPException(status_code=409, detail="Job is still active")
    return {"job_id": job_id, "removed": True}
