"""Drives one OCR job through the manager: processing, progress, outcome."""

import logging
from typing import Optional

from app.jobs.manager import JobManager
from app.jobs.models import JobStatus
from app.ocr.providers import OcrProvider, OcrProviderError

logger = logging.getLogger(__name__)

PROVIDER_MISSING_ERROR = "OCR provider not configured"


async def run_ocr_job(
    manager: JobManager,
    job_id: str,
    provider: Optional[OcrProvider],
) -> bool:
    """Run OCR for a queued job. Returns True if the job ended up done.

    Provider errors are passed through verbatim as the job's error. If the
    manager already timed the job out (or it was cancelled) by the time the
    provider answers, the late result is dropped.
    """
    job = manager.get_job(job_id)
    if job is None:
        logger.warning("OCR run requested for unknown job %s", job_id)
        return False

    if provider is None:
        manager.fail_job(job_id, PROVIDER_MISSING_ERROR)
        return False

    if not manager.update_status(job_id, JobStatus.PROCESSING, progress=10):
        logger.info("Job %s not startable (status %s)", job_id, job.status.value)
        return False

    def on_progress(pct: int) -> None:
        manager.update_progress(job_id, max(0, min(100, pct)))

    try:
        result = await provider.extract_text(job.source_reference, progress_cb=on_progress)
    except OcrProviderError as exc:
        manager.fail_job(job_id, str(exc))
        return False
    except Exception as exc:
        logger.exception("Unexpected OCR failure for job %s", job_id)
        manager.fail_job(job_id, f"{type(exc).__name__}: {exc}")
        return False

    if not manager.complete_job(job_id, result.text):
        logger.info("Discarding OCR result for job %s, no longer active", job_id)
        return False

    logger.info(
        "OCR finished for job %s via %s (%d page(s))",
        job_id,
        provider.name,
        result.page_count,
    )
    return True
