"""In-memory OCR job registry with timeout enforcement and delayed cleanup.

One JobManager is built per process (see app.main lifespan) and shared by
the HTTP routers and the OCR runner. All operations are synchronous and
expected to run on the event loop thread; the manager does no locking of
its own.

Lifecycle:
    queued -> processing -> done | failed | cancelled

Entering processing (re)starts the timeout timer. Entering a terminal
state stamps completed_at, cancels the timeout timer and schedules the
cleanup timer, which drops the record from the registry.

Unknown ids are a normal condition (clients polling a job that has already
been cleaned up), so every operation reports them through its return value
instead of raising.
"""

import logging
from typing import Dict, List, Optional

from app.jobs.models import (
    JobCounts,
    JobRecord,
    JobStatus,
    TERMINAL_STATUSES,
    utcnow,
)
from app.jobs.scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_CLEANUP_DELAY_SECONDS = 300.0
DEFAULT_FAILURE_ERROR = "Job failed"


class JobManager:
    """Owns every JobRecord and the two per-job timers."""

    def __init__(
        self,
        scheduler: Scheduler,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        cleanup_delay_seconds: float = DEFAULT_CLEANUP_DELAY_SECONDS,
    ):
        self._scheduler = scheduler
        self._timeout_seconds = timeout_seconds
        self._cleanup_delay_seconds = cleanup_delay_seconds
        self._jobs: Dict[str, JobRecord] = {}
        self._timeouts: Dict[str, TimerHandle] = {}
        self._cleanup_timers: Dict[str, TimerHandle] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @property
    def cleanup_delay_seconds(self) -> float:
        return self._cleanup_delay_seconds

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_job(self, source_reference: str) -> str:
        """Register a new queued job and return its id. No timer is started."""
        job = JobRecord(source_reference=source_reference)
        self._jobs[job.id] = job
        logger.info("Created job %s for %s", job.id, source_reference)
        return job.id

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        """Return a copy of the job, or None if it is not tracked."""
        job = self._jobs.get(job_id)
        if job is None:
            return None
        return job.model_copy()

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[int] = None,
    ) -> bool:
        """Move a job to a new status, optionally setting progress.

        Returns False when the job is unknown, already terminal, or the
        transition is not allowed (processing back to queued). Moving to
        processing again restarts the timeout allowance.
        """
        job = self._lookup(job_id)
        if job is None:
            return False

        status = JobStatus(status)
        _check_progress(progress)
        if job.is_terminal:
            logger.debug("Ignoring %s for terminal job %s (%s)", status.value, job_id, job.status.value)
            return False
        if job.status == JobStatus.PROCESSING and status == JobStatus.QUEUED:
            logger.debug("Rejecting processing -> queued for job %s", job_id)
            return False

        job.status = status
        if progress is not None:
            job.progress = progress

        if status == JobStatus.PROCESSING:
            job.started_at = utcnow()
            self._start_timeout(job_id)
            logger.info("Job %s processing (timeout %ss)", job_id, _fmt_seconds(self._timeout_seconds))
        elif status in TERMINAL_STATUSES:
            if status == JobStatus.FAILED and job.error is None:
                job.error = DEFAULT_FAILURE_ERROR
            self._finish(job)
        return True

    def update_progress(self, job_id: str, progress: int) -> bool:
        """Set progress on an active job without touching its status or timers."""
        job = self._lookup(job_id)
        if job is None or job.is_terminal:
            return False
        _check_progress(progress)
        job.progress = progress
        return True

    def complete_job(self, job_id: str, result_text: Optional[str] = None) -> bool:
        """Mark an active job done at 100% and store the extracted text."""
        job = self._lookup(job_id)
        if job is None or job.is_terminal:
            return False
        job.result_text = result_text
        return self.update_status(job_id, JobStatus.DONE, progress=100)

    def fail_job(self, job_id: str, error: str) -> bool:
        """Force an active job to failed with the given reason.

        A job that is already terminal keeps its outcome and False is
        returned, so a late provider error can never overwrite a result.
        """
        job = self._lookup(job_id)
        if job is None:
            return False
        if job.is_terminal:
            logger.debug("Not failing job %s, already %s", job_id, job.status.value)
            return False

        job.status = JobStatus.FAILED
        job.error = error
        self._finish(job)
        return True

    def cancel_job(self, job_id: str) -> bool:
        """Abandon a queued or processing job. Cancelled is terminal."""
        return self.update_status(job_id, JobStatus.CANCELLED)

    def cleanup_job(self, job_id: str) -> bool:
        """Drop a terminal job right away.

        Active jobs are left alone and False is returned, so in-flight work
        cannot be discarded by mistake.
        """
        job = self._lookup(job_id)
        if job is None or not job.is_terminal:
            return False
        self._remove(job_id)
        logger.info("Manually cleaned up job %s", job_id)
        return True

    def get_job_counts(self) -> JobCounts:
        counts = JobCounts()
        for job in self._jobs.values():
            counts.total += 1
            setattr(counts, job.status.value, getattr(counts, job.status.value) + 1)
        return counts

    def list_jobs(self) -> List[JobRecord]:
        return [job.model_copy() for job in self._jobs.values()]

    def shutdown(self) -> None:
        """Cancel every outstanding timer. Records are left in place."""
        for handle in list(self._timeouts.values()) + list(self._cleanup_timers.values()):
            handle.cancel()
        self._timeouts.clear()
        self._cleanup_timers.clear()
        logger.info("Job manager stopped with %d job(s) tracked", len(self._jobs))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, job_id: str) -> Optional[JobRecord]:
        job = self._jobs.get(job_id)
        if job is None:
            logger.debug("Job %s not found", job_id)
        return job

    def _finish(self, job: JobRecord) -> None:
        job.completed_at = utcnow()
        self._clear_timeout(job.id)
        self._schedule_cleanup(job.id)
        if job.status == JobStatus.FAILED:
            logger.info("Job %s failed: %s", job.id, job.error)
        else:
            logger.info("Job %s %s", job.id, job.status.value)

    def _remove(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)
        self._clear_timeout(job_id)
        self._clear_cleanup(job_id)

    def _start_timeout(self, job_id: str) -> None:
        self._clear_timeout(job_id)
        self._timeouts[job_id] = self._scheduler.call_later(
            self._timeout_seconds, lambda: self._on_timeout(job_id)
        )

    def _clear_timeout(self, job_id: str) -> None:
        handle = self._timeouts.pop(job_id, None)
        if handle is not None:
            handle.cancel()

    def _on_timeout(self, job_id: str) -> None:
        self._timeouts.pop(job_id, None)
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return
        logger.warning("Job %s exceeded %ss processing allowance", job_id, _fmt_seconds(self._timeout_seconds))
        self.fail_job(job_id, f"Job timed out after {_fmt_seconds(self._timeout_seconds)} seconds")

    def _schedule_cleanup(self, job_id: str) -> None:
        self._clear_cleanup(job_id)
        self._cleanup_timers[job_id] = self._scheduler.call_later(
            self._cleanup_delay_seconds, lambda: self._on_cleanup(job_id)
        )

    def _clear_cleanup(self, job_id: str) -> None:
        handle = self._cleanup_timers.pop(job_id, None)
        if handle is not None:
            handle.cancel()

    def _on_cleanup(self, job_id: str) -> None:
        self._cleanup_timers.pop(job_id, None)
        if self._jobs.pop(job_id, None) is not None:
            logger.info("Cleaned up completed job %s", job_id)


def _check_progress(progress: Optional[int]) -> None:
    # Decreases are allowed; only the range is enforced.
    if progress is not None and not 0 <= progress <= 100:
        raise ValueError(f"progress must be between 0 and 100, got {progress}")


def _fmt_seconds(seconds: float) -> str:
    return f"{seconds:g}"
