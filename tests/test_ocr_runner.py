import asyncio

from app.jobs.models import JobStatus
from app.ocr.providers import OcrProvider, OcrProviderError, OcrResult
from app.ocr.runner import PROVIDER_MISSING_ERROR, run_ocr_job


class FakeProvider(OcrProvider):
    name = "fake"

    def __init__(self, text="extracted", error=None, on_call=None):
        self.text = text
        self.error = error
        self.on_call = on_call
        self.seen = []

    async def extract_text(self, source_reference, progress_cb=None):
        self.seen.append(source_reference)
        if progress_cb:
            progress_cb(50)
        if self.on_call:
            self.on_call()
        if self.error:
            raise self.error
        return OcrResult(text=self.text, page_count=2)


def test_successful_run_marks_job_done(manager, scheduler):
    job_id = manager.create_job("uploads/a.pdf")
    provider = FakeProvider(text="Hello")

    assert asyncio.run(run_ocr_job(manager, job_id, provider)) is True

    job = manager.get_job(job_id)
    assert provider.seen == ["uploads/a.pdf"]
    assert job.status == JobStatus.DONE
    assert job.progress == 100
    assert job.result_text == "Hello"
    assert job.started_at is not None

    # Only the cleanup timer is left
    assert scheduler.pending == 1


def test_progress_is_forwarded(manager):
    job_id = manager.create_job("uploads/a.pdf")
    progress = []
    provider = FakeProvider(on_call=lambda: progress.append(manager.get_job(job_id).progress))

    asyncio.run(run_ocr_job(manager, job_id, provider))
    assert progress == [50]


def test_provider_error_passed_through(manager):
    job_id = manager.create_job("uploads/a.pdf")
    provider = FakeProvider(error=OcrProviderError("OCR provider returned 500: boom"))

    assert asyncio.run(run_ocr_job(manager, job_id, provider)) is False

    job = manager.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == "OCR provider returned 500: boom"


def test_unexpected_error_fails_job(manager):
    job_id = manager.create_job("uploads/a.pdf")
    provider = FakeProvider(error=RuntimeError("kaput"))

    assert asyncio.run(run_ocr_job(manager, job_id, provider)) is False
    assert manager.get_job(job_id).error == "RuntimeError: kaput"


def test_missing_provider_fails_job(manager):
    job_id = manager.create_job("uploads/a.pdf")
    assert asyncio.run(run_ocr_job(manager, job_id, None)) is False

    job = manager.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == PROVIDER_MISSING_ERROR


def test_unknown_job_is_ignored(manager):
    provider = FakeProvider()
    assert asyncio.run(run_ocr_job(manager, "job_missing", provider)) is False
    assert provider.seen == []


def test_late_result_after_timeout_is_dropped(manager, scheduler):
    job_id = manager.create_job("uploads/a.pdf")
    provider = FakeProvider(text="too late", on_call=lambda: scheduler.advance(120))

    assert asyncio.run(run_ocr_job(manager, job_id, provider)) is False

    job = manager.get_job(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == "Job timed out after 120 seconds"
    assert job.result_text is None


def test_cancelled_job_is_not_started(manager):
    job_id = manager.create_job("uploads/a.pdf")
    manager.cancel_job(job_id)
    provider = FakeProvider()

    assert asyncio.run(run_ocr_job(manager, job_id, provider)) is False
    assert provider.seen == []
    assert manager.get_job(job_id).status == JobStatus.CANCELLED
