import asyncio

from app.jobs.manager import JobManager
from app.jobs.models import JobStatus
from app.jobs.scheduler import LoopScheduler


def test_loop_scheduler_runs_callback():
    fired = []

    async def run_case():
        scheduler = LoopScheduler()
        scheduler.call_later(0.01, lambda: fired.append("x"))
        await asyncio.sleep(0.05)

    asyncio.run(run_case())
    assert fired == ["x"]


def test_loop_scheduler_cancel_is_idempotent():
    fired = []

    async def run_case():
        scheduler = LoopScheduler(asyncio.get_running_loop())
        handle = scheduler.call_later(0.01, lambda: fired.append("x"))
        handle.cancel()
        handle.cancel()
        await asyncio.sleep(0.05)

        done = scheduler.call_later(0, lambda: fired.append("y"))
        await asyncio.sleep(0.01)
        done.cancel()

    asyncio.run(run_case())
    assert fired == ["y"]


def test_manager_on_real_event_loop():
    async def run_case():
        manager = JobManager(
            LoopScheduler(asyncio.get_running_loop()),
            timeout_seconds=0.02,
            cleanup_delay_seconds=0.05,
        )
        job_id = manager.create_job("/uploads/test.pdf")
        manager.update_status(job_id, JobStatus.PROCESSING)

        await asyncio.sleep(0.04)
        job = manager.get_job(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error == "Job timed out after 0.02 seconds"

        await asyncio.sleep(0.1)
        assert manager.get_job(job_id) is None

    asyncio.run(run_case())
