import heapq
import itertools
import sys
from pathlib import Path

import pytest

# Make the `app` package importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.jobs.manager import JobManager  # noqa: E402
from app.jobs.scheduler import Scheduler  # noqa: E402


class FakeHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Virtual clock: callbacks only run when advance() moves time past them."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay, callback):
        handle = FakeHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback))
        return handle

    def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, handle, callback = heapq.heappop(self._queue)
            self.now = when
            if not handle.cancelled:
                callback()
        self.now = target

    @property
    def pending(self):
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def manager(scheduler):
    return JobManager(scheduler, timeout_seconds=120, cleanup_delay_seconds=300)
