"""Delayed-callback scheduling used by the job manager's timers."""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(ABC):
    """Abstract interface for running a callback after a delay."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Schedule callback to run once after delay seconds.

        The returned handle's cancel() must be safe to call more than once,
        and after the callback has already run.
        """
        ...


class LoopScheduler(Scheduler):
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        loop: event loop to schedule on. When omitted, the running loop is
            looked up at the first call_later(), so the scheduler must then
            be used from inside that loop.
        """
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop.call_later(delay, callback)
