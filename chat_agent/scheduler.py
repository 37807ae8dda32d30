"""Delayed-task scheduling for reconnect backoff.

The session controller only talks to the Scheduler protocol, so tests can
swap in ManualScheduler and advance time without sleeping.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Protocol

log = logging.getLogger("scheduler")

TaskFactory = Callable[[], Awaitable[None]]


class ScheduledTask(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, factory: TaskFactory) -> ScheduledTask: ...


class _AsyncioTask:
    def __init__(self) -> None:
        self.handle: Optional[asyncio.TimerHandle] = None
        self.task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        if self.handle:
            self.handle.cancel()
        if self.task and not self.task.done():
            self.task.cancel()


class AsyncioScheduler:
    """Runs each factory as its own task once the delay has elapsed."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, factory: TaskFactory) -> _AsyncioTask:
        loop = self._loop or asyncio.get_running_loop()
        scheduled = _AsyncioTask()

        def _fire() -> None:
            scheduled.task = loop.create_task(_run(factory))

        scheduled.handle = loop.call_later(delay, _fire)
        return scheduled


async def _run(factory: TaskFactory) -> None:
    try:
        await factory()
    except asyncio.CancelledError:
        raise
    except Exception:
        log.exception("Scheduled task failed")


@dataclass
class _ManualTask:
    due: float
    factory: TaskFactory
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    """Test scheduler: nothing runs until advance() moves the clock past it."""

    now: float = 0.0
    tasks: list[_ManualTask] = field(default_factory=list)
    requested: list[float] = field(default_factory=list)  # every delay asked for, in order

    def call_later(self, delay: float, factory: TaskFactory) -> _ManualTask:
        self.requested.append(delay)
        task = _ManualTask(due=self.now + delay, factory=factory)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[_ManualTask]:
        return [t for t in self.tasks if not t.cancelled]

    async def advance(self, seconds: float) -> int:
        """Move the clock forward and run every due task in order. Returns how many ran."""
        self.now += seconds
        ran = 0
        while True:
            due = sorted(
                (t for t in self.pending if t.due <= self.now), key=lambda t: t.due
            )
            if not due:
                return ran
            task = due[0]
            self.tasks.remove(task)
            await _run(task.factory)
            ran += 1
