"""Cancellable timers owned by client state.

Every delayed action (reconnect, polling, indicator timeout) lives in a named
slot so that superseding transitions can cancel it. A slot holds at most one
pending handle; re-arming cancels the previous one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Protocol

from loguru import logger


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Source of delayed callbacks (an event loop in production)."""

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)


class Timer:
    """One-shot timer slot."""

    def __init__(self, scheduler: Scheduler, name: str) -> None:
        self._scheduler = scheduler
        self.name = name
        self._handle: TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self, delay_s: float, callback: Callable[[], None]) -> None:
        self.cancel()

        def fire() -> None:
            self._handle = None
            callback()

        self._handle = self._scheduler.call_later(delay_s, fire)
        logger.trace("Timer {} armed for {:.3f}s", self.name, delay_s)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.trace("Timer {} cancelled", self.name)


class PeriodicTimer:
    """Fixed-period repeating timer. Starting an active timer is a no-op."""

    def __init__(self, scheduler: Scheduler, interval_s: float, callback: Callable[[], None], name: str) -> None:
        self._slot = Timer(scheduler, name)
        self.interval_s = interval_s
        self._callback = callback
        self._running = False

    @property
    def active(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._slot.start(self.interval_s, self._tick)

    def stop(self) -> None:
        self._running = False
        self._slot.cancel()

    def _tick(self) -> None:
        # Re-arm before the callback so a stop() inside it wins.
        self._slot.start(self.interval_s, self._tick)
        self._callback()
