"""
Cancellable timers for the polling supervisors.

Schedulers arm one-shot and interval timers on the event loop. A
ScheduledTask is a named slot that holds at most one armed timer: arming
it again cancels whatever it held. A TimerGroup owns the slots of one
supervisor so teardown can cancel all of them at once.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Protocol

logger = logging.getLogger("costa.scheduling")

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(ABC):
    """Arms timers whose callbacks run synchronously on the event loop."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        pass

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        return RepeatingTimer(self, interval, callback)


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running event loop's clock."""

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class RepeatingTimer:
    """Interval timer built from successive one-shot timers."""

    def __init__(self, scheduler: Scheduler, interval: float, callback: Callback):
        self._scheduler = scheduler
        self._interval = interval
        self._callback = callback
        self._cancelled = False
        self._handle = scheduler.call_later(interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        # re-arm first so the callback is free to cancel us
        self._handle = self._scheduler.call_later(self._interval, self._fire)
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        self._handle.cancel()

    def cancelled(self) -> bool:
        return self._cancelled


class ScheduledTask:
    """A named slot holding at most one armed timer."""

    def __init__(self, scheduler: Scheduler, name: str):
        self.scheduler = scheduler
        self.name = name
        self._handle: Optional[TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._handle is not None and not self._handle.cancelled()

    def once(self, delay: float, callback: Callback) -> None:
        """Arm a one-shot timer, replacing any timer already in the slot."""
        self.cancel()
        handle: Optional[TimerHandle] = None

        def fire() -> None:
            if self._handle is handle:
                self._handle = None
            callback()

        handle = self.scheduler.call_later(delay, fire)
        self._handle = handle
        logger.debug(f"{self.name}: armed one-shot timer ({delay:g}s)")

    def every(self, interval: float, callback: Callback) -> None:
        """Arm an interval timer, replacing any timer already in the slot."""
        self.cancel()
        self._handle = self.scheduler.call_every(interval, callback)
        logger.debug(f"{self.name}: armed interval timer ({interval:g}s)")

    def cancel(self) -> bool:
        """
        Cancel the armed timer, if any.

        Returns:
            True if a live timer was cancelled
        """
        handle, self._handle = self._handle, None
        if handle is None or handle.cancelled():
            return False
        handle.cancel()
        logger.debug(f"{self.name}: timer cancelled")
        return True


class TimerGroup:
    """The set of timer slots owned by one supervisor."""

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._slots: Dict[str, ScheduledTask] = {}

    def slot(self, name: str) -> ScheduledTask:
        if name not in self._slots:
            self._slots[name] = ScheduledTask(self.scheduler, name)
        return self._slots[name]

    def cancel_all(self) -> None:
        for slot in self._slots.values():
            slot.cancel()
