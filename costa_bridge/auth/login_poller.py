"""
Login completion poller.

After ``costa login`` hands out an auth URL, the user finishes signing in
in the browser while this poller checks ``costa status`` on an interval.
It stops on the first logged-in response or when the login's timeout
expires, whichever comes first. A timed-out login is abandoned; a fresh
login must be started to try again.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Set

from costa_bridge.bridge.client import BridgeClient
from costa_bridge.config import settings
from costa_bridge.scheduling import AsyncioScheduler, Scheduler, TimerGroup

logger = logging.getLogger("costa.login")


class LoginPollState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


class LoginPoller:
    """One-shot supervised loop waiting for a login to complete."""

    def __init__(
        self,
        client: BridgeClient,
        scheduler: Optional[Scheduler] = None,
        interval: Optional[float] = None,
        on_success: Optional[Callable[[], None]] = None,
    ):
        self.client = client
        self.scheduler = scheduler or AsyncioScheduler()
        self.interval = interval if interval is not None else settings.LOGIN_POLL_INTERVAL_SECONDS
        self.on_success = on_success
        self.state = LoginPollState.PENDING
        self.timeout_seconds: Optional[float] = None

        self._timers = TimerGroup(self.scheduler)
        self._poll = self._timers.slot("login-poll")
        self._deadline = self._timers.slot("login-timeout")
        self._in_flight = False
        self._tasks: Set[asyncio.Task] = set()
        self._outcome: Optional[asyncio.Future] = None

    @property
    def active(self) -> bool:
        return self.state is LoginPollState.POLLING

    def start(self, timeout_seconds: Optional[float] = None) -> None:
        """
        Begin polling.

        Args:
            timeout_seconds: Lifetime of the attempt, from the login response
        """
        if self.state is not LoginPollState.PENDING:
            raise RuntimeError(f"LoginPoller already {self.state.value}")

        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.LOGIN_DEFAULT_TIMEOUT_SECONDS
        )
        self._outcome = asyncio.get_running_loop().create_future()
        self.state = LoginPollState.POLLING
        logger.info(f"LoginPoller: Starting login polling (timeout {self.timeout_seconds:g}s)")
        self._poll.every(self.interval, self._on_tick)
        self._deadline.once(self.timeout_seconds, self._on_timeout)

    async def wait(self) -> LoginPollState:
        """Wait until the attempt succeeds, times out or is cancelled."""
        if self._outcome is None:
            raise RuntimeError("LoginPoller has not been started")
        return await asyncio.shield(self._outcome)

    def cancel(self) -> None:
        if self.state is LoginPollState.POLLING:
            logger.info("LoginPoller: Login polling cancelled")
            self._finish(LoginPollState.CANCELLED)

    def _finish(self, state: LoginPollState) -> None:
        self._timers.cancel_all()
        self.state = state
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(state)

    def _on_tick(self) -> None:
        if self._in_flight:
            return
        self._in_flight = True
        task = asyncio.get_running_loop().create_task(self._check_status())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _check_status(self) -> None:
        try:
            if self.state is not LoginPollState.POLLING:
                return
            result = await self.client.status()
        except Exception as e:
            # one flaky call must not abort the login
            logger.error(f"LoginPoller: Error during login polling: {e}")
            return
        finally:
            self._in_flight = False

        if not result.logged_in or self.state is not LoginPollState.POLLING:
            return

        logger.info("LoginPoller: Login successful")
        self._finish(LoginPollState.SUCCEEDED)
        if self.on_success is not None:
            try:
                self.on_success()
            except Exception:
                logger.exception("LoginPoller: Success callback failed")

    def _on_timeout(self) -> None:
        if self.state is LoginPollState.POLLING:
            logger.info("LoginPoller: Login polling timed out")
            self._finish(LoginPollState.TIMED_OUT)

    async def close(self) -> None:
        """Cancel the attempt and any status check still running."""
        self.cancel()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
