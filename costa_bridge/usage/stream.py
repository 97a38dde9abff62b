"""
Usage stream supervisor.

Polls ``costa status`` on a fixed cadence and publishes usage snapshots to
subscribers. A failed poll tears down the poll timer and schedules a single
delayed reconnect; there is no exponential backoff.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Dict, FrozenSet, List, Optional, Set

from costa_bridge.bridge.client import BridgeClient
from costa_bridge.config import settings
from costa_bridge.scheduling import AsyncioScheduler, Scheduler, TimerGroup
from costa_bridge.usage.schemas import StreamState, UsageSnapshot

logger = logging.getLogger("costa.usage")

UsageListener = Callable[[UsageSnapshot], None]

_TRANSITIONS: Dict[StreamState, FrozenSet[StreamState]] = {
    StreamState.IDLE: frozenset({StreamState.CONNECTING}),
    StreamState.CONNECTING: frozenset({StreamState.POLLING, StreamState.RECONNECT_SCHEDULED, StreamState.IDLE}),
    StreamState.POLLING: frozenset({StreamState.CONNECTING, StreamState.RECONNECT_SCHEDULED, StreamState.IDLE}),
    StreamState.RECONNECT_SCHEDULED: frozenset(
        {StreamState.CONNECTING, StreamState.RECONNECT_SCHEDULED, StreamState.IDLE}
    ),
}


class InvalidTransitionError(RuntimeError):
    """Raised when the stream is asked to move between incompatible states."""


class UsageStream:
    """
    Supervises the periodic usage feed.

    Only one status call from the connect and poll paths is in flight at a
    time: ``connect()`` waits for an outstanding poll tick before fetching.
    Every connect and every ``disconnect()`` bumps a generation counter, so
    calls that finish after a newer cycle started cannot touch its timers.
    """

    def __init__(
        self,
        client: BridgeClient,
        scheduler: Optional[Scheduler] = None,
        poll_interval: Optional[float] = None,
        reconnect_delay: Optional[float] = None,
    ):
        self.client = client
        self.scheduler = scheduler or AsyncioScheduler()
        self.poll_interval = poll_interval if poll_interval is not None else settings.USAGE_POLL_INTERVAL_SECONDS
        self.reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else settings.USAGE_RECONNECT_DELAY_SECONDS
        )
        self.latest: Optional[UsageSnapshot] = None

        self._state = StreamState.IDLE
        self._generation = 0
        self._timers = TimerGroup(self.scheduler)
        self._poll = self._timers.slot("usage-poll")
        self._reconnect = self._timers.slot("usage-reconnect")
        self._poll_task: Optional[asyncio.Task] = None
        self._listeners: List[UsageListener] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_connecting(self) -> bool:
        return self._state is StreamState.CONNECTING

    @property
    def polling(self) -> bool:
        return self._poll.active

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect.active

    def on_usage(self, listener: UsageListener) -> Callable[[], None]:
        """
        Subscribe to usage events.

        Returns:
            Callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, target: StreamState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(f"UsageStream: cannot move from {self._state.value} to {target.value}")
        logger.debug(f"UsageStream: {self._state.value} -> {target.value}")
        self._state = target

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def _poll_in_flight(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def connect(self) -> None:
        """
        Fetch usage once, then poll; on failure schedule a reconnect.

        Never raises. Calls made while a connection attempt is in flight
        return immediately.
        """
        if self._state is StreamState.CONNECTING:
            logger.debug("UsageStream: Connection attempt already in progress")
            return

        self._poll.cancel()
        self._reconnect.cancel()
        self._transition(StreamState.CONNECTING)
        self._generation += 1
        generation = self._generation
        logger.info("UsageStream: Starting connection attempt")

        try:
            if self._poll_in_flight:
                logger.debug("UsageStream: Waiting for in-flight poll to finish")
                await asyncio.wait({self._poll_task})
                if not self._is_current(generation):
                    return
            await self.fetch_usage_data()
        except Exception as e:
            logger.error(f"UsageStream: Error connecting to usage feed: {e}")
            if self._is_current(generation):
                self._schedule_reconnect()
        else:
            if self._is_current(generation):
                self._setup_polling()
        finally:
            if self._is_current(generation) and self._state is StreamState.CONNECTING:
                self._transition(StreamState.IDLE)

    def _setup_polling(self) -> None:
        logger.info(f"UsageStream: Setting up polling interval ({self.poll_interval:g}s)")
        self._transition(StreamState.POLLING)
        self._poll.every(self.poll_interval, self._on_poll_timer)

    def _on_poll_timer(self) -> None:
        if self._poll_in_flight:
            logger.debug("UsageStream: Previous poll still running, skipping tick")
            return
        self._poll_task = self._spawn(self._poll_tick(self._generation))

    async def _poll_tick(self, generation: int) -> None:
        try:
            if not self._is_current(generation):
                return
            await self.fetch_usage_data()
        except Exception as e:
            logger.error(f"UsageStream: Error polling usage data: {e}")
            if self._is_current(generation) and self._state is StreamState.POLLING:
                self._poll.cancel()
                self._schedule_reconnect()

    async def fetch_usage_data(self) -> Optional[UsageSnapshot]:
        """
        Read usage from the CLI and publish it.

        Returns:
            The published snapshot, or None when the user is not logged in

        Raises:
            BridgeError: the status call failed
        """
        try:
            status = await self.client.status()
        except Exception as e:
            logger.error(f"UsageStream: Error fetching status from CLI: {e}")
            raise

        if not status.logged_in:
            logger.info("UsageStream: User not logged in")
            return None

        snapshot = UsageSnapshot.from_status(status)
        logger.info(
            f"UsageStream: Received usage data: points={snapshot.points}, "
            f"total_points={snapshot.total_points}, context_length={snapshot.context_length}"
        )
        if snapshot.has_data():
            self._publish(snapshot)
        return snapshot

    def _publish(self, snapshot: UsageSnapshot) -> None:
        self.latest = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("UsageStream: Usage listener failed")

    def _schedule_reconnect(self) -> None:
        logger.info(f"UsageStream: Scheduling reconnect in {self.reconnect_delay:g} seconds")
        self._transition(StreamState.RECONNECT_SCHEDULED)
        self._reconnect.once(self.reconnect_delay, self._on_reconnect_timer)

    def _on_reconnect_timer(self) -> None:
        self._spawn(self._reconnect_attempt(self._generation))

    async def _reconnect_attempt(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        logger.info("UsageStream: Attempting reconnect")
        try:
            await self.connect()
        except Exception as e:
            logger.error(f"UsageStream: Error reconnecting: {e}")

    def disconnect(self) -> None:
        """Cancel every timer and return to idle. Safe to call at any time."""
        logger.info("UsageStream: Disconnecting")
        self._generation += 1
        self._timers.cancel_all()
        self._state = StreamState.IDLE

    async def close(self) -> None:
        """Disconnect and cancel in-flight status calls, waiting for them to unwind."""
        self.disconnect()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
